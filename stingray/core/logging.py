"""
structlog setup for Stingray.

Every log line is an event name plus key/value pairs. Request-scoped values
(request_id, user_id) are bound through structlog's contextvars support, so
services deep inside a request never have to pass them along explicitly.

Development renders coloured console output; every other environment emits
one JSON object per line.
"""

import logging
import sys
from typing import cast

import structlog
from structlog.types import Processor

from stingray.config import settings


def _renderers() -> list[Processor]:
    if settings.ENVIRONMENT == "development":
        return [structlog.dev.ConsoleRenderer(colors=True)]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging() -> None:
    """Install the structlog processor chain and route stdlib logging to stdout."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        *_renderers(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper()),
    )

    # SQL echo is controlled by DB_ECHO, not by the log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    if settings.ENVIRONMENT != "development":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Return the module logger, e.g. ``logger = get_logger(__name__)``.

    Events are snake_case names with keyword context:
        logger.info("column_added", table="widgets", field="price")
    """
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def set_request_context(request_id: str, user_id: int | None = None) -> None:
    """Start a fresh log context for one request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    if user_id is not None:
        structlog.contextvars.bind_contextvars(user_id=user_id)


def set_user_context(user_id: int) -> None:
    structlog.contextvars.bind_contextvars(user_id=user_id)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()
