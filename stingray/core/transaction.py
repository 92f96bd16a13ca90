"""
Explicit transactional scope for metadata and schema changes.

MariaDB/MySQL commits implicitly around every DDL statement, so a database
transaction alone cannot make "alter the column and update its metadata" atomic.
``Transaction`` pairs the session's DML transaction with a stack of
compensating actions:

- DDL runs first; each successful statement registers the statement that undoes it
- metadata DML follows and is committed when the scope exits cleanly
- on any error the DML is rolled back and the compensations run newest first

Usage:
    async with Transaction(db) as tx:
        await store.update_field_metadata(tx, field)
"""

from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.core.logging import get_logger

logger = get_logger(__name__)

Action = Callable[[], Awaitable[Any]]


class Transaction:
    """Unit of work over one session, with compensations for committed DDL."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._compensations: list[tuple[str, Action]] = []
        self._after_commit: list[tuple[str, Action]] = []
        self._active = False

    async def __aenter__(self) -> "Transaction":
        if self._active:
            raise RuntimeError("Transaction scope is not reentrant")
        self._active = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._active = False
        if exc_type is not None:
            await self._abort(exc)
            return

        try:
            await self.session.commit()
        except Exception as commit_error:
            await self._abort(commit_error)
            raise

        self._compensations.clear()
        for description, action in self._after_commit:
            try:
                await action()
            except SQLAlchemyError as e:
                # The unit of work is already committed; leftovers need manual cleanup
                logger.error("after_commit_action_failed", action=description, error=str(e))
        self._after_commit.clear()

    @property
    def active(self) -> bool:
        return self._active

    def on_rollback(self, description: str, action: Action) -> None:
        """Register an action that undoes an already-applied DDL statement."""
        self._compensations.append((description, action))

    def after_commit(self, description: str, action: Action) -> None:
        """Register an action deferred until the DML has been committed."""
        self._after_commit.append((description, action))

    async def execute(self, statement: Any, params: dict[str, Any] | None = None) -> Any:
        return await self.session.execute(statement, params or {})

    async def _abort(self, error: BaseException) -> None:
        await self.session.rollback()
        compensations = list(reversed(self._compensations))
        self._compensations.clear()
        self._after_commit.clear()

        if compensations:
            logger.warning(
                "transaction_compensating",
                error=str(error),
                steps=[description for description, _ in compensations],
            )
        for description, action in compensations:
            try:
                await action()
            except SQLAlchemyError as e:
                # Keep unwinding; the original error is re-raised by __aexit__
                logger.error("compensation_failed", action=description, error=str(e))
