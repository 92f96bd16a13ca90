"""
FastAPI Application - Stingray CMS
Metadata-driven content management with group-based access control
"""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stingray.config import settings
from stingray.core.database import dispose_engine, get_async_session
from stingray.core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    SchemaConflictError,
    StorageError,
    ValidationError,
)
from stingray.core.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)
from stingray.services.bootstrap import bootstrap
from stingray.services.password_reset import cleanup_expired_reset_tokens
from stingray.services.sessions import cleanup_expired_sessions

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown events"""
    configure_logging()
    logger.info(
        "application_starting",
        environment=settings.ENVIRONMENT,
        database=settings.DATABASE_URL.split("@")[-1],
    )

    if settings.BOOTSTRAP_ON_STARTUP:
        async with get_async_session() as db:
            await bootstrap(db)
            removed = await cleanup_expired_sessions(db)
            await cleanup_expired_reset_tokens(db)
            await db.commit()
            logger.info("expired_sessions_removed", count=removed)

    yield
    logger.info("application_stopping")
    await dispose_engine()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Metadata-driven content management API",
    version=settings.VERSION,
    debug=settings.DEBUG,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line emitted while handling a request with its request id."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    set_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


# ===== Error mapping =====


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.info("not_found", kind=exc.kind, key=str(exc.key), path=request.url.path)
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": "Not found"})


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    logger.info(
        "access_denied", operation=exc.operation, resource=exc.resource, path=request.url.path
    )
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("validation_failed", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


@app.exception_handler(SchemaConflictError)
async def schema_conflict_handler(request: Request, exc: SchemaConflictError) -> JSONResponse:
    logger.error(
        "schema_change_failed",
        statement=exc.statement,
        reason=exc.reason,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("storage_failed", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint - API information"""
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint"""
    return {"status": "healthy"}


# Import and include routers
from stingray.api.v1 import router as api_v1_router  # noqa: E402

app.include_router(api_v1_router, prefix=settings.API_V1_STR)
