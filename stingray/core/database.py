"""
Async engine and sessions for the content database.

One engine serves both ORM access to the system tables and the raw SQL that
user-defined tables need.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stingray.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    # Below the server's wait_timeout so idle connections are never reused after a drop
    pool_recycle=3600,
)

# Objects stay readable after commit; DDL paths commit mid-request
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Commits when the endpoint returns and rolls back if it raises. Work done
    inside a ``Transaction`` has already been committed by then.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_async_session() -> AsyncSession:
    """Session for code outside a request (startup bootstrap). Use with ``async with``."""
    return AsyncSessionLocal()


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
