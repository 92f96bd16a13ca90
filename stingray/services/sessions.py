"""
Login sessions.

A session row is created on login and referenced by an opaque identifier held
in the session cookie. Lookups only return sessions that are active and not
yet expired.
"""

from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.core.logging import get_logger
from stingray.core.security import generate_session_id, verify_password
from stingray.models.base import utcnow
from stingray.models.session import Sessions
from stingray.models.user import Users

logger = get_logger(__name__)


async def authenticate(db: AsyncSession, username: str, password: str) -> Users | None:
    """
    Verify credentials.

    Unknown usernames and wrong passwords both return None, so callers cannot
    tell which one failed.
    """
    result = await db.execute(select(Users).where(Users.username == username))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password):
        logger.info("login_failed", username=username)
        return None
    return user


async def create_session(db: AsyncSession, user: Users, duration: timedelta) -> Sessions:
    assert user.id is not None
    session = Sessions(
        session_id=generate_session_id(),
        user_id=user.id,
        username=user.username,
        expires_at=utcnow() + duration,
        is_active=True,
    )
    db.add(session)
    await db.flush()
    logger.info("session_created", user_id=user.id)
    return session


async def get_active_session(db: AsyncSession, session_id: str) -> Sessions | None:
    result = await db.execute(
        select(Sessions).where(
            Sessions.session_id == session_id,
            Sessions.is_active == True,  # noqa: E712
            Sessions.expires_at > utcnow(),  # type: ignore[arg-type]
        )
    )
    return result.scalar_one_or_none()


async def invalidate_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(
        update(Sessions).where(Sessions.session_id == session_id).values(is_active=False)
    )


async def cleanup_expired_sessions(db: AsyncSession) -> int:
    """Deactivate expired sessions; returns how many were deactivated."""
    result = await db.execute(
        update(Sessions)
        .where(Sessions.expires_at <= utcnow(), Sessions.is_active == True)  # type: ignore[arg-type]  # noqa: E712
        .values(is_active=False)
    )
    count = result.rowcount or 0
    if count:
        logger.info("expired_sessions_deactivated", count=count)
    return count
