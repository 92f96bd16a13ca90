"""
Password reset by emailed token.

A request never reveals whether an account exists: callers answer it the same
way whether or not ``request_password_reset`` found a user. Confirming a token
sets the new password, burns the token and logs the user out everywhere.
"""

from datetime import timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import settings
from stingray.core.exceptions import ValidationError
from stingray.core.logging import get_logger
from stingray.core.security import generate_reset_token, get_password_hash, hash_reset_token
from stingray.models.base import utcnow
from stingray.models.password_reset import PasswordResetTokens
from stingray.models.session import Sessions
from stingray.models.user import Users

logger = get_logger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired reset token"


async def request_password_reset(db: AsyncSession, email: str) -> tuple[Users, str] | None:
    """
    Issue a reset token for the account registered under ``email``.

    Returns:
        The user and the plain token to mail, or None when no account matches
    """
    result = await db.execute(
        select(Users)
        .where(Users.email == email)
        .order_by(Users.id)  # type: ignore[arg-type]
        .limit(1)
    )
    user = result.scalar_one_or_none()
    if user is None or user.id is None:
        logger.info("password_reset_unknown_email")
        return None

    token = generate_reset_token()
    db.add(
        PasswordResetTokens(
            user_id=user.id,
            token_hash=hash_reset_token(token),
            email=email,
            expires_at=utcnow() + timedelta(hours=settings.PASSWORD_RESET_TOKEN_HOURS),
        )
    )
    await db.flush()
    logger.info("password_reset_requested", user_id=user.id)
    return user, token


async def confirm_password_reset(db: AsyncSession, token: str, new_password: str) -> Users:
    """
    Set a new password using a reset token.

    Raises:
        ValidationError: Unknown, used or expired token (one message for all three)
    """
    result = await db.execute(
        select(PasswordResetTokens).where(
            PasswordResetTokens.token_hash == hash_reset_token(token)
        )
    )
    reset = result.scalar_one_or_none()
    if reset is None or reset.used or reset.expires_at <= utcnow():
        logger.info("password_reset_token_rejected")
        raise ValidationError(INVALID_TOKEN_MESSAGE)

    user = await db.get(Users, reset.user_id)
    if user is None:
        raise ValidationError(INVALID_TOKEN_MESSAGE)

    user.password = get_password_hash(new_password)
    reset.used = True
    db.add_all([user, reset])
    await db.execute(
        update(Sessions)
        .where(Sessions.user_id == reset.user_id)
        .where(Sessions.is_active == True)  # noqa: E712
        .values(is_active=False)
    )
    await db.flush()
    logger.info("password_reset_completed", user_id=reset.user_id)
    return user


async def cleanup_expired_reset_tokens(db: AsyncSession) -> int:
    """Delete tokens past their expiry; returns how many were removed."""
    result = await db.execute(
        delete(PasswordResetTokens).where(
            PasswordResetTokens.expires_at <= utcnow()  # type: ignore[arg-type]
        )
    )
    count = result.rowcount or 0
    if count:
        logger.info("expired_reset_tokens_removed", count=count)
    return count
