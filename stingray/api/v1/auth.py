"""
Authentication API endpoints.

This module provides endpoints for:
- Login (creates a session and sets the session cookie)
- Logout (invalidates the session)
- Current identity
- Password reset by emailed token
"""

from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import EVERYONE_GROUP, settings
from stingray.core.auth import CurrentIdentity
from stingray.core.database import get_db
from stingray.core.logging import get_logger
from stingray.schemas.auth import (
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
)
from stingray.services.email import send_password_reset_email
from stingray.services.password_reset import confirm_password_reset, request_password_reset
from stingray.services.sessions import authenticate, create_session, invalidate_session
from stingray.services.user_groups import get_groups_for_user

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

RESET_REQUESTED_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        httponly=True,  # Prevent JavaScript access (XSS protection)
        secure=settings.ENVIRONMENT == "production",  # HTTPS only in production
        samesite="lax",
        max_age=settings.SESSION_DURATION_HOURS * 60 * 60,  # seconds
    )


@router.post("/login", response_model=IdentityResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> IdentityResponse:
    """
    Log in with username and password.

    Unknown usernames and wrong passwords get the same 401 response.
    """
    user = await authenticate(db, credentials.username, credentials.password)
    if user is None or user.id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    session = await create_session(db, user, timedelta(hours=settings.SESSION_DURATION_HOURS))
    _set_session_cookie(response, session.session_id)
    logger.info("user_logged_in", user_id=user.id)

    groups = await get_groups_for_user(db, user.id)
    return IdentityResponse(
        user_id=user.id,
        username=user.username,
        groups=[*groups, EVERYONE_GROUP],
        authenticated=True,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """Invalidate the current session (if any) and clear the cookie."""
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_id:
        await invalidate_session(db, session_id)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=IdentityResponse)
async def me(
    identity: CurrentIdentity,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> IdentityResponse:
    """Describe the caller; anonymous callers belong to ``everyone`` only."""
    groups = [] if identity.user_id is None else await get_groups_for_user(db, identity.user_id)
    return IdentityResponse(
        user_id=identity.user_id,
        username=identity.username,
        groups=[*groups, EVERYONE_GROUP],
        authenticated=not identity.is_anonymous,
    )


@router.post("/password-reset-request", response_model=MessageResponse)
async def password_reset_request(
    payload: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """
    Email a reset link to the account registered under the address.

    The response is identical whether or not such an account exists.
    """
    issued = await request_password_reset(db, payload.email)
    if issued is not None:
        user, token = issued
        background_tasks.add_task(send_password_reset_email, user, token)
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/password-reset-confirm", response_model=MessageResponse)
async def password_reset_confirm(
    payload: PasswordResetConfirm,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> MessageResponse:
    """Set a new password with a reset token; every session of the user is ended."""
    await confirm_password_reset(db, payload.token, payload.new_password)
    return MessageResponse(message="Password has been reset")
