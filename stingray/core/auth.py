"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Resolving the session cookie into an Identity (anonymous when absent)
- Requiring an authenticated caller
- Requiring membership of a metadata administration group
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import settings
from stingray.core.database import get_db
from stingray.core.logging import set_user_context
from stingray.core.permissions import ANONYMOUS, Identity, PermissionEvaluator
from stingray.services.sessions import get_active_session
from stingray.services.user_groups import GroupMembershipResolver, is_metadata_admin


async def get_identity(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Identity:
    """
    Resolve the session cookie into an Identity.

    Missing, unknown, inactive and expired sessions all resolve to the
    anonymous identity; this dependency never fails on its own.
    """
    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not session_id:
        return ANONYMOUS

    session = await get_active_session(db, session_id)
    if session is None:
        return ANONYMOUS

    set_user_context(session.user_id)
    return Identity(user_id=session.user_id, username=session.username)


async def require_identity(
    identity: Annotated[Identity, Depends(get_identity)],
) -> Identity:
    """
    Require an authenticated caller.

    Raises:
        HTTPException: 401 if the caller is anonymous
    """
    if identity.is_anonymous:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return identity


def get_resolver(db: Annotated[AsyncSession, Depends(get_db)]) -> GroupMembershipResolver:
    return GroupMembershipResolver(db)


def get_evaluator(
    resolver: Annotated[GroupMembershipResolver, Depends(get_resolver)],
) -> PermissionEvaluator:
    return PermissionEvaluator(resolver)


async def require_metadata_admin(
    identity: Annotated[Identity, Depends(require_identity)],
    resolver: Annotated[GroupMembershipResolver, Depends(get_resolver)],
) -> Identity:
    """
    Require membership of the admin or engineer group.

    Raises:
        HTTPException: 401 if anonymous, 403 if not an admin or engineer
    """
    if not await is_metadata_admin(resolver, identity):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or engineer privileges required",
        )
    return identity


# Type aliases for dependency injection
CurrentIdentity = Annotated[Identity, Depends(get_identity)]
AuthenticatedIdentity = Annotated[Identity, Depends(require_identity)]
MetadataAdmin = Annotated[Identity, Depends(require_metadata_admin)]
Evaluator = Annotated[PermissionEvaluator, Depends(get_evaluator)]
