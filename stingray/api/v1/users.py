"""User and group listing endpoints (admins and engineers only)."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.api.dependencies import PaginationParams
from stingray.core.auth import MetadataAdmin
from stingray.core.database import get_db
from stingray.core.exceptions import NotFoundError
from stingray.models.permissions import GroupBase, Groups
from stingray.models.user import UserBase, Users
from stingray.services.user_groups import get_groups_for_user, get_groups_for_users

router = APIRouter(tags=["users"])


class UserResponse(UserBase):
    id: int
    groups: list[str]


class UserListResponse(BaseModel):
    total: int
    page: int
    per_page: int
    users: list[UserResponse]


class UserGroupsResponse(BaseModel):
    user_id: int
    username: str
    groups: list[str]


class GroupResponse(GroupBase):
    id: int

    model_config = {"from_attributes": True}


@router.get("/users", response_model=UserListResponse)
async def list_users(
    _admin: MetadataAdmin,
    pagination: Annotated[PaginationParams, Depends()],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserListResponse:
    """List users with their stored group memberships."""
    total_result = await db.execute(select(func.count()).select_from(Users))
    total = total_result.scalar() or 0

    result = await db.execute(
        select(Users).order_by(Users.id).offset(pagination.offset).limit(pagination.per_page)
    )
    users = result.scalars().all()
    groups_by_user = await get_groups_for_users(db, [u.id for u in users if u.id is not None])

    return UserListResponse(
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        users=[
            UserResponse(
                id=user.id,
                username=user.username,
                email=user.email,
                groups=groups_by_user.get(user.id, []),
            )
            for user in users
            if user.id is not None
        ],
    )


@router.get("/groups", response_model=list[GroupResponse])
async def list_groups(
    _admin: MetadataAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[GroupResponse]:
    result = await db.execute(select(Groups).order_by(Groups.name))
    return [GroupResponse.model_validate(group) for group in result.scalars().all()]


@router.get("/users/{user_id}/groups", response_model=UserGroupsResponse)
async def get_user_groups(
    user_id: int,
    _admin: MetadataAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserGroupsResponse:
    """Stored group memberships of one user."""
    user = await db.get(Users, user_id)
    if user is None:
        raise NotFoundError("user", user_id)

    return UserGroupsResponse(
        user_id=user_id,
        username=user.username,
        groups=await get_groups_for_user(db, user_id),
    )
