"""User groups service: membership lookups and group/user administration."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import EVERYONE_GROUP, DefaultGroups
from stingray.core.logging import get_logger
from stingray.core.permissions import Identity
from stingray.core.security import get_password_hash
from stingray.models.permissions import Groups, UserGroups
from stingray.models.user import Users

logger = get_logger(__name__)


class GroupMembershipResolver:
    """
    Answers "is this identity a member of group G?" from storage.

    - ``everyone`` matches every identity, anonymous included
    - otherwise anonymous identities match nothing
    - otherwise the ``_user_and_group`` links decide

    Every call is a fresh read. Storage errors propagate to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_member(self, identity: Identity, group: str) -> bool:
        if group == EVERYONE_GROUP:
            return True
        if identity.is_anonymous:
            return False

        result = await self.db.execute(
            select(func.count())
            .select_from(UserGroups)
            .join(Groups, UserGroups.group_id == Groups.id)  # type: ignore[arg-type]
            .where(UserGroups.user_id == identity.user_id, Groups.name == group)  # type: ignore[arg-type]
        )
        return (result.scalar() or 0) > 0


async def get_groups_for_user(db: AsyncSession, user_id: int) -> list[str]:
    """
    Fetch the stored group names of one user (``everyone`` is never stored).

    Args:
        db: Database session
        user_id: User ID

    Returns:
        Group names ordered by name
    """
    result = await db.execute(
        select(Groups.name)
        .join(UserGroups, UserGroups.group_id == Groups.id)  # type: ignore[arg-type]
        .where(UserGroups.user_id == user_id)  # type: ignore[arg-type]
        .order_by(Groups.name)
    )
    return [name for name in result.scalars().all()]


async def get_groups_for_users(db: AsyncSession, user_ids: list[int]) -> dict[int, list[str]]:
    """
    Fetch group names for multiple users in a single query.

    Args:
        db: Database session
        user_ids: List of user IDs to fetch groups for

    Returns:
        Dict mapping user_id to list of group names.
        Users with no groups will not appear in the result.
        Caller should use .get(user_id, []) to handle missing users.
    """
    if not user_ids:
        return {}

    query = (
        select(UserGroups.user_id, Groups.name)
        .join(Groups, UserGroups.group_id == Groups.id)  # type: ignore[arg-type]
        .where(UserGroups.user_id.in_(user_ids))  # type: ignore[attr-defined]
        .order_by(Groups.name)
    )
    result = await db.execute(query)

    groups_by_user: dict[int, list[str]] = {}
    for user_id, group_name in result.fetchall():
        groups_by_user.setdefault(user_id, []).append(group_name)

    return groups_by_user


async def is_metadata_admin(resolver: GroupMembershipResolver, identity: Identity) -> bool:
    """True when the identity may create, edit or delete table/field metadata."""
    for group in DefaultGroups.METADATA_ADMINS:
        if await resolver.is_member(identity, group):
            return True
    return False


async def create_group_if_not_exists(
    db: AsyncSession, name: str, description: str | None = None
) -> Groups:
    result = await db.execute(select(Groups).where(Groups.name == name))
    group = result.scalar_one_or_none()
    if group is None:
        group = Groups(name=name, description=description)
        db.add(group)
        await db.flush()
        logger.info("group_created", group=name)
    return group


async def add_user_to_group(db: AsyncSession, user_id: int, group_name: str) -> bool:
    """
    Link a user to a group by name. Idempotent.

    Returns:
        True if a link was created, False if it already existed

    Raises:
        ValueError: If the group does not exist or is ``everyone``
    """
    if group_name == EVERYONE_GROUP:
        raise ValueError("Membership of 'everyone' is implicit and cannot be stored")

    result = await db.execute(select(Groups.id).where(Groups.name == group_name))
    group_id = result.scalar_one_or_none()
    if group_id is None:
        raise ValueError(f"Group {group_name!r} does not exist")

    existing = await db.execute(
        select(UserGroups.id).where(
            UserGroups.user_id == user_id,  # type: ignore[arg-type]
            UserGroups.group_id == group_id,  # type: ignore[arg-type]
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False

    db.add(UserGroups(user_id=user_id, group_id=group_id))
    await db.flush()
    logger.info("user_added_to_group", user_id=user_id, group=group_name)
    return True


async def create_user(
    db: AsyncSession,
    username: str,
    email: str,
    password: str,
    groups: list[str] | None = None,
) -> Users:
    """Create a user with a bcrypt-hashed password and optional group links."""
    user = Users(username=username, email=email, password=get_password_hash(password))
    db.add(user)
    await db.flush()
    assert user.id is not None

    for group_name in groups or []:
        await add_user_to_group(db, user.id, group_name)

    logger.info("user_created", user_id=user.id, username=username)
    return user
