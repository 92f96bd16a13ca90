"""
SQLModel-based group models

- Groups: named permission buckets referenced by name inside group sets
- UserGroups: junction table linking users to groups

The reserved ``everyone`` group has a row in ``_group`` so it can be listed and
described, but nobody is ever linked to it; membership is synthesized.
"""

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from stingray.config import SystemTable
from stingray.models.base import ManagedFields

# ===== Groups =====


class GroupBase(SQLModel):
    """
    Base model with shared public fields for Groups.

    These fields are safe to expose via the API.
    """

    name: str = Field(max_length=255)
    description: str | None = Field(default=None, max_length=255)


class Groups(GroupBase, ManagedFields, table=True):
    """Database table for user groups."""

    __tablename__ = SystemTable.GROUP

    __table_args__ = (Index("uq_group_name", "name", unique=True),)

    # Primary key
    id: int | None = Field(default=None, primary_key=True)


# ===== UserGroups (Junction Table) =====


class UserGroups(ManagedFields, table=True):
    """
    Database table linking users to groups.

    One row per (user, group) pair.
    """

    __tablename__ = SystemTable.USER_AND_GROUP

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            [f"{SystemTable.USER}.id"],
            ondelete="CASCADE",
            name="fk_user_and_group_user_id",
        ),
        ForeignKeyConstraint(
            ["group_id"],
            [f"{SystemTable.GROUP}.id"],
            ondelete="CASCADE",
            name="fk_user_and_group_group_id",
        ),
        Index("uq_user_and_group", "user_id", "group_id", unique=True),
        Index("fk_user_and_group_group_id", "group_id"),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    user_id: int
    group_id: int
