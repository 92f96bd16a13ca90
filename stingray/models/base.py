"""
Management columns shared by every table the CMS stores.

Every system table and every table created through the table designer carries
``id``, ``read_groups``, ``write_groups``, ``created`` and ``modified``. The
SQLModel tables below inherit the last four from ``ManagedFields``; ``id`` is
declared per table so each can keep its own primary key definition.
"""

from datetime import UTC, datetime

from sqlalchemy import Text, text
from sqlmodel import Field, SQLModel

from stingray.core.permissions import GroupSet


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DATETIME columns are stored."""
    return datetime.now(UTC).replace(tzinfo=None)


class ManagedFields(SQLModel):
    """Per-row permission group sets and audit timestamps."""

    # JSON arrays of group names; NULL/empty means unrestricted
    read_groups: str | None = Field(default=None, sa_type=Text)
    write_groups: str | None = Field(default=None, sa_type=Text)

    # Set on the Python side because SQLModel sends explicit values for every field;
    # server defaults cover rows written with raw SQL
    created: datetime | None = Field(
        default_factory=utcnow,
        sa_column_kwargs={"server_default": text("current_timestamp()")},
    )
    modified: datetime | None = Field(
        default_factory=utcnow,
        sa_column_kwargs={
            "server_default": text("current_timestamp() ON UPDATE current_timestamp()"),
            "onupdate": utcnow,
        },
    )

    def read_group_set(self) -> GroupSet:
        """Parse ``read_groups``; raises InvalidGroupSetError when malformed."""
        return GroupSet.parse(self.read_groups)

    def write_group_set(self) -> GroupSet:
        """Parse ``write_groups``; raises InvalidGroupSetError when malformed."""
        return GroupSet.parse(self.write_groups)
