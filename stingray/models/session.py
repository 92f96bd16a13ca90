"""
SQLModel-based session model

Sessions back the login cookie. A session is usable while ``is_active`` is set
and ``expires_at`` lies in the future; logout and expiry cleanup only flip
``is_active`` so the rows remain for auditing.
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field

from stingray.config import SystemTable
from stingray.models.base import ManagedFields


class Sessions(ManagedFields, table=True):
    """
    Database table for login sessions.

    Internal fields (should NOT be exposed via public API):
    - session_id: Session token (highly sensitive)
    """

    __tablename__ = SystemTable.SESSION

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            [f"{SystemTable.USER}.id"],
            ondelete="CASCADE",
            name="fk_session_user_id",
        ),
        Index("uq_session_session_id", "session_id", unique=True),
        Index("fk_session_user_id", "user_id"),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    session_id: str = Field(max_length=64)
    user_id: int
    username: str = Field(max_length=255)
    expires_at: datetime
    is_active: bool = Field(default=True)
