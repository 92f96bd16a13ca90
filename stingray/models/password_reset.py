"""
SQLModel-based password reset token model

A token row is written for every reset request that matches an account. The
plain token is only ever emailed; the row keeps its SHA-256 digest. A token
is usable once, until ``expires_at``.
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field

from stingray.config import SystemTable
from stingray.models.base import ManagedFields


class PasswordResetTokens(ManagedFields, table=True):
    """
    Database table for password reset tokens.

    Internal fields (should NOT be exposed via public API):
    - token_hash: digest of the emailed token
    """

    __tablename__ = SystemTable.PASSWORD_RESET_TOKEN

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            [f"{SystemTable.USER}.id"],
            ondelete="CASCADE",
            name="fk_password_reset_token_user_id",
        ),
        Index("uq_password_reset_token_hash", "token_hash", unique=True),
        Index("fk_password_reset_token_user_id", "user_id"),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    user_id: int
    token_hash: str = Field(max_length=64)
    email: str = Field(max_length=255)
    expires_at: datetime
    used: bool = Field(default=False)
