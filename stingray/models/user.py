"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    ├─> Users (database table, adds the password hash and management columns)
    └─> UserResponse (API schema, defined in stingray/schemas)
"""

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from stingray.config import SystemTable
from stingray.models.base import ManagedFields


class UserBase(SQLModel):
    """
    Base model with shared public fields for Users.

    These fields are safe to expose via the API.
    """

    username: str = Field(max_length=255)
    email: str = Field(max_length=255)


class Users(UserBase, ManagedFields, table=True):
    """
    Database table for user accounts.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password: bcrypt hash
    """

    __tablename__ = SystemTable.USER

    __table_args__ = (Index("uq_user_username", "username", unique=True),)

    # Primary key
    id: int | None = Field(default=None, primary_key=True)

    password: str = Field(max_length=255)
