"""
SQLModel models for the system tables.

Importing this package registers every system table with ``SQLModel.metadata``,
which is what bootstrap and the test suite use to create the schema.
Managed (user-designed) tables have no model; they are reflected at runtime.
"""

from stingray.models.base import ManagedFields
from stingray.models.metadata import FieldMetadata, TableMetadata
from stingray.models.page import Pages
from stingray.models.password_reset import PasswordResetTokens
from stingray.models.permissions import Groups, UserGroups
from stingray.models.session import Sessions
from stingray.models.user import Users

__all__ = [
    "FieldMetadata",
    "Groups",
    "ManagedFields",
    "Pages",
    "PasswordResetTokens",
    "Sessions",
    "TableMetadata",
    "UserGroups",
    "Users",
]
