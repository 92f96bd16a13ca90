"""
SQLModel-based table and field metadata models

TableMetadataBase / FieldMetadataBase (editable fields)
    ├─> TableMetadata / FieldMetadata (database tables, add management columns)
    └─> Create/Update/Response schemas (defined in stingray/schemas/metadata.py)

TableMetadata holds display information and the table-level group sets for one
managed table. FieldMetadata holds one column's storage type, input widget,
ordering and flags; it drives both form rendering and schema synchronization.
"""

from sqlalchemy import Index, Text
from sqlmodel import Field, SQLModel

from stingray.config import FieldPosition, InputType, SystemTable
from stingray.models.base import ManagedFields

# ===== TableMetadata =====


class TableMetadataBase(SQLModel):
    table_name: str = Field(max_length=64)
    display_name: str = Field(max_length=255)
    description: str | None = Field(default=None, sa_type=Text)


class TableMetadata(TableMetadataBase, ManagedFields, table=True):
    """Database table for per-table display and permission metadata."""

    __tablename__ = SystemTable.TABLE_METADATA

    __table_args__ = (Index("uq_table_metadata_table_name", "table_name", unique=True),)

    # Primary key
    id: int | None = Field(default=None, primary_key=True)


# ===== FieldMetadata =====


class FieldMetadataBase(SQLModel):
    table_name: str = Field(max_length=64)
    field_name: str = Field(max_length=64)
    display_name: str = Field(max_length=255)
    description: str | None = Field(default=None, sa_type=Text)

    # Storage type descriptor, e.g. "VARCHAR(255)" or "DECIMAL(10,2)"
    db_type: str = Field(max_length=64)
    html_input_type: str = Field(default=InputType.TEXT, max_length=32)

    # Negative positions hide the field from the form/list
    form_position: int = Field(default=FieldPosition.HIDDEN)
    list_position: int = Field(default=FieldPosition.HIDDEN)

    is_required: bool = Field(default=False)
    is_read_only: bool = Field(default=False)
    default_value: str | None = Field(default=None, max_length=255)

    # Opaque structured descriptor interpreted by clients
    validation_rules: str | None = Field(default=None, sa_type=Text)


class FieldMetadata(FieldMetadataBase, ManagedFields, table=True):
    """Database table for per-column editing and display metadata."""

    __tablename__ = SystemTable.FIELD_METADATA

    __table_args__ = (
        Index("uq_field_metadata_table_field", "table_name", "field_name", unique=True),
    )

    # Primary key
    id: int | None = Field(default=None, primary_key=True)
