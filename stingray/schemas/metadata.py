"""Pydantic schemas for table and field metadata endpoints."""

from pydantic import BaseModel, Field, field_validator, model_validator

from stingray.config import DBType, FieldPosition, InputType
from stingray.core.permissions import GroupSet
from stingray.models.metadata import FieldMetadata, FieldMetadataBase, TableMetadata
from stingray.schemas.base import UTCDatetimeOptional


def _strip(v: str | None) -> str | None:
    if isinstance(v, str):
        return v.strip()
    return v


class FieldMetadataCreate(BaseModel):
    """Schema for adding a field (and its storage column) to a table."""

    field_name: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    db_type: str = Field(default=DBType.VARCHAR, max_length=64)
    html_input_type: str = Field(default=InputType.TEXT, max_length=32)
    form_position: int = Field(default=FieldPosition.HIDDEN)
    list_position: int = Field(default=FieldPosition.HIDDEN)
    is_required: bool = False
    is_read_only: bool = False
    default_value: str | None = Field(default=None, max_length=255)
    validation_rules: str | None = None

    @field_validator("field_name", "display_name", "db_type", mode="before")
    @classmethod
    def strip_strings(cls, v: str) -> str:
        return _strip(v)  # type: ignore[return-value]

    def to_metadata(self, table_name: str) -> FieldMetadataBase:
        return FieldMetadataBase(table_name=table_name, **self.model_dump())


class FieldMetadataUpdate(BaseModel):
    """Schema for updating a field. Omitted attributes keep their stored values."""

    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    db_type: str | None = Field(default=None, max_length=64)
    html_input_type: str | None = Field(default=None, max_length=32)
    form_position: int | None = None
    list_position: int | None = None
    is_required: bool | None = None
    is_read_only: bool | None = None
    default_value: str | None = Field(default=None, max_length=255)
    validation_rules: str | None = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "FieldMetadataUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one attribute must be provided")
        return self

    def merge_into(self, current: FieldMetadata) -> FieldMetadataBase:
        """Apply the provided attributes on top of the stored metadata."""
        merged = {name: getattr(current, name) for name in FieldMetadataBase.model_fields}
        merged.update(self.model_dump(exclude_unset=True))
        return FieldMetadataBase(**merged)


class FieldMetadataResponse(FieldMetadataBase):
    """Schema for field metadata response."""

    id: int
    created: UTCDatetimeOptional = None
    modified: UTCDatetimeOptional = None

    model_config = {"from_attributes": True}


class TableCreate(BaseModel):
    """Schema for creating a table together with its metadata."""

    table_name: str = Field(min_length=1, max_length=64)
    display_name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    read_groups: list[str] = Field(default_factory=list)
    write_groups: list[str] = Field(default_factory=list)
    fields: list[FieldMetadataCreate] = Field(default_factory=list)

    @field_validator("table_name", "display_name", mode="before")
    @classmethod
    def strip_strings(cls, v: str) -> str:
        return _strip(v)  # type: ignore[return-value]


class TableUpdate(BaseModel):
    """Schema for updating table metadata. Never changes the storage schema."""

    display_name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    read_groups: list[str] | None = None
    write_groups: list[str] | None = None

    @model_validator(mode="after")
    def at_least_one_field(self) -> "TableUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one attribute must be provided")
        return self


class TableMetadataResponse(BaseModel):
    """Schema for table metadata response."""

    table_name: str
    display_name: str
    description: str | None = None
    read_groups: list[str]
    write_groups: list[str]
    created: UTCDatetimeOptional = None
    modified: UTCDatetimeOptional = None

    @classmethod
    def from_model(cls, table: TableMetadata) -> "TableMetadataResponse":
        return cls(
            table_name=table.table_name,
            display_name=table.display_name,
            description=table.description,
            read_groups=list(table.read_group_set()),
            write_groups=list(table.write_group_set()),
            created=table.created,
            modified=table.modified,
        )


class TableDetailResponse(TableMetadataResponse):
    can_create: bool
    can_edit: bool
    can_delete: bool
    fields: list[FieldMetadataResponse]


class TableListResponse(BaseModel):
    engineer_mode: bool
    tables: list[TableMetadataResponse]


def group_set_from(groups: list[str] | None) -> GroupSet | None:
    return GroupSet.of(groups) if groups is not None else None
