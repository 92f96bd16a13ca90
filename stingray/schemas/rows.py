"""Pydantic schemas for generic row endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from stingray.services.row_editor import CellValue


class RowWrite(BaseModel):
    """Column values submitted for a new or existing row."""

    values: dict[str, Any] = Field(default_factory=dict)


class RowResponse(BaseModel):
    id: int
    values: dict[str, CellValue]


class RowIdResponse(BaseModel):
    id: int


class ListColumnResponse(BaseModel):
    name: str
    label: str


class RowListResponse(BaseModel):
    """Schema for a paginated table listing."""

    table_name: str
    display_name: str
    total: int
    page: int
    per_page: int
    engineer_mode: bool
    can_create: bool
    can_edit: bool
    can_delete: bool
    columns: list[ListColumnResponse]
    rows: list[RowResponse]


class FormFieldResponse(BaseModel):
    name: str
    label: str
    input_type: str
    value: CellValue
    required: bool
    read_only: bool
    description: str | None = None
    validation_rules: str | None = None


class RowFormResponse(BaseModel):
    """A single row rendered as an edit form."""

    table_name: str
    id: int
    engineer_mode: bool
    can_edit: bool
    can_delete: bool
    fields: list[FormFieldResponse]
