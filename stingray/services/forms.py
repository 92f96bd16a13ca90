"""
Form and list views driven by field metadata.

Two presentation modes, chosen per request:
- normal: only fields with a non-negative position, labelled with their
  display names and rendered with their configured widgets
- engineer: every storage column in table order, labelled with its raw name,
  shown as read-only text

Engineer mode is view-only; it never changes how rows are written.
"""

from dataclasses import dataclass
from typing import Any

from stingray.config import InputType
from stingray.core.security import get_password_hash
from stingray.models.metadata import FieldMetadata
from stingray.services.row_editor import CellValue, Row


@dataclass
class FormField:
    name: str
    label: str
    input_type: str
    value: CellValue
    required: bool = False
    read_only: bool = False
    description: str | None = None
    validation_rules: str | None = None


@dataclass
class ListColumn:
    name: str
    label: str


def build_form_view(
    fields: list[FieldMetadata],
    columns: list[str],
    row: Row | None = None,
    engineer_mode: bool = False,
) -> list[FormField]:
    """
    Build the ordered edit-form fields for a row (or for a new row).

    Args:
        fields: Field metadata of the table
        columns: Storage columns of the table, in table order
        row: Existing row, or None for a creation form
        engineer_mode: Show raw columns instead of metadata-driven fields
    """
    values = mask_values(fields, row.values) if row is not None else {}

    if engineer_mode:
        return [
            FormField(
                name=column,
                label=column,
                input_type=InputType.TEXT,
                value=values.get(column),
                read_only=True,
            )
            for column in columns
        ]

    present = set(columns)
    visible = sorted(
        (f for f in fields if f.form_position >= 0 and f.field_name in present),
        key=lambda f: (f.form_position, f.field_name),
    )
    return [
        FormField(
            name=f.field_name,
            label=f.display_name,
            input_type=f.html_input_type,
            value=values.get(f.field_name),
            required=f.is_required,
            read_only=f.is_read_only,
            description=f.description,
            validation_rules=f.validation_rules,
        )
        for f in visible
    ]


def build_list_columns(
    fields: list[FieldMetadata], columns: list[str], engineer_mode: bool = False
) -> list[ListColumn]:
    """Columns shown in the tabular listing of a table."""
    if engineer_mode:
        return [ListColumn(name=column, label=column) for column in columns]

    present = set(columns)
    visible = sorted(
        (f for f in fields if f.list_position >= 0 and f.field_name in present),
        key=lambda f: (f.list_position, f.field_name),
    )
    return [ListColumn(name=f.field_name, label=f.display_name) for f in visible]


def secret_fields(fields: list[FieldMetadata]) -> set[str]:
    """Columns rendered with a password widget; their stored values are never shown."""
    return {f.field_name for f in fields if f.html_input_type == InputType.PASSWORD}


def mask_values(fields: list[FieldMetadata], values: dict[str, CellValue]) -> dict[str, CellValue]:
    secrets = secret_fields(fields)
    return {key: (None if key in secrets else value) for key, value in values.items()}


def prepare_submission(fields: list[FieldMetadata], data: dict[str, Any]) -> dict[str, Any]:
    """
    Apply widget semantics to submitted values before they reach the editor.

    Password-widget values are hashed; blank ones are dropped so the stored
    hash is kept.
    """
    secrets = secret_fields(fields)
    prepared: dict[str, Any] = {}
    for key, value in data.items():
        if key in secrets:
            if value is None or (isinstance(value, str) and not value):
                continue
            value = get_password_hash(str(value))
        prepared[key] = value
    return prepared
