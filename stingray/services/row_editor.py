"""
Generic row editor for managed tables.

Tables are reflected at call time, so any table (system or user-designed) can be
listed and edited through one key-to-value row shape. The editor performs no
permission checks; handlers call the permission evaluator first.

Payload rules:
- ``id`` is never written; storage assigns it
- blank ``created``/``modified`` values are dropped so column defaults apply
- every update sets ``modified`` to the server's current time
- keys that are not columns of the table are rejected
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import MetaData, Table, delete, func, insert, select, update
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import TIMESTAMP_FIELDS
from stingray.core.exceptions import InvalidGroupSetError, NotFoundError, ValidationError
from stingray.core.logging import get_logger
from stingray.core.permissions import GroupSet
from stingray.services.schema_sync import validate_identifier

logger = get_logger(__name__)

# One cell of a generic row
CellValue = str | int | float | bool | datetime | date | None

GROUP_SET_COLUMNS = ("read_groups", "write_groups")


def coerce_cell(value: Any) -> CellValue:
    """Map a driver value onto the CellValue union."""
    if value is None or isinstance(value, (bool, int, float, str, datetime, date)):
        return value
    if isinstance(value, Decimal):
        # Keep the exact decimal representation
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, timedelta):
        # TIME columns
        return str(value)
    return str(value)


@dataclass
class Row:
    """One record of any managed table."""

    id: int
    values: dict[str, CellValue] = field(default_factory=dict)

    def get(self, name: str) -> CellValue:
        return self.values.get(name)

    def group_set(self, column: str) -> GroupSet:
        """Parse the row's own read/write group set (raises InvalidGroupSetError)."""
        return group_set_from_value(self.values.get(column))


def group_set_from_value(value: Any) -> GroupSet:
    """
    Build a GroupSet from a submitted or stored cell.

    Accepts the JSON string form, a list of group names, or None (unrestricted).
    Anything else raises InvalidGroupSetError.
    """
    if value is None:
        return GroupSet()
    if isinstance(value, str):
        return GroupSet.parse(value)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return GroupSet.of(value)
    raise InvalidGroupSetError(repr(value), "expected a JSON array of group names")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _prepare_payload(data: dict[str, Any], columns: list[str]) -> dict[str, Any]:
    unknown = sorted(set(data) - set(columns))
    if unknown:
        raise ValidationError(f"Unknown columns: {', '.join(unknown)}")

    payload: dict[str, Any] = {}
    for key, value in data.items():
        if key == "id":
            continue
        if key in TIMESTAMP_FIELDS and _is_blank(value):
            continue
        if key in GROUP_SET_COLUMNS:
            group_set = group_set_from_value(value)
            value = group_set.to_json() if group_set else None
        payload[key] = value
    return payload


def prepare_create_payload(data: dict[str, Any], columns: list[str]) -> dict[str, Any]:
    """Column values for an INSERT built from a submitted row."""
    return _prepare_payload(data, columns)


def prepare_update_payload(data: dict[str, Any], columns: list[str]) -> dict[str, Any]:
    """
    Column values for an UPDATE built from a submitted row.

    ``modified`` is always set to the database's NOW(), whatever was submitted.
    """
    payload = _prepare_payload(data, columns)
    if "modified" in columns:
        payload["modified"] = func.now()
    return payload


class RowEditor:
    """List, read, create, update and delete rows of a table by name."""

    async def reflect(self, db: AsyncSession, table_name: str) -> Table:
        """
        Load the table definition from storage.

        Raises:
            ValidationError: Invalid table name or no ``id`` column
            NotFoundError: Table does not exist
        """
        validate_identifier(table_name, "table")
        try:
            table = await db.run_sync(
                lambda session: Table(table_name, MetaData(), autoload_with=session.connection())
            )
        except NoSuchTableError as e:
            raise NotFoundError("table", table_name) from e

        if "id" not in table.c:
            raise ValidationError(f"Table {table_name!r} has no id column")
        return table

    async def list_columns(self, db: AsyncSession, table_name: str) -> list[str]:
        table = await self.reflect(db, table_name)
        return [column.name for column in table.columns]

    async def list_rows(
        self, db: AsyncSession, table_name: str, page: int, page_size: int
    ) -> tuple[list[Row], int]:
        """
        Fetch one page of rows ordered by id.

        Args:
            page: 1-based page index
            page_size: Rows per page

        Returns:
            (rows on the page, total rows in the table)
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")

        table = await self.reflect(db, table_name)

        total_result = await db.execute(select(func.count()).select_from(table))
        total = total_result.scalar() or 0

        result = await db.execute(
            select(table)
            .order_by(table.c.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        rows = [self._to_row(mapping) for mapping in result.mappings().all()]
        return rows, total

    async def get_row(self, db: AsyncSession, table_name: str, row_id: int) -> Row:
        table = await self.reflect(db, table_name)
        result = await db.execute(select(table).where(table.c.id == row_id))
        mapping = result.mappings().first()
        if mapping is None:
            raise NotFoundError("row", f"{table_name}#{row_id}")
        return self._to_row(mapping)

    async def create_row(self, db: AsyncSession, table_name: str, data: dict[str, Any]) -> int:
        """Insert a row and return the id storage assigned to it."""
        table = await self.reflect(db, table_name)
        payload = prepare_create_payload(data, [c.name for c in table.columns])

        result = await db.execute(insert(table).values(**payload))
        row_id = result.inserted_primary_key[0] if result.inserted_primary_key else result.lastrowid
        logger.info("row_created", table=table_name, row_id=row_id)
        return int(row_id)

    async def update_row(
        self, db: AsyncSession, table_name: str, row_id: int, data: dict[str, Any]
    ) -> None:
        table = await self.reflect(db, table_name)
        payload = prepare_update_payload(data, [c.name for c in table.columns])
        if not payload:
            await self.get_row(db, table_name, row_id)
            return

        result = await db.execute(update(table).where(table.c.id == row_id).values(**payload))
        if result.rowcount == 0:
            raise NotFoundError("row", f"{table_name}#{row_id}")
        logger.info("row_updated", table=table_name, row_id=row_id, fields=sorted(payload))

    async def delete_row(self, db: AsyncSession, table_name: str, row_id: int) -> None:
        table = await self.reflect(db, table_name)
        result = await db.execute(delete(table).where(table.c.id == row_id))
        if result.rowcount == 0:
            raise NotFoundError("row", f"{table_name}#{row_id}")
        logger.info("row_deleted", table=table_name, row_id=row_id)

    @staticmethod
    def _to_row(mapping: Any) -> Row:
        values = {key: coerce_cell(value) for key, value in mapping.items()}
        return Row(id=int(mapping["id"]), values=values)
