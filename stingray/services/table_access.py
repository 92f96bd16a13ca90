"""
Table and row level access decisions.

Combines table metadata, row group sets and the permission evaluator:
- listings drop tables/rows the caller cannot read, and drop entries whose
  group set is malformed (logged as a warning)
- single-item access raises AccessDeniedError, or InvalidGroupSetError for a
  malformed group set
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import DefaultGroups
from stingray.core.exceptions import InvalidGroupSetError
from stingray.core.logging import get_logger
from stingray.core.permissions import Identity, Operation, PermissionEvaluator
from stingray.models.metadata import TableMetadata
from stingray.services.metadata_store import MetadataStore
from stingray.services.row_editor import Row

logger = get_logger(__name__)


@dataclass(frozen=True)
class TableAccess:
    can_read: bool
    can_create: bool
    can_edit: bool
    can_delete: bool


async def resolve_engineer_mode(
    evaluator: PermissionEvaluator, identity: Identity, requested: bool
) -> bool:
    """Engineer mode is honoured only for members of the engineer group."""
    if not requested:
        return False
    return await evaluator.resolver.is_member(identity, DefaultGroups.ENGINEER)


async def list_accessible_tables(
    db: AsyncSession,
    store: MetadataStore,
    evaluator: PermissionEvaluator,
    identity: Identity,
    engineer_mode: bool = False,
) -> list[TableMetadata]:
    """Tables the identity may read; engineer mode lists every table."""
    tables = await store.list_table_metadata(db)
    if engineer_mode:
        return tables

    visible = []
    for table in tables:
        try:
            group_set = table.read_group_set()
        except InvalidGroupSetError as e:
            logger.warning("table_group_set_invalid", table=table.table_name, error=str(e))
            continue
        if await evaluator.can_read(identity, group_set):
            visible.append(table)
    return visible


async def get_table_access(
    evaluator: PermissionEvaluator, identity: Identity, table: TableMetadata
) -> TableAccess:
    can_read = await evaluator.can_read(identity, table.read_group_set())
    can_write = await evaluator.can_write(identity, table.write_group_set())
    return TableAccess(
        can_read=can_read, can_create=can_write, can_edit=can_write, can_delete=can_write
    )


async def require_table_access(
    evaluator: PermissionEvaluator,
    identity: Identity,
    table: TableMetadata,
    operation: Operation,
) -> None:
    group_set = table.read_group_set() if operation is Operation.READ else table.write_group_set()
    await evaluator.require(operation, identity, group_set, table.table_name)


async def require_row_access(
    evaluator: PermissionEvaluator,
    identity: Identity,
    table_name: str,
    row: Row,
    operation: Operation,
) -> None:
    """Check a row's own read_groups/write_groups (absent means unrestricted)."""
    column = "read_groups" if operation is Operation.READ else "write_groups"
    await evaluator.require(
        operation, identity, row.group_set(column), f"{table_name}#{row.id}"
    )


async def filter_readable_rows(
    evaluator: PermissionEvaluator, identity: Identity, table_name: str, rows: list[Row]
) -> list[Row]:
    readable = []
    for row in rows:
        try:
            group_set = row.group_set("read_groups")
        except InvalidGroupSetError as e:
            logger.warning("row_group_set_invalid", table=table_name, row_id=row.id, error=str(e))
            continue
        if await evaluator.can_read(identity, group_set):
            readable.append(row)
    return readable
