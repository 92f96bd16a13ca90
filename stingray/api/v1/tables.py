"""
Table and field metadata API endpoints.

Reading metadata follows the table's read groups. Creating, editing and
deleting tables or fields requires the admin or engineer group; field changes
are applied to the storage schema in the same transaction.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.api.dependencies import Store
from stingray.core.auth import CurrentIdentity, Evaluator, MetadataAdmin
from stingray.core.database import get_db
from stingray.core.exceptions import InvalidGroupSetError
from stingray.core.logging import get_logger
from stingray.core.permissions import GroupSet, Operation
from stingray.core.transaction import Transaction
from stingray.schemas.auth import MessageResponse
from stingray.schemas.metadata import (
    FieldMetadataCreate,
    FieldMetadataResponse,
    FieldMetadataUpdate,
    TableCreate,
    TableDetailResponse,
    TableListResponse,
    TableMetadataResponse,
    TableUpdate,
    group_set_from,
)
from stingray.services.table_access import (
    get_table_access,
    list_accessible_tables,
    require_table_access,
    resolve_engineer_mode,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/tables", tags=["tables"])


@router.get("", response_model=TableListResponse)
async def list_tables(
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
    engineer: Annotated[bool, Query(description="Engineer mode (engineers only)")] = False,
) -> TableListResponse:
    """List the tables the caller may read (every table in engineer mode)."""
    engineer_mode = await resolve_engineer_mode(evaluator, identity, engineer)
    tables = await list_accessible_tables(db, store, evaluator, identity, engineer_mode)

    responses = []
    for table in tables:
        try:
            responses.append(TableMetadataResponse.from_model(table))
        except InvalidGroupSetError as e:
            # Only reachable in engineer mode; other listings drop such tables
            logger.warning("table_group_set_invalid", table=table.table_name, error=str(e))
            responses.append(
                TableMetadataResponse(
                    table_name=table.table_name,
                    display_name=table.display_name,
                    description=table.description,
                    read_groups=[],
                    write_groups=[],
                )
            )
    return TableListResponse(engineer_mode=engineer_mode, tables=responses)


@router.post("", response_model=TableMetadataResponse, status_code=status.HTTP_201_CREATED)
async def create_table(
    payload: TableCreate,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TableMetadataResponse:
    """Create a storage table with its table and field metadata."""
    async with Transaction(db) as tx:
        table = await store.create_table_with_metadata(
            tx,
            table_name=payload.table_name,
            display_name=payload.display_name,
            description=payload.description,
            read_groups=GroupSet.of(payload.read_groups),
            write_groups=GroupSet.of(payload.write_groups),
            fields=[field.to_metadata(payload.table_name) for field in payload.fields],
        )
    return TableMetadataResponse.from_model(table)


@router.get("/{table_name}", response_model=TableDetailResponse)
async def get_table(
    table_name: str,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TableDetailResponse:
    """Table metadata, field metadata and the caller's capabilities."""
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.READ)
    access = await get_table_access(evaluator, identity, table)
    fields = await store.list_field_metadata(db, table_name)

    return TableDetailResponse(
        **TableMetadataResponse.from_model(table).model_dump(),
        can_create=access.can_create,
        can_edit=access.can_edit,
        can_delete=access.can_delete,
        fields=[FieldMetadataResponse.model_validate(f) for f in fields],
    )


@router.patch("/{table_name}", response_model=TableMetadataResponse)
async def update_table(
    table_name: str,
    payload: TableUpdate,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TableMetadataResponse:
    """Update display name, description or group sets."""
    async with Transaction(db) as tx:
        table = await store.update_table_metadata(
            tx,
            table_name,
            display_name=payload.display_name,
            description=payload.description,
            read_groups=group_set_from(payload.read_groups),
            write_groups=group_set_from(payload.write_groups),
        )
    return TableMetadataResponse.from_model(table)


@router.delete("/{table_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table(
    table_name: str,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Delete a table, its metadata and its data. System tables are refused."""
    async with Transaction(db) as tx:
        await store.delete_table_metadata(tx, table_name)


# ===== Fields =====


@router.get("/{table_name}/fields", response_model=list[FieldMetadataResponse])
async def list_fields(
    table_name: str,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[FieldMetadataResponse]:
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.READ)
    fields = await store.list_field_metadata(db, table_name)
    return [FieldMetadataResponse.model_validate(f) for f in fields]


@router.post(
    "/{table_name}/fields",
    response_model=FieldMetadataResponse | MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_field(
    table_name: str,
    payload: FieldMetadataCreate,
    response: Response,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FieldMetadataResponse | MessageResponse:
    """Add a field: metadata row plus storage column."""
    async with Transaction(db) as tx:
        field = await store.create_field_metadata(tx, payload.to_metadata(table_name))

    if field is None:
        response.status_code = status.HTTP_200_OK
        return MessageResponse(message=f"{payload.field_name} is a management field; skipped")
    return FieldMetadataResponse.model_validate(field)


@router.patch("/{table_name}/fields/{field_name}", response_model=FieldMetadataResponse)
async def update_field(
    table_name: str,
    field_name: str,
    payload: FieldMetadataUpdate,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> FieldMetadataResponse:
    """Update a field; type, required and default changes alter the column."""
    async with Transaction(db) as tx:
        current = await store.get_field_metadata(tx.session, table_name, field_name)
        field = await store.update_field_metadata(tx, payload.merge_into(current))
    return FieldMetadataResponse.model_validate(field)


@router.delete("/{table_name}/fields/{field_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_field(
    table_name: str,
    field_name: str,
    _admin: MetadataAdmin,
    store: Store,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Delete a field and drop its column. Management fields are left alone."""
    async with Transaction(db) as tx:
        await store.delete_field_metadata(tx, table_name, field_name)
