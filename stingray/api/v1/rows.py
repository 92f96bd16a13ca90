"""
Generic row API endpoints.

Rows of any managed table are listed and edited through the same routes.
Table read/write groups gate every route; a row's own read_groups and
write_groups narrow access further. Engineer mode (``?engineer=true``)
switches the views to raw storage columns for members of the engineer group.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.api.dependencies import Editor, PaginationParams, Store
from stingray.core.auth import CurrentIdentity, Evaluator
from stingray.core.database import get_db
from stingray.core.permissions import Operation
from stingray.schemas.rows import (
    FormFieldResponse,
    ListColumnResponse,
    RowFormResponse,
    RowIdResponse,
    RowListResponse,
    RowResponse,
    RowWrite,
)
from stingray.services.forms import (
    build_form_view,
    build_list_columns,
    mask_values,
    prepare_submission,
)
from stingray.services.table_access import (
    filter_readable_rows,
    get_table_access,
    require_row_access,
    require_table_access,
    resolve_engineer_mode,
)

router = APIRouter(prefix="/tables/{table_name}/rows", tags=["rows"])

EngineerFlag = Annotated[bool, Query(description="Engineer mode (engineers only)")]


@router.get("", response_model=RowListResponse)
async def list_rows(
    table_name: str,
    pagination: Annotated[PaginationParams, Depends()],
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
    engineer: EngineerFlag = False,
) -> RowListResponse:
    """
    List one page of rows.

    Rows whose own read_groups exclude the caller are left out of the page;
    ``total`` counts every row of the table.
    """
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.READ)
    access = await get_table_access(evaluator, identity, table)
    engineer_mode = await resolve_engineer_mode(evaluator, identity, engineer)

    fields = await store.list_field_metadata(db, table_name)
    columns = await editor.list_columns(db, table_name)
    list_columns = build_list_columns(fields, columns, engineer_mode)
    shown = {column.name for column in list_columns}

    rows, total = await editor.list_rows(db, table_name, pagination.page, pagination.per_page)
    rows = await filter_readable_rows(evaluator, identity, table_name, rows)

    return RowListResponse(
        table_name=table.table_name,
        display_name=table.display_name,
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        engineer_mode=engineer_mode,
        can_create=access.can_create,
        can_edit=access.can_edit,
        can_delete=access.can_delete,
        columns=[ListColumnResponse(name=c.name, label=c.label) for c in list_columns],
        rows=[
            RowResponse(
                id=row.id,
                values={
                    key: value
                    for key, value in mask_values(fields, row.values).items()
                    if key in shown
                },
            )
            for row in rows
        ],
    )


@router.get("/new", response_model=RowFormResponse)
async def new_row_form(
    table_name: str,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RowFormResponse:
    """Empty form for creating a row."""
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.WRITE)

    fields = await store.list_field_metadata(db, table_name)
    columns = await editor.list_columns(db, table_name)
    form = build_form_view(fields, columns)

    return RowFormResponse(
        table_name=table_name,
        id=0,
        engineer_mode=False,
        can_edit=True,
        can_delete=False,
        fields=[FormFieldResponse(**vars(f)) for f in form],
    )


@router.get("/{row_id}", response_model=RowFormResponse)
async def get_row(
    table_name: str,
    row_id: int,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
    engineer: EngineerFlag = False,
) -> RowFormResponse:
    """A row rendered as an edit form."""
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.READ)
    row = await editor.get_row(db, table_name, row_id)
    await require_row_access(evaluator, identity, table_name, row, Operation.READ)

    access = await get_table_access(evaluator, identity, table)
    engineer_mode = await resolve_engineer_mode(evaluator, identity, engineer)
    can_write_row = access.can_edit and await evaluator.can_write(
        identity, row.group_set("write_groups")
    )

    fields = await store.list_field_metadata(db, table_name)
    columns = await editor.list_columns(db, table_name)
    form = build_form_view(fields, columns, row=row, engineer_mode=engineer_mode)

    return RowFormResponse(
        table_name=table_name,
        id=row.id,
        engineer_mode=engineer_mode,
        can_edit=can_write_row and not engineer_mode,
        can_delete=can_write_row and not engineer_mode,
        fields=[FormFieldResponse(**vars(f)) for f in form],
    )


@router.post("", response_model=RowIdResponse, status_code=status.HTTP_201_CREATED)
async def create_row(
    table_name: str,
    payload: RowWrite,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RowIdResponse:
    """Insert a row; storage assigns the id and timestamps."""
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.WRITE)

    fields = await store.list_field_metadata(db, table_name)
    row_id = await editor.create_row(db, table_name, prepare_submission(fields, payload.values))
    return RowIdResponse(id=row_id)


@router.patch("/{row_id}", response_model=RowIdResponse)
async def update_row(
    table_name: str,
    row_id: int,
    payload: RowWrite,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> RowIdResponse:
    """Update the submitted columns of a row; ``modified`` is always refreshed."""
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.WRITE)
    row = await editor.get_row(db, table_name, row_id)
    await require_row_access(evaluator, identity, table_name, row, Operation.WRITE)

    fields = await store.list_field_metadata(db, table_name)
    await editor.update_row(db, table_name, row_id, prepare_submission(fields, payload.values))
    return RowIdResponse(id=row_id)


@router.delete("/{row_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_row(
    table_name: str,
    row_id: int,
    identity: CurrentIdentity,
    evaluator: Evaluator,
    store: Store,
    editor: Editor,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    table = await store.get_table_metadata(db, table_name)
    await require_table_access(evaluator, identity, table, Operation.WRITE)
    row = await editor.get_row(db, table_name, row_id)
    await require_row_access(evaluator, identity, table_name, row, Operation.WRITE)

    await editor.delete_row(db, table_name, row_id)
