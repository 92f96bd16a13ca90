"""
Metadata store: table and field metadata, kept consistent with storage.

Reads take a plain ``AsyncSession``. Writes take a ``Transaction`` and, for
field metadata, drive the ``SchemaSynchronizer`` inside that same transaction:
DDL is issued first, the metadata DML follows, and the caller's
``async with Transaction(...)`` block commits both or undoes both.

Management fields (``id``, ``created``, ``modified``, ``read_groups``,
``write_groups``) never produce schema changes:
- create: silently skipped
- update: presentation attributes are saved, storage attributes are kept
- delete: silently skipped
"""

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import (
    PROTECTED_FIELDS,
    SYSTEM_TABLES,
    FieldPosition,
    InputType,
)
from stingray.core.exceptions import (
    AccessDeniedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from stingray.core.logging import get_logger
from stingray.core.permissions import GroupSet
from stingray.core.transaction import Transaction
from stingray.models.metadata import FieldMetadata, FieldMetadataBase, TableMetadata
from stingray.services.schema_sync import (
    TRASH_PREFIX,
    ColumnSpec,
    SchemaSynchronizer,
    describe_column,
    normalize_db_type,
    table_exists,
    validate_identifier,
)

logger = get_logger(__name__)

# Attributes that only affect presentation; saved even for management fields
PRESENTATION_ATTRIBUTES = (
    "display_name",
    "description",
    "html_input_type",
    "form_position",
    "list_position",
    "is_read_only",
    "validation_rules",
)


def management_field_metadata(table_name: str) -> list[FieldMetadata]:
    """Metadata rows describing the management columns of a managed table."""
    hidden = FieldPosition.HIDDEN
    return [
        FieldMetadata(
            table_name=table_name,
            field_name="id",
            display_name="ID",
            description="Unique identifier",
            db_type="INT",
            html_input_type=InputType.NUMBER,
            form_position=0,
            list_position=0,
            is_required=True,
            is_read_only=True,
        ),
        FieldMetadata(
            table_name=table_name,
            field_name="created",
            display_name="Created",
            description="Creation timestamp",
            db_type="TIMESTAMP",
            html_input_type=InputType.DATETIME_LOCAL,
            form_position=hidden,
            list_position=hidden,
            is_read_only=True,
        ),
        FieldMetadata(
            table_name=table_name,
            field_name="modified",
            display_name="Modified",
            description="Last modification timestamp",
            db_type="TIMESTAMP",
            html_input_type=InputType.DATETIME_LOCAL,
            form_position=hidden,
            list_position=hidden,
            is_read_only=True,
        ),
        FieldMetadata(
            table_name=table_name,
            field_name="read_groups",
            display_name="Read Groups",
            description="JSON array of groups that can read this row",
            db_type="TEXT",
            html_input_type=InputType.TEXTAREA,
            form_position=hidden,
            list_position=hidden,
        ),
        FieldMetadata(
            table_name=table_name,
            field_name="write_groups",
            display_name="Write Groups",
            description="JSON array of groups that can modify this row",
            db_type="TEXT",
            html_input_type=InputType.TEXTAREA,
            form_position=hidden,
            list_position=hidden,
        ),
    ]


def _validate_field(field: FieldMetadataBase) -> str:
    """Check a field metadata payload; returns the normalized storage type."""
    validate_identifier(field.table_name, "table")
    validate_identifier(field.field_name, "column")
    if not field.display_name or not field.display_name.strip():
        raise ValidationError(f"Field {field.field_name!r} needs a display name")
    if field.html_input_type not in InputType.ALL:
        raise ValidationError(f"Unknown input type: {field.html_input_type!r}")
    return normalize_db_type(field.db_type)


def _storage_changed(previous: FieldMetadata, field: FieldMetadataBase, db_type: str) -> bool:
    return (
        normalize_db_type(previous.db_type) != db_type
        or bool(previous.is_required) != bool(field.is_required)
        or (previous.default_value or "") != (field.default_value or "")
    )


async def _flush(tx: Transaction) -> None:
    try:
        await tx.session.flush()
    except SQLAlchemyError as e:
        raise StorageError(str(e)) from e


class MetadataStore:
    """CRUD over ``_table_metadata`` and ``_field_metadata``."""

    def __init__(self, schema: SchemaSynchronizer | None = None):
        self.schema = schema or SchemaSynchronizer()

    # ===== Reads =====

    async def get_table_metadata(self, db: AsyncSession, table_name: str) -> TableMetadata:
        metadata = await self._find_table(db, table_name)
        if metadata is None:
            raise NotFoundError("table", table_name)
        return metadata

    async def list_table_metadata(self, db: AsyncSession) -> list[TableMetadata]:
        result = await db.execute(select(TableMetadata).order_by(TableMetadata.table_name))
        return list(result.scalars().all())

    async def get_field_metadata(
        self, db: AsyncSession, table_name: str, field_name: str
    ) -> FieldMetadata:
        metadata = await self._find_field(db, table_name, field_name)
        if metadata is None:
            raise NotFoundError("field", f"{table_name}.{field_name}")
        return metadata

    async def list_field_metadata(self, db: AsyncSession, table_name: str) -> list[FieldMetadata]:
        """Field metadata for a table, in form order (hidden fields last)."""
        result = await db.execute(
            select(FieldMetadata)
            .where(FieldMetadata.table_name == table_name)
            .order_by(FieldMetadata.id)
        )
        fields = list(result.scalars().all())
        return sorted(fields, key=lambda f: (f.form_position < 0, f.form_position))

    # ===== Table metadata =====

    async def create_table_metadata(
        self, tx: Transaction, metadata: TableMetadata
    ) -> TableMetadata:
        """
        Register metadata for a table that already exists in storage.

        Raises:
            NotFoundError: No such storage table
            ValidationError: Metadata already registered, or malformed group sets
        """
        validate_identifier(metadata.table_name, "table")
        metadata.read_group_set()
        metadata.write_group_set()

        if not await table_exists(tx.session, metadata.table_name):
            raise NotFoundError("table", metadata.table_name)
        if await self._find_table(tx.session, metadata.table_name) is not None:
            raise ValidationError(f"Table {metadata.table_name!r} is already registered")

        tx.session.add(metadata)
        await _flush(tx)
        logger.info("table_metadata_created", table=metadata.table_name)
        return metadata

    async def create_table_with_metadata(
        self,
        tx: Transaction,
        table_name: str,
        display_name: str,
        description: str | None = None,
        read_groups: GroupSet | None = None,
        write_groups: GroupSet | None = None,
        fields: list[FieldMetadataBase] | None = None,
    ) -> TableMetadata:
        """
        Create a storage table together with its table and field metadata.

        The table gets the management columns plus one column per entry in
        ``fields``; management-field metadata rows are written automatically.

        Raises:
            ValidationError: Reserved or invalid name, table exists, bad field
            SchemaConflictError: Storage rejected the CREATE TABLE
        """
        validate_identifier(table_name, "table")
        if table_name in SYSTEM_TABLES or table_name.startswith(TRASH_PREFIX):
            raise ValidationError(f"Table name {table_name!r} is reserved")
        if not display_name or not display_name.strip():
            raise ValidationError("A display name is required")

        fields = fields or []
        seen: set[str] = set()
        columns: list[ColumnSpec] = []
        for field in fields:
            if field.table_name != table_name:
                raise ValidationError(
                    f"Field {field.field_name!r} belongs to {field.table_name!r}, "
                    f"not {table_name!r}"
                )
            if field.field_name in PROTECTED_FIELDS:
                raise ValidationError(f"{field.field_name!r} is created automatically")
            if field.field_name.lower() in seen:
                raise ValidationError(f"Duplicate field {field.field_name!r}")
            seen.add(field.field_name.lower())
            db_type = _validate_field(field)
            columns.append(
                ColumnSpec(field.field_name, db_type, field.is_required, field.default_value)
            )

        if await table_exists(tx.session, table_name) or (
            await self._find_table(tx.session, table_name) is not None
        ):
            raise ValidationError(f"Table {table_name!r} already exists")

        await self.schema.create_table(tx, table_name, columns)

        metadata = TableMetadata(
            table_name=table_name,
            display_name=display_name.strip(),
            description=description,
            read_groups=(read_groups or GroupSet()).to_json(),
            write_groups=(write_groups or GroupSet()).to_json(),
        )
        tx.session.add(metadata)
        tx.session.add_all(management_field_metadata(table_name))
        for field, column in zip(fields, columns, strict=True):
            tx.session.add(
                FieldMetadata(**field.model_dump(exclude={"db_type"}), db_type=column.db_type)
            )
        await _flush(tx)

        logger.info("table_with_metadata_created", table=table_name, fields=len(fields))
        return metadata

    async def update_table_metadata(
        self,
        tx: Transaction,
        table_name: str,
        display_name: str | None = None,
        description: str | None = None,
        read_groups: GroupSet | None = None,
        write_groups: GroupSet | None = None,
    ) -> TableMetadata:
        """Update display name, description and group sets. Never touches schema."""
        metadata = await self.get_table_metadata(tx.session, table_name)
        if display_name is not None:
            if not display_name.strip():
                raise ValidationError("A display name is required")
            metadata.display_name = display_name.strip()
        if description is not None:
            metadata.description = description
        if read_groups is not None:
            metadata.read_groups = read_groups.to_json()
        if write_groups is not None:
            metadata.write_groups = write_groups.to_json()

        tx.session.add(metadata)
        await _flush(tx)
        logger.info("table_metadata_updated", table=table_name)
        return metadata

    async def delete_table_metadata(self, tx: Transaction, table_name: str) -> None:
        """
        Delete a managed table: its field metadata, its table metadata and the
        storage table itself, as one unit.

        Raises:
            AccessDeniedError: ``table_name`` is a system table
            NotFoundError: No metadata for ``table_name``
        """
        if table_name in SYSTEM_TABLES:
            logger.warning("system_table_delete_refused", table=table_name)
            raise AccessDeniedError("delete", table_name)

        await self.get_table_metadata(tx.session, table_name)

        if await table_exists(tx.session, table_name):
            await self.schema.drop_table(tx, table_name)

        await tx.session.execute(
            delete(FieldMetadata).where(FieldMetadata.table_name == table_name)
        )
        await tx.session.execute(
            delete(TableMetadata).where(TableMetadata.table_name == table_name)
        )
        await _flush(tx)
        logger.info("table_deleted", table=table_name)

    # ===== Field metadata =====

    async def create_field_metadata(
        self, tx: Transaction, field: FieldMetadataBase
    ) -> FieldMetadata | None:
        """
        Persist field metadata and add the matching storage column.

        Returns:
            The stored row, or None when ``field`` names a management field
            (nothing is written in that case)

        Raises:
            NotFoundError: The table is not registered
            ValidationError: Bad payload or the field already exists
            SchemaConflictError: Storage rejected the ADD COLUMN
        """
        if field.field_name in PROTECTED_FIELDS:
            logger.info(
                "management_field_create_skipped", table=field.table_name, field=field.field_name
            )
            return None

        db_type = _validate_field(field)
        await self.get_table_metadata(tx.session, field.table_name)
        if await self._find_field(tx.session, field.table_name, field.field_name) is not None:
            raise ValidationError(f"Field {field.table_name}.{field.field_name} already exists")

        await self.schema.add_column(
            tx, field.table_name, field.field_name, db_type, field.is_required, field.default_value
        )

        metadata = FieldMetadata(**field.model_dump(exclude={"db_type"}), db_type=db_type)
        tx.session.add(metadata)
        await _flush(tx)
        logger.info("field_metadata_created", table=field.table_name, field=field.field_name)
        return metadata

    async def register_field_metadata(
        self, tx: Transaction, field: FieldMetadataBase
    ) -> FieldMetadata:
        """
        Persist metadata for a column that already exists (no schema change).

        Used when seeding metadata for the built-in tables.
        """
        validate_identifier(field.table_name, "table")
        if await describe_column(tx.session, field.table_name, field.field_name) is None:
            raise NotFoundError("column", f"{field.table_name}.{field.field_name}")

        existing = await self._find_field(tx.session, field.table_name, field.field_name)
        if existing is not None:
            return existing

        metadata = FieldMetadata(**field.model_dump())
        tx.session.add(metadata)
        await _flush(tx)
        return metadata

    async def update_field_metadata(
        self, tx: Transaction, field: FieldMetadataBase
    ) -> FieldMetadata:
        """
        Update field metadata, altering the storage column when its type,
        required flag or default changed.

        Raises:
            NotFoundError: No metadata for (table, field)
            ValidationError: Bad payload
            SchemaConflictError: Storage rejected the alteration; nothing is saved
        """
        previous = await self.get_field_metadata(tx.session, field.table_name, field.field_name)
        db_type = _validate_field(field)
        protected = field.field_name in PROTECTED_FIELDS
        changed = _storage_changed(previous, field, db_type)

        if protected:
            if changed:
                logger.info(
                    "management_field_storage_change_ignored",
                    table=field.table_name,
                    field=field.field_name,
                )
        elif changed:
            await self.schema.alter_column(
                tx,
                field.table_name,
                field.field_name,
                db_type,
                field.is_required,
                field.default_value,
            )

        for attribute in PRESENTATION_ATTRIBUTES:
            setattr(previous, attribute, getattr(field, attribute))
        if not protected:
            previous.db_type = db_type
            previous.is_required = field.is_required
            previous.default_value = field.default_value

        tx.session.add(previous)
        await _flush(tx)
        logger.info("field_metadata_updated", table=field.table_name, field=field.field_name)
        return previous

    async def delete_field_metadata(
        self, tx: Transaction, table_name: str, field_name: str
    ) -> None:
        """
        Delete field metadata and drop the storage column. Management fields
        are skipped without error.

        Raises:
            NotFoundError: No metadata for (table, field)
        """
        if field_name in PROTECTED_FIELDS:
            logger.info("management_field_delete_skipped", table=table_name, field=field_name)
            return

        metadata = await self.get_field_metadata(tx.session, table_name, field_name)

        if await describe_column(tx.session, table_name, field_name) is not None:
            await self.schema.drop_column(tx, table_name, field_name)

        await tx.session.delete(metadata)
        await _flush(tx)
        logger.info("field_metadata_deleted", table=table_name, field=field_name)

    # ----- helpers -----

    async def _find_table(self, db: AsyncSession, table_name: str) -> TableMetadata | None:
        result = await db.execute(
            select(TableMetadata).where(TableMetadata.table_name == table_name)
        )
        return result.scalar_one_or_none()

    async def _find_field(
        self, db: AsyncSession, table_name: str, field_name: str
    ) -> FieldMetadata | None:
        result = await db.execute(
            select(FieldMetadata).where(
                FieldMetadata.table_name == table_name,
                FieldMetadata.field_name == field_name,
            )
        )
        return result.scalar_one_or_none()
