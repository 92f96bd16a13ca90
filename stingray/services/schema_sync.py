"""
Schema synchronizer: keeps storage columns in step with field metadata.

Every method takes the caller's ``Transaction``. MariaDB/MySQL commits around
each DDL statement, so each statement that succeeds registers the statement that
undoes it; if anything later in the unit of work fails, the transaction runs
those compensations newest first and storage ends up where it started.

Column alteration is the involved case. Indexes (other than PRIMARY) that
reference the altered column are dropped first. Afterwards they are
recreated on the retyped column, unless the new type is a large-object type
(TEXT/BLOB family, JSON), which cannot carry a full-column index.

Identifiers are validated and backtick-quoted; storage types are checked
against a strict pattern; default values are rendered as escaped SQL literals.
"""

import re
from dataclasses import dataclass, field

from sqlalchemy import text
from sqlalchemy.dialects import mysql
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import PROTECTED_FIELDS
from stingray.core.exceptions import SchemaConflictError, ValidationError
from stingray.core.logging import get_logger
from stingray.core.transaction import Action, Transaction

logger = get_logger(__name__)

_preparer = mysql.dialect().identifier_preparer

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")

# e.g. INT, VARCHAR(255), DECIMAL(10,2), INT(11) UNSIGNED
DB_TYPE_PATTERN = re.compile(
    r"^(?P<base>[A-Z]+)(?:\(\s*\d+\s*(?:,\s*\d+\s*)?\))?(?:\s+(?:UNSIGNED|SIGNED|ZEROFILL))*$"
)

LARGE_OBJECT_TYPES = frozenset(
    {
        "TINYTEXT",
        "TEXT",
        "MEDIUMTEXT",
        "LONGTEXT",
        "TINYBLOB",
        "BLOB",
        "MEDIUMBLOB",
        "LONGBLOB",
        "JSON",
    }
)

# Prefix for tables parked by drop_table until the unit of work commits
TRASH_PREFIX = "_trash_"


@dataclass(frozen=True)
class ColumnSpec:
    """Desired definition of one custom column."""

    name: str
    db_type: str
    required: bool = False
    default_value: str | None = None


@dataclass(frozen=True)
class ColumnInfo:
    """Column definition as reported by INFORMATION_SCHEMA.COLUMNS."""

    name: str
    column_type: str
    nullable: bool
    default: str | None


@dataclass(frozen=True)
class IndexColumn:
    name: str
    sub_part: int | None = None


@dataclass
class IndexInfo:
    """A secondary index as reported by INFORMATION_SCHEMA.STATISTICS."""

    name: str
    unique: bool
    index_type: str = "BTREE"
    columns: list[IndexColumn] = field(default_factory=list)

    def references(self, column: str) -> bool:
        return any(c.name.lower() == column.lower() for c in self.columns)


# ===== Pure helpers =====


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Check a table or column name before it is interpolated into DDL.

    Raises:
        ValidationError: Empty, too long, or containing anything but [A-Za-z0-9_]
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(f"Invalid {kind} name: {name!r}")
    return name


def quote_identifier(name: str) -> str:
    return _preparer.quote_identifier(name)


def quote_literal(value: str) -> str:
    # Server runs without NO_BACKSLASH_ESCAPES, so backslashes need escaping too
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def normalize_db_type(db_type: str) -> str:
    """
    Canonicalize and validate a storage type descriptor.

    ``" varchar( 20 ) "`` is returned as ``"VARCHAR(20)"``.

    Raises:
        ValidationError: Anything that is not a plain type name with an
            optional length/precision and sign modifiers
    """
    if not isinstance(db_type, str):
        raise ValidationError(f"Invalid storage type: {db_type!r}")
    collapsed = " ".join(db_type.split()).upper()
    collapsed = re.sub(r"\s*\(\s*", "(", collapsed)
    collapsed = re.sub(r"\s*,\s*", ",", collapsed)
    collapsed = re.sub(r"\s*\)", ")", collapsed)
    if not DB_TYPE_PATTERN.match(collapsed):
        raise ValidationError(f"Invalid storage type: {db_type!r}")
    return collapsed


def base_type(db_type: str) -> str:
    match = DB_TYPE_PATTERN.match(normalize_db_type(db_type))
    assert match is not None
    return match.group("base")


def is_large_object_type(db_type: str) -> bool:
    """True for TEXT/BLOB family types and JSON, which take no full-column index."""
    return base_type(db_type) in LARGE_OBJECT_TYPES


def column_definition(
    name: str, db_type: str, required: bool, default_value: str | None
) -> str:
    """
    Render a column definition for ADD/MODIFY COLUMN.

    Example:
        column_definition("price", "INT", True, "0")
        # "`price` INT NOT NULL DEFAULT '0'"
    """
    parts = [
        quote_identifier(validate_identifier(name, "column")),
        normalize_db_type(db_type),
        "NOT NULL" if required else "NULL",
    ]
    if default_value:
        parts.append(f"DEFAULT {quote_literal(default_value)}")
    return " ".join(parts)


def index_definition(index: IndexInfo, altered_column: str | None = None) -> str:
    """
    Render the ADD INDEX clause that recreates ``index``.

    Prefix lengths are kept for every column except ``altered_column``, whose
    old prefix may not be valid for its new type.
    """
    columns = []
    for column in index.columns:
        rendered = quote_identifier(column.name)
        keep_prefix = altered_column is None or column.name.lower() != altered_column.lower()
        if column.sub_part and keep_prefix:
            rendered += f"({column.sub_part})"
        columns.append(rendered)

    if index.index_type in ("FULLTEXT", "SPATIAL"):
        kind = f"{index.index_type} INDEX"
    elif index.unique:
        kind = "UNIQUE INDEX"
    else:
        kind = "INDEX"
    return f"ADD {kind} {quote_identifier(index.name)} ({', '.join(columns)})"


def _guard_field(field_name: str) -> None:
    if field_name in PROTECTED_FIELDS:
        raise ValidationError(f"Field {field_name!r} is a management field and cannot be changed")


# ===== Introspection =====


async def table_exists(db: AsyncSession, table: str) -> bool:
    result = await db.execute(
        text(
            "SELECT COUNT(*) FROM information_schema.tables "
            "WHERE table_schema = DATABASE() AND table_name = :table"
        ),
        {"table": table},
    )
    return bool(result.scalar())


async def describe_column(db: AsyncSession, table: str, column: str) -> ColumnInfo | None:
    """Return the current definition of ``table.column``, or None if absent."""
    result = await db.execute(
        text(
            "SELECT column_name, column_type, is_nullable, column_default "
            "FROM information_schema.columns "
            "WHERE table_schema = DATABASE() AND table_name = :table AND column_name = :column"
        ),
        {"table": table, "column": column},
    )
    row = result.first()
    if row is None:
        return None
    return ColumnInfo(
        name=row[0],
        column_type=str(row[1]),
        nullable=row[2] == "YES",
        default=row[3],
    )


async def list_columns(db: AsyncSession, table: str) -> list[str]:
    result = await db.execute(
        text(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = DATABASE() AND table_name = :table "
            "ORDER BY ordinal_position"
        ),
        {"table": table},
    )
    return [row[0] for row in result.fetchall()]


async def list_indexes(db: AsyncSession, table: str) -> list[IndexInfo]:
    """List the secondary indexes of ``table`` (the primary key is excluded)."""
    result = await db.execute(
        text(
            "SELECT index_name, non_unique, index_type, column_name, sub_part "
            "FROM information_schema.statistics "
            "WHERE table_schema = DATABASE() AND table_name = :table "
            "AND index_name != 'PRIMARY' "
            "ORDER BY index_name, seq_in_index"
        ),
        {"table": table},
    )

    indexes: dict[str, IndexInfo] = {}
    for name, non_unique, index_type, column_name, sub_part in result.fetchall():
        index = indexes.setdefault(
            name,
            IndexInfo(name=name, unique=not int(non_unique), index_type=str(index_type)),
        )
        index.columns.append(
            IndexColumn(name=column_name, sub_part=int(sub_part) if sub_part else None)
        )
    return list(indexes.values())


async def _current_column_ddl(db: AsyncSession, table: str, column: str) -> str:
    """
    Return the column's definition exactly as SHOW CREATE TABLE prints it.

    Used to build compensations; it round-trips type, nullability, default and
    ON UPDATE clauses on both MariaDB and MySQL.
    """
    conn = await db.connection()
    result = await conn.exec_driver_sql(
        f"SHOW CREATE TABLE {quote_identifier(table)}",
        execution_options={"no_parameters": True},
    )
    create_statement = result.first()[1]
    line_pattern = re.compile(
        r"^\s*" + re.escape(quote_identifier(column)) + r"\s+.*?,?$", re.IGNORECASE
    )
    for line in create_statement.splitlines():
        if line_pattern.match(line):
            return line.strip().rstrip(",")
    raise SchemaConflictError(f"SHOW CREATE TABLE {table}", f"Column {column!r} not found")


# ===== Synchronizer =====


class SchemaSynchronizer:
    """
    Mutates storage tables to match field metadata.

    Management fields (``id``, ``created``, ``modified``, ``read_groups``,
    ``write_groups``) are refused by the column operations.
    """

    async def add_column(
        self,
        tx: Transaction,
        table: str,
        field_name: str,
        db_type: str,
        required: bool = False,
        default_value: str | None = None,
    ) -> None:
        validate_identifier(table, "table")
        _guard_field(field_name)
        definition = column_definition(field_name, db_type, required, default_value)

        await self._execute(tx, f"ALTER TABLE {quote_identifier(table)} ADD COLUMN {definition}")
        tx.on_rollback(
            f"drop column {table}.{field_name}",
            self._bind_raw(
                tx,
                f"ALTER TABLE {quote_identifier(table)} DROP COLUMN {quote_identifier(field_name)}",
            ),
        )
        logger.info("column_added", table=table, field=field_name, db_type=db_type)

    async def alter_column(
        self,
        tx: Transaction,
        table: str,
        field_name: str,
        new_db_type: str,
        required: bool = False,
        default_value: str | None = None,
    ) -> None:
        """
        Change a column's type, nullability and default.

        Indexes referencing the column are dropped before the MODIFY. They are
        recreated afterwards unless ``new_db_type`` is a large-object type.
        Indexes on other columns are not touched.

        Raises:
            ValidationError: Bad identifier/type or a management field
            SchemaConflictError: Storage rejected one of the statements
        """
        validate_identifier(table, "table")
        _guard_field(field_name)
        definition = column_definition(field_name, new_db_type, required, default_value)
        quoted_table = quote_identifier(table)

        previous_definition = await _current_column_ddl(tx.session, table, field_name)
        affected = [i for i in await list_indexes(tx.session, table) if i.references(field_name)]
        recreate = not is_large_object_type(new_db_type)

        for index in affected:
            await self._execute(
                tx, f"ALTER TABLE {quoted_table} DROP INDEX {quote_identifier(index.name)}"
            )
            tx.on_rollback(
                f"restore index {table}.{index.name}",
                self._bind_raw(tx, f"ALTER TABLE {quoted_table} {index_definition(index)}"),
            )
            logger.debug("index_dropped", table=table, index=index.name, field=field_name)

        await self._execute(tx, f"ALTER TABLE {quoted_table} MODIFY COLUMN {definition}")
        tx.on_rollback(
            f"restore column {table}.{field_name}",
            self._bind_raw(tx, f"ALTER TABLE {quoted_table} MODIFY COLUMN {previous_definition}"),
        )

        if recreate:
            for index in affected:
                await self._execute(
                    tx, f"ALTER TABLE {quoted_table} {index_definition(index, field_name)}"
                )
                tx.on_rollback(
                    f"drop recreated index {table}.{index.name}",
                    self._bind_raw(
                        tx, f"ALTER TABLE {quoted_table} DROP INDEX {quote_identifier(index.name)}"
                    ),
                )

        logger.info(
            "column_altered",
            table=table,
            field=field_name,
            db_type=new_db_type,
            required=required,
            indexes_dropped=[i.name for i in affected],
            indexes_recreated=[i.name for i in affected] if recreate else [],
        )

    async def drop_column(self, tx: Transaction, table: str, field_name: str) -> None:
        """
        Drop a column. The engine removes indexes on it along with it.

        The compensation re-adds the column definition; the dropped values
        themselves cannot be brought back.
        """
        validate_identifier(table, "table")
        _guard_field(field_name)
        validate_identifier(field_name, "column")
        quoted_table = quote_identifier(table)

        previous_definition = await _current_column_ddl(tx.session, table, field_name)
        await self._execute(
            tx, f"ALTER TABLE {quoted_table} DROP COLUMN {quote_identifier(field_name)}"
        )
        tx.on_rollback(
            f"re-add column {table}.{field_name}",
            self._bind_raw(tx, f"ALTER TABLE {quoted_table} ADD COLUMN {previous_definition}"),
        )
        logger.info("column_dropped", table=table, field=field_name)

    async def create_table(self, tx: Transaction, table: str, columns: list[ColumnSpec]) -> None:
        """
        Create a managed table with the management columns plus ``columns``.
        """
        validate_identifier(table, "table")
        definitions = [
            "`id` INT AUTO_INCREMENT PRIMARY KEY",
            "`read_groups` TEXT NULL",
            "`write_groups` TEXT NULL",
            "`created` TIMESTAMP NULL DEFAULT CURRENT_TIMESTAMP",
            "`modified` TIMESTAMP NULL DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP",
        ]
        for column in columns:
            _guard_field(column.name)
            definitions.append(
                column_definition(
                    column.name, column.db_type, column.required, column.default_value
                )
            )

        quoted_table = quote_identifier(table)
        await self._execute(
            tx,
            f"CREATE TABLE {quoted_table} ({', '.join(definitions)}) "
            "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4",
        )
        tx.on_rollback(
            f"drop table {table}", self._bind_raw(tx, f"DROP TABLE IF EXISTS {quoted_table}")
        )
        logger.info("table_created", table=table, columns=[c.name for c in columns])

    async def drop_table(self, tx: Transaction, table: str) -> None:
        """
        Drop a managed table as part of ``tx``.

        The table is renamed out of the way immediately and only dropped once
        the transaction commits, so a rollback can rename it back intact.
        """
        validate_identifier(table, "table")
        parked = f"{TRASH_PREFIX}{table}"[:64]
        quoted_table = quote_identifier(table)
        quoted_parked = quote_identifier(parked)

        await self._execute(tx, f"DROP TABLE IF EXISTS {quoted_parked}")
        await self._execute(tx, f"RENAME TABLE {quoted_table} TO {quoted_parked}")
        tx.on_rollback(
            f"restore table {table}",
            self._bind_raw(tx, f"RENAME TABLE {quoted_parked} TO {quoted_table}"),
        )
        tx.after_commit(
            f"drop parked table {parked}",
            self._bind_raw(tx, f"DROP TABLE IF EXISTS {quoted_parked}"),
        )
        logger.info("table_dropped", table=table)

    # ----- execution -----

    async def _execute(self, tx: Transaction, statement: str) -> None:
        try:
            await self._execute_raw(tx, statement)
        except DBAPIError as e:
            reason = str(e.orig) if e.orig is not None else str(e)
            logger.warning("ddl_rejected", statement=statement, error=reason)
            raise SchemaConflictError(statement, reason) from e

    @staticmethod
    async def _execute_raw(tx: Transaction, statement: str) -> None:
        # Driver-level execution: no bind parsing, so literals may contain ':' or '%'
        conn = await tx.session.connection()
        await conn.exec_driver_sql(statement, execution_options={"no_parameters": True})

    def _bind_raw(self, tx: Transaction, statement: str) -> Action:
        async def action() -> None:
            await self._execute_raw(tx, statement)

        return action
