"""
Bootstrap: system schema and seed data.

Idempotent; safe to run on every startup.
1. Create the system tables from the SQLModel models
2. Seed the default groups (admin, customers, engineer, everyone)
3. Seed the bootstrap admin account when a password is configured
4. Register table/field metadata for the editable system tables
5. Seed the default home page
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

import stingray.models  # noqa: F401  (registers system tables)
from stingray.config import DefaultGroups, FieldPosition, InputType, SystemTable, settings
from stingray.core.logging import get_logger
from stingray.core.permissions import GroupSet
from stingray.core.transaction import Transaction
from stingray.models.metadata import FieldMetadataBase, TableMetadata
from stingray.models.page import Pages
from stingray.models.user import Users
from stingray.services.metadata_store import MetadataStore
from stingray.services.user_groups import create_group_if_not_exists, create_user

logger = get_logger(__name__)

METADATA_ADMINS = GroupSet.of(DefaultGroups.METADATA_ADMINS)
HIDDEN = FieldPosition.HIDDEN
DATETIME = InputType.DATETIME_LOCAL


def _field(
    table: str,
    name: str,
    label: str,
    db_type: str,
    input_type: str,
    form: int,
    listing: int,
    required: bool = False,
    read_only: bool = False,
) -> FieldMetadataBase:
    return FieldMetadataBase(
        table_name=table,
        field_name=name,
        display_name=label,
        db_type=db_type,
        html_input_type=input_type,
        form_position=form,
        list_position=listing,
        is_required=required,
        is_read_only=read_only,
    )


def _user(*args, **kwargs) -> FieldMetadataBase:
    return _field(SystemTable.USER, *args, **kwargs)


def _page(*args, **kwargs) -> FieldMetadataBase:
    return _field(SystemTable.PAGE, *args, **kwargs)


SYSTEM_TABLE_SEEDS: list[tuple[dict[str, str], list[FieldMetadataBase]]] = [
    (
        {
            "table_name": SystemTable.USER,
            "display_name": "Users",
            "description": "User accounts and authentication information",
            "read_groups": METADATA_ADMINS.to_json(),
            "write_groups": METADATA_ADMINS.to_json(),
        },
        [
            _user("id", "ID", "INT", InputType.NUMBER, 0, 0, True, True),
            _user("username", "Username", "VARCHAR(255)", InputType.TEXT, 1, 1, True),
            _user("email", "Email", "VARCHAR(255)", InputType.EMAIL, 2, 2, True),
            _user("password", "Password", "VARCHAR(255)", InputType.PASSWORD, 3, HIDDEN, True),
            _user("created", "Created", "TIMESTAMP", DATETIME, 4, 3, read_only=True),
            _user("modified", "Modified", "TIMESTAMP", DATETIME, 5, 4, read_only=True),
            _user("read_groups", "Read Groups", "TEXT", InputType.TEXTAREA, 6, 5),
            _user("write_groups", "Write Groups", "TEXT", InputType.TEXTAREA, 7, 6),
        ],
    ),
    (
        {
            "table_name": SystemTable.PAGE,
            "display_name": "Pages",
            "description": "Website pages and content",
            "read_groups": GroupSet.of(DefaultGroups.DESCRIPTIONS).to_json(),
            "write_groups": METADATA_ADMINS.to_json(),
        },
        [
            _page("id", "ID", "INT", InputType.NUMBER, 0, 0, True, True),
            _page("slug", "Slug", "VARCHAR(255)", InputType.TEXT, 1, 1, True),
            _page("title", "Title", "VARCHAR(255)", InputType.TEXT, 2, 2, True),
            _page("content", "Content", "TEXT", InputType.TEXTAREA, 3, HIDDEN),
            _page("template", "Template", "VARCHAR(255)", InputType.TEXT, 4, 3),
            _page("read_groups", "Read Groups", "TEXT", InputType.TEXTAREA, 5, 4),
            _page("write_groups", "Write Groups", "TEXT", InputType.TEXTAREA, 6, 5),
            _page("created", "Created", "TIMESTAMP", DATETIME, HIDDEN, 6, read_only=True),
            _page("modified", "Modified", "TIMESTAMP", DATETIME, HIDDEN, 7, read_only=True),
        ],
    ),
]


async def create_system_tables(db: AsyncSession) -> None:
    await db.run_sync(lambda session: SQLModel.metadata.create_all(session.connection()))
    logger.info("system_tables_ready", tables=sorted(SQLModel.metadata.tables))


async def seed_groups(db: AsyncSession) -> None:
    for name, description in DefaultGroups.DESCRIPTIONS.items():
        await create_group_if_not_exists(db, name, description)


async def seed_admin(db: AsyncSession) -> Users | None:
    if not settings.BOOTSTRAP_ADMIN_PASSWORD:
        logger.info("bootstrap_admin_skipped", reason="no password configured")
        return None

    result = await db.execute(
        select(Users).where(Users.username == settings.BOOTSTRAP_ADMIN_USERNAME)
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    return await create_user(
        db,
        settings.BOOTSTRAP_ADMIN_USERNAME,
        settings.BOOTSTRAP_ADMIN_EMAIL,
        settings.BOOTSTRAP_ADMIN_PASSWORD,
        groups=[DefaultGroups.ADMIN],
    )


async def seed_system_metadata(tx: Transaction, store: MetadataStore) -> None:
    for table_seed, field_seeds in SYSTEM_TABLE_SEEDS:
        existing = await tx.session.execute(
            select(TableMetadata.id).where(TableMetadata.table_name == table_seed["table_name"])
        )
        if existing.scalar_one_or_none() is None:
            await store.create_table_metadata(tx, TableMetadata(**table_seed))
        for field_seed in field_seeds:
            await store.register_field_metadata(tx, field_seed)


async def seed_pages(db: AsyncSession) -> None:
    result = await db.execute(select(Pages.id).where(Pages.slug == "home"))
    if result.scalar_one_or_none() is not None:
        return

    db.add(
        Pages(
            slug="home",
            title="Welcome",
            content="Welcome to Stingray CMS.",
            template="page",
            read_groups=GroupSet.of([DefaultGroups.EVERYONE]).to_json(),
            write_groups=METADATA_ADMINS.to_json(),
        )
    )
    await db.flush()
    logger.info("page_seeded", slug="home")


async def bootstrap(db: AsyncSession, store: MetadataStore | None = None) -> None:
    """Create the system schema and seed data; commits when done."""
    await create_system_tables(db)

    async with Transaction(db) as tx:
        await seed_groups(tx.session)
        await seed_admin(tx.session)
        await seed_system_metadata(tx, store or MetadataStore())
        await seed_pages(tx.session)

    logger.info("bootstrap_complete")
