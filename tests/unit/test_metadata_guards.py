"""
Tests for metadata store rules that are decided before storage is touched.

The transaction passed in wraps a mock session; these paths must return or
raise without using it.
"""

from unittest.mock import AsyncMock

import pytest

from stingray.config import SystemTable
from stingray.core.exceptions import AccessDeniedError, ValidationError
from stingray.core.transaction import Transaction
from stingray.models.metadata import FieldMetadataBase
from stingray.services.metadata_store import (
    PRESENTATION_ATTRIBUTES,
    MetadataStore,
    management_field_metadata,
)


@pytest.fixture
def session() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def tx(session: AsyncMock) -> Transaction:
    return Transaction(session)


@pytest.fixture
def store() -> MetadataStore:
    return MetadataStore()


def _field(name: str, table: str = "widgets", **kwargs) -> FieldMetadataBase:
    return FieldMetadataBase(
        table_name=table,
        field_name=name,
        display_name=name.title(),
        db_type=kwargs.pop("db_type", "VARCHAR(255)"),
        **kwargs,
    )


@pytest.mark.unit
class TestManagementFields:
    @pytest.mark.parametrize("name", ["id", "created", "modified", "read_groups", "write_groups"])
    async def test_create_is_skipped(self, store, tx, session, name: str) -> None:
        assert await store.create_field_metadata(tx, _field(name)) is None
        session.execute.assert_not_called()
        session.add.assert_not_called()

    @pytest.mark.parametrize("name", ["id", "created", "modified", "read_groups", "write_groups"])
    async def test_delete_is_skipped(self, store, tx, session, name: str) -> None:
        await store.delete_field_metadata(tx, "widgets", name)
        session.execute.assert_not_called()

    def test_management_rows_cover_all_management_fields(self) -> None:
        rows = management_field_metadata("widgets")
        assert {r.field_name for r in rows} == {
            "id",
            "created",
            "modified",
            "read_groups",
            "write_groups",
        }
        assert all(r.table_name == "widgets" for r in rows)

    def test_storage_attributes_are_not_presentation(self) -> None:
        for attribute in ("db_type", "is_required", "default_value"):
            assert attribute not in PRESENTATION_ATTRIBUTES


@pytest.mark.unit
class TestSystemTables:
    @pytest.mark.parametrize(
        "table",
        [
            SystemTable.USER,
            SystemTable.GROUP,
            SystemTable.USER_AND_GROUP,
            SystemTable.SESSION,
            SystemTable.PASSWORD_RESET_TOKEN,
            SystemTable.TABLE_METADATA,
            SystemTable.FIELD_METADATA,
            SystemTable.PAGE,
        ],
    )
    async def test_delete_refused(self, store, tx, session, table: str) -> None:
        with pytest.raises(AccessDeniedError):
            await store.delete_table_metadata(tx, table)
        session.execute.assert_not_called()

    async def test_create_with_system_name_refused(self, store, tx, session) -> None:
        with pytest.raises(ValidationError, match="reserved"):
            await store.create_table_with_metadata(tx, SystemTable.PAGE, "Pages")
        session.execute.assert_not_called()

    async def test_create_with_trash_prefix_refused(self, store, tx) -> None:
        with pytest.raises(ValidationError, match="reserved"):
            await store.create_table_with_metadata(tx, "_trash_widgets", "Widgets")


@pytest.mark.unit
class TestCreateTableValidation:
    async def test_invalid_table_name(self, store, tx) -> None:
        with pytest.raises(ValidationError):
            await store.create_table_with_metadata(tx, "bad-name", "Bad")

    async def test_blank_display_name(self, store, tx) -> None:
        with pytest.raises(ValidationError):
            await store.create_table_with_metadata(tx, "widgets", "  ")

    async def test_management_field_in_payload(self, store, tx) -> None:
        with pytest.raises(ValidationError, match="automatically"):
            await store.create_table_with_metadata(
                tx, "widgets", "Widgets", fields=[_field("created")]
            )

    async def test_duplicate_fields(self, store, tx) -> None:
        with pytest.raises(ValidationError, match="Duplicate"):
            await store.create_table_with_metadata(
                tx, "widgets", "Widgets", fields=[_field("name"), _field("NAME")]
            )

    async def test_field_for_other_table(self, store, tx) -> None:
        with pytest.raises(ValidationError):
            await store.create_table_with_metadata(
                tx, "widgets", "Widgets", fields=[_field("name", table="gadgets")]
            )

    async def test_bad_type(self, store, tx) -> None:
        with pytest.raises(ValidationError, match="storage type"):
            await store.create_table_with_metadata(
                tx, "widgets", "Widgets", fields=[_field("price", db_type="MONEY!")]
            )

    async def test_unknown_widget(self, store, tx) -> None:
        with pytest.raises(ValidationError, match="input type"):
            await store.create_table_with_metadata(
                tx, "widgets", "Widgets", fields=[_field("price", html_input_type="slider")]
            )
