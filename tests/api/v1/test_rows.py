"""
Tests for generic row API endpoints.

These tests cover the /api/v1/tables/{table_name}/rows endpoints including:
- Listing with table and row level read permissions
- Form views, engineer mode and password masking
- Creating, updating and deleting rows
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.conftest import TEST_PASSWORD

ROWS = "/api/v1/tables/widgets/rows"


async def _insert(editor, db_session: AsyncSession, **values) -> int:
    row_id = await editor.create_row(db_session, "widgets", values)
    await db_session.commit()
    return row_id


@pytest.mark.api
class TestListRows:
    """Tests for GET /api/v1/tables/{table_name}/rows endpoint."""

    async def test_list_shows_configured_columns(
        self, client: AsyncClient, db_session, editor, widgets, customer_user, login
    ):
        await _insert(editor, db_session, name="Bolt", price=3)
        await login("customer_fixture")

        response = await client.get(ROWS)

        assert response.status_code == 200
        data = response.json()
        assert data["display_name"] == "Widgets"
        assert data["total"] == 1
        assert data["can_create"] is False
        assert [c["name"] for c in data["columns"]] == ["id", "name", "price"]
        assert [c["label"] for c in data["columns"]] == ["ID", "Name", "Price"]
        row = data["rows"][0]
        assert set(row["values"]) == {"id", "name", "price"}
        assert row["values"]["name"] == "Bolt"

    async def test_row_read_groups_filter_listing(
        self, client: AsyncClient, db_session, editor, widgets, customer_user, login
    ):
        await _insert(editor, db_session, name="Public")
        await _insert(editor, db_session, name="Internal", read_groups='["admin"]')
        await login("customer_fixture")

        response = await client.get(ROWS)

        data = response.json()
        assert [r["values"]["name"] for r in data["rows"]] == ["Public"]
        assert data["total"] == 2

    async def test_pagination(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        for i in range(3):
            await _insert(editor, db_session, name=f"Part {i}")
        await login("admin_fixture")

        response = await client.get(ROWS, params={"page": 2, "per_page": 2})

        data = response.json()
        assert data["page"] == 2
        assert data["per_page"] == 2
        assert [r["values"]["name"] for r in data["rows"]] == ["Part 2"]

    async def test_table_read_groups_enforced(self, client: AsyncClient, widgets):
        response = await client.get(ROWS)

        assert response.status_code == 403

    async def test_engineer_mode_shows_raw_columns(
        self, client: AsyncClient, engineer_user, login
    ):
        await login("engineer_fixture")

        response = await client.get("/api/v1/tables/_page/rows", params={"engineer": "true"})

        data = response.json()
        assert data["engineer_mode"] is True
        names = [c["name"] for c in data["columns"]]
        assert names == [c["label"] for c in data["columns"]]
        assert {"content", "read_groups", "created"} <= set(names)
        assert data["rows"][0]["values"]["slug"] == "home"

    async def test_passwords_never_listed(self, client: AsyncClient, admin_user, login):
        await login("admin_fixture")

        response = await client.get("/api/v1/tables/_user/rows", params={"engineer": "true"})

        # Admins are not engineers, so the metadata-driven view is used
        data = response.json()
        assert data["engineer_mode"] is False
        assert "password" not in [c["name"] for c in data["columns"]]
        for row in data["rows"]:
            assert "password" not in row["values"]


@pytest.mark.api
class TestRowForms:
    """Tests for GET /api/v1/tables/{table_name}/rows/new and /{row_id}."""

    async def test_new_row_form(self, client: AsyncClient, widgets, admin_user, login):
        await login("admin_fixture")

        response = await client.get(f"{ROWS}/new")

        assert response.status_code == 200
        fields = response.json()["fields"]
        assert [f["name"] for f in fields] == ["id", "name", "price"]
        assert all(f["value"] is None for f in fields)
        name = fields[1]
        assert name["label"] == "Name"
        assert name["required"] is True

    async def test_new_row_form_needs_write(
        self, client: AsyncClient, widgets, customer_user, login
    ):
        await login("customer_fixture")

        response = await client.get(f"{ROWS}/new")

        assert response.status_code == 403

    async def test_row_form(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Bolt", price=3)
        await login("admin_fixture")

        response = await client.get(f"{ROWS}/{row_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == row_id
        assert data["can_edit"] is True
        values = {f["name"]: f["value"] for f in data["fields"]}
        assert values == {"id": row_id, "name": "Bolt", "price": 3}

    async def test_row_read_groups_enforced(
        self, client: AsyncClient, db_session, editor, widgets, customer_user, login
    ):
        row_id = await _insert(editor, db_session, name="Internal", read_groups='["admin"]')
        await login("customer_fixture")

        response = await client.get(f"{ROWS}/{row_id}")

        assert response.status_code == 403

    async def test_row_write_groups_shown_as_capability(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Locked", write_groups='["engineer"]')
        await login("admin_fixture")

        response = await client.get(f"{ROWS}/{row_id}")

        assert response.json()["can_edit"] is False
        assert response.json()["can_delete"] is False

    async def test_missing_row(self, client: AsyncClient, widgets, admin_user, login):
        await login("admin_fixture")

        response = await client.get(f"{ROWS}/9999")

        assert response.status_code == 404

    async def test_engineer_form_is_read_only(self, client: AsyncClient, engineer_user, login):
        await login("engineer_fixture")
        listing = await client.get("/api/v1/tables/_page/rows")
        page_id = listing.json()["rows"][0]["id"]

        response = await client.get(
            f"/api/v1/tables/_page/rows/{page_id}", params={"engineer": "true"}
        )

        data = response.json()
        assert data["engineer_mode"] is True
        assert data["can_edit"] is False
        assert all(f["read_only"] for f in data["fields"])
        assert "write_groups" in [f["name"] for f in data["fields"]]

    async def test_password_masked_in_form(self, client: AsyncClient, admin_user, login):
        await login("admin_fixture")

        response = await client.get(f"/api/v1/tables/_user/rows/{admin_user.id}")

        fields = {f["name"]: f for f in response.json()["fields"]}
        assert fields["password"]["input_type"] == "password"
        assert fields["password"]["value"] is None
        assert fields["username"]["value"] == "admin_fixture"


@pytest.mark.api
class TestWriteRows:
    """Tests for POST, PATCH and DELETE on /api/v1/tables/{table_name}/rows."""

    async def test_create_row(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        await login("admin_fixture")

        response = await client.post(ROWS, json={"values": {"name": "Bolt", "price": 7}})

        assert response.status_code == 201
        row = await editor.get_row(db_session, "widgets", response.json()["id"])
        assert row.get("name") == "Bolt"
        assert row.get("price") == 7

    async def test_create_needs_table_write(
        self, client: AsyncClient, widgets, customer_user, login
    ):
        await login("customer_fixture")

        response = await client.post(ROWS, json={"values": {"name": "Bolt"}})

        assert response.status_code == 403

    async def test_create_unknown_column(self, client: AsyncClient, widgets, admin_user, login):
        await login("admin_fixture")

        response = await client.post(ROWS, json={"values": {"name": "Bolt", "colour": "red"}})

        assert response.status_code == 422
        assert "colour" in response.json()["detail"]

    async def test_update_row(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Bolt", price=3)
        await login("admin_fixture")

        response = await client.patch(f"{ROWS}/{row_id}", json={"values": {"price": 4}})

        assert response.status_code == 200
        assert response.json() == {"id": row_id}
        assert (await editor.get_row(db_session, "widgets", row_id)).get("price") == 4

    async def test_update_honours_row_write_groups(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Locked", write_groups='["engineer"]')
        await login("admin_fixture")

        response = await client.patch(f"{ROWS}/{row_id}", json={"values": {"name": "Open"}})

        assert response.status_code == 403
        assert (await editor.get_row(db_session, "widgets", row_id)).get("name") == "Locked"

    async def test_update_accepts_group_list(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Bolt")
        await login("admin_fixture")

        response = await client.patch(
            f"{ROWS}/{row_id}", json={"values": {"read_groups": ["admin"]}}
        )

        assert response.status_code == 200
        row = await editor.get_row(db_session, "widgets", row_id)
        assert row.get("read_groups") == '["admin"]'

    async def test_update_rejects_non_list_group_set(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Bolt", read_groups='["admin"]')
        await login("admin_fixture")

        response = await client.patch(f"{ROWS}/{row_id}", json={"values": {"read_groups": 42}})

        assert response.status_code == 422
        row = await editor.get_row(db_session, "widgets", row_id)
        assert row.get("read_groups") == '["admin"]'

    async def test_update_missing_row(self, client: AsyncClient, widgets, admin_user, login):
        await login("admin_fixture")

        response = await client.patch(f"{ROWS}/9999", json={"values": {"name": "Nut"}})

        assert response.status_code == 404

    async def test_delete_row(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Bolt")
        await login("admin_fixture")

        response = await client.delete(f"{ROWS}/{row_id}")

        assert response.status_code == 204
        assert (await client.get(f"{ROWS}/{row_id}")).status_code == 404

    async def test_delete_honours_row_write_groups(
        self, client: AsyncClient, db_session, editor, widgets, admin_user, login
    ):
        row_id = await _insert(editor, db_session, name="Locked", write_groups='["engineer"]')
        await login("admin_fixture")

        response = await client.delete(f"{ROWS}/{row_id}")

        assert response.status_code == 403

    async def test_password_change_is_hashed(
        self, client: AsyncClient, db_session, admin_user, customer_user, login
    ):
        await login("admin_fixture")

        response = await client.patch(
            f"/api/v1/tables/_user/rows/{customer_user.id}",
            json={"values": {"password": "BrandNew456!"}},
        )
        assert response.status_code == 200
        # The fixture user object is cached in the shared session
        db_session.expire_all()

        old = await client.post(
            "/api/v1/auth/login",
            json={"username": "customer_fixture", "password": TEST_PASSWORD},
        )
        new = await client.post(
            "/api/v1/auth/login",
            json={"username": "customer_fixture", "password": "BrandNew456!"},
        )
        assert old.status_code == 401
        assert new.status_code == 200

    async def test_blank_password_keeps_hash(
        self, client: AsyncClient, db_session, admin_user, customer_user, login
    ):
        await login("admin_fixture")

        response = await client.patch(
            f"/api/v1/tables/_user/rows/{customer_user.id}",
            json={"values": {"password": "", "email": "changed@example.com"}},
        )
        assert response.status_code == 200
        # The fixture user object is cached in the shared session
        db_session.expire_all()

        still = await client.post(
            "/api/v1/auth/login",
            json={"username": "customer_fixture", "password": TEST_PASSWORD},
        )
        assert still.status_code == 200
