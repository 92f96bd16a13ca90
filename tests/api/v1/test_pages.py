"""Tests for page API endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.models.page import Pages


@pytest.fixture
async def members_page(db_session: AsyncSession) -> Pages:
    page = Pages(
        slug="members",
        title="Members only",
        content="Hello customers",
        read_groups='["customers"]',
        write_groups='["admin"]',
    )
    db_session.add(page)
    await db_session.commit()
    return page


@pytest.mark.api
class TestGetPage:
    """Tests for GET /api/v1/pages/{slug} endpoint."""

    async def test_home_page_is_public(self, client: AsyncClient):
        response = await client.get("/api/v1/pages/home")

        assert response.status_code == 200
        data = response.json()
        assert data["slug"] == "home"
        assert data["title"] == "Welcome"
        assert data["template"] == "page"

    async def test_restricted_page_forbidden_for_anonymous(
        self, client: AsyncClient, members_page
    ):
        response = await client.get("/api/v1/pages/members")

        assert response.status_code == 403
        assert response.json()["detail"] == "Forbidden"

    async def test_restricted_page_for_member(
        self, client: AsyncClient, members_page, customer_user, login
    ):
        await login("customer_fixture")

        response = await client.get("/api/v1/pages/members")

        assert response.status_code == 200
        assert response.json()["content"] == "Hello customers"

    async def test_missing_page(self, client: AsyncClient):
        response = await client.get("/api/v1/pages/nowhere")

        assert response.status_code == 404
        assert response.json()["detail"] == "Not found"

    async def test_malformed_group_set(self, client: AsyncClient, db_session: AsyncSession):
        db_session.add(Pages(slug="broken", title="Broken", read_groups="customers"))
        await db_session.commit()

        response = await client.get("/api/v1/pages/broken")

        assert response.status_code == 422


@pytest.mark.api
class TestListPages:
    """Tests for GET /api/v1/pages endpoint."""

    async def test_anonymous_sees_public_pages(self, client: AsyncClient, members_page):
        response = await client.get("/api/v1/pages")

        assert response.status_code == 200
        assert [p["slug"] for p in response.json()["pages"]] == ["home"]

    async def test_member_sees_restricted_pages(
        self, client: AsyncClient, members_page, customer_user, login
    ):
        await login("customer_fixture")

        response = await client.get("/api/v1/pages")

        assert [p["slug"] for p in response.json()["pages"]] == ["home", "members"]

    async def test_malformed_pages_skipped(self, client: AsyncClient, db_session: AsyncSession):
        db_session.add(Pages(slug="broken", title="Broken", read_groups="{not json"))
        await db_session.commit()

        response = await client.get("/api/v1/pages")

        assert response.status_code == 200
        assert [p["slug"] for p in response.json()["pages"]] == ["home"]
