"""
Tests for authentication API endpoints.

These tests cover the /api/v1/auth endpoints including:
- Login (session cookie)
- Current identity for anonymous and authenticated callers
- Logout
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stingray.config import settings
from stingray.models.session import Sessions
from tests.conftest import TEST_PASSWORD


@pytest.mark.api
class TestLogin:
    """Tests for POST /api/v1/auth/login endpoint."""

    async def test_login_success(
        self, client: AsyncClient, db_session: AsyncSession, customer_user
    ):
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "customer_fixture", "password": TEST_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["user_id"] == customer_user.id
        assert data["groups"] == ["customers", "everyone"]
        assert settings.SESSION_COOKIE_NAME in response.cookies

        result = await db_session.execute(
            select(Sessions).where(Sessions.user_id == customer_user.id)
        )
        session = result.scalar_one()
        assert session.is_active
        assert session.session_id == response.cookies[settings.SESSION_COOKIE_NAME]

    async def test_login_wrong_password(self, client: AsyncClient, customer_user):
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "customer_fixture", "password": "WrongPassword"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid username or password"

    async def test_login_nonexistent_user(self, client: AsyncClient):
        """Unknown users get the same answer as wrong passwords."""
        response = await client.post(
            "/api/v1/auth/login",
            json={"username": "nonexistent", "password": "SomePassword123!"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid username or password"

    async def test_login_requires_both_fields(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={"username": "someone"})

        assert response.status_code == 422


@pytest.mark.api
class TestMe:
    """Tests for GET /api/v1/auth/me endpoint."""

    async def test_anonymous(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 200
        assert response.json() == {
            "user_id": None,
            "username": None,
            "groups": ["everyone"],
            "authenticated": False,
        }

    async def test_authenticated(self, client: AsyncClient, admin_user, login):
        await login("admin_fixture")

        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "admin_fixture"
        assert data["groups"] == ["admin", "everyone"]

    async def test_unknown_cookie_is_anonymous(self, client: AsyncClient):
        client.cookies.set(settings.SESSION_COOKIE_NAME, "not-a-session")

        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 200
        assert response.json()["authenticated"] is False


@pytest.mark.api
class TestLogout:
    """Tests for POST /api/v1/auth/logout endpoint."""

    async def test_logout_invalidates_session(
        self, client: AsyncClient, db_session: AsyncSession, customer_user, login
    ):
        await login("customer_fixture")
        session_id = client.cookies.get(settings.SESSION_COOKIE_NAME)

        response = await client.post("/api/v1/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out"}

        result = await db_session.execute(
            select(Sessions.is_active).where(Sessions.session_id == session_id)
        )
        assert result.scalar_one() is False

        # The old session id no longer authenticates
        client.cookies.set(settings.SESSION_COOKIE_NAME, session_id)
        me = await client.get("/api/v1/auth/me")
        assert me.json()["authenticated"] is False

    async def test_logout_when_anonymous(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/logout")

        assert response.status_code == 200
