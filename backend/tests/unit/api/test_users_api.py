"""
API Tests for user management
"""
import pytest
from httpx import AsyncClient
from unittest.mock import patch, AsyncMock

from app.models.user import User, Role
from tests.factories import PASSWORD, fake


class TestUserListing:
    """GET /api/v1/users"""

    @pytest.mark.asyncio
    async def test_admin_lists_users(self, client: AsyncClient, admin_headers: dict, reader_user: User, librarian_user: User):
        response = await client.get("/api/v1/users", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"]["total"] == 3
        assert {u["id"] for u in data["users"]} >= {reader_user.id, librarian_user.id}

    @pytest.mark.asyncio
    async def test_filter_by_role_and_search(self, client: AsyncClient, admin_headers: dict, user_factory):
        target = await user_factory(Role.READER, full_name="Winston Smith")
        await user_factory(Role.LIBRARIAN, full_name="Winston Librarian")

        response = await client.get(
            "/api/v1/users",
            headers=admin_headers,
            params={"role": "READER", "search": "winston"},
        )

        users = response.json()["data"]["users"]
        assert [u["id"] for u in users] == [target.id]

    @pytest.mark.asyncio
    async def test_pagination_block(self, client: AsyncClient, admin_headers: dict, user_factory):
        for _ in range(4):
            await user_factory()

        response = await client.get("/api/v1/users", headers=admin_headers, params={"page": 2, "limit": 2})

        data = response.json()["data"]
        assert len(data["users"]) == 2
        assert data["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}

    @pytest.mark.asyncio
    async def test_reader_cannot_list(self, client: AsyncClient, reader_headers: dict):
        response = await client.get("/api/v1/users", headers=reader_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_librarian_gets_active_readers(self, client: AsyncClient, librarian_headers: dict, reader_user: User):
        response = await client.get("/api/v1/users/all", headers=librarian_headers)

        assert response.status_code == 200
        assert [u["id"] for u in response.json()["data"]["users"]] == [reader_user.id]

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, admin_headers: dict, reader_user: User):
        response = await client.get("/api/v1/users/stats", headers=admin_headers)

        data = response.json()["data"]
        assert data["total"] == 2
        assert data["by_role"]["READER"] == 1
        assert data["by_role"]["ADMIN"] == 1
        assert data["by_status"]["ACTIVE"] == 2


class TestUserManagement:
    """Create, read, update and delete users"""

    @pytest.mark.asyncio
    async def test_admin_creates_librarian(self, client: AsyncClient, admin_headers: dict):
        response = await client.post(
            "/api/v1/users",
            headers=admin_headers,
            json={
                "full_name": fake.name(),
                "email": fake.unique.email(),
                "password": PASSWORD,
                "role": "LIBRARIAN",
            },
        )

        assert response.status_code == 201
        assert response.json()["data"]["role"] == "LIBRARIAN"

    @pytest.mark.asyncio
    async def test_create_duplicate_email(self, client: AsyncClient, admin_headers: dict, reader_user: User):
        response = await client.post(
            "/api/v1/users",
            headers=admin_headers,
            json={"full_name": "Someone Else", "email": reader_user.email, "password": PASSWORD},
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_reader_views_own_profile_only(
        self, client: AsyncClient, reader_user: User, reader_headers: dict, other_reader: User
    ):
        own = await client.get(f"/api/v1/users/{reader_user.id}", headers=reader_headers)
        other = await client.get(f"/api/v1/users/{other_reader.id}", headers=reader_headers)

        assert own.status_code == 200
        assert other.status_code == 403

    @pytest.mark.asyncio
    async def test_reader_cannot_change_own_role(self, client: AsyncClient, reader_user: User, reader_headers: dict):
        response = await client.put(
            f"/api/v1/users/{reader_user.id}",
            headers=reader_headers,
            json={"full_name": "  Julia  ", "role": "ADMIN"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["full_name"] == "Julia"
        assert data["role"] == "READER"

    @pytest.mark.asyncio
    async def test_admin_deactivates_reader(self, client: AsyncClient, admin_headers: dict, reader_user: User):
        with patch("app.services.user_service.queue_email", new=AsyncMock()) as mock_email:
            response = await client.put(
                f"/api/v1/users/{reader_user.id}",
                headers=admin_headers,
                json={"status": "INACTIVE"},
            )

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "INACTIVE"
        mock_email.assert_awaited_once_with(
            "account_status", reader_user.email, {"user_name": reader_user.full_name, "status": "INACTIVE"}
        )

    @pytest.mark.asyncio
    async def test_profile_edit_sends_no_status_email(self, client: AsyncClient, reader_user: User, reader_headers: dict):
        with patch("app.services.user_service.queue_email", new=AsyncMock()) as mock_email:
            await client.put(f"/api/v1/users/{reader_user.id}", headers=reader_headers, json={"full_name": "Julia"})

        mock_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_self(self, client: AsyncClient, admin_user: User, admin_headers: dict):
        response = await client.put(
            f"/api/v1/users/{admin_user.id}",
            headers=admin_headers,
            json={"status": "INACTIVE"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_id(self, client: AsyncClient, admin_headers: dict):
        response = await client.get("/api/v1/users/0", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid user id"

    @pytest.mark.asyncio
    async def test_delete_user(self, client: AsyncClient, admin_headers: dict, reader_user: User):
        response = await client.delete(f"/api/v1/users/{reader_user.id}", headers=admin_headers)
        assert response.status_code == 200

        response = await client.get(f"/api/v1/users/{reader_user.id}", headers=admin_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bulk_delete_skips_caller(
        self, client: AsyncClient, admin_user: User, admin_headers: dict, reader_user: User, other_reader: User
    ):
        response = await client.post(
            "/api/v1/users/bulk-delete",
            headers=admin_headers,
            json={"ids": [admin_user.id, reader_user.id, other_reader.id, 9999]},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["deleted_ids"] == sorted([reader_user.id, other_reader.id])
        assert data["deleted_count"] == 2
