# tests/test_users.py — User directory router tests
import pytest
from httpx import AsyncClient

from task_service import get_initials
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_list_users(client: AsyncClient, test_user, other_user):
    """Any signed-in user can list users for assignment"""
    resp = await client.get("/api/v1/users", headers=get_auth_headers(test_user))
    assert resp.status_code == 200
    data = resp.json()
    assert isinstance(data, list)
    # Ordered by name
    assert [u["name"] for u in data] == ["Jane Smith", "Test User"]
    assert data[0] == {"id": other_user.id, "name": "Jane Smith", "initials": "JS"}


@pytest.mark.asyncio
async def test_list_users_requires_auth(client: AsyncClient):
    resp = await client.get("/api/v1/users")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_get_user(client: AsyncClient, test_user, other_user):
    resp = await client.get(f"/api/v1/users/{other_user.id}", headers=get_auth_headers(test_user))
    assert resp.status_code == 200
    data = resp.json()
    assert data["email"] == "jane@taskcollab.com"
    assert data["initials"] == "JS"
    assert data["created_at"]
    assert "password_hash" not in data


@pytest.mark.asyncio
async def test_get_user_not_found(client: AsyncClient, test_user):
    resp = await client.get("/api/v1/users/missing", headers=get_auth_headers(test_user))
    assert resp.status_code == 404


@pytest.mark.parametrize("name,expected", [
    ("John Doe", "JD"),
    ("mary ann smith", "MS"),
    ("Cher", "C"),
    ("  ", "?"),
    ("", "?"),
])
def test_get_initials(name, expected):
    assert get_initials(name) == expected
