# tests/test_auth.py — Authentication & authorization tests
from datetime import timedelta

import pytest
from fastapi import HTTPException
from httpx import AsyncClient

from auth import AuthService, RefreshTokenStore
from tests.conftest import get_auth_headers


def _registration(**overrides):
    body = {
        "name": "New User",
        "username": "newuser",
        "email": "newuser@test.com",
        "password": "SecurePass123!",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
class TestRegistration:
    async def test_register_success(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/register", json=_registration())
        assert res.status_code == 201
        data = res.json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["token_type"] == "bearer"
        assert data["username"] == "newuser"
        assert data["email"] == "newuser@test.com"
        assert data["role"] == "User"

    async def test_register_admin_email_gets_admin_role(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/register", json=_registration(
            username="boss", email="Admin@TaskCollab.com",
        ))
        assert res.status_code == 201
        assert res.json()["role"] == "Admin"

    async def test_register_weak_password(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/register", json=_registration(password="short"))
        assert res.status_code == 422

    async def test_register_duplicate_email(self, client: AsyncClient):
        await client.post("/api/v1/auth/register", json=_registration())
        res = await client.post("/api/v1/auth/register", json=_registration(username="another"))
        assert res.status_code == 409

    async def test_register_duplicate_username(self, client: AsyncClient):
        await client.post("/api/v1/auth/register", json=_registration())
        res = await client.post("/api/v1/auth/register", json=_registration(email="other@test.com"))
        assert res.status_code == 409

    async def test_register_invalid_email(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/register", json=_registration(email="not-an-email"))
        assert res.status_code == 422


@pytest.mark.asyncio
class TestLogin:
    async def test_login_with_username(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/auth/login", json={
            "username_or_email": "testuser",
            "password": "TestPassword123!",
        })
        assert res.status_code == 200
        assert res.json()["user_id"] == test_user.id

    async def test_login_with_email_case_insensitive(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/auth/login", json={
            "username_or_email": "TestUser@TaskCollab.com",
            "password": "TestPassword123!",
        })
        assert res.status_code == 200

    async def test_login_wrong_password(self, client: AsyncClient, test_user):
        res = await client.post("/api/v1/auth/login", json={
            "username_or_email": "testuser",
            "password": "WrongPassword!",
        })
        assert res.status_code == 401

    async def test_login_unknown_user(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/login", json={
            "username_or_email": "ghost",
            "password": "Whatever123!",
        })
        assert res.status_code == 401


@pytest.mark.asyncio
class TestTokens:
    async def test_me(self, client: AsyncClient, test_user):
        res = await client.get("/api/v1/auth/me", headers=get_auth_headers(test_user))
        assert res.status_code == 200
        data = res.json()
        assert data["id"] == test_user.id
        assert data["name"] == "Test User"
        assert data["role"] == "User"
        assert data["created_at"]

    async def test_me_without_token(self, client: AsyncClient):
        res = await client.get("/api/v1/auth/me")
        assert res.status_code in (401, 403)

    async def test_me_with_garbage_token(self, client: AsyncClient):
        res = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert res.status_code == 401

    async def test_expired_access_token(self, client: AsyncClient, test_user):
        token = AuthService.create_access_token(
            AuthService.token_claims(test_user), expires_delta=timedelta(seconds=-5),
        )
        res = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401

    async def test_refresh_token_is_single_use(self, client: AsyncClient, test_user):
        login = await client.post("/api/v1/auth/login", json={
            "username_or_email": "testuser",
            "password": "TestPassword123!",
        })
        refresh = login.json()["refresh_token"]

        first = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
        assert first.status_code == 200
        assert first.json()["refresh_token"] != refresh

        replay = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
        assert replay.status_code == 401

    async def test_refresh_unknown_token(self, client: AsyncClient):
        res = await client.post("/api/v1/auth/refresh", json={"refresh_token": "made-up"})
        assert res.status_code == 401


class TestAuthService:
    def test_password_round_trip(self):
        hashed = AuthService.hash_password("CorrectHorse1")
        assert AuthService.verify_password("CorrectHorse1", hashed)
        assert not AuthService.verify_password("WrongHorse1", hashed)

    def test_empty_hash_never_verifies(self):
        # Seeded demo accounts carry no password
        assert not AuthService.verify_password("anything", "")

    def test_decode_rejects_invalid_token(self):
        assert AuthService.decode_access_token("garbage") is None

    def test_refresh_store_expiry(self):
        store = RefreshTokenStore(ttl=timedelta(seconds=-1))
        token = store.issue("user-1")
        with pytest.raises(HTTPException) as exc:
            store.consume(token)
        assert exc.value.status_code == 401
        assert len(store) == 0
