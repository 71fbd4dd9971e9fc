"""Tests for bearer token validation and the admin-only guard."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from jose import jwt

from buscador.auth.jwt import create_access_token, decode_token
from buscador.config import settings

pytestmark = pytest.mark.asyncio

PROTECTED = "/api/v1/notifications/whatsapp/logs/stats"


class TestTokens:
    """Tests for token helpers."""

    async def test_round_trip(self) -> None:
        token = create_access_token({"sub": "abc"})
        payload = decode_token(token)
        assert payload["sub"] == "abc"
        assert payload["type"] == "access"


class TestAdminGuard:
    """Every notification route requires an active administrator."""

    async def test_admin_allowed(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.get(PROTECTED, headers=admin_headers)
        assert response.status_code == 200

    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get(PROTECTED)
        assert response.status_code in (401, 403)

    async def test_non_admin_forbidden(self, client: AsyncClient, user_headers: dict) -> None:
        response = await client.get(PROTECTED, headers=user_headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Administrator access required"

    async def test_expired_token(self, client: AsyncClient, admin_user) -> None:
        token = create_access_token({"sub": str(admin_user.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get(PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_wrong_token_type(self, client: AsyncClient, admin_user) -> None:
        token = jwt.encode(
            {"sub": str(admin_user.id), "type": "refresh"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        response = await client.get(PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_unknown_user(self, client: AsyncClient) -> None:
        token = create_access_token({"sub": str(uuid.uuid4())})
        response = await client.get(PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_inactive_admin(self, client: AsyncClient, make_user) -> None:
        user = await make_user(is_admin=True, is_active=False)
        token = create_access_token({"sub": str(user.id)})
        response = await client.get(PROTECTED, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_scheduler_run_is_protected(self, client: AsyncClient, user_headers: dict) -> None:
        response = await client.post("/api/v1/notifications/scheduler/run", headers=user_headers)
        assert response.status_code == 403
