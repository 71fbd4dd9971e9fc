"""Tests for the Z-API settings endpoints."""

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

URL = "/api/v1/settings/zapi"


class TestZApiSettings:
    """Tests for GET/PUT /api/v1/settings/zapi."""

    async def test_get_defaults(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.get(URL, headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["base_url"] == "https://api.z-api.io"
        assert set(data) == {"instance_id", "instance_token", "client_token", "base_url", "configured"}

    async def test_put_masks_tokens(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.put(
            URL,
            json={
                "client_token": "client-secret-1234",
                "instance_id": "3C0FFEE",
                "instance_token": "instance-secret-9876",
            },
            headers=admin_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["instance_id"] == "3C0FFEE"
        assert data["client_token"].endswith("1234")
        assert "client-secret" not in data["client_token"]
        assert data["instance_token"].endswith("9876")
        assert data["configured"] is True

        reread = await client.get(URL, headers=admin_headers)
        assert reread.json() == data

    async def test_rotated_credentials_used_by_next_send(
        self, client: AsyncClient, admin_headers: dict, zapi
    ) -> None:
        await client.put(
            URL,
            json={
                "client_token": "client-new",
                "instance_id": "inst-new",
                "instance_token": "tok-new",
                "base_url": "https://zapi.test",
            },
            headers=admin_headers,
        )

        response = await client.post(
            "/api/v1/notifications/whatsapp/send-text",
            json={"phone": "11987654321", "message": "Olá"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        request = zapi.requests[0]
        assert str(request.url) == "https://zapi.test/instances/inst-new/token/tok-new/send-text"
        assert request.headers["Client-Token"] == "client-new"

    async def test_put_requires_all_tokens(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.put(URL, json={"client_token": "x"}, headers=admin_headers)
        assert response.status_code == 422
