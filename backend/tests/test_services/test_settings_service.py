"""Tests for the system settings store and Z-API credential resolution."""

import pytest

from buscador.config import Settings
from buscador.models.system_setting import SystemSetting
from buscador.services.settings_service import (
    ZAPI_BASE_URL,
    ZAPI_INSTANCE_ID,
    ZApiCredentials,
    get_setting,
    get_zapi_credentials,
    mask_secret,
    update_zapi_settings,
    upsert_setting,
)

pytestmark = pytest.mark.asyncio


class TestSettingsStore:
    """Tests for get_setting / upsert_setting."""

    async def test_missing_key(self, db_session) -> None:
        assert await get_setting(db_session, "NOPE") is None

    async def test_empty_value_reads_as_missing(self, db_session) -> None:
        db_session.add(SystemSetting(key="EMPTY", value=""))
        await db_session.flush()
        assert await get_setting(db_session, "EMPTY") is None

    async def test_upsert_creates_then_overwrites(self, db_session) -> None:
        await upsert_setting(db_session, "KEY", "one", "first description")
        setting = await upsert_setting(db_session, "KEY", "two")

        assert await get_setting(db_session, "KEY") == "two"
        assert setting.description == "first description"


class TestZApiCredentials:
    """Tests for credential resolution and rotation."""

    async def test_environment_fallback_per_key(self, db_session) -> None:
        await upsert_setting(db_session, ZAPI_INSTANCE_ID, "instance-db")

        credentials = await get_zapi_credentials(db_session)
        fallback = ZApiCredentials.from_settings()

        assert credentials.instance_id == "instance-db"
        assert credentials.instance_token == fallback.instance_token
        assert credentials.base_url == fallback.base_url

    async def test_update_keeps_base_url_when_omitted(self, db_session) -> None:
        await upsert_setting(db_session, ZAPI_BASE_URL, "https://custom.test")

        await update_zapi_settings(
            db_session, client_token="c", instance_id="i", instance_token="t"
        )
        credentials = await get_zapi_credentials(db_session)

        assert credentials == ZApiCredentials(
            instance_id="i", instance_token="t", client_token="c", base_url="https://custom.test"
        )
        assert credentials.is_configured is True

    async def test_instance_url(self) -> None:
        credentials = ZApiCredentials(
            instance_id="abc", instance_token="xyz", client_token="", base_url="https://api.z-api.io/"
        )
        assert credentials.instance_url == "https://api.z-api.io/instances/abc/token/xyz"

    async def test_from_settings(self) -> None:
        config = Settings(
            zapi_instance_id="env-id",
            zapi_instance_token="env-token",
            zapi_client_token="env-client",
            jwt_secret_key="test-secret",
        )
        credentials = ZApiCredentials.from_settings(config)
        assert credentials.instance_id == "env-id"
        assert credentials.client_token == "env-client"


class TestMaskSecret:
    """Tests for mask_secret."""

    async def test_keeps_last_four(self) -> None:
        assert mask_secret("abcdef123456") == "********3456"

    async def test_short_values_fully_masked(self) -> None:
        assert mask_secret("abc") == "***"
        assert mask_secret("") == ""
