"""Settings service: key/value system settings and Z-API credentials."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buscador.config import Settings, settings
from buscador.models.system_setting import SystemSetting

logger = logging.getLogger(__name__)

ZAPI_CLIENT_TOKEN = "ZAPI_CLIENT_TOKEN"
ZAPI_INSTANCE_ID = "ZAPI_INSTANCE_ID"
ZAPI_INSTANCE_TOKEN = "ZAPI_INSTANCE_TOKEN"
ZAPI_BASE_URL = "ZAPI_BASE_URL"


@dataclass(frozen=True)
class ZApiCredentials:
    """Credentials for one Z-API call. Resolved fresh for every request."""

    instance_id: str
    instance_token: str
    client_token: str
    base_url: str

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ZApiCredentials":
        """Static credentials from the environment (fallback)."""
        return cls(
            instance_id=config.zapi_instance_id,
            instance_token=config.zapi_instance_token,
            client_token=config.zapi_client_token,
            base_url=config.zapi_base_url,
        )

    @property
    def instance_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/instances/{self.instance_id}/token/{self.instance_token}"

    @property
    def is_configured(self) -> bool:
        return bool(self.instance_id and self.instance_token)


def mask_secret(value: str) -> str:
    """Keep the last four characters of a secret for display."""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


async def get_setting(db: AsyncSession, key: str) -> str | None:
    """Return the stored value, or None when the key is missing or empty."""
    result = await db.execute(select(SystemSetting).where(SystemSetting.key == key))
    setting = result.scalar_one_or_none()
    if setting is None or not setting.value:
        return None
    return setting.value


async def upsert_setting(
    db: AsyncSession, key: str, value: str, description: str | None = None
) -> SystemSetting:
    """Create or overwrite a setting."""
    result = await db.execute(select(SystemSetting).where(SystemSetting.key == key))
    setting = result.scalar_one_or_none()

    if setting is None:
        setting = SystemSetting(key=key, value=value, description=description)
        db.add(setting)
    else:
        setting.value = value
        if description:
            setting.description = description

    await db.flush()
    return setting


async def get_zapi_credentials(db: AsyncSession) -> ZApiCredentials:
    """Resolve each Z-API credential from the settings table, falling back per key to env."""
    fallback = ZApiCredentials.from_settings()
    return ZApiCredentials(
        client_token=await get_setting(db, ZAPI_CLIENT_TOKEN) or fallback.client_token,
        instance_id=await get_setting(db, ZAPI_INSTANCE_ID) or fallback.instance_id,
        instance_token=await get_setting(db, ZAPI_INSTANCE_TOKEN) or fallback.instance_token,
        base_url=await get_setting(db, ZAPI_BASE_URL) or fallback.base_url,
    )


async def update_zapi_settings(
    db: AsyncSession,
    client_token: str,
    instance_id: str,
    instance_token: str,
    base_url: str | None = None,
) -> None:
    """Rotate Z-API credentials. Takes effect on the next outbound message."""
    await upsert_setting(db, ZAPI_CLIENT_TOKEN, client_token, "Z-API client token")
    await upsert_setting(db, ZAPI_INSTANCE_ID, instance_id, "Z-API instance ID")
    await upsert_setting(db, ZAPI_INSTANCE_TOKEN, instance_token, "Z-API instance token")
    if base_url:
        await upsert_setting(db, ZAPI_BASE_URL, base_url, "Z-API base URL")

    logger.info("Z-API credentials updated (instance %s)", instance_id)
