"""System settings API router (admin only)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buscador.api.deps import get_current_admin_user, get_db
from buscador.models.user import User
from buscador.schemas.settings import ZApiSettingsResponse, ZApiSettingsUpdate
from buscador.services.settings_service import (
    ZApiCredentials,
    get_zapi_credentials,
    mask_secret,
    update_zapi_settings,
)

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


def _masked(credentials: ZApiCredentials) -> dict:
    return {
        "instance_id": credentials.instance_id,
        "instance_token": mask_secret(credentials.instance_token),
        "client_token": mask_secret(credentials.client_token),
        "base_url": credentials.base_url,
        "configured": credentials.is_configured,
    }


@router.get(
    "/zapi",
    response_model=ZApiSettingsResponse,
    summary="Show the Z-API credentials in effect",
)
async def get_zapi_settings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    """Stored values with environment fallback. Tokens are masked."""
    return _masked(await get_zapi_credentials(db))


@router.put(
    "/zapi",
    response_model=ZApiSettingsResponse,
    summary="Rotate the Z-API credentials",
)
async def put_zapi_settings(
    body: ZApiSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    """Takes effect on the next outbound message, no restart needed."""
    await update_zapi_settings(
        db,
        client_token=body.client_token,
        instance_id=body.instance_id,
        instance_token=body.instance_token,
        base_url=body.base_url,
    )
    return _masked(await get_zapi_credentials(db))
