"""Pydantic v2 schemas for system settings endpoints."""

from pydantic import BaseModel, Field


class ZApiSettingsUpdate(BaseModel):
    """Rotate Z-API credentials. ``base_url`` keeps its current value when omitted."""

    client_token: str = Field(min_length=1)
    instance_id: str = Field(min_length=1)
    instance_token: str = Field(min_length=1)
    base_url: str | None = None


class ZApiSettingsResponse(BaseModel):
    """Current credentials with secrets masked."""

    instance_id: str
    instance_token: str
    client_token: str
    base_url: str
    configured: bool
