"""Pydantic v2 request/response schemas for WhatsApp notification endpoints."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class SendTextRequest(BaseModel):
    phone: str = Field(min_length=1)
    message: str = Field(min_length=1)


class SendImageRequest(BaseModel):
    phone: str = Field(min_length=1)
    image: str = Field(min_length=1)  # URL or base64
    caption: str | None = None


class SendDocumentRequest(BaseModel):
    phone: str = Field(min_length=1)
    document: str = Field(min_length=1)  # URL or base64
    file_name: str | None = None


class ButtonItem(BaseModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1)


class SendButtonRequest(BaseModel):
    phone: str = Field(min_length=1)
    message: str = Field(min_length=1)
    buttons: list[ButtonItem] = Field(min_length=1)


class SendProductRequest(BaseModel):
    phone: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    supplier: str = Field(min_length=1)
    price: float
    old_price: float | None = None
    change: float | None = None  # percent
    link: str | None = None


class SendPriceAlertRequest(BaseModel):
    phone: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    supplier: str = Field(min_length=1)
    price: float
    threshold: float
    link: str | None = None


class SendReportRequest(BaseModel):
    phone: str = Field(min_length=1)
    total_products: int = Field(ge=0)
    price_changes: int = Field(ge=0)
    avg_change: float
    period: str = Field(min_length=1)
    link: str | None = None


class PhoneRequest(BaseModel):
    """Body for test sends that only need a destination."""

    phone: str = Field(min_length=1)


class ExpiringNoticeRequest(BaseModel):
    phone: str = Field(min_length=1)
    days_remaining: int = Field(ge=0, le=30)


# --- Response schemas ---


class ConnectionStatusResponse(BaseModel):
    connected: bool


class SendResponse(BaseModel):
    """Provider acknowledgement, passed through as returned by Z-API."""

    message_id: str | None = None
    raw: dict[str, Any] = {}

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> "SendResponse":
        return cls(message_id=data.get("messageId"), raw=data)


class WhatsAppLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID | None
    phone: str
    message_type: str
    message: str
    status: str
    error_message: str | None
    zapi_message_id: str | None
    attempts: int
    created_at: datetime
    sent_at: datetime | None


class WhatsAppLogListResponse(BaseModel):
    logs: list[WhatsAppLogResponse]
    total: int


class WhatsAppLogStatsResponse(BaseModel):
    pending: int
    success: int
    failed: int
