"""WhatsApp delivery log: one row per outbound message attempt."""

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from buscador.database import Base, UUIDPrimaryKeyMixin


class WhatsAppMessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    BUTTON = "button"
    PRODUCT_NOTIFICATION = "product_notification"
    PRICE_ALERT = "price_alert"
    REPORT = "report"
    SUBSCRIPTION_REMINDER = "subscription_reminder"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    TESTER_EXPIRED = "tester_expired"
    WELCOME_REGISTRATION = "welcome_registration"
    TEST_NOTIFICATION = "test_notification"


class WhatsAppLogStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class WhatsAppLog(UUIDPrimaryKeyMixin, Base):
    """Append-only ledger of send attempts.

    Created PENDING right before the provider call and updated in place to
    SUCCESS or FAILED afterwards. Rows are never deleted; the scheduler reads
    them to send at most one message per (user, type) per day.
    """

    __tablename__ = "whatsapp_logs"
    __table_args__ = (
        Index("ix_whatsapp_logs_user_type_created", "user_id", "message_type", "created_at"),
        Index("ix_whatsapp_logs_status", "status"),
    )

    # Nullable: ad-hoc admin sends may have no recipient account
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default=WhatsAppMessageType.TEXT.value
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=WhatsAppLogStatus.PENDING.value
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    zapi_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Written from the reference clock, not the server, so day boundaries agree
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<WhatsAppLog(id={self.id}, user_id={self.user_id}, "
            f"type={self.message_type}, status={self.status})>"
        )
