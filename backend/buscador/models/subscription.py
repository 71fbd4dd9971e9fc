"""Subscription model: plan purchase and access window per user."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buscador.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class SubscriptionPlan(str, enum.Enum):
    MONTHLY = "monthly"
    BIWEEKLY = "biweekly"
    WEEKLY = "weekly"


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class DurationType(str, enum.Enum):
    HOURS = "hours"
    DAYS = "days"


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A user's access window, either calendar-based or hour-metered.

    ``end_date`` is meaningful for ``days`` subscriptions, ``hours_started_at``
    for ``hours`` (freemium/tester) ones. ``status`` and ``is_active`` are
    separate columns and must be changed together on expiry.
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index("ix_subscriptions_end_date", "end_date"),
        Index("ix_subscriptions_status", "status"),
    )

    # Historical rows are kept, so user_id is not unique
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Plan & payment
    plan: Mapped[str] = mapped_column(String(20), nullable=False, default=SubscriptionPlan.MONTHLY.value)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("289.90"))
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentMethod.PIX.value)

    # Access window
    start_date: Mapped[datetime | None] = mapped_column(nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Hour-metered (freemium / tester) access
    duration_type: Mapped[str] = mapped_column(String(10), nullable=False, default=DurationType.DAYS.value)
    is_freemium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hours_available: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    hours_used: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    hours_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_access_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="subscriptions", lazy="selectin")  # type: ignore[name-defined]  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"duration_type={self.duration_type}, status={self.status}, is_active={self.is_active})>"
        )
