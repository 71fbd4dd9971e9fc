"""User model: the subset of the platform's account consumed by notifications."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buscador.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Marketplace user. Accounts are managed elsewhere; read-only here."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Notification preferences
    enable_whatsapp_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    enable_email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Nullable on purpose: only an explicit False opts out of billing messages
    enable_billing_notifications: Mapped[bool | None] = mapped_column(Boolean, default=True, nullable=True)

    # Relationships
    subscriptions: Mapped[list["Subscription"]] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "Subscription", back_populates="user", lazy="selectin"
    )

    @property
    def can_receive_billing_whatsapp(self) -> bool:
        """Phone on file, WhatsApp enabled, billing messages not switched off."""
        return (
            bool(self.phone)
            and self.enable_whatsapp_notifications
            and self.enable_billing_notifications is not False
        )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
