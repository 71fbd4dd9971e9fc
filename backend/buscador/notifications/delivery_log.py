"""Delivery log store: the idempotency ledger for outbound WhatsApp messages."""

import logging
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buscador.clock import ReferenceClock, to_naive_utc
from buscador.models.whatsapp_log import WhatsAppLog, WhatsAppLogStatus, WhatsAppMessageType

logger = logging.getLogger(__name__)

# PENDING counts as already attempted so a send in flight is not duplicated
_BLOCKING_STATUSES = (WhatsAppLogStatus.SUCCESS.value, WhatsAppLogStatus.PENDING.value)


async def was_already_notified_today(
    db: AsyncSession,
    user_id: uuid.UUID,
    message_type: WhatsAppMessageType,
    clock: ReferenceClock,
) -> bool:
    """True if a successful or pending message of this type went to the user today.

    "Today" starts at midnight in the clock's reference timezone.
    """
    since = to_naive_utc(clock.start_of_day())
    result = await db.execute(
        select(WhatsAppLog.id, WhatsAppLog.status)
        .where(
            WhatsAppLog.user_id == user_id,
            WhatsAppLog.message_type == message_type.value,
            WhatsAppLog.status.in_(_BLOCKING_STATUSES),
            WhatsAppLog.created_at >= since,
        )
        .limit(1)
    )
    row = result.first()
    if row is None:
        return False

    logger.debug(
        "Notification %s already sent/pending today for user %s (status: %s)",
        message_type.value,
        user_id,
        row.status,
    )
    return True


async def record_attempt(
    db: AsyncSession,
    *,
    phone: str,
    message_type: WhatsAppMessageType,
    message: str,
    clock: ReferenceClock,
    user_id: uuid.UUID | None = None,
    metadata: dict[str, Any] | None = None,
) -> WhatsAppLog:
    """Create a PENDING entry right before a provider call."""
    log = WhatsAppLog(
        user_id=user_id,
        phone=phone,
        message_type=message_type.value,
        message=message,
        status=WhatsAppLogStatus.PENDING.value,
        metadata_=metadata,
        created_at=clock.utcnow_naive(),
    )
    db.add(log)
    await db.flush()
    return log


async def record_outcome(
    db: AsyncSession,
    log_id: uuid.UUID,
    *,
    success: bool,
    clock: ReferenceClock,
    zapi_message_id: str | None = None,
    error_message: str | None = None,
) -> None:
    """Mark an entry SUCCESS (with the provider message id) or FAILED (with the error)."""
    if success:
        values: dict[str, Any] = {
            "status": WhatsAppLogStatus.SUCCESS.value,
            "zapi_message_id": zapi_message_id,
            "sent_at": clock.utcnow_naive(),
        }
    else:
        values = {
            "status": WhatsAppLogStatus.FAILED.value,
            "error_message": error_message,
        }
    await db.execute(update(WhatsAppLog).where(WhatsAppLog.id == log_id).values(**values))


async def list_logs(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    status: WhatsAppLogStatus | None = None,
    limit: int = 50,
) -> list[WhatsAppLog]:
    """Most recent entries first, optionally filtered by user and/or status."""
    stmt = select(WhatsAppLog)
    if user_id is not None:
        stmt = stmt.where(WhatsAppLog.user_id == user_id)
    if status is not None:
        stmt = stmt.where(WhatsAppLog.status == status.value)
    result = await db.execute(stmt.order_by(WhatsAppLog.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def count_by_status(db: AsyncSession) -> dict[str, int]:
    """Entry counts keyed by status, with zero for statuses never seen."""
    result = await db.execute(
        select(WhatsAppLog.status, func.count()).group_by(WhatsAppLog.status)
    )
    counts = {status.value: 0 for status in WhatsAppLogStatus}
    for status, count in result.all():
        counts[status] = count
    return counts
