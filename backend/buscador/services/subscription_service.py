"""Subscription service: expiry queries and conditional state transitions."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from buscador.models.subscription import DurationType, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)


def _active_criteria() -> list[ColumnElement[bool]]:
    return [
        Subscription.status == SubscriptionStatus.ACTIVE.value,
        Subscription.is_active.is_(True),
    ]


def _lapsed_criteria(now: datetime) -> list[ColumnElement[bool]]:
    return [Subscription.end_date < now, *_active_criteria()]


def _tester_expired_criteria(cutoff: datetime) -> list[ColumnElement[bool]]:
    return [
        Subscription.duration_type == DurationType.HOURS.value,
        Subscription.is_freemium.is_(True),
        Subscription.is_active.is_(True),
        Subscription.hours_started_at < cutoff,
    ]


async def find_expiring_between(
    db: AsyncSession, start: datetime, end: datetime
) -> list[Subscription]:
    """Active days-based subscriptions whose end date falls in ``[start, end]``."""
    result = await db.execute(
        select(Subscription).where(
            Subscription.end_date >= start,
            Subscription.end_date <= end,
            Subscription.duration_type == DurationType.DAYS.value,
            *_active_criteria(),
        )
    )
    return list(result.scalars().all())


async def find_lapsed(db: AsyncSession, now: datetime) -> list[Subscription]:
    """Subscriptions still marked active whose end date has passed."""
    result = await db.execute(select(Subscription).where(*_lapsed_criteria(now)))
    return list(result.scalars().all())


async def find_expired_testers(db: AsyncSession, cutoff: datetime) -> list[Subscription]:
    """Active freemium hour-metered subscriptions started before ``cutoff``."""
    result = await db.execute(select(Subscription).where(*_tester_expired_criteria(cutoff)))
    return list(result.scalars().all())


async def _expire_where(
    db: AsyncSession, subscription_id: uuid.UUID, criteria: list[ColumnElement[bool]]
) -> bool:
    # One statement flips both columns, guarded by the same predicate that
    # selected the row, so a subscription renewed in the meantime is left alone.
    result = await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, *criteria)
        .values(status=SubscriptionStatus.EXPIRED.value, is_active=False)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Subscription %s changed since it was read, not expiring it", subscription_id)
        return False

    logger.info("Subscription %s expired", subscription_id)
    return True


async def expire_lapsed_subscription(
    db: AsyncSession, subscription_id: uuid.UUID, now: datetime
) -> bool:
    """Mark a lapsed days-based subscription EXPIRED and inactive. False if it no longer qualifies."""
    return await _expire_where(db, subscription_id, _lapsed_criteria(now))


async def expire_tester_subscription(
    db: AsyncSession, subscription_id: uuid.UUID, cutoff: datetime
) -> bool:
    """Mark a freemium trial EXPIRED and inactive. False if it no longer qualifies."""
    return await _expire_where(db, subscription_id, _tester_expired_criteria(cutoff))
