"""Subscription expiry scan and WhatsApp notification scheduler.

Each tick runs three passes in order:

1. Expiring soon: days-based subscriptions ending in 5, 3, 2, 1 or 0 days get
   a reminder. Advisory only, nothing is mutated.
2. Expired: days-based subscriptions past their end date get a notice and are
   flipped to EXPIRED / inactive.
3. Tester expired: freemium hour-metered trials older than the grace window
   get a notice and are flipped to EXPIRED / inactive.

A user receives at most one message per type per calendar day (see
``delivery_log.was_already_notified_today``). Failures are contained to the
subscription being processed; the rest of the tick carries on.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buscador.clock import ReferenceClock
from buscador.config import settings
from buscador.models.subscription import Subscription
from buscador.models.user import User
from buscador.models.whatsapp_log import WhatsAppMessageType
from buscador.notifications.delivery_log import was_already_notified_today
from buscador.notifications.formatting import (
    render_expired_message,
    render_expiring_message,
    render_tester_expired_message,
)
from buscador.notifications.zapi_client import ZApiClient, ZApiError
from buscador.services.subscription_service import (
    expire_lapsed_subscription,
    expire_tester_subscription,
    find_expired_testers,
    find_expiring_between,
    find_lapsed,
)

logger = logging.getLogger(__name__)

JOB_ID = "subscription_notifications"


class SchedulerBusyError(RuntimeError):
    """A tick was requested while another one is still running."""


@dataclass
class PassReport:
    """Counters for one pass of a tick."""

    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped_already_notified: int = 0
    skipped_ineligible: int = 0
    transitioned: int = 0
    errors: int = 0


@dataclass
class TickReport:
    started_at: datetime
    finished_at: datetime | None = None
    expiring_soon: PassReport = field(default_factory=PassReport)
    expired: PassReport = field(default_factory=PassReport)
    tester_expired: PassReport = field(default_factory=PassReport)

    def to_dict(self) -> dict:
        return asdict(self)


class SubscriptionNotificationScheduler:
    """Runs expiry ticks. Only one tick may run at a time per instance.

    Args:
        session_factory: Sessions for subscription queries and transitions.
        client: Outbound WhatsApp client (writes the delivery log itself).
        clock: Reference clock for windows, day boundaries and rendering.
        reminder_thresholds: Days-before-expiry at which reminders go out.
        tester_grace_hours: Trial length for freemium hour-metered plans.
        expiry_requires_notification: When True (the historical behavior) a
            subscription is only expired in the same step that attempted to
            notify its owner, so owners without a phone or with billing
            messages disabled stay active. When False, every lapsed
            subscription is expired regardless.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: ZApiClient,
        clock: ReferenceClock,
        reminder_thresholds: list[int] | None = None,
        tester_grace_hours: int | None = None,
        expiry_requires_notification: bool | None = None,
    ):
        self._session_factory = session_factory
        self._client = client
        self._clock = clock
        self._thresholds = (
            reminder_thresholds if reminder_thresholds is not None else settings.reminder_thresholds_days
        )
        self._grace_hours = (
            tester_grace_hours if tester_grace_hours is not None else settings.tester_grace_hours
        )
        self._requires_notification = (
            expiry_requires_notification
            if expiry_requires_notification is not None
            else settings.expiry_requires_notification
        )
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_tick(self) -> TickReport:
        """Run passes A → B → C once.

        Raises:
            SchedulerBusyError: Another tick is in progress on this instance.
        """
        if self._lock.locked():
            raise SchedulerBusyError("A subscription scan is already running")

        async with self._lock:
            report = TickReport(started_at=self._clock.now())
            logger.info("Starting subscription scan")

            await self._check_expiring_soon(report.expiring_soon)
            await self._check_expired(report.expired)
            await self._check_tester_expired(report.tester_expired)

            report.finished_at = self._clock.now()
            logger.info(
                "Subscription scan finished: reminders=%d expired=%d testers=%d",
                report.expiring_soon.sent,
                report.expired.transitioned,
                report.tester_expired.transitioned,
            )
            return report

    async def run_scheduled_tick(self) -> TickReport | None:
        """Entry point for the interval job. Skips instead of overlapping."""
        try:
            return await self.run_tick()
        except SchedulerBusyError:
            logger.warning("Previous subscription scan still running, skipping this one")
            return None

    async def _notify(
        self,
        subscription: Subscription,
        message_type: WhatsAppMessageType,
        render: Callable[[User], str],
        report: PassReport,
    ) -> bool:
        """Send one notification. Returns True when a send was attempted."""
        user = subscription.user
        if not user.can_receive_billing_whatsapp:
            logger.debug(
                "User %s has no phone or has WhatsApp/billing notifications disabled",
                user.email,
            )
            report.skipped_ineligible += 1
            return False

        try:
            await self._client.send_text_message(user.phone, render(user), user.id, message_type)
        except ZApiError as e:
            report.failed += 1
            logger.error("Error sending %s to %s: %s", message_type.value, user.email, e.message)
        else:
            report.sent += 1
            logger.info("Sent %s to %s", message_type.value, user.email)
        return True

    async def _load(
        self,
        query: Callable[..., Awaitable[list[Subscription]]],
        *args,
    ) -> list[Subscription]:
        # Owners are eager-loaded, so the detached rows stay readable after close
        async with self._session_factory() as session:
            return await query(session, *args)

    async def _notify_and_expire(
        self,
        subscription: Subscription,
        message_type: WhatsAppMessageType,
        render: Callable[[User], str],
        expire: Callable[[AsyncSession, uuid.UUID], Awaitable[bool]],
        report: PassReport,
    ) -> None:
        async with self._session_factory() as session:
            attempted = False
            if await was_already_notified_today(
                session, subscription.user_id, message_type, self._clock
            ):
                report.skipped_already_notified += 1
            else:
                attempted = await self._notify(subscription, message_type, render, report)

            # Success or failure of the send does not matter, only that it was tried
            if attempted or not self._requires_notification:
                if await expire(session, subscription.id):
                    report.transitioned += 1
                await session.commit()

    async def _check_expiring_soon(self, report: PassReport) -> None:
        for days in self._thresholds:
            start, end = self._clock.day_window_utc(days)
            subscriptions = await self._load(find_expiring_between, start, end)
            report.candidates += len(subscriptions)

            for subscription in subscriptions:
                try:
                    async with self._session_factory() as session:
                        already_sent = await was_already_notified_today(
                            session,
                            subscription.user_id,
                            WhatsAppMessageType.SUBSCRIPTION_REMINDER,
                            self._clock,
                        )
                    if already_sent:
                        report.skipped_already_notified += 1
                        continue

                    await self._notify(
                        subscription,
                        WhatsAppMessageType.SUBSCRIPTION_REMINDER,
                        lambda user, sub=subscription, d=days: render_expiring_message(
                            user.name, d, sub.end_date, sub.amount, self._clock
                        ),
                        report,
                    )
                except Exception:
                    report.errors += 1
                    logger.exception("Error processing expiring subscription %s", subscription.id)

    async def _check_expired(self, report: PassReport) -> None:
        now = self._clock.utcnow_naive()
        subscriptions = await self._load(find_lapsed, now)
        report.candidates += len(subscriptions)

        for subscription in subscriptions:
            try:
                await self._notify_and_expire(
                    subscription,
                    WhatsAppMessageType.SUBSCRIPTION_EXPIRED,
                    lambda user, sub=subscription: render_expired_message(
                        user.name, sub.end_date, sub.amount, self._clock
                    ),
                    lambda session, subscription_id: expire_lapsed_subscription(
                        session, subscription_id, now
                    ),
                    report,
                )
            except Exception:
                report.errors += 1
                logger.exception("Error processing expired subscription %s", subscription.id)

    async def _check_tester_expired(self, report: PassReport) -> None:
        cutoff = self._clock.utcnow_naive() - timedelta(hours=self._grace_hours)
        subscriptions = await self._load(find_expired_testers, cutoff)
        report.candidates += len(subscriptions)

        for subscription in subscriptions:
            try:
                await self._notify_and_expire(
                    subscription,
                    WhatsAppMessageType.TESTER_EXPIRED,
                    lambda user: render_tester_expired_message(user.name, self._grace_hours),
                    lambda session, subscription_id: expire_tester_subscription(
                        session, subscription_id, cutoff
                    ),
                    report,
                )
            except Exception:
                report.errors += 1
                logger.exception("Error processing tester subscription %s", subscription.id)


def create_job_scheduler(
    notifier: SubscriptionNotificationScheduler,
    interval_hours: int = settings.scheduler_interval_hours,
) -> AsyncIOScheduler:
    """Build (not start) the APScheduler instance that fires ticks on an interval."""
    scheduler = AsyncIOScheduler(timezone=settings.reference_timezone)
    scheduler.add_job(
        notifier.run_scheduled_tick,
        trigger=IntervalTrigger(hours=interval_hours),
        id=JOB_ID,
        name="Scan subscriptions and send WhatsApp notices",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )
    return scheduler
