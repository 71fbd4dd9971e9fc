"""Reference clock: one timezone and one ``now()`` source for the whole core.

The database stores naive UTC datetimes. Calendar-day questions ("was this
user notified today?", "which subscriptions end in three days?") are answered
in the reference timezone and converted back to naive UTC for queries.
"""

from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from buscador.config import settings


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


class ReferenceClock:
    """Timezone-aware clock injected into the scheduler, log store and formatter.

    Args:
        tz_name: IANA timezone used for day boundaries and display.
        now_fn: Returns the current instant as an aware datetime. Tests pass a
            fixed value to simulate time.
    """

    def __init__(self, tz_name: str, now_fn: Callable[[], datetime] = _system_now):
        self.tz = ZoneInfo(tz_name)
        self._now_fn = now_fn

    def now(self) -> datetime:
        """Current instant in the reference timezone."""
        current = self._now_fn()
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return current.astimezone(self.tz)

    def utcnow_naive(self) -> datetime:
        """Current instant as naive UTC, the storage format."""
        return to_naive_utc(self.now())

    def start_of_day(self, days_from_today: int = 0) -> datetime:
        """Midnight of today + N days in the reference timezone (aware)."""
        day = self.now().date() + timedelta(days=days_from_today)
        return datetime.combine(day, time.min, tzinfo=self.tz)

    def end_of_day(self, days_from_today: int = 0) -> datetime:
        """Last microsecond of today + N days in the reference timezone (aware)."""
        day = self.now().date() + timedelta(days=days_from_today)
        return datetime.combine(day, time.max, tzinfo=self.tz)

    def day_window_utc(self, days_from_today: int) -> tuple[datetime, datetime]:
        """``(start, end)`` of a calendar day, as naive UTC bounds for a query."""
        return (
            to_naive_utc(self.start_of_day(days_from_today)),
            to_naive_utc(self.end_of_day(days_from_today)),
        )

    def localize(self, value: datetime) -> datetime:
        """Convert a stored (naive UTC) or aware datetime to the reference timezone."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.tz)


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetime -> naive UTC. Naive input is assumed to already be UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def get_clock() -> ReferenceClock:
    """Clock configured from settings (FastAPI dependency / scheduler default)."""
    return ReferenceClock(settings.reference_timezone)
