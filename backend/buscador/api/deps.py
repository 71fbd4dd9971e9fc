"""Shared API dependencies: single import point for all routers.

Re-exports database session and authentication dependencies and builds the
notification collaborators, so that router modules can import everything they
need from one place::

    from buscador.api.deps import get_db, get_current_admin_user, get_zapi_client
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buscador.auth.dependencies import get_current_admin_user, get_current_user
from buscador.clock import ReferenceClock, get_clock
from buscador.database import get_db, get_session_factory
from buscador.notifications.scheduler import SubscriptionNotificationScheduler
from buscador.notifications.zapi_client import ZApiClient


def get_zapi_client(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: ReferenceClock = Depends(get_clock),
) -> ZApiClient:
    """A Z-API client whose delivery log writes commit independently of the request."""
    return ZApiClient(session_factory, clock)


def get_notification_scheduler(request: Request) -> SubscriptionNotificationScheduler:
    """The process-wide scheduler created at startup (shares the tick lock with the job)."""
    return request.app.state.notification_scheduler


__all__ = [
    "get_db",
    "get_clock",
    "get_current_user",
    "get_current_admin_user",
    "get_notification_scheduler",
    "get_session_factory",
    "get_zapi_client",
]
