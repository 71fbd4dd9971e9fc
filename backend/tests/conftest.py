"""Shared test configuration and fixtures.

Each test gets its own SQLite database file (aiosqlite) so that the scheduler
and the Z-API client can open and commit their own sessions the same way they
do against PostgreSQL. The Z-API is replaced with an ``httpx.MockTransport``.
"""

import json
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import buscador.models  # noqa: F401  (registers every table on Base.metadata)
from buscador.api.deps import get_notification_scheduler, get_zapi_client
from buscador.auth.jwt import create_access_token
from buscador.clock import ReferenceClock, get_clock
from buscador.database import Base, get_db, get_session_factory
from buscador.main import app
from buscador.models.subscription import DurationType, Subscription
from buscador.models.user import User
from buscador.models.whatsapp_log import WhatsAppLog
from buscador.notifications.scheduler import SubscriptionNotificationScheduler
from buscador.notifications.zapi_client import ZApiClient

# 12:00 in São Paulo (UTC-3)
FIXED_NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """A fresh database file per test, with every table created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'notifications.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> ReferenceClock:
    """Reference clock frozen at ``FIXED_NOW``."""
    return ReferenceClock("America/Sao_Paulo", now_fn=lambda: FIXED_NOW)


# ---------------------------------------------------------------------------
# Z-API fake
# ---------------------------------------------------------------------------


class FakeZApi:
    """Answers Z-API calls like the real provider and records every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.connected = True
        self.fail_status: int | None = None
        self.fail_body: dict | None = None
        self.network_error = False
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.network_error:
            raise httpx.ConnectError("Connection refused", request=request)
        if self.fail_status is not None:
            if self.fail_body is None:
                return httpx.Response(self.fail_status, text="")
            return httpx.Response(self.fail_status, json=self.fail_body)
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"connected": self.connected, "smartphoneConnected": True})
        number = len(self.requests)
        return httpx.Response(200, json={"zaapId": f"zaap-{number}", "messageId": f"msg-{number}"})

    @property
    def sent(self) -> list[dict]:
        """JSON bodies of every POST, in order."""
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]


@pytest.fixture
def zapi() -> FakeZApi:
    return FakeZApi()


@pytest.fixture
def zapi_client(session_factory, clock, zapi: FakeZApi) -> ZApiClient:
    return ZApiClient(session_factory, clock, transport=zapi.transport)


@pytest.fixture
def notifier(session_factory, zapi_client, clock) -> SubscriptionNotificationScheduler:
    return SubscriptionNotificationScheduler(
        session_factory,
        zapi_client,
        clock,
        reminder_thresholds=[5, 3, 2, 1, 0],
        tester_grace_hours=3,
        expiry_requires_notification=True,
    )


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(session_factory) -> Callable[..., Awaitable[User]]:
    """Create and commit a user. Keyword arguments override the defaults."""

    async def _make_user(**overrides) -> User:
        unique = uuid.uuid4().hex[:8]
        values = {
            "name": "Maria Silva",
            "email": f"user-{unique}@test.com",
            "phone": "11987654321",
            "is_active": True,
            "is_admin": False,
            "enable_whatsapp_notifications": True,
            "enable_billing_notifications": True,
        }
        values.update(overrides)
        async with session_factory() as session:
            user = User(**values)
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_subscription(session_factory, clock) -> Callable[..., Awaitable[Subscription]]:
    """Create and commit an active days-based subscription for ``user``."""

    async def _make_subscription(user: User, **overrides) -> Subscription:
        values = {
            "user_id": user.id,
            "plan": "monthly",
            "amount": Decimal("289.90"),
            "payment_method": "pix",
            "start_date": clock.utcnow_naive(),
            "end_date": None,
            "status": "active",
            "is_active": True,
            "duration_type": DurationType.DAYS.value,
            "is_freemium": False,
        }
        values.update(overrides)
        async with session_factory() as session:
            subscription = Subscription(**values)
            session.add(subscription)
            await session.commit()
        return subscription

    return _make_subscription


@pytest.fixture
def fetch_logs(session_factory) -> Callable[..., Awaitable[list[WhatsAppLog]]]:
    """Read delivery log rows from a fresh session, oldest first."""

    async def _fetch_logs(**filters) -> list[WhatsAppLog]:
        async with session_factory() as session:
            result = await session.execute(
                select(WhatsAppLog).filter_by(**filters).order_by(WhatsAppLog.created_at)
            )
            return list(result.scalars().all())

    return _fetch_logs


@pytest.fixture
def fetch_subscription(session_factory) -> Callable[[uuid.UUID], Awaitable[Subscription]]:
    """Reload a subscription from a fresh session."""

    async def _fetch_subscription(subscription_id: uuid.UUID) -> Subscription:
        async with session_factory() as session:
            return await session.get(Subscription, subscription_id)

    return _fetch_subscription


# ---------------------------------------------------------------------------
# HTTP client and auth
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory, clock, zapi_client, notifier
) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the test database, clock and fake Z-API."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_zapi_client] = lambda: zapi_client
    app.dependency_overrides[get_notification_scheduler] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_user(make_user) -> User:
    return await make_user(name="Admin", email=f"admin-{uuid.uuid4().hex[:8]}@test.com", is_admin=True)


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    """Authorization headers for the admin user."""
    token = create_access_token({"sub": str(admin_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def regular_user(make_user) -> User:
    return await make_user(name="Regular User")


@pytest.fixture
def user_headers(regular_user: User) -> dict[str, str]:
    """Authorization headers for a non-admin user."""
    token = create_access_token({"sub": str(regular_user.id)})
    return {"Authorization": f"Bearer {token}"}
