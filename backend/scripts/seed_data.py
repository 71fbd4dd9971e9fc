"""Seed a local database with users and subscriptions covering every scan pass.

Creates any missing tables, then (re)creates one admin and a set of demo
users whose subscriptions expire in 5, 3, 1 and 0 days, lapsed yesterday,
or are freemium trials past the grace window. Prints an admin bearer token
for the API.

Run inside Docker:
    docker compose exec backend python -m scripts.seed_data
"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete, select

from buscador.auth.jwt import create_access_token
from buscador.database import Base, async_session_factory, engine
from buscador.models.subscription import DurationType, Subscription
from buscador.models.user import User

ADMIN = {"email": "admin@buscadorpxt.com.br", "name": "Administrador", "phone": "11900000000"}

# (email, name, phone, user flags, subscription window relative to now)
DEMO_USERS = [
    ("cinco.dias@example.com", "Ana Souza", "11911110005", {}, {"days": 5}),
    ("tres.dias@example.com", "Bruno Lima", "11911110003", {}, {"days": 3}),
    ("amanha@example.com", "Carla Dias", "11911110001", {}, {"days": 1}),
    ("hoje@example.com", "Diego Rocha", "11911110000", {}, {"hours": 6}),
    ("vencida@example.com", "Elisa Prado", "11911119999", {}, {"days": -1}),
    (
        "sem.cobranca@example.com",
        "Fábio Nunes",
        "11911118888",
        {"enable_billing_notifications": False},
        {"days": -2},
    ),
    ("sem.telefone@example.com", "Gabi Torres", None, {}, {"days": 3}),
    ("tester@example.com", "Heitor Melo", "11911117777", {}, {"tester_started_hours_ago": 4}),
]


def _subscription_for(user: User, now: datetime, window: dict) -> Subscription:
    if "tester_started_hours_ago" in window:
        return Subscription(
            user_id=user.id,
            plan="weekly",
            amount=Decimal("0"),
            duration_type=DurationType.HOURS.value,
            is_freemium=True,
            hours_available=Decimal("3"),
            hours_started_at=now - timedelta(hours=window["tester_started_hours_ago"]),
        )

    end_date = now + timedelta(days=window.get("days", 0), hours=window.get("hours", 0))
    return Subscription(
        user_id=user.id,
        plan="monthly",
        amount=Decimal("289.90"),
        start_date=end_date - timedelta(days=30),
        end_date=end_date,
    )


async def seed() -> None:
    """Populate the database with demo data.

    Idempotent: demo users from a previous run are deleted with their
    subscriptions before being created again.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    emails = [ADMIN["email"], *(entry[0] for entry in DEMO_USERS)]
    now = datetime.now(timezone.utc).replace(tzinfo=None)

    async with async_session_factory() as session:
        result = await session.execute(select(User.id).where(User.email.in_(emails)))
        existing_ids = list(result.scalars().all())
        if existing_ids:
            print(f"⚠️  {len(existing_ids)} demo users already exist. Deleting and re-seeding...")
            await session.execute(delete(Subscription).where(Subscription.user_id.in_(existing_ids)))
            await session.execute(delete(User).where(User.id.in_(existing_ids)))
            await session.flush()

        admin = User(**ADMIN, is_admin=True)
        session.add(admin)
        await session.flush()

        for email, name, phone, flags, window in DEMO_USERS:
            user = User(email=email, name=name, phone=phone, **flags)
            session.add(user)
            await session.flush()
            session.add(_subscription_for(user, now, window))
            print(f"   👤 {name} <{email}> {window}")

        await session.commit()

    token = create_access_token({"sub": str(admin.id)}, expires_delta=timedelta(days=7))

    print()
    print("=" * 60)
    print("📊 Seed Summary")
    print("=" * 60)
    print(f"   Admin:         {ADMIN['email']} (id={admin.id})")
    print(f"   Demo users:    {len(DEMO_USERS)}")
    print("=" * 60)
    print("🔑 Admin bearer token (7 days):")
    print(token)
    print("🎉 Done! Trigger a scan with POST /api/v1/notifications/scheduler/run")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
