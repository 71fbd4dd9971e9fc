"""BuscadorPXT notifications service: FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from buscador.api.v1.notifications import router as notifications_router
from buscador.api.v1.settings import router as settings_router
from buscador.clock import get_clock
from buscador.config import settings
from buscador.database import async_session_factory, engine
from buscador.notifications.scheduler import (
    SubscriptionNotificationScheduler,
    create_job_scheduler,
)
from buscador.notifications.zapi_client import ZApiClient

# Configure root logger so all buscador.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup: one scheduler instance shared by the interval job and the manual trigger
    clock = get_clock()
    notifier = SubscriptionNotificationScheduler(
        async_session_factory, ZApiClient(async_session_factory, clock), clock
    )
    app.state.notification_scheduler = notifier

    job_scheduler = None
    if settings.scheduler_enabled:
        job_scheduler = create_job_scheduler(notifier)
        job_scheduler.start()
        logger.info(
            "Subscription scan scheduled every %d hours", settings.scheduler_interval_hours
        )

    yield

    # Shutdown: stop firing new ticks, then dispose engine connections
    if job_scheduler is not None:
        job_scheduler.shutdown(wait=False)
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Subscription expiry scan and WhatsApp notifications for the BuscadorPXT marketplace.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(notifications_router)
app.include_router(settings_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
