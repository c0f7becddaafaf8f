"""FastAPI application entry point for Sentinel triage."""

import contextlib
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware.error_handler import global_exception_handler
from src.api.middleware.logging import StructuredLoggingMiddleware
from src.api.routes.health import router as health_router
from src.api.routes.triage import router as triage_router
from src.api.services import build_services
from src.config import settings
from src.shared.events import create_event_publisher, create_redis_client
from src.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level)

    logger.info(
        "sentinel_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        kafka_events_enabled=settings.kafka_events_enabled,
    )

    from src.db.database import async_session_factory, init_db

    await init_db()

    redis_client = create_redis_client()
    publisher = await create_event_publisher(redis_client)
    app.state.triage = build_services(async_session_factory, redis_client, publisher)

    yield

    logger.info("sentinel_shutting_down")
    if hasattr(publisher, "stop"):
        with contextlib.suppress(Exception):
            await publisher.stop()
    await redis_client.aclose()


app = FastAPI(
    title="Sentinel Triage",
    description="Fraud alert triage: deterministic risk scoring, KB lookup and decision streaming",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(StructuredLoggingMiddleware)

app.add_exception_handler(Exception, global_exception_handler)

app.include_router(health_router)
app.include_router(triage_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
