"""Health and readiness endpoints."""

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    from src.main import get_uptime

    return {
        "status": "healthy",
        "version": settings.app_version,
        "uptime_seconds": get_uptime(),
    }


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    db_ok = False
    redis_ok = False

    try:
        from src.db.database import check_db

        db_ok = await check_db()
    except Exception:
        logger.warning("readiness_database_unavailable", exc_info=True)

    services = getattr(request.app.state, "triage", None)
    if services is not None:
        try:
            await services.redis.ping()
            redis_ok = True
        except Exception:
            logger.warning("readiness_redis_unavailable", exc_info=True)

    all_ready = db_ok and redis_ok
    return JSONResponse(
        status_code=200 if all_ready else 503,
        content={
            "status": "ready" if all_ready else "degraded",
            "database": db_ok,
            "redis": redis_ok,
            "kafka_events": settings.kafka_events_enabled,
        },
    )
