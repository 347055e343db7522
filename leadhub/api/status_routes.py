"""
Status API routes - Health check for LeadHub dependencies.

Public endpoint (no auth) for load balancers and uptime monitors.
Rate limited via a short result cache.
"""

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from leadhub.config import settings
from leadhub.db.session import get_read_db
from leadhub.models.api import HealthResponse

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

DEGRADED_LATENCY_THRESHOLD = 1000  # ms

# Rate limiting: cache last result for 10 seconds
_health_cache: dict[str, tuple[datetime, HealthResponse]] = {}
_CACHE_TTL_SECONDS = 10


async def check_database() -> tuple[str, int | None]:
    """Run SELECT 1 against the read database; returns (state, latency_ms)."""
    start = time.perf_counter()
    try:
        async for db in get_read_db():
            await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("database_health_check_failed", error=str(e))
        return "disconnected", None

    latency_ms = int((time.perf_counter() - start) * 1000)
    if latency_ms > DEGRADED_LATENCY_THRESHOLD:
        return "slow", latency_ms
    return "connected", latency_ms


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Service health.

    Status is "healthy" when the database answers, "degraded" when it
    answers slowly, and "unhealthy" when it doesn't answer at all.
    """
    now = datetime.now(UTC)

    cached = _health_cache.get("health")
    if cached is not None:
        cached_time, cached_response = cached
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("health_cache_hit", age_seconds=age_seconds)
            return cached_response

    database, latency_ms = await check_database()
    if database == "connected":
        overall = "healthy"
    elif database == "slow":
        overall = "degraded"
    else:
        overall = "unhealthy"

    response = HealthResponse(
        status=overall,
        database=database,
        version=settings.api_version,
        timestamp=now.isoformat(),
    )
    _health_cache["health"] = (now, response)
    logger.debug("health_checked", status=overall, latency_ms=latency_ms)
    return response
