"""
Health check endpoint for the alert engine's own infrastructure.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_database, get_redis_client
from src.api.models import ComponentHealth, HealthResponse
from src.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)

SERVICE_VERSION = "0.1.0"


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


async def _check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and measure latency."""
    start = time.perf_counter()
    try:
        await redis_client.ping()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the service and its dependencies.",
)
async def health_check(
    db: Database = Depends(get_database),
    redis_client=Depends(get_redis_client),
) -> HealthResponse:
    """
    Check service health including database and the optional retry queue.

    Status logic:
    - unhealthy: database is down
    - degraded: Redis is configured but down (failed deliveries are not queued)
    - healthy: all components operational
    """
    components: dict[str, ComponentHealth] = {}

    components["database"] = await _check_database(db)

    if redis_client is not None:
        components["redis"] = await _check_redis(redis_client)

    if components["database"].status != "healthy":
        overall = "unhealthy"
    elif any(c.status != "healthy" for c in components.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    if overall != "healthy":
        logger.warning(
            "Health check not healthy",
            status=overall,
            components={name: c.status for name, c in components.items()},
        )

    return HealthResponse(
        status=overall,
        components=components,
        version=SERVICE_VERSION,
    )
