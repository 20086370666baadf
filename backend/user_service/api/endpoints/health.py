"""
Health check endpoints for the User Service.

Reports store of record and cache status and exposes Prometheus metrics.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
import structlog

from ...constants import APP_VERSION, get_current_timestamp
from ...core.database import DatabaseManager
from ...infrastructure.redis.connection_factory import RedisConnectionFactory
from ...monitoring.cache_metrics import cache_metrics
from ..dependencies import get_database_manager, get_redis_factory

logger = structlog.get_logger()
router = APIRouter()


def overall_status(database_status: str, cache_status: str) -> str:
    """Healthy when both tiers are up, degraded when only the cache is down."""
    if database_status != "healthy":
        return "unhealthy"
    if cache_status != "healthy":
        return "degraded"
    return "healthy"


@router.get("/health")
async def health_check(
    request: Request,
    database: Optional[DatabaseManager] = Depends(get_database_manager),
    redis_factory: Optional[RedisConnectionFactory] = Depends(get_redis_factory),
):
    """
    Health check endpoint.

    Returns 503 only when the store of record is unreachable; a cache
    outage degrades the service but reads and writes keep working.
    """
    checks: Dict[str, Any] = {}

    if database is None:
        checks["database"] = {"status": "unhealthy", "error": "Database not initialized"}
    else:
        checks["database"] = await database.health_check()

    if redis_factory is None:
        checks["cache"] = {"status": "unhealthy", "error": "Cache not initialized"}
    else:
        checks["cache"] = await redis_factory.health_check()

    result = overall_status(checks["database"]["status"], checks["cache"]["status"])
    if result != "healthy":
        logger.warning("Health check not healthy", status=result)

    store = getattr(request.app.state, "user_store", None)
    body = {
        "status": result,
        "timestamp": get_current_timestamp().isoformat(),
        "version": APP_VERSION,
        "checks": checks,
        "user_store": store.get_stats() if store is not None else None,
    }
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if result == "unhealthy"
        else status.HTTP_200_OK
    )
    return JSONResponse(content=body, status_code=status_code)


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics for the user cache."""
    return Response(content=cache_metrics.export(), media_type=CONTENT_TYPE_LATEST)
