"""Health Check Endpoint"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response
from typing import Dict, Any

from app.core.monitoring import get_metrics

router = APIRouter(tags=["health"])


async def check_database() -> bool:
    """Check database connection health"""
    from app.core.database import check_database_connection
    return await check_database_connection()


async def check_redis() -> Any:
    """Check Redis connection health; None when no cache is configured"""
    from app.core.database import check_redis_connection
    return await check_redis_connection()


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> JSONResponse:
    """
    Health check endpoint that verifies the engine's dependencies.

    Redis is optional: when it is not configured it is reported as such and
    does not affect overall health.

    Returns:
        200 OK if all configured services are healthy
        503 Service Unavailable otherwise
    """
    database_ok = await check_database()
    redis_ok = await check_redis()

    checks: Dict[str, Any] = {
        "database": database_ok,
        "redis": "not_configured" if redis_ok is None else redis_ok,
    }
    all_healthy = database_ok and redis_ok is not False

    services = getattr(request.app.state, "execution_services", None)
    response_data: Dict[str, Any] = {
        "status": "healthy" if all_healthy else "unhealthy",
        "services": checks,
        "active_sandboxes": services.sandbox_executor.active_count if services else 0,
    }

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response_data
    )


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format for scraping by Prometheus server.
    """
    metrics_data, content_type = get_metrics()
    return Response(content=metrics_data, media_type=content_type)
