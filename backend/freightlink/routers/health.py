"""Health check endpoints for load balancers and monitoring."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

import redis.asyncio as redis

from freightlink.config import settings
from freightlink.database import engine
from freightlink.utils.clock import utcnow

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB/Redis check)."""
    return {
        "status": "ok",
        "service": "FreightLink",
        "timestamp": utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check():
    """Readiness check including the database and, for the redis publisher, Redis.

    Returns 200 only if all dependencies are healthy, 503 otherwise.
    """
    checks = {"service": "ok", "database": "unknown"}
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    if settings.publisher_backend == "redis":
        client = redis.from_url(settings.redis_url, decode_responses=True)
        try:
            await client.ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {str(e)[:100]}"
            overall_healthy = False
        finally:
            await client.aclose()

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "FreightLink",
            "checks": checks,
            "timestamp": utcnow().isoformat(),
        },
    )
