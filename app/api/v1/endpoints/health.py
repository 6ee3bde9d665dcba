"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Health of each backend plus the configured scheduling backends."""

    database: str
    redis: str
    scope_locks: str
    notifications: str


def redis_required() -> bool:
    """Whether the availability cache or distributed scope locks use Redis."""
    return settings.availability_cache_enabled or settings.scope_lock_backend == "redis"


def _state(healthy: bool) -> str:
    return "healthy" if healthy else "unhealthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    """Report that the process is up, without touching any backend."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Readiness check",
)
async def detailed_health_check() -> DetailedHealthResponse:
    """
    Check the database and, when used, Redis.

    Redis is reported as ``disabled`` when neither the availability cache
    nor distributed locks need it. Any unhealthy backend makes the overall
    status ``degraded``.
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection() if redis_required() else None

    return DetailedHealthResponse(
        status="healthy" if db_healthy and redis_healthy is not False else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        database=_state(db_healthy),
        redis="disabled" if redis_healthy is None else _state(redis_healthy),
        scope_locks=settings.scope_lock_backend,
        notifications=settings.notification_backend,
    )


@router.get("/ping", status_code=status.HTTP_200_OK, tags=["Health"], summary="Simple ping")
async def ping() -> dict[str, str]:
    """Simple ping endpoint."""
    return {"message": "pong"}
