"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.api.v1.endpoints.health import redis_required
from app.api.v1.router import api_router
from app.config import settings
from app.core.firebase import initialize_firebase
from app.core.redis_client import check_redis_connection, close_redis_connection
from app.database import check_database_connection, engine
from app.middleware.error_handler import register_exception_handlers
from app.middleware.logging import LoggingMiddleware, configure_logging

configure_logging()
logger = structlog.get_logger()


async def check_backends() -> None:
    """Log whether the database and, when used, Redis are reachable."""
    if await check_database_connection():
        logger.info("database_connected")
    else:
        logger.error("database_connection_failed")

    if not redis_required():
        logger.info("redis_not_required")
    elif await check_redis_connection():
        logger.info("redis_connected")
    else:
        logger.error("redis_connection_failed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize outbound integrations on startup and release pools on shutdown."""
    logger.info(
        "application_startup",
        environment=settings.environment,
        scope_lock_backend=settings.scope_lock_backend,
        notification_backend=settings.notification_backend,
        clinic_timezone=settings.clinic_timezone,
    )

    if settings.notification_backend == "firebase":
        try:
            initialize_firebase(
                settings.firebase_credentials_path or None,
                settings.firebase_config_json or None,
            )
        except Exception as e:
            # Sends will fail and be logged; scheduling keeps working
            logger.warning("firebase_initialization_failed", error=str(e))

    await check_backends()

    yield

    logger.info("application_shutdown")
    await engine.dispose()
    await close_redis_connection()
    logger.info("connections_closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Appointment scheduling and consultation queue service",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.api_v1_prefix)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service banner with a pointer to the API docs."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
