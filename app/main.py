"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import AppException
from app.core.redis_client import check_redis_connection, close_redis_connection
from app.database import check_database_connection, engine
from app.dependencies import get_booking_lock
from app.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.middleware.logging import CORRELATION_HEADER, LoggingMiddleware, configure_logging

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Check backing services on startup and release connections on shutdown.

    A missing database is logged rather than fatal so /health/detailed can
    report it; booking requests fail as transient until it is reachable.
    """
    lock = get_booking_lock()
    logger.info(
        "application_startup",
        environment=settings.environment,
        clinic_open_hour=settings.clinic_open_hour,
        clinic_close_hour=settings.clinic_close_hour,
        booking_max_attempts=settings.booking_max_attempts,
        booking_lock=type(lock).__name__,
    )
    if settings.booking_lock_backend == "local":
        logger.warning("local_booking_lock_single_process_only")

    if await check_database_connection():
        logger.info("database_connected")
    else:
        logger.error("database_connection_failed", database=engine.url.render_as_string())

    redis_healthy = await check_redis_connection()
    if redis_healthy is False:
        logger.error("redis_connection_failed")
    elif redis_healthy:
        logger.info("redis_connected")

    yield

    logger.info("application_shutdown")
    await engine.dispose()
    await close_redis_connection()
    logger.info("connections_closed")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Clinic appointment booking with double-booking prevention",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER, "Retry-After"],
    )
    application.add_middleware(LoggingMiddleware)

    exception_handlers = {
        AppException: app_exception_handler,
        StarletteHTTPException: http_exception_handler,
        RequestValidationError: validation_exception_handler,
        Exception: general_exception_handler,
    }
    for exc_class, handler in exception_handlers.items():
        application.add_exception_handler(exc_class, handler)  # type: ignore[arg-type]

    application.include_router(api_router, prefix=settings.api_v1_prefix)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    ).instrument(application).expose(application, endpoint="/metrics", include_in_schema=False)

    @application.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Service banner with a pointer to the API docs."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "api": settings.api_v1_prefix,
            "docs": "/docs",
        }

    return application


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
