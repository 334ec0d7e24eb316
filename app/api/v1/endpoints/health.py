"""Health check endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.core.redis_client import check_redis_connection
from app.database import check_database_connection

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Readiness response with backing-service status."""

    database: str
    redis: str
    booking_lock_backend: str


def _component_status(healthy: bool | None) -> str:
    if healthy is None:
        return "not_configured"
    return "healthy" if healthy else "unhealthy"


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """Report that the process is up."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=DetailedHealthResponse,
    summary="Detailed health check",
    responses={503: {"model": DetailedHealthResponse}},
)
async def detailed_health_check() -> JSONResponse:
    """
    Check the database and Redis.

    - **healthy**: database reachable, Redis reachable or not configured
    - **degraded**: database reachable, configured Redis down (cache and
      redis lock unavailable; bookings still go through the transaction)
    - **unhealthy**: database down, responds 503
    """
    db_healthy = await check_database_connection()
    redis_healthy = await check_redis_connection()

    if not db_healthy:
        overall = "unhealthy"
    elif redis_healthy is False:
        overall = "degraded"
    else:
        overall = "healthy"

    body = DetailedHealthResponse(
        status=overall,
        version=settings.app_version,
        environment=settings.environment,
        database=_component_status(db_healthy),
        redis=_component_status(redis_healthy),
        booking_lock_backend=settings.booking_lock_backend,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )


@router.get("/ping", status_code=status.HTTP_200_OK, summary="Simple ping")
async def ping() -> dict[str, str]:
    """Respond with pong."""
    return {"message": "pong"}
