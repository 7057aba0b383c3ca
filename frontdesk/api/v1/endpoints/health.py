"""Health check endpoints."""

from fastapi import APIRouter, status
from pydantic import BaseModel

from frontdesk.config import settings
from frontdesk.core.http_client import get_http_client
from frontdesk.core.redis_client import check_redis_connection
from frontdesk.dependencies import Registry
from frontdesk.services.appointment_client import AppointmentServiceClient

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response model."""

    status: str
    version: str
    environment: str
    appointment_service: str
    redis: str
    active_sessions: int


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Basic health check",
)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns:
        Basic health status
    """
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
    summary="Detailed health check",
)
async def detailed_health_check(registry: Registry) -> DetailedHealthResponse:
    """
    Detailed health check with appointment service and Redis status.

    Redis is reported as "disabled" when preference caching is off.

    Returns:
        Detailed health status including dependencies
    """
    service_healthy = await AppointmentServiceClient(get_http_client()).check_connection()

    if settings.redis_enabled:
        redis_healthy = await check_redis_connection()
        redis_state = "healthy" if redis_healthy else "unhealthy"
    else:
        redis_healthy = True
        redis_state = "disabled"

    return DetailedHealthResponse(
        status="healthy" if service_healthy and redis_healthy else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        appointment_service="healthy" if service_healthy else "unhealthy",
        redis=redis_state,
        active_sessions=len(registry),
    )


@router.get(
    "/ping",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Simple ping",
)
async def ping() -> dict[str, str]:
    """
    Simple ping endpoint.

    Returns:
        Pong response
    """
    return {"message": "pong"}
