"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from pairpush.dependencies import get_health_service
from pairpush.models.health import HealthCheckResponse
from pairpush.services.health import HealthCheckService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """
    Simple health check for liveness probe.

    Returns 200 if the process is serving requests. No authentication required.
    """
    return {"status": "ok"}


@router.get("/health/ready", response_model=HealthCheckResponse)
async def health_ready(
    response: Response,
    health_service: HealthCheckService = Depends(get_health_service),
) -> HealthCheckResponse:
    """
    Readiness check with component verification.

    Returns:
        - 200 if the system is healthy or degraded
        - 503 if the token store is unusable
    """
    health_check = await health_service.check_health()

    if not health_check.is_ready():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return health_check
