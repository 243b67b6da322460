from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from pairpush.config import Settings
    from pairpush.services.container import ServiceContainer
    from pairpush.services.health import HealthCheckService
    from pairpush.services.push_notifications import PushDispatcher
    from pairpush.services.registrar import DeviceRegistrar

security = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    """Get the service container attached by create_app()."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        msg = "Service container not initialized - build the app with create_app()"
        raise RuntimeError(msg)
    return container


def get_settings(request: Request) -> Settings:
    return get_container(request).settings


async def verify_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """
    Verify the bearer token when a shared auth token is configured.

    Without a configured token the endpoints are open.
    """
    expected = get_settings(request).auth_token
    if not expected:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
        )


async def get_registrar(request: Request) -> DeviceRegistrar:
    """Get device registrar via dependency injection."""
    return get_container(request).registrar


async def get_dispatcher(request: Request) -> PushDispatcher:
    """Get push dispatcher via dependency injection."""
    return get_container(request).dispatcher


async def get_health_service(request: Request) -> HealthCheckService:
    """Get health check service via dependency injection."""
    return get_container(request).health_service
