"""
Service dependency container.

Every component is built once from an explicit Settings object and
attached to the application; request handlers receive components via
FastAPI's Depends() and never read configuration from the environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pairpush.services.fcm_client import FCMClient
from pairpush.services.health import HealthCheckService
from pairpush.services.oauth import ServiceAccountTokenProvider
from pairpush.services.push_notifications import PushDispatcher
from pairpush.services.registrar import DeviceRegistrar
from pairpush.services.token_store import build_token_store
from pairpush.version import get_version

if TYPE_CHECKING:
    from pairpush.config import Settings
    from pairpush.services.token_store import TokenStore


@dataclass(frozen=True)
class ServiceContainer:
    """Container for all application services."""

    settings: Settings
    token_store: TokenStore
    registrar: DeviceRegistrar
    dispatcher: PushDispatcher
    health_service: HealthCheckService


def build_container(
    settings: Settings,
    token_store: TokenStore | None = None,
    token_provider: ServiceAccountTokenProvider | None = None,
    fcm_client: FCMClient | None = None,
) -> ServiceContainer:
    """Build all services from settings.

    Args:
        settings: Application settings
        token_store: Override for the configured token store
        token_provider: Override for the OAuth2 token provider
        fcm_client: Override for the FCM send client

    Raises:
        ConfigurationError: If the token store backend is not configured
    """
    store = token_store or build_token_store(settings)

    return ServiceContainer(
        settings=settings,
        token_store=store,
        registrar=DeviceRegistrar(store),
        dispatcher=PushDispatcher(
            settings=settings,
            token_store=store,
            token_provider=token_provider or ServiceAccountTokenProvider.from_settings(settings),
            fcm_client=fcm_client or FCMClient.from_settings(settings),
        ),
        health_service=HealthCheckService(settings, store, version=get_version()),
    )
