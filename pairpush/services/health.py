"""Health check service."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from pairpush.exceptions import TokenStoreError
from pairpush.models.health import HealthCheckResponse, HealthStatus, ServiceHealth

if TYPE_CHECKING:
    from pairpush.config import Settings
    from pairpush.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class HealthCheckService:
    """Service for checking system health."""

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        version: str = "unknown",
    ) -> None:
        self.settings = settings
        self.token_store = token_store
        self.version = version

    async def check_token_store_health(self) -> ServiceHealth:
        """Check that the token store answers (unhealthy otherwise)."""
        start = time.perf_counter()

        try:
            await self.token_store.check()
        except TokenStoreError as e:
            logger.warning("Token store health check failed", extra={"error": e.message})
            return ServiceHealth(
                name="token_store",
                status=HealthStatus.UNHEALTHY,
                message=f"Token store check failed: {e.message}",
                details={"backend": self.settings.token_store_backend},
            )

        elapsed = (time.perf_counter() - start) * 1000

        return ServiceHealth(
            name="token_store",
            status=HealthStatus.HEALTHY,
            message="Token store reachable",
            response_time_ms=elapsed,
            details={"backend": self.settings.token_store_backend},
        )

    async def check_firebase_health(self) -> ServiceHealth:
        """
        Check that Firebase credentials are configured.

        Missing credentials only degrade the service: registration keeps
        working, dispatch fails with a configuration error.
        """
        if not self.settings.has_service_account():
            return ServiceHealth(
                name="firebase",
                status=HealthStatus.DEGRADED,
                message="Firebase credentials not configured",
            )

        return ServiceHealth(
            name="firebase",
            status=HealthStatus.HEALTHY,
            message="Firebase credentials configured",
            details={"project_id": self.settings.firebase_project_id},
        )

    async def check_health(self) -> HealthCheckResponse:
        """
        Perform complete health check.

        Returns:
            HealthCheckResponse with overall status and component details
        """
        store_health, firebase_health = await asyncio.gather(
            self.check_token_store_health(),
            self.check_firebase_health(),
        )

        services = [store_health, firebase_health]

        if any(s.status == HealthStatus.UNHEALTHY for s in services):
            overall_status = HealthStatus.UNHEALTHY
        elif any(s.status == HealthStatus.DEGRADED for s in services):
            overall_status = HealthStatus.DEGRADED
        else:
            overall_status = HealthStatus.HEALTHY

        return HealthCheckResponse(
            status=overall_status,
            version=self.version,
            services=services,
        )
