"""Python client for the registrar and dispatcher endpoints.

``notify`` and ``notify_in_background`` are meant for the content
composer: sharing a photo or note must never wait on, or fail because
of, push delivery.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from pairpush.models.push import NotificationType
from pairpush.services.background_tasks import BackgroundTaskTracker
from pairpush.services.push_notifications import DEFAULT_SENDER_NAME, iso_timestamp

logger = logging.getLogger(__name__)


class PushClient:
    """Client for a running pairpush deployment."""

    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
        tracker: BackgroundTaskTracker | None = None,
    ) -> None:
        """
        Args:
            base_url: Root URL of the service (e.g. https://push.example.com)
            auth_token: Bearer token, if the deployment requires one
            timeout_seconds: Timeout for each request
            client: Optional shared HTTP client; a short-lived one is used otherwise
            tracker: Tracker for fire-and-forget notifications
        """
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout_seconds
        self._client = client
        self.tracker = tracker or BackgroundTaskTracker()

    def _headers(self) -> dict[str, str]:
        if not self.auth_token:
            return {}
        return {"Authorization": f"Bearer {self.auth_token}"}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())

        response.raise_for_status()
        return response.json()

    async def register_device(
        self,
        user_id: str,
        token: str,
        device_info: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Register this installation's push token.

        Raises:
            httpx.HTTPError: If the request fails or is rejected
        """
        return await self._post(
            "/register-device",
            {"userId": user_id, "token": token, "deviceInfo": device_info or {}},
        )

    async def send_push(
        self,
        recipient_id: str,
        kind: NotificationType,
        content: str | None = None,
        image_url: str | None = None,
        from_name: str | None = None,
        timestamp: str | None = None,
    ) -> dict[str, Any]:
        """
        Ask the dispatcher to notify every device of ``recipient_id``.

        Raises:
            httpx.HTTPError: If the request fails or is rejected
        """
        return await self._post(
            "/send-push",
            {
                "recipientId": recipient_id,
                "type": kind,
                "content": content or "",
                "imageUrl": image_url or "",
                "fromName": from_name or DEFAULT_SENDER_NAME,
                "timestamp": timestamp or iso_timestamp(),
            },
        )

    async def notify(
        self,
        recipient_id: str,
        kind: NotificationType,
        content: str | None = None,
        image_url: str | None = None,
        from_name: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Best-effort dispatch: logs failures and returns None instead of raising.
        """
        try:
            result = await self.send_push(
                recipient_id,
                kind,
                content=content,
                image_url=image_url,
                from_name=from_name,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "Failed to send push notification",
                extra={"recipient_id": recipient_id, "error": str(e), "error_type": type(e).__name__},
            )
            return None

        logger.info("Push notification sent", extra={"recipient_id": recipient_id, "result": result})
        return result

    def notify_in_background(
        self,
        recipient_id: str,
        kind: NotificationType,
        content: str | None = None,
        image_url: str | None = None,
        from_name: str | None = None,
    ) -> asyncio.Task[None]:
        """
        Schedule a dispatch and return immediately.

        Must be called from a running event loop. Failures are recorded
        on ``self.tracker`` and logged.
        """
        return self.tracker.spawn(
            f"send-push:{recipient_id}",
            lambda: self.send_push(
                recipient_id,
                kind,
                content=content,
                image_url=image_url,
                from_name=from_name,
            ),
        )

    async def aclose(self) -> None:
        """Wait for background notifications still in flight."""
        await self.tracker.drain()
