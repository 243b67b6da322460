"""Client for the Firebase Cloud Messaging HTTP v1 send endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from pairpush.exceptions import DeliveryError
from pairpush.utils.redaction import mask_token

if TYPE_CHECKING:
    from pairpush.config import Settings

logger = logging.getLogger(__name__)

FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"


def parse_fcm_error_code(body: Any) -> str | None:
    """
    Extract the provider error code from an FCM error body.

    Prefers the FcmError detail (e.g. UNREGISTERED) over the generic
    RPC status (e.g. NOT_FOUND).
    """
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if not isinstance(error, dict):
        return None

    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("@type") == FCM_ERROR_TYPE and detail.get("errorCode"):
            return str(detail["errorCode"])

    status = error.get("status")
    return str(status) if status else None


class FCMClient:
    """Sends one data message to one device token."""

    def __init__(
        self,
        base_url: str = "https://fcm.googleapis.com",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize FCM client.

        Args:
            base_url: Messaging API root
            timeout_seconds: Timeout for each send request
            client: Optional shared HTTP client; a short-lived one is used otherwise
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> FCMClient:
        return cls(
            base_url=settings.fcm_base_url,
            timeout_seconds=settings.delivery_timeout_seconds,
            client=client,
        )

    def send_url(self, project_id: str) -> str:
        return f"{self.base_url}/v1/projects/{project_id}/messages:send"

    async def send(
        self,
        *,
        project_id: str,
        access_token: str,
        device_token: str,
        data: dict[str, str],
    ) -> dict[str, Any]:
        """
        Deliver a high-priority data message to a single device.

        Args:
            project_id: Firebase project the token belongs to
            access_token: Bearer token from the JWT-bearer exchange
            device_token: Provider-issued device token
            data: Flat string-keyed payload

        Returns:
            Provider response JSON (contains the message name)

        Raises:
            DeliveryError: If the request fails or the provider rejects it
        """
        message = {
            "message": {
                "token": device_token,
                "data": data,
                "android": {"priority": "high"},
            }
        }
        headers = {"Authorization": f"Bearer {access_token}"}
        url = self.send_url(project_id)

        try:
            if self._client is not None:
                response = await self._client.post(url, json=message, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                context={"token": mask_token(device_token)},
            ) from e

        if not response.is_success:
            error_text = response.text
            try:
                error_code = parse_fcm_error_code(response.json())
            except ValueError:
                error_code = None
            raise DeliveryError(
                error_text or f"HTTP {response.status_code}",
                status_code=response.status_code,
                response_body=error_text,
                error_code=error_code,
                context={"token": mask_token(device_token)},
            )

        logger.debug(
            "Push delivered",
            extra={"token": mask_token(device_token), "status_code": response.status_code},
        )

        try:
            result = response.json()
        except ValueError:
            result = {}
        return result if isinstance(result, dict) else {"response": result}
