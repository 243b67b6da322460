"""Push dispatch: token lookup, credential exchange and per-device fan-out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pairpush.exceptions import DeliveryError, ValidationError
from pairpush.utils.redaction import mask_token

if TYPE_CHECKING:
    from pairpush.config import Settings
    from pairpush.models.push import PushRequest
    from pairpush.services.fcm_client import FCMClient
    from pairpush.services.oauth import ServiceAccountTokenProvider
    from pairpush.services.token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Someone"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of delivering to one device token."""

    token: str
    succeeded: bool
    result: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    status_code: int | None = None


@dataclass(frozen=True)
class DispatchSummary:
    """Summary of a dispatch to all of a recipient's devices."""

    sent_to: int
    succeeded: int
    failed: int
    outcomes: list[DeliveryOutcome] = field(default_factory=list)


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_push_request(request: PushRequest) -> None:
    """
    Raises:
        ValidationError: If recipientId or type is missing
    """
    if not request.recipient_id or not request.type:
        raise ValidationError(
            "recipientId and type required",
            context={
                "has_recipient_id": bool(request.recipient_id),
                "has_type": bool(request.type),
            },
        )


def build_push_data(request: PushRequest, now: datetime | None = None) -> dict[str, str]:
    """
    Build the flat string data payload delivered to every device.

    Absent fields become empty strings, except the sender name which
    defaults to "Someone" and the timestamp which defaults to now.
    """
    return {
        "type": str(request.type or ""),
        "content": request.content or "",
        "imageUrl": request.image_url or "",
        "fromName": request.from_name or DEFAULT_SENDER_NAME,
        "timestamp": request.timestamp or iso_timestamp(now),
    }


class PushDispatcher:
    """Delivers one logical notification to every device of a recipient."""

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        token_provider: ServiceAccountTokenProvider,
        fcm_client: FCMClient,
    ) -> None:
        self.settings = settings
        self.token_store = token_store
        self.token_provider = token_provider
        self.fcm_client = fcm_client

    async def dispatch(self, request: PushRequest) -> DispatchSummary:
        """
        Validate, look up the recipient's tokens and fan out.

        Args:
            request: Inbound push request

        Returns:
            Summary with targeted, succeeded and failed counts. Zero
            tokens is a successful dispatch to nobody.

        Raises:
            ValidationError: If recipientId or type is missing
            TokenStoreError: If the token lookup fails
            ConfigurationError: If Firebase credentials are missing or invalid
            UpstreamAuthError: If the access token exchange fails
        """
        validate_push_request(request)
        recipient_id: str = request.recipient_id  # type: ignore[assignment]

        tokens = await self.token_store.list_tokens(recipient_id)

        if not tokens:
            logger.info("No device tokens for user", extra={"recipient_id": recipient_id})
            return DispatchSummary(sent_to=0, succeeded=0, failed=0)

        logger.info(
            "Found %d token(s) for recipient",
            len(tokens),
            extra={"recipient_id": recipient_id, "type": request.type},
        )

        outcomes = await self.fan_out(tokens, build_push_data(request))

        succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
        failed = len(outcomes) - succeeded

        if failed:
            logger.error(
                "FCM send errors",
                extra={
                    "recipient_id": recipient_id,
                    "failed": failed,
                    "errors": [
                        f"{mask_token(o.token)}: {o.error_code or o.status_code or 'error'}: {o.error}"
                        for o in outcomes
                        if not o.succeeded
                    ],
                },
            )

        logger.info(
            "Push notification send completed",
            extra={
                "recipient_id": recipient_id,
                "sent_to": len(tokens),
                "succeeded": succeeded,
                "failed": failed,
            },
        )

        return DispatchSummary(
            sent_to=len(tokens),
            succeeded=succeeded,
            failed=failed,
            outcomes=outcomes,
        )

    async def fan_out(self, tokens: list[str], data: dict[str, str]) -> list[DeliveryOutcome]:
        """
        Send the payload to every token concurrently.

        One access token is minted and shared by all sends. Each send's
        failure is captured in its own outcome and never cancels the
        others.

        Args:
            tokens: Device tokens (may be empty)
            data: Flat string payload

        Returns:
            Outcomes in the same order as ``tokens``
        """
        if not tokens:
            return []

        account = self.settings.service_account()
        access_token = await self.token_provider.fetch_access_token(account)

        logger.info("Sending push to %d device(s)", len(tokens))

        results = await asyncio.gather(
            *(
                self.fcm_client.send(
                    project_id=account.project_id,
                    access_token=access_token,
                    device_token=token,
                    data=data,
                )
                for token in tokens
            ),
            return_exceptions=True,
        )

        return [self._to_outcome(token, result) for token, result in zip(tokens, results)]

    @staticmethod
    def _to_outcome(token: str, result: dict[str, Any] | BaseException) -> DeliveryOutcome:
        if not isinstance(result, BaseException):
            return DeliveryOutcome(token=token, succeeded=True, result=result)

        if isinstance(result, DeliveryError):
            logger.warning(
                "Failed to send to device",
                extra={
                    "token": mask_token(token),
                    "status_code": result.status_code,
                    "error_code": result.error_code,
                },
            )
            return DeliveryOutcome(
                token=token,
                succeeded=False,
                error=result.message,
                error_code=result.error_code,
                status_code=result.status_code,
            )

        logger.error(
            "Unexpected error sending to device",
            exc_info=result,
            extra={"token": mask_token(token), "error_type": type(result).__name__},
        )
        return DeliveryOutcome(
            token=token,
            succeeded=False,
            error=str(result) or type(result).__name__,
        )
