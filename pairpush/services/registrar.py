"""Device registrar: the only writer of device token records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pairpush.exceptions import ValidationError
from pairpush.utils.redaction import mask_token

if TYPE_CHECKING:
    from pairpush.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class DeviceRegistrar:
    """Registers (user, push token, device metadata) tuples."""

    def __init__(self, token_store: TokenStore) -> None:
        self.token_store = token_store

    async def register(
        self,
        user_id: str | None,
        token: str | None,
        device_info: dict[str, Any] | None = None,
    ) -> None:
        """
        Upsert a device token for a user.

        Re-registering the same (user_id, token) overwrites the metadata
        and refreshes the timestamp; it never creates a second record.

        Args:
            user_id: Owning user identifier
            token: Provider-issued push token
            device_info: Free-form metadata, stored as given (empty if omitted)

        Raises:
            ValidationError: If user_id or token is missing
            TokenStoreError: If the store write fails
        """
        if not user_id or not token:
            raise ValidationError(
                "userId and token are required",
                context={"has_user_id": bool(user_id), "has_token": bool(token)},
            )

        logger.info(
            "Registering device token",
            extra={"user_id": user_id, "token": mask_token(token)},
        )

        await self.token_store.upsert(user_id, token, device_info or {})

        logger.info(
            "Registered device token",
            extra={"user_id": user_id, "token": mask_token(token)},
        )
