"""Device token storage.

Two backends share one interface: the hosted backend's REST API
(Supabase/PostgREST) for deployments and a JSON file for local
development. Both keep at most one record per (user_id, token).
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from pairpush.exceptions import TokenStoreError
from pairpush.models.push import DeviceToken, DeviceTokenFile
from pairpush.utils.redaction import mask_token

if TYPE_CHECKING:
    from pairpush.config import Settings

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TokenStore(abc.ABC):
    """Interface of a device token store."""

    @abc.abstractmethod
    async def upsert(self, user_id: str, token: str, device_info: dict[str, Any]) -> None:
        """Insert or refresh the (user_id, token) record.

        Raises:
            TokenStoreError: If the write fails
        """

    @abc.abstractmethod
    async def list_tokens(self, user_id: str) -> list[str]:
        """Return every push token registered for a user.

        Raises:
            TokenStoreError: If the read fails
        """

    @abc.abstractmethod
    async def check(self) -> None:
        """Raise TokenStoreError if the store is not usable."""


class SupabaseTokenStore(TokenStore):
    """Token store backed by the hosted backend's REST interface."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        table: str = "device_tokens",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            base_url: Project URL (e.g. https://xyz.supabase.co)
            service_role_key: Service credential; bypasses row-level security
            table: Device token table name
            timeout_seconds: Timeout for each REST call
            client: Optional shared HTTP client; a short-lived one is used otherwise
        """
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.table = table
        self.timeout = timeout_seconds
        self._client = client

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(self, method: str, operation: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, self.table_url, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, self.table_url, **kwargs)
        except httpx.HTTPError as e:
            raise TokenStoreError(
                f"Token store request failed: {type(e).__name__}: {e}",
                context={"operation": operation, "table": self.table},
            ) from e

        if not response.is_success:
            raise TokenStoreError(
                f"Token store request failed with HTTP {response.status_code}: {response.text}",
                context={
                    "operation": operation,
                    "table": self.table,
                    "status_code": response.status_code,
                },
            )

        return response

    async def upsert(self, user_id: str, token: str, device_info: dict[str, Any]) -> None:
        row = {
            "user_id": user_id,
            "token": token,
            "device_info": device_info,
            "updated_at": utc_now_iso(),
        }
        await self._request(
            "POST",
            "upsert",
            params={"on_conflict": "user_id,token"},
            json=row,
            headers=self._headers("resolution=merge-duplicates,return=minimal"),
        )

    async def list_tokens(self, user_id: str) -> list[str]:
        response = await self._request(
            "GET",
            "list_tokens",
            params={"select": "token", "user_id": f"eq.{user_id}"},
            headers=self._headers(),
        )

        try:
            rows = response.json()
        except ValueError as e:
            raise TokenStoreError(
                "Token store returned invalid JSON",
                context={"operation": "list_tokens", "table": self.table},
            ) from e

        if not isinstance(rows, list):
            raise TokenStoreError(
                "Token store returned an unexpected payload",
                context={"operation": "list_tokens", "table": self.table},
            )

        return [str(row["token"]) for row in rows if isinstance(row, dict) and row.get("token")]

    async def check(self) -> None:
        await self._request(
            "GET",
            "check",
            params={"select": "token", "limit": "1"},
            headers=self._headers(),
        )


class FileTokenStore(TokenStore):
    """Token store persisted to a JSON file (local development)."""

    def __init__(self, tokens_file: Path) -> None:
        self.tokens_file = tokens_file
        self._lock = asyncio.Lock()

    def load(self) -> DeviceTokenFile:
        """
        Load records from the JSON file.

        Returns:
            DeviceTokenFile (empty if the file does not exist yet)

        Raises:
            TokenStoreError: If the file exists but cannot be read or parsed
        """
        if not self.tokens_file.exists():
            return DeviceTokenFile()

        try:
            with self.tokens_file.open("r") as f:
                return DeviceTokenFile(**json.load(f))
        except (json.JSONDecodeError, OSError, TypeError, PydanticValidationError) as e:
            raise TokenStoreError(
                f"Failed to load tokens file: {e}",
                context={"operation": "load", "path": str(self.tokens_file)},
            ) from e

    def save(self, records: DeviceTokenFile) -> None:
        """
        Save records atomically (temp file + rename, owner-only permissions).

        Raises:
            TokenStoreError: If the file cannot be written
        """
        temp_file = self.tokens_file.with_suffix(".json.tmp")

        try:
            self.tokens_file.parent.mkdir(parents=True, exist_ok=True)

            with temp_file.open("w") as f:
                json.dump(records.model_dump(), f, indent=2)
                f.flush()

            temp_file.replace(self.tokens_file)
            self.tokens_file.chmod(0o600)
        except OSError as e:
            if temp_file.exists():
                temp_file.unlink()
            raise TokenStoreError(
                f"Failed to save tokens file: {e}",
                context={"operation": "save", "path": str(self.tokens_file)},
            ) from e

        logger.debug("Tokens file saved: %s", self.tokens_file)

    async def upsert(self, user_id: str, token: str, device_info: dict[str, Any]) -> None:
        now = utc_now_iso()

        async with self._lock:
            records = self.load()

            existing = next(
                (r for r in records.devices if r.user_id == user_id and r.token == token),
                None,
            )
            if existing:
                existing.device_info = device_info
                existing.updated_at = now
            else:
                records.devices.append(
                    DeviceToken(user_id=user_id, token=token, device_info=device_info, updated_at=now)
                )

            self.save(records)

        logger.debug(
            "Token record %s: user=%s, token=%s",
            "updated" if existing else "created",
            user_id,
            mask_token(token),
        )

    async def list_tokens(self, user_id: str) -> list[str]:
        async with self._lock:
            records = self.load()
        return [r.token for r in records.devices if r.user_id == user_id]

    async def check(self) -> None:
        async with self._lock:
            self.load()

        directory = self.tokens_file.parent
        if directory.exists() and not directory.is_dir():
            raise TokenStoreError(
                "Token store path is not inside a directory",
                context={"operation": "check", "path": str(self.tokens_file)},
            )


def build_token_store(settings: Settings, client: httpx.AsyncClient | None = None) -> TokenStore:
    """
    Create the token store selected by configuration.

    Raises:
        ConfigurationError: If the selected backend is missing its settings
    """
    settings.require_token_store()

    if settings.token_store_backend == "file":
        return FileTokenStore(Path(settings.token_store_file))

    return SupabaseTokenStore(
        base_url=settings.supabase_url,  # type: ignore[arg-type]
        service_role_key=settings.supabase_service_role_key,  # type: ignore[arg-type]
        table=settings.device_tokens_table,
        timeout_seconds=settings.store_timeout_seconds,
        client=client,
    )
