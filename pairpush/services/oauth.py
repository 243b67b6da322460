"""OAuth2 JWT-bearer exchange for push provider access tokens."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
import jwt

from pairpush.exceptions import UpstreamAuthError
from pairpush.services.private_key import load_private_key, normalize_private_key
from pairpush.utils.redaction import redact_sensitive_data

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

    from pairpush.config import ServiceAccount, Settings

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


def build_assertion(
    client_email: str,
    private_key: RSAPrivateKey,
    *,
    scope: str = DEFAULT_SCOPE,
    audience: str = DEFAULT_TOKEN_URI,
    lifetime_seconds: int = 3600,
    now: int | None = None,
) -> str:
    """
    Sign the RS256 assertion presented to the token endpoint.

    Args:
        client_email: Service account email (issuer)
        private_key: Imported RSA key
        scope: OAuth scope requested for the access token
        audience: Token endpoint URI
        lifetime_seconds: Assertion validity window
        now: Issue time in epoch seconds (defaults to the current time)

    Returns:
        Compact JWS string
    """
    issued_at = int(time.time()) if now is None else now
    claims = {
        "iss": client_email,
        "scope": scope,
        "aud": audience,
        "iat": issued_at,
        "exp": issued_at + lifetime_seconds,
    }
    return jwt.encode(claims, private_key, algorithm="RS256", headers={"typ": "JWT"})


class ServiceAccountTokenProvider:
    """Mints a short-lived bearer token for the messaging API.

    A new token is minted for every dispatch; nothing is cached between
    calls.
    """

    def __init__(
        self,
        token_uri: str = DEFAULT_TOKEN_URI,
        scope: str = DEFAULT_SCOPE,
        lifetime_seconds: int = 3600,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            token_uri: OAuth2 token endpoint (also the assertion audience)
            scope: Scope requested for the access token
            lifetime_seconds: Assertion validity window
            timeout_seconds: Timeout for the exchange request
            client: Optional shared HTTP client; a short-lived one is used otherwise
        """
        self.token_uri = token_uri
        self.scope = scope
        self.lifetime_seconds = lifetime_seconds
        self.timeout = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> ServiceAccountTokenProvider:
        return cls(
            token_uri=settings.oauth_token_uri,
            scope=settings.fcm_scope,
            lifetime_seconds=settings.assertion_lifetime_seconds,
            timeout_seconds=settings.token_exchange_timeout_seconds,
            client=client,
        )

    async def fetch_access_token(self, account: ServiceAccount) -> str:
        """
        Exchange a signed assertion for an access token.

        Args:
            account: Service account credentials

        Returns:
            Bearer access token

        Raises:
            ConfigurationError: If the private key cannot be imported
            UpstreamAuthError: If the exchange fails or returns no access token
        """
        private_key_pem = normalize_private_key(account.private_key)
        logger.debug("Using Firebase key", extra={"key_chars": len(private_key_pem)})

        assertion = build_assertion(
            account.client_email,
            load_private_key(private_key_pem),
            scope=self.scope,
            audience=self.token_uri,
            lifetime_seconds=self.lifetime_seconds,
        )

        response = await self._post_assertion(assertion)

        if not response.is_success:
            error_text = response.text
            logger.error(
                "Token exchange failed",
                extra={
                    "status_code": response.status_code,
                    "response_body": redact_sensitive_data(error_text),
                },
            )
            raise UpstreamAuthError(
                f"Failed to get access token: {error_text}",
                status_code=response.status_code,
                response_body=error_text,
                context={"operation": "token_exchange", "token_uri": self.token_uri},
            )

        try:
            payload: Any = response.json()
        except ValueError:
            payload = None

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise UpstreamAuthError(
                "No access token returned from Google",
                status_code=response.status_code,
                response_body=response.text,
                context={"operation": "token_exchange", "token_uri": self.token_uri},
            )

        logger.debug(
            "Access token minted",
            extra={"expires_in": payload.get("expires_in"), "client_email": account.client_email},
        )
        return str(access_token)

    async def _post_assertion(self, assertion: str) -> httpx.Response:
        form = {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}

        try:
            if self._client is not None:
                return await self._client.post(self.token_uri, data=form, timeout=self.timeout)

            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.post(self.token_uri, data=form)
        except httpx.HTTPError as e:
            raise UpstreamAuthError(
                f"Failed to get access token: {type(e).__name__}: {e}",
                context={"operation": "token_exchange", "token_uri": self.token_uri},
            ) from e
