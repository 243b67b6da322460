"""Tests for the JWT-bearer access token exchange."""

import httpx
import jwt
import pytest

from pairpush.config import ServiceAccount
from pairpush.exceptions import ConfigurationError, UpstreamAuthError
from pairpush.services.oauth import (
    JWT_BEARER_GRANT,
    ServiceAccountTokenProvider,
    build_assertion,
)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


@pytest.fixture
def account(rsa_private_key_pem) -> ServiceAccount:
    return ServiceAccount(
        project_id="demo-project",
        client_email="push@demo-project.iam.gserviceaccount.com",
        private_key=rsa_private_key_pem,
    )


@pytest.fixture
def provider(google_client) -> ServiceAccountTokenProvider:
    return ServiceAccountTokenProvider(token_uri=TOKEN_URI, scope=SCOPE, client=google_client)


class TestBuildAssertion:
    """Tests for the signed assertion."""

    def test_claims(self, rsa_key):
        assertion = build_assertion(
            "push@demo-project.iam.gserviceaccount.com",
            rsa_key,
            scope=SCOPE,
            audience=TOKEN_URI,
            now=1_700_000_000,
        )

        claims = jwt.decode(
            assertion,
            rsa_key.public_key(),
            algorithms=["RS256"],
            audience=TOKEN_URI,
            options={"verify_exp": False, "verify_iat": False},
        )

        assert claims == {
            "iss": "push@demo-project.iam.gserviceaccount.com",
            "scope": SCOPE,
            "aud": TOKEN_URI,
            "iat": 1_700_000_000,
            "exp": 1_700_003_600,
        }

    def test_header(self, rsa_key):
        header = jwt.get_unverified_header(build_assertion("a@b.c", rsa_key))
        assert header["alg"] == "RS256"
        assert header["typ"] == "JWT"

    def test_custom_lifetime(self, rsa_key):
        assertion = build_assertion("a@b.c", rsa_key, lifetime_seconds=600, now=100)
        claims = jwt.decode(assertion, options={"verify_signature": False})
        assert claims["exp"] - claims["iat"] == 600


class TestFetchAccessToken:
    """Tests for ServiceAccountTokenProvider.fetch_access_token."""

    async def test_success(self, provider, account, fake_google, rsa_key):
        token = await provider.fetch_access_token(account)

        assert token == "ya29.test-access-token"
        assert len(fake_google.token_requests) == 1

        form = fake_google.token_requests[0]
        assert form["grant_type"] == [JWT_BEARER_GRANT]

        claims = jwt.decode(
            form["assertion"][0],
            rsa_key.public_key(),
            algorithms=["RS256"],
            audience=TOKEN_URI,
        )
        assert claims["iss"] == account.client_email
        assert claims["scope"] == SCOPE

    async def test_accepts_escaped_key(self, provider, account, rsa_private_key_pem):
        escaped = ServiceAccount(
            project_id=account.project_id,
            client_email=account.client_email,
            private_key=rsa_private_key_pem.strip().replace("\n", "\\n"),
        )
        assert await provider.fetch_access_token(escaped) == "ya29.test-access-token"

    async def test_rejected_exchange_includes_body(self, provider, account, fake_google):
        fake_google.token_status = 401
        fake_google.token_body = '{"error": "invalid_grant", "error_description": "Invalid JWT Signature."}'

        with pytest.raises(UpstreamAuthError) as exc_info:
            await provider.fetch_access_token(account)

        error = exc_info.value
        assert error.status_code == 401
        assert error.message.startswith("Failed to get access token: ")
        assert "invalid_grant" in error.message
        assert "invalid_grant" in error.response_body

    async def test_missing_access_token(self, provider, account, fake_google):
        fake_google.token_body = {"token_type": "Bearer"}

        with pytest.raises(UpstreamAuthError) as exc_info:
            await provider.fetch_access_token(account)

        assert exc_info.value.message == "No access token returned from Google"

    async def test_non_json_success_body(self, provider, account, fake_google):
        fake_google.token_body = "<html>ok</html>"

        with pytest.raises(UpstreamAuthError, match="No access token returned from Google"):
            await provider.fetch_access_token(account)

    async def test_transport_error(self, account):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = ServiceAccountTokenProvider(
            token_uri=TOKEN_URI,
            client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        )

        with pytest.raises(UpstreamAuthError, match="ConnectError"):
            await provider.fetch_access_token(account)

    async def test_invalid_key_fails_before_any_request(self, provider, account, fake_google):
        broken = ServiceAccount(
            project_id=account.project_id,
            client_email=account.client_email,
            private_key="definitely-not-a-key",
        )

        with pytest.raises(ConfigurationError):
            await provider.fetch_access_token(broken)

        assert fake_google.token_requests == []

    def test_from_settings(self, settings):
        provider = ServiceAccountTokenProvider.from_settings(settings)
        assert provider.token_uri == settings.oauth_token_uri
        assert provider.scope == settings.fcm_scope
        assert provider.timeout == 10.0
