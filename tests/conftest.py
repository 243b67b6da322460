import json
from collections.abc import Iterator
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from pairpush.config import Settings
from pairpush.main import create_app
from pairpush.services.container import build_container
from pairpush.services.fcm_client import FCMClient
from pairpush.services.oauth import ServiceAccountTokenProvider

PROJECT_ID = "demo-project"
CLIENT_EMAIL = "push@demo-project.iam.gserviceaccount.com"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Settings read these from the environment; tests must not inherit them
_SETTINGS_ENV_VARS = [
    "CONFIG_PATH",
    "ENVIRONMENT",
    "HOST",
    "PORT",
    "AUTH_TOKEN",
    "COMPONENTS",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_CLIENT_EMAIL",
    "FIREBASE_PRIVATE_KEY",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "TOKEN_STORE_BACKEND",
    "TOKEN_STORE_FILE",
    "DEVICE_TOKENS_TABLE",
    "LOG_LEVEL",
    "LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    """One 2048-bit key per session; generation is slow."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_key_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def settings(tmp_path, rsa_private_key_pem) -> Settings:
    return Settings(
        token_store_backend="file",
        token_store_file=tmp_path / "device_tokens.json",
        firebase_project_id=PROJECT_ID,
        firebase_client_email=CLIENT_EMAIL,
        firebase_private_key=rsa_private_key_pem,
        log_json=False,
    )


class FakeGoogle:
    """MockTransport handler standing in for the token and FCM endpoints."""

    def __init__(self) -> None:
        self.token_requests: list[dict[str, list[str]]] = []
        self.sends: list[dict] = []
        self.send_headers: list[httpx.Headers] = []
        self.token_status = 200
        self.token_body: dict | str = {"access_token": "ya29.test-access-token", "expires_in": 3599}
        self.failing_tokens: dict[str, tuple[int, dict]] = {}

    def fail_token(self, device_token: str, status_code: int = 404, error_code: str = "UNREGISTERED") -> None:
        self.failing_tokens[device_token] = (
            status_code,
            {
                "error": {
                    "code": status_code,
                    "message": "Requested entity was not found.",
                    "status": "NOT_FOUND",
                    "details": [
                        {
                            "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                            "errorCode": error_code,
                        }
                    ],
                }
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            self.token_requests.append(parse_qs(request.content.decode()))
            if isinstance(self.token_body, str):
                return httpx.Response(self.token_status, text=self.token_body)
            return httpx.Response(self.token_status, json=self.token_body)

        if request.url.path.endswith("/messages:send"):
            body = json.loads(request.content)
            self.sends.append(body)
            self.send_headers.append(request.headers)
            device_token = body["message"]["token"]
            if device_token in self.failing_tokens:
                status_code, error_body = self.failing_tokens[device_token]
                return httpx.Response(status_code, json=error_body)
            return httpx.Response(200, json={"name": f"projects/{PROJECT_ID}/messages/{len(self.sends)}"})

        return httpx.Response(404, text="not found")


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def google_client(fake_google) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_google))


@pytest.fixture
def build_test_client(settings, google_client):
    """Factory for a TestClient whose outbound Google calls hit FakeGoogle."""

    def _build(app_settings: Settings | None = None, **overrides) -> TestClient:
        app_settings = app_settings or settings
        container = build_container(
            app_settings,
            token_store=overrides.get("token_store"),
            token_provider=ServiceAccountTokenProvider.from_settings(app_settings, client=google_client),
            fcm_client=FCMClient.from_settings(app_settings, client=google_client),
        )
        return TestClient(create_app(app_settings, container=container, configure_logging=False))

    return _build


@pytest.fixture
def client(build_test_client) -> Iterator[TestClient]:
    with build_test_client() as test_client:
        yield test_client


@pytest.fixture
def env_override(monkeypatch):
    """Set environment variables for the duration of a test."""

    def _set(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)

    return _set


@pytest.fixture
def config_file(tmp_path):
    """Write a YAML config file and return its path."""

    def _write(content: str):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        return path

    return _write
