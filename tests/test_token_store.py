"""Tests for the device token stores."""

import asyncio
import json
import stat

import httpx
import pytest

from pairpush.config import Settings
from pairpush.exceptions import ConfigurationError, TokenStoreError
from pairpush.services.token_store import (
    FileTokenStore,
    SupabaseTokenStore,
    build_token_store,
)

SUPABASE_URL = "https://xyz.supabase.co"
SERVICE_KEY = "service-role-key"


class RecordingBackend:
    """MockTransport handler standing in for the PostgREST table endpoint."""

    def __init__(self, rows: list[dict] | None = None, status_code: int = 200) -> None:
        self.requests: list[httpx.Request] = []
        self.rows = rows or []
        self.status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"message": "permission denied for table device_tokens"})
        if request.method == "POST":
            return httpx.Response(201)
        return httpx.Response(200, json=self.rows)


def make_store(backend: RecordingBackend) -> SupabaseTokenStore:
    return SupabaseTokenStore(
        base_url=SUPABASE_URL + "/",
        service_role_key=SERVICE_KEY,
        client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )


class TestFileTokenStore:
    """Tests for the JSON file backend."""

    @pytest.fixture
    def store(self, tmp_path) -> FileTokenStore:
        return FileTokenStore(tmp_path / "device_tokens.json")

    async def test_list_on_missing_file(self, store):
        assert await store.list_tokens("alice") == []

    async def test_upsert_then_list(self, store):
        await store.upsert("alice", "tok-a", {"os": "android"})
        await store.upsert("alice", "tok-b", {})
        await store.upsert("bob", "tok-c", {})

        assert await store.list_tokens("alice") == ["tok-a", "tok-b"]
        assert await store.list_tokens("bob") == ["tok-c"]

    async def test_reregistration_updates_metadata(self, store):
        """The same (user, token) pair is stored once with the latest metadata."""
        await store.upsert("alice", "tok-a", {"os": "android", "version": "1"})
        first = store.load().devices[0].updated_at

        await store.upsert("alice", "tok-a", {"os": "android", "version": "2"})

        records = store.load().devices
        assert len(records) == 1
        assert records[0].device_info == {"os": "android", "version": "2"}
        assert records[0].updated_at >= first

    async def test_same_token_for_two_users(self, store):
        await store.upsert("alice", "shared", {})
        await store.upsert("bob", "shared", {})

        assert await store.list_tokens("alice") == ["shared"]
        assert await store.list_tokens("bob") == ["shared"]

    async def test_concurrent_upserts_are_not_lost(self, store):
        await asyncio.gather(*(store.upsert("alice", f"tok-{i}", {}) for i in range(10)))
        assert sorted(await store.list_tokens("alice")) == sorted(f"tok-{i}" for i in range(10))

    async def test_file_permissions(self, store):
        await store.upsert("alice", "tok-a", {})
        mode = stat.S_IMODE(store.tokens_file.stat().st_mode)
        assert mode == 0o600

    async def test_file_format(self, store):
        await store.upsert("alice", "tok-a", {"os": "ios"})
        data = json.loads(store.tokens_file.read_text())

        assert data["devices"][0]["user_id"] == "alice"
        assert data["devices"][0]["token"] == "tok-a"
        assert data["devices"][0]["device_info"] == {"os": "ios"}
        assert data["devices"][0]["updated_at"].endswith("Z")

    async def test_corrupt_file_raises(self, store):
        store.tokens_file.write_text("{not json")

        with pytest.raises(TokenStoreError, match="Failed to load tokens file"):
            await store.list_tokens("alice")

    async def test_check_passes_on_empty_store(self, store):
        await store.check()

    async def test_check_fails_on_corrupt_file(self, store):
        store.tokens_file.write_text("[]")

        with pytest.raises(TokenStoreError):
            await store.check()


class TestSupabaseTokenStore:
    """Tests for the hosted REST backend."""

    async def test_upsert_request(self):
        backend = RecordingBackend()
        store = make_store(backend)

        await store.upsert("alice", "tok-a", {"os": "android"})

        request = backend.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/device_tokens"
        assert request.url.params["on_conflict"] == "user_id,token"
        assert request.headers["apikey"] == SERVICE_KEY
        assert request.headers["authorization"] == f"Bearer {SERVICE_KEY}"
        assert "resolution=merge-duplicates" in request.headers["prefer"]

        row = json.loads(request.content)
        assert row["user_id"] == "alice"
        assert row["token"] == "tok-a"
        assert row["device_info"] == {"os": "android"}
        assert row["updated_at"].endswith("Z")

    async def test_list_tokens_request(self):
        backend = RecordingBackend(rows=[{"token": "tok-a"}, {"token": "tok-b"}])
        store = make_store(backend)

        assert await store.list_tokens("alice") == ["tok-a", "tok-b"]

        request = backend.requests[0]
        assert request.method == "GET"
        assert request.url.params["select"] == "token"
        assert request.url.params["user_id"] == "eq.alice"

    async def test_list_tokens_skips_empty_rows(self):
        store = make_store(RecordingBackend(rows=[{"token": "tok-a"}, {"token": None}, {}]))
        assert await store.list_tokens("alice") == ["tok-a"]

    async def test_error_status_raises(self):
        store = make_store(RecordingBackend(status_code=401))

        with pytest.raises(TokenStoreError) as exc_info:
            await store.list_tokens("alice")

        assert exc_info.value.context["status_code"] == 401
        assert exc_info.value.context["operation"] == "list_tokens"

    async def test_unexpected_payload_raises(self):
        def object_body(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token": "tok-a"})

        store = SupabaseTokenStore(
            base_url=SUPABASE_URL,
            service_role_key=SERVICE_KEY,
            client=httpx.AsyncClient(transport=httpx.MockTransport(object_body)),
        )

        with pytest.raises(TokenStoreError, match="unexpected payload"):
            await store.list_tokens("alice")

    async def test_transport_error_raises(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = SupabaseTokenStore(
            base_url=SUPABASE_URL,
            service_role_key=SERVICE_KEY,
            client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
        )

        with pytest.raises(TokenStoreError, match="ConnectError"):
            await store.upsert("alice", "tok-a", {})

    async def test_check_requests_single_row(self):
        backend = RecordingBackend()
        await make_store(backend).check()
        assert backend.requests[0].url.params["limit"] == "1"


class TestBuildTokenStore:
    """Tests for build_token_store."""

    def test_file_backend(self, settings):
        store = build_token_store(settings)
        assert isinstance(store, FileTokenStore)
        assert store.tokens_file == settings.token_store_file

    def test_supabase_backend(self):
        settings = Settings(supabase_url=SUPABASE_URL, supabase_service_role_key=SERVICE_KEY)
        store = build_token_store(settings)

        assert isinstance(store, SupabaseTokenStore)
        assert store.table_url == f"{SUPABASE_URL}/rest/v1/device_tokens"

    def test_supabase_backend_requires_credentials(self):
        with pytest.raises(ConfigurationError, match="Token store credentials not configured"):
            build_token_store(Settings(supabase_url=SUPABASE_URL))
