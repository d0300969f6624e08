"""
Integration-level tests for the IntegrationOrchestrator.
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from connectors.base import BaseConnector
from connectors.errors import (
    DecryptionFailed,
    NotConnected,
    ProjectFetchFailed,
    ProviderNotFound,
    ProviderUnreachable,
)
from connectors.models import OAuthState
from connectors.orchestrator import IntegrationOrchestrator
from connectors.registry import ConnectorRegistry
from connectors.state import StateCodec
from database.credential_store import InMemoryCredentialStore
from tests.conftest import FRONTEND_URL, make_identity

_GH_TOKEN = "github.com/login/oauth/access_token"
_GH_REPOS = "api.github.com/user/repos"


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


class TestStartFlow:
    def test_url_carries_client_id_and_state(self, orchestrator, codec):
        url = orchestrator.start_flow("u1", "github")

        params = parse_qs(urlparse(url).query)
        assert params["client_id"] == ["github-client-id"]
        decoded = codec.decode(params["state"][0])
        assert decoded == OAuthState(user_id="u1", provider_id="github")

    def test_unknown_provider(self, orchestrator):
        with pytest.raises(ProviderNotFound):
            orchestrator.start_flow("u1", "linear")


class TestHandleCallback:
    @pytest.mark.asyncio
    async def test_success_stores_encrypted_token(self, orchestrator, vendor, store, cipher):
        vendor.on(_GH_TOKEN, (200, {"access_token": "abc", "token_type": "bearer", "scope": "repo"}))
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", "code-1", state)

        assert redirect == f"{FRONTEND_URL}/?view=integrations&status=success&provider=github"
        credential = await store.get("u1", "github")
        assert credential.status == "connected"
        assert credential.token != "abc"
        assert cipher.decrypt(credential.token) == "abc"
        assert credential.connected_at
        assert credential.metadata == {"token_type": "bearer", "scope": "repo"}

    @pytest.mark.asyncio
    async def test_vendor_error_redirects_without_writing(self, orchestrator, vendor, store):
        vendor.on(_GH_TOKEN, (200, {"error": "bad_verification_code"}))
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", "stale", state)

        assert "status=error&message=bad_verification_code" in redirect
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_error_message_is_url_encoded(self, orchestrator, vendor):
        vendor.on(
            _GH_TOKEN,
            (200, {"error": "bad_verification_code", "error_description": "The code is expired & gone"}),
        )
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", "stale", state)

        assert redirect.endswith("message=The%20code%20is%20expired%20%26%20gone")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [None, "", "garbage!!", "eyJmb28iOiAxfQ"])
    async def test_unissued_state_writes_nothing(self, orchestrator, vendor, store, state):
        redirect = await orchestrator.handle_callback("github", "code-1", state)

        assert "status=error" in redirect
        assert vendor.calls == []
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_state_for_other_provider_rejected(self, orchestrator, vendor, store):
        slack_state = _state_from(orchestrator.start_flow("u1", "slack"))

        redirect = await orchestrator.handle_callback("github", "code-1", slack_state)

        assert "status=error" in redirect
        assert vendor.calls == []
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_bad_state_does_not_touch_existing_credential(self, orchestrator, store):
        await store.upsert("u1", "github", {"status": "connected", "token": "kept"})

        await orchestrator.handle_callback("github", "code-1", "not-a-state")

        assert (await store.get("u1", "github")).token == "kept"

    @pytest.mark.asyncio
    async def test_missing_code(self, orchestrator, vendor, store):
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", None, state)

        assert "status=error" in redirect
        assert vendor.calls == []
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_consent_denied(self, orchestrator, vendor):
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", None, state, error="access_denied")

        assert redirect.endswith("status=error&message=access_denied")
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_unknown_provider_redirects(self, orchestrator):
        redirect = await orchestrator.handle_callback("linear", "c", "s")
        assert "status=error&message=Provider%20linear%20not%20found" in redirect

    @pytest.mark.asyncio
    async def test_reconnect_replaces_token_and_merges_metadata(
        self, orchestrator, vendor, store, cipher
    ):
        await store.upsert(
            "u1",
            "github",
            {"status": "connected", "token": cipher.encrypt("old"), "scope": "read:user",
             "settings": {"autoSync": True}},
        )
        vendor.on(_GH_TOKEN, (200, {"access_token": "new", "token_type": "bearer", "scope": "repo"}))
        state = _state_from(orchestrator.start_flow("u1", "github"))

        await orchestrator.handle_callback("github", "code-2", state)

        credential = await store.get("u1", "github")
        assert cipher.decrypt(credential.token) == "new"
        assert credential.metadata["scope"] == "repo"
        assert credential.metadata["settings"] == {"autoSync": True}

    @pytest.mark.asyncio
    async def test_vendor_timeout_redirects(self, orchestrator, vendor):
        vendor.on(_GH_TOKEN, httpx.ReadTimeout("slow"))
        state = _state_from(orchestrator.start_flow("u1", "github"))

        redirect = await orchestrator.handle_callback("github", "c", state)

        assert "status=error&message=GitHub%20did%20not%20respond%20in%20time" in redirect

    @pytest.mark.asyncio
    async def test_storage_failure_redirects(self, registry, cipher, codec, vendor):
        failing = InMemoryCredentialStore()
        failing.upsert = AsyncMock(side_effect=RuntimeError("disk full"))
        orch = IntegrationOrchestrator(registry, failing, cipher, codec, FRONTEND_URL)
        vendor.on(_GH_TOKEN, (200, {"access_token": "abc"}))
        state = _state_from(orch.start_flow("u1", "github"))

        redirect = await orch.handle_callback("github", "c", state)

        assert redirect.endswith("status=error&message=disk%20full")

    @pytest.mark.asyncio
    async def test_signed_state_end_to_end(self, registry, store, cipher, vendor):
        orch = IntegrationOrchestrator(
            registry, store, cipher, StateCodec("server-secret", ttl_seconds=600), FRONTEND_URL
        )
        vendor.on(_GH_TOKEN, (200, {"access_token": "abc"}))
        state = _state_from(orch.start_flow("u1", "github"))

        forged = StateCodec().encode("u2", "github")
        assert "status=error" in await orch.handle_callback("github", "c", forged)
        assert "status=success" in await orch.handle_callback("github", "c", state)
        assert await store.get("u2", "github") is None
        assert await store.get("u1", "github") is not None


class TestListProjects:
    @pytest.mark.asyncio
    async def test_not_connected_makes_no_vendor_call(self, orchestrator, vendor):
        with pytest.raises(NotConnected, match="Not connected"):
            await orchestrator.list_projects("u1", "github")
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_decrypts_token_for_vendor_call(self, orchestrator, vendor, store, cipher):
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})

        def reply(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer abc"
            return httpx.Response(200, json=[{"id": 1, "name": "api", "html_url": "https://x"}])

        vendor.on(_GH_REPOS, reply)
        projects = await orchestrator.list_projects("u1", "github")

        assert [p.name for p in projects] == ["api"]

    @pytest.mark.asyncio
    async def test_every_call_refetches(self, orchestrator, vendor, store, cipher):
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})
        vendor.on(_GH_REPOS, (200, []))

        await orchestrator.list_projects("u1", "github")
        await orchestrator.list_projects("u1", "github")

        assert len(vendor.calls) == 2

    @pytest.mark.asyncio
    async def test_corrupt_token(self, orchestrator, vendor, store):
        await store.upsert("u1", "github", {"status": "connected", "token": "corrupt"})
        with pytest.raises(DecryptionFailed):
            await orchestrator.list_projects("u1", "github")
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_unknown_provider(self, orchestrator):
        with pytest.raises(NotConnected):
            await orchestrator.list_projects("u1", "linear")

    @pytest.mark.asyncio
    async def test_unknown_provider_with_stored_credential(self, orchestrator, store, cipher):
        await store.upsert("u1", "linear", {"status": "connected", "token": cipher.encrypt("x")})
        with pytest.raises(ProjectFetchFailed, match="Provider linear not found"):
            await orchestrator.list_projects("u1", "linear")

    @pytest.mark.asyncio
    async def test_list_connections_hides_token(self, orchestrator, store, cipher):
        await store.upsert(
            "u1", "slack",
            {"status": "connected", "token": cipher.encrypt("x"), "connected_at": "2024-01-01T00:00:00+00:00",
             "team_name": "Acme", "authed_user": "U1"},
        )
        await store.upsert("u2", "github", {"status": "connected", "token": cipher.encrypt("y")})

        connections = await orchestrator.list_connections("u1")

        assert connections == [
            {
                "provider": "slack",
                "status": "connected",
                "connectedAt": "2024-01-01T00:00:00+00:00",
                "teamName": "Acme",
                "authedUser": "U1",
            }
        ]


class _RevokingConnector(BaseConnector):
    def __init__(self, identity, *, fail: bool = False):
        super().__init__(identity)
        self.revoked = []
        self.fail = fail

    async def disconnect(self, access_token: str) -> bool:
        if self.fail:
            raise ProviderUnreachable("down")
        self.revoked.append(access_token)
        return True


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_deletes_and_is_idempotent(self, orchestrator, store, cipher):
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})

        await orchestrator.disconnect("u1", "github")
        assert await store.get("u1", "github") is None

        await orchestrator.disconnect("u1", "github")
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_default_hook_makes_no_vendor_call(self, orchestrator, vendor, store, cipher):
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})
        await orchestrator.disconnect("u1", "github")
        assert vendor.calls == []

    @pytest.mark.asyncio
    async def test_hook_receives_decrypted_token(self, store, cipher, codec):
        conn = _RevokingConnector(make_identity("github"))
        orch = IntegrationOrchestrator(ConnectorRegistry([conn]), store, cipher, codec, FRONTEND_URL)
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})

        await orch.disconnect("u1", "github")

        assert conn.revoked == ["abc"]
        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_hook_failure_still_deletes(self, store, cipher, codec):
        conn = _RevokingConnector(make_identity("github"), fail=True)
        orch = IntegrationOrchestrator(ConnectorRegistry([conn]), store, cipher, codec, FRONTEND_URL)
        await store.upsert("u1", "github", {"status": "connected", "token": cipher.encrypt("abc")})

        await orch.disconnect("u1", "github")

        assert await store.get("u1", "github") is None

    @pytest.mark.asyncio
    async def test_undecryptable_token_still_deletes(self, orchestrator, store):
        await store.upsert("u1", "github", {"status": "connected", "token": "corrupt"})
        await orchestrator.disconnect("u1", "github")
        assert await store.get("u1", "github") is None
