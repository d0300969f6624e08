"""
Shared fixtures: provider identities, a scripted vendor HTTP transport and
a fully wired orchestrator over an in-memory credential store.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

from connectors.encryption import TokenCipher
from connectors.github import GitHubConnector
from connectors.models import ProviderIdentity
from connectors.notion import NotionConnector
from connectors.orchestrator import IntegrationOrchestrator
from connectors.registry import ConnectorRegistry
from connectors.slack import SlackConnector
from connectors.state import StateCodec
from database.credential_store import InMemoryCredentialStore

FRONTEND_URL = "https://app.example.com"
TEST_KEY = b"k" * 32

Reply = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response], Exception]


def make_identity(provider_id: str, display_name: Optional[str] = None) -> ProviderIdentity:
    return ProviderIdentity(
        provider_id=provider_id,
        display_name=display_name or provider_id.title(),
        client_id=f"{provider_id}-client-id",
        client_secret=f"{provider_id}-client-secret",
        redirect_uri=f"https://api.example.com/api/integrations/{provider_id}/callback",
    )


class FakeVendor:
    """
    Scripted vendor APIs keyed by ``host + path``.

    A reply is ``(status, json_or_text)``, a callable taking the request,
    or an exception to raise.  Every request is recorded in ``calls``.
    """

    def __init__(self) -> None:
        self.replies: Dict[str, Reply] = {}
        self.calls: List[httpx.Request] = []

    def on(self, url: str, reply: Reply) -> None:
        self.replies[url] = reply

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        reply = self.replies[f"{request.url.host}{request.url.path}"]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        status, body = reply
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def vendor() -> FakeVendor:
    return FakeVendor()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TEST_KEY)


@pytest.fixture
def codec() -> StateCodec:
    return StateCodec()


@pytest.fixture
def registry(vendor) -> ConnectorRegistry:
    transport = vendor.transport
    return ConnectorRegistry(
        [
            GitHubConnector(make_identity("github", "GitHub"), transport=transport),
            NotionConnector(make_identity("notion"), transport=transport),
            SlackConnector(make_identity("slack"), transport=transport),
        ]
    )


@pytest.fixture
def orchestrator(registry, store, cipher, codec) -> IntegrationOrchestrator:
    return IntegrationOrchestrator(
        registry=registry,
        store=store,
        cipher=cipher,
        state_codec=codec,
        frontend_url=FRONTEND_URL,
    )
