"""
BaseConnector — the capability set every integration provider implements.

Every provider (GitHub, Notion, Slack, …) subclasses this and overrides
``get_auth_url``, ``exchange_code`` and ``list_projects``.  Calling one that
was not overridden raises ``CapabilityNotImplemented`` naming the method;
that only happens for a misregistered provider.

``disconnect`` defaults to a no-op success: disconnecting deletes the local
credential only and does NOT revoke the token at the vendor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

import httpx

from connectors.errors import (
    CapabilityNotImplemented,
    ProjectFetchFailed,
    ProviderUnreachable,
)
from connectors.models import NormalizedProject, ProviderIdentity, TokenGrant

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class BaseConnector:
    """Base for all OAuth2 connectors."""

    def __init__(
        self,
        identity: ProviderIdentity,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.identity = identity
        self.timeout = timeout
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────

    @property
    def provider_name(self) -> str:
        """Unique slug: 'github', 'notion', 'slack'."""
        return self.identity.provider_id

    @property
    def display_name(self) -> str:
        return self.identity.display_name

    @property
    def client_id(self) -> str:
        return self.identity.client_id

    @property
    def client_secret(self) -> str:
        return self.identity.client_secret

    @property
    def redirect_uri(self) -> str:
        return self.identity.redirect_uri

    @property
    def scopes(self) -> List[str]:
        """OAuth scopes requested by this connector."""
        return []

    # ── OAuth flow ──────────────────────────────────────────────────────

    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque state string, passed through verbatim.

        Returns
        -------
        The full URL to redirect the user to.
        """
        raise CapabilityNotImplemented("get_auth_url", provider=self.provider_name)

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchange the authorization code for an access token.

        Raises ``OAuthExchangeFailed`` when the vendor reports an error or
        answers without an access token.
        """
        raise CapabilityNotImplemented("exchange_code", provider=self.provider_name)

    async def list_projects(self, access_token: str) -> List[NormalizedProject]:
        """
        Fetch the vendor's resources and normalize them.

        Raises ``ProjectFetchFailed`` on vendor errors.
        """
        raise CapabilityNotImplemented("list_projects", provider=self.provider_name)

    async def disconnect(self, access_token: str) -> bool:
        """
        Vendor-side revocation hook.

        The default does nothing and reports success: local credential
        deletion only.  Override where the vendor supports revocation.
        """
        return True

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """Return True if client id, secret and redirect URI are all set."""
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Issue one vendor request, mapping timeouts and transport errors
        to ``ProviderUnreachable``.
        """
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out after %.1fs", method, url, self.timeout)
            raise ProviderUnreachable(
                f"{self.display_name} did not respond in time",
                provider=self.provider_name,
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ProviderUnreachable(
                f"{self.display_name} is unreachable",
                provider=self.provider_name,
            ) from exc

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        """Parse a JSON body, or None when the body is not JSON."""
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(data: Any, default: str) -> str:
        """Pull the vendor's ``message`` field out of an error body."""
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return default

    def _map_projects(
        self,
        items: Any,
        to_project: Callable[[Any], NormalizedProject],
        failure: str,
    ) -> List[NormalizedProject]:
        """
        Normalize vendor items, turning a shape the mapper does not expect
        into ``ProjectFetchFailed``.
        """
        try:
            return [to_project(item) for item in items]
        except (KeyError, TypeError, AttributeError, ValueError, OverflowError, OSError) as exc:
            logger.error(
                "%s returned an unexpected item: %s: %s",
                self.display_name, type(exc).__name__, exc,
            )
            raise ProjectFetchFailed(failure, provider=self.provider_name) from exc
