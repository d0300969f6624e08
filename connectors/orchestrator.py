"""
IntegrationOrchestrator — the OAuth flow end to end.

Per (user, provider) pair::

    Disconnected ──start_flow──▶ (state in flight) ──handle_callback──▶ Connected
         ▲                                                              │
         └──────────────────────────── disconnect ◀─────────────────────┘

Nothing is persisted between ``start_flow`` and ``handle_callback``; the
signed/unsigned ``state`` parameter is the only record of a pending flow.
A repeated callback for a connected pair replaces the stored token and
merges the new provider metadata over the old.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from connectors.encryption import TokenCipher
from connectors.errors import (
    IntegrationError,
    InvalidState,
    NotConnected,
    OAuthExchangeFailed,
    ProjectFetchFailed,
)
from connectors.models import NormalizedProject
from connectors.registry import ConnectorRegistry
from connectors.state import StateCodec
from database.credential_store import CredentialStore

logger = logging.getLogger(__name__)


class IntegrationOrchestrator:
    """Dispatches OAuth and listing requests to the registered connectors."""

    def __init__(
        self,
        registry: ConnectorRegistry,
        store: CredentialStore,
        cipher: TokenCipher,
        state_codec: StateCodec,
        frontend_url: str,
    ) -> None:
        self.registry = registry
        self._store = store
        self._cipher = cipher
        self._state = state_codec
        self._frontend_url = frontend_url.rstrip("/")

    # ── Flow start ──────────────────────────────────────────────────────

    def start_flow(self, user_id: str, provider_id: str) -> str:
        """Return the vendor consent URL for *user_id*."""
        connector = self.registry.require(provider_id)
        state = self._state.encode(user_id, provider_id)
        logger.info("Starting OAuth flow for %s (user %s)", provider_id, user_id)
        return connector.get_auth_url(state)

    # ── Callback ────────────────────────────────────────────────────────

    async def handle_callback(
        self,
        provider_id: str,
        code: Optional[str],
        state: Optional[str],
        *,
        error: Optional[str] = None,
    ) -> str:
        """
        Complete the flow and return the URL to send the browser back to.

        Never raises: the caller is a browser following a vendor redirect,
        so every failure becomes an error redirect with a readable message.
        """
        logger.info(
            "Received callback for %s. Code present: %s, state present: %s",
            provider_id, bool(code), bool(state),
        )
        try:
            user_id = await self._complete_flow(provider_id, code, state, error)
        except IntegrationError as exc:
            logger.warning("OAuth callback failed for %s: %s", provider_id, exc.message)
            return self._error_redirect(exc.message)
        except Exception as exc:
            logger.exception("OAuth callback error for %s", provider_id)
            return self._error_redirect(str(exc) or "Connection failed")

        logger.info("OAuth connected: user=%s provider=%s", user_id, provider_id)
        return self._success_redirect(provider_id)

    async def _complete_flow(
        self,
        provider_id: str,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str],
    ) -> str:
        connector = self.registry.require(provider_id)
        if error:
            # user denied consent, or the vendor refused to issue a code
            raise OAuthExchangeFailed(error, provider=provider_id)

        decoded = self._state.decode(state)
        if decoded.provider_id != provider_id:
            raise InvalidState(
                "OAuth state was issued for another provider", provider=provider_id
            )
        if not code:
            raise OAuthExchangeFailed(
                "No authorization code returned from provider", provider=provider_id
            )

        grant = await connector.exchange_code(code)
        fields: Dict[str, Any] = {
            **grant.metadata,
            "status": "connected",
            "token": self._cipher.encrypt(grant.access_token),
            "connected_at": datetime.now(timezone.utc).isoformat(),
        }
        await self._store.upsert(decoded.user_id, provider_id, fields, merge=True)
        return decoded.user_id

    def _success_redirect(self, provider_id: str) -> str:
        return (
            f"{self._frontend_url}/?view=integrations&status=success"
            f"&provider={quote(provider_id, safe='')}"
        )

    def _error_redirect(self, message: str) -> str:
        return (
            f"{self._frontend_url}/?view=integrations&status=error"
            f"&message={quote(message, safe='')}"
        )

    # ── Disconnect ──────────────────────────────────────────────────────

    async def disconnect(self, user_id: str, provider_id: str) -> None:
        """
        Delete the stored credential.  Idempotent.

        The connector's ``disconnect`` hook runs first, best-effort; with the
        default hook this is local deletion only and the vendor token stays
        valid until the user revokes it at the vendor.
        """
        credential = await self._store.get(user_id, provider_id)
        connector = self.registry.get(provider_id)
        if credential is not None and connector is not None:
            try:
                await connector.disconnect(self._cipher.decrypt(credential.token))
            except IntegrationError as exc:
                logger.warning(
                    "Vendor-side disconnect failed for %s/%s: %s",
                    provider_id, user_id, exc.message,
                )

        await self._store.delete(user_id, provider_id)
        logger.info("Disconnected %s for user %s", provider_id, user_id)

    # ── Listing ─────────────────────────────────────────────────────────

    async def list_projects(self, user_id: str, provider_id: str) -> List[NormalizedProject]:
        """
        Fetch the user's projects from the vendor.  Never cached.

        An unknown provider raises ``NotConnected`` unless a credential is
        stored under its id, then ``ProjectFetchFailed``.
        """
        credential = await self._store.get(user_id, provider_id)
        if credential is None:
            raise NotConnected(provider_id)
        connector = self.registry.get(provider_id)
        if connector is None:
            raise ProjectFetchFailed(f"Provider {provider_id} not found", provider=provider_id)

        access_token = self._cipher.decrypt(credential.token)
        projects = await connector.list_projects(access_token)
        logger.debug("Fetched %d %s projects for user %s", len(projects), provider_id, user_id)
        return projects

    async def list_connections(self, user_id: str) -> List[Dict[str, Any]]:
        """Stored connections for *user_id*, without tokens."""
        return [c.public_view() for c in await self._store.list_for_user(user_id)]
