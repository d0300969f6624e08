"""
ConnectorRegistry — maps provider ids to connector instances.

Built once at startup by ``build_registry`` and handed to the orchestrator;
nothing here is process-global, so tests can register fake connectors.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Type

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.errors import ProviderNotFound
from connectors.github import GitHubConnector
from connectors.models import ProviderIdentity
from connectors.notion import NotionConnector
from connectors.slack import SlackConnector

logger = logging.getLogger(__name__)

# ── All known connectors — add new ones here ─────────────────────────────

CONNECTOR_CLASSES: Dict[str, Type[BaseConnector]] = {
    "github": GitHubConnector,
    "notion": NotionConnector,
    "slack": SlackConnector,
}


class ConnectorRegistry:
    """Registry of the connectors available to this process."""

    def __init__(self, connectors: Iterable[BaseConnector] = ()) -> None:
        self._connectors: Dict[str, BaseConnector] = {}
        self._available: List[Dict[str, object]] = []
        for conn in connectors:
            self.register(conn)

    def register(self, connector: BaseConnector) -> None:
        self._connectors[connector.provider_name] = connector
        logger.info(
            "Connector registered: %s (%s)",
            connector.display_name,
            connector.provider_name,
        )

    def note_unconfigured(self, provider: str, display_name: str) -> None:
        """Remember a provider that exists but was skipped for missing config."""
        self._available.append(
            {"provider": provider, "display_name": display_name, "configured": False}
        )

    def get(self, provider: str) -> Optional[BaseConnector]:
        """Get a connector by provider name."""
        return self._connectors.get(provider)

    def require(self, provider: str) -> BaseConnector:
        """Get a connector by provider name or raise ``ProviderNotFound``."""
        connector = self._connectors.get(provider)
        if connector is None:
            raise ProviderNotFound(provider)
        return connector

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all known providers, configured or not."""
        registered = [
            {
                "provider": c.provider_name,
                "display_name": c.display_name,
                "configured": True,
            }
            for c in self._connectors.values()
        ]
        return registered + list(self._available)

    def list_registered(self) -> List[str]:
        """Return names of registered connectors."""
        return list(self._connectors.keys())


def build_registry(
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ConnectorRegistry:
    """Register every provider whose client id, secret and redirect URI are set."""
    registry = ConnectorRegistry()
    for raw in settings.provider_identities():
        identity = ProviderIdentity(**raw)
        cls = CONNECTOR_CLASSES.get(identity.provider_id)
        if cls is None:
            logger.warning("No connector class for provider %s", identity.provider_id)
            continue
        conn = cls(identity, timeout=settings.provider_http_timeout, transport=transport)
        if conn.is_configured():
            registry.register(conn)
        else:
            logger.warning(
                "Connector %s skipped, not configured (missing client_id/secret/redirect_uri)",
                identity.provider_id,
            )
            registry.note_unconfigured(identity.provider_id, identity.display_name)
    return registry
