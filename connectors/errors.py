"""
Integration error taxonomy.

Every failure the integrations layer reports is an ``IntegrationError``
subclass carrying a human-readable message and the HTTP status the JSON
routes answer with.  The OAuth callback never lets these escape; it turns
them into a redirect instead (see ``connectors.orchestrator``).
"""

from __future__ import annotations

from typing import Optional


class IntegrationError(Exception):
    """Base class for all integration failures."""

    status_code: int = 500

    def __init__(self, message: str, *, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider


class ProviderNotFound(IntegrationError):
    """No connector is registered under the requested provider id."""

    status_code = 404

    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider {provider} not found", provider=provider)


class Unauthorized(IntegrationError):
    """Missing or invalid bearer token."""

    status_code = 401


class InvalidState(IntegrationError):
    """OAuth ``state`` is absent, malformed, forged or expired."""

    status_code = 400


class OAuthExchangeFailed(IntegrationError):
    """The vendor rejected the authorization-code exchange."""

    status_code = 500


class ProjectFetchFailed(IntegrationError):
    """The vendor listing call failed."""

    status_code = 500


class ProviderUnreachable(IntegrationError):
    """The vendor did not answer within the configured timeout."""

    status_code = 500


class DecryptionFailed(IntegrationError):
    """A stored token could not be decrypted."""

    status_code = 500


class StorageError(IntegrationError):
    """The credential store failed to read or write."""


class NotConnected(IntegrationError):
    """No stored credential exists for this user + provider."""

    status_code = 500

    def __init__(self, provider: Optional[str] = None) -> None:
        super().__init__("Not connected", provider=provider)


class CapabilityNotImplemented(IntegrationError, NotImplementedError):
    """A connector was registered without implementing a required method."""

    status_code = 500

    def __init__(self, capability: str, *, provider: Optional[str] = None) -> None:
        super().__init__(f"{capability} not implemented", provider=provider)
        self.capability = capability
