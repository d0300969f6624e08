"""
Pydantic models shared by the connectors, the orchestrator and the routes.
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProviderIdentity(BaseModel):
    """Static OAuth configuration for one provider, built once at startup."""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    display_name: str
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""


class OAuthState(BaseModel):
    """
    Data carried through the OAuth redirect round trip.

    Wire keys are ``userId`` / ``provider`` / ``exp``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    user_id: str = Field(..., alias="userId", min_length=1)
    provider_id: str = Field(..., alias="provider", min_length=1)
    exp: Optional[int] = None


class TokenGrant(BaseModel):
    """Result of a successful code exchange."""

    access_token: str = Field(..., min_length=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Credential(BaseModel):
    """A stored connection for one (user, provider) pair."""

    provider_id: str
    token: str
    status: str = "connected"
    connected_at: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def public_view(self) -> Dict[str, Any]:
        """Everything except the encrypted token, with camelCase keys."""
        return {
            "provider": self.provider_id,
            "status": self.status,
            "connectedAt": self.connected_at,
            **{to_camel(key): value for key, value in self.metadata.items()},
        }


ProjectType = Literal["repo", "database", "channel"]


class NormalizedProject(BaseModel):
    """Provider-agnostic view of a repo / database / channel."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    description: Optional[str] = None
    url: Optional[str] = None
    type: ProjectType
    last_activity: Optional[str] = None
    integration_id: str
