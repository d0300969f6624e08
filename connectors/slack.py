"""
SlackConnector — OAuth2 (v2) for Slack workspaces.

Slack reports errors in-band: HTTP 200 with ``{"ok": false, "error": ...}``.
Projects are the public and private channels the bot can see.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from connectors.base import BaseConnector
from connectors.errors import OAuthExchangeFailed, ProjectFetchFailed
from connectors.models import NormalizedProject, TokenGrant

logger = logging.getLogger(__name__)

_SLACK_AUTH_URL = "https://slack.com/oauth/v2/authorize"
_SLACK_TOKEN_URL = "https://slack.com/api/oauth.v2.access"
_SLACK_CONVERSATIONS_URL = "https://slack.com/api/conversations.list"


def unix_to_iso(seconds: Optional[float]) -> Optional[str]:
    """Unix seconds → ``2023-11-14T22:13:20.000Z`` (millisecond precision, UTC)."""
    if seconds is None:
        return None
    dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SlackConnector(BaseConnector):
    """OAuth2 connector for Slack."""

    @property
    def scopes(self) -> List[str]:
        return ["channels:read", "groups:read", "users:read"]

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "scope": ",".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{_SLACK_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        resp = await self._send(
            "POST",
            _SLACK_TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
        )
        data = self._json(resp)
        if not isinstance(data, dict):
            raise OAuthExchangeFailed(
                f"Slack token exchange failed ({resp.status_code})",
                provider=self.provider_name,
            )
        if not data.get("ok"):
            raise OAuthExchangeFailed(
                str(data.get("error") or "Slack token exchange failed"),
                provider=self.provider_name,
            )
        if not data.get("access_token"):
            raise OAuthExchangeFailed(
                "Slack returned no access token", provider=self.provider_name
            )

        team = data.get("team") or {}
        authed_user = data.get("authed_user") or {}
        return TokenGrant(
            access_token=data["access_token"],
            metadata={
                "team_id": team.get("id"),
                "team_name": team.get("name"),
                "authed_user": authed_user.get("id"),
            },
        )

    async def list_projects(self, access_token: str) -> List[NormalizedProject]:
        resp = await self._send(
            "GET",
            _SLACK_CONVERSATIONS_URL,
            params={"types": "public_channel,private_channel"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        data = self._json(resp)
        if not resp.is_success or not isinstance(data, dict) or not data.get("ok"):
            error = data.get("error") if isinstance(data, dict) else None
            logger.error("Slack conversations.list failed: %s", error or resp.status_code)
            raise ProjectFetchFailed(
                str(error or "Failed to fetch Slack channels"),
                provider=self.provider_name,
            )

        return self._map_projects(
            data.get("channels", []), self._to_project, "Failed to fetch Slack channels"
        )

    def _to_project(self, channel: Dict[str, Any]) -> NormalizedProject:
        topic = (channel.get("topic") or {}).get("value")
        purpose = (channel.get("purpose") or {}).get("value")
        updated = channel.get("updated", channel.get("created"))
        return NormalizedProject(
            id=channel["id"],
            name=f"#{channel.get('name', '')}",
            description=topic or purpose or "Slack Channel",
            type="channel",
            last_activity=unix_to_iso(updated),
            integration_id=self.provider_name,
        )
