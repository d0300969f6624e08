"""
NotionConnector — OAuth2 for Notion workspaces.

The token endpoint takes client credentials as HTTP Basic auth.  Projects
are the databases the integration was granted access to.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlencode

from connectors.base import BaseConnector
from connectors.errors import OAuthExchangeFailed, ProjectFetchFailed
from connectors.models import NormalizedProject, TokenGrant

logger = logging.getLogger(__name__)

_NOTION_AUTH_URL = "https://api.notion.com/v1/oauth/authorize"
_NOTION_TOKEN_URL = "https://api.notion.com/v1/oauth/token"
_NOTION_SEARCH_URL = "https://api.notion.com/v1/search"
_NOTION_VERSION = "2022-06-28"


class NotionConnector(BaseConnector):
    """OAuth2 connector for Notion."""

    def get_auth_url(self, state: str) -> str:
        # Notion scopes are chosen by the user on the consent screen
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "owner": "user",
            "state": state,
        }
        return f"{_NOTION_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        resp = await self._send(
            "POST",
            _NOTION_TOKEN_URL,
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            auth=(self.client_id, self.client_secret),
        )
        data = self._json(resp)
        if not isinstance(data, dict):
            raise OAuthExchangeFailed(
                f"Notion token exchange failed ({resp.status_code})",
                provider=self.provider_name,
            )
        if data.get("error"):
            raise OAuthExchangeFailed(
                str(data.get("error_description") or data["error"]),
                provider=self.provider_name,
            )
        if not data.get("access_token"):
            raise OAuthExchangeFailed(
                "Notion returned no access token", provider=self.provider_name
            )

        return TokenGrant(
            access_token=data["access_token"],
            metadata={
                "workspace_id": data.get("workspace_id"),
                "workspace_name": data.get("workspace_name"),
                "workspace_icon": data.get("workspace_icon"),
                "bot_id": data.get("bot_id"),
            },
        )

    async def list_projects(self, access_token: str) -> List[NormalizedProject]:
        resp = await self._send(
            "POST",
            _NOTION_SEARCH_URL,
            json={
                "filter": {"property": "object", "value": "database"},
                "page_size": 100,
            },
            headers={
                "Authorization": f"Bearer {access_token}",
                "Notion-Version": _NOTION_VERSION,
            },
        )
        data = self._json(resp)
        if not resp.is_success:
            logger.error("Notion %d searching databases", resp.status_code)
            raise ProjectFetchFailed(
                self._error_message(data, "Failed to fetch Notion databases"),
                provider=self.provider_name,
            )
        if not isinstance(data, dict):
            raise ProjectFetchFailed(
                "Failed to fetch Notion databases", provider=self.provider_name
            )

        return self._map_projects(
            data.get("results", []), self._to_project, "Failed to fetch Notion databases"
        )

    def _to_project(self, db: Dict[str, Any]) -> NormalizedProject:
        return NormalizedProject(
            id=db["id"],
            name=_database_title(db),
            description="Notion Database",
            url=db.get("url"),
            type="database",
            last_activity=db.get("last_edited_time"),
            integration_id=self.provider_name,
        )


def _database_title(db: Dict[str, Any]) -> str:
    """First rich-text span of the title, or a placeholder."""
    title = db.get("title") or []
    if title and title[0].get("plain_text"):
        return title[0]["plain_text"]
    return "Untitled Database"
