"""
GitHubConnector — OAuth2 for GitHub repositories.

Classic OAuth App flow: tokens don't expire, so there is no refresh step.
Projects are the user's repositories, most recently updated first.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlencode

from connectors.base import BaseConnector
from connectors.errors import OAuthExchangeFailed, ProjectFetchFailed
from connectors.models import NormalizedProject, TokenGrant

logger = logging.getLogger(__name__)

# GitHub OAuth2 endpoints
_GH_AUTH_URL = "https://github.com/login/oauth/authorize"
_GH_TOKEN_URL = "https://github.com/login/oauth/access_token"
_GH_API = "https://api.github.com"
_USER_AGENT = "Workspace-Integrations"


class GitHubConnector(BaseConnector):
    """OAuth2 connector for GitHub."""

    @property
    def scopes(self) -> List[str]:
        return ["repo", "read:user"]

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{_GH_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        """Exchange auth code for an access token."""
        resp = await self._send(
            "POST",
            _GH_TOKEN_URL,
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        data = self._json(resp)
        if not isinstance(data, dict):
            raise OAuthExchangeFailed(
                f"GitHub token exchange failed ({resp.status_code})",
                provider=self.provider_name,
            )

        # GitHub answers 200 with an ``error`` field for rejected codes
        if data.get("error"):
            raise OAuthExchangeFailed(
                str(data.get("error_description") or data["error"]),
                provider=self.provider_name,
            )
        if not data.get("access_token"):
            raise OAuthExchangeFailed(
                "GitHub returned no access token", provider=self.provider_name
            )

        return TokenGrant(
            access_token=data["access_token"],
            metadata={
                "token_type": data.get("token_type"),
                "scope": data.get("scope"),
            },
        )

    async def list_projects(self, access_token: str) -> List[NormalizedProject]:
        resp = await self._send(
            "GET",
            f"{_GH_API}/user/repos",
            params={"sort": "updated", "per_page": 100},
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": _USER_AGENT,
            },
        )
        data = self._json(resp)
        if not resp.is_success:
            logger.error("GitHub %d listing repos", resp.status_code)
            raise ProjectFetchFailed(
                self._error_message(data, "Failed to fetch GitHub repos"),
                provider=self.provider_name,
            )
        if not isinstance(data, list):
            raise ProjectFetchFailed(
                "Failed to fetch GitHub repos", provider=self.provider_name
            )

        return self._map_projects(data, self._to_project, "Failed to fetch GitHub repos")

    def _to_project(self, repo: Dict[str, Any]) -> NormalizedProject:
        return NormalizedProject(
            id=str(repo["id"]),
            name=repo.get("name", ""),
            description=repo.get("description"),
            url=repo.get("html_url"),
            type="repo",
            last_activity=repo.get("updated_at"),
            integration_id=self.provider_name,
        )
