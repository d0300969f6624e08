"""
FastAPI dependencies for authentication.

``get_current_user_id`` is used across all protected routes; the OAuth
callback route deliberately does not depend on it.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.tokens import TokenVerifier
from connectors.errors import Unauthorized

# auto_error off so a missing header goes through the Unauthorized handler
_bearer_scheme = HTTPBearer(auto_error=False)


def get_token_verifier(request: Request) -> TokenVerifier:
    return request.app.state.token_verifier


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id``.
    """
    if credentials is None:
        raise Unauthorized("Missing Bearer token")
    return get_token_verifier(request).verify(credentials.credentials)
