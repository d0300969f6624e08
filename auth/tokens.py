"""
Bearer identity tokens.

Tokens are base64-encoded JSON payloads signed with HMAC-SHA256, issued by
the workspace auth service.  This module only needs to verify them; token
creation is here for tooling and tests.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Callable

from connectors.errors import Unauthorized


class TokenVerifier:
    """Verify bearer tokens and return the ``user_id`` they carry."""

    def __init__(
        self,
        secret: str,
        *,
        expiry_seconds: int = 604800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret.encode()
        self._expiry = expiry_seconds
        self._clock = clock

    def create_token(self, user_id: str) -> str:
        """Create a signed token containing ``user_id`` and expiry."""
        payload = {
            "user_id": user_id,
            "exp": int(self._clock()) + self._expiry,
        }
        raw = json.dumps(payload).encode()
        return b64encode(raw).decode() + "." + self._sign(raw)

    def verify(self, token: str) -> str:
        """
        Verify token and return ``user_id``.

        Raises ``Unauthorized`` on invalid or expired tokens.
        """
        try:
            parts = token.split(".", 1)
            if len(parts) != 2:
                raise ValueError("bad format")
            raw = b64decode(parts[0], validate=True)
            if not hmac.compare_digest(parts[1].encode(), self._sign(raw).encode()):
                raise ValueError("bad signature")
            payload = json.loads(raw)
            if payload.get("exp", 0) < self._clock():
                raise ValueError("token expired")
            user_id = payload["user_id"]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise Unauthorized(f"Invalid token: {exc}") from exc
        if not isinstance(user_id, str) or not user_id:
            raise Unauthorized("Invalid token: no user")
        return user_id

    def _sign(self, raw: bytes) -> str:
        return hmac.new(self._secret, raw, hashlib.sha256).hexdigest()
