"""
OAuth ``state`` encoding.

The state binds a callback to the user and provider that started the flow.
Baseline form is URL-safe base64 of ``{"userId": ..., "provider": ...}``.
With a secret configured the value becomes ``<payload>.<hmac-sha256>``
and is rejected unless the signature verifies; with a TTL configured an
``exp`` claim is embedded and enforced.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Callable, Optional

from connectors.errors import InvalidState
from connectors.models import OAuthState

_B64_STD = str.maketrans("-_", "+/")


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded.translate(_B64_STD), validate=True)


class StateCodec:
    """Encode / decode the opaque OAuth state parameter."""

    def __init__(
        self,
        secret: Optional[str] = None,
        *,
        ttl_seconds: int = 0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = secret.encode() if secret else None
        self._ttl = ttl_seconds
        self._clock = clock

    @property
    def signed(self) -> bool:
        return self._secret is not None

    def encode(self, user_id: str, provider_id: str) -> str:
        payload = {"userId": user_id, "provider": provider_id}
        if self._ttl > 0:
            payload["exp"] = int(self._clock()) + self._ttl
        body = _b64encode(json.dumps(payload, separators=(",", ":")).encode())
        if self._secret is None:
            return body
        return f"{body}.{self._sign(body)}"

    def decode(self, state: Optional[str]) -> OAuthState:
        """
        Return the ``OAuthState`` carried by *state*.

        Raises ``InvalidState`` for anything that is not a value this codec
        could have issued.
        """
        if not state:
            raise InvalidState("No state returned from provider")

        body = state
        if self._secret is not None:
            body, _, sig = state.partition(".")
            if not sig or not hmac.compare_digest(sig.encode(), self._sign(body).encode()):
                raise InvalidState("OAuth state signature mismatch")

        try:
            decoded = OAuthState.model_validate(json.loads(_b64decode(body)))
        except (ValueError, RecursionError) as exc:
            raise InvalidState(f"Malformed OAuth state: {type(exc).__name__}") from exc

        if self._ttl > 0 and decoded.exp is None:
            raise InvalidState("OAuth state has no expiry")
        if decoded.exp is not None and decoded.exp < self._clock():
            raise InvalidState("OAuth state expired")
        return decoded

    def _sign(self, body: str) -> str:
        return hmac.new(self._secret, body.encode(), hashlib.sha256).hexdigest()
