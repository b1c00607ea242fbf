"""
OAuth state tokens (CSRF protection) and the pending-authorization store.

A state token is ``base64(json payload) + "." + hmac``.  The payload carries
the user id, connector name, a nonce and an expiry; nothing in it is secret,
but it cannot be forged without ``OAUTH_STATE_SECRET``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
import time
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from connectors.errors import AuthorizationError


@dataclass(frozen=True)
class OAuthState:
    user_id: str
    connector_name: str
    nonce: str
    exp: int


class StateSigner:
    """Create and verify signed OAuth state strings."""

    def __init__(self, secret: str, ttl_seconds: int = 600, clock: Callable[[], float] = time.time) -> None:
        self._secret = secret.encode()
        self._ttl = ttl_seconds
        self._clock = clock

    def _sign(self, raw: bytes) -> str:
        return hmac.new(self._secret, raw, hashlib.sha256).hexdigest()

    def create(self, user_id: str, connector_name: str) -> OAuthState:
        return OAuthState(
            user_id=user_id,
            connector_name=connector_name,
            nonce=secrets.token_urlsafe(16),
            exp=int(self._clock()) + self._ttl,
        )

    def encode(self, state: OAuthState) -> str:
        payload = json.dumps(
            {"user_id": state.user_id, "connector": state.connector_name, "nonce": state.nonce, "exp": state.exp},
            separators=(",", ":"),
        )
        raw = payload.encode()
        return urlsafe_b64encode(raw).decode() + "." + self._sign(raw)

    def verify(self, token: str) -> OAuthState:
        """Verify a state string.  Raises ``AuthorizationError`` on any failure."""
        parts = token.split(".", 1)
        if len(parts) != 2:
            raise AuthorizationError("Invalid OAuth state: bad format")
        try:
            raw = urlsafe_b64decode(parts[0].encode())
        except ValueError as exc:
            raise AuthorizationError("Invalid OAuth state: bad encoding") from exc
        if not hmac.compare_digest(parts[1].encode(), self._sign(raw).encode()):
            raise AuthorizationError("Invalid OAuth state: bad signature")
        try:
            payload = json.loads(raw)
            state = OAuthState(
                user_id=payload["user_id"],
                connector_name=payload["connector"],
                nonce=payload["nonce"],
                exp=int(payload["exp"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthorizationError("Invalid OAuth state: bad payload") from exc
        if state.exp < self._clock():
            raise AuthorizationError("OAuth state expired")
        return state


class PendingAuthorizations:
    """Time-bounded in-memory record of issued, not yet completed authorizations.

    Keyed by (user_id, connector_name); the value is the state nonce, so a
    callback only completes the most recent authorization it was issued for.
    """

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, (_, deadline) in self._entries.items() if deadline <= now]:
            del self._entries[key]

    def add(self, user_id: str, connector_name: str, nonce: str) -> None:
        self._purge()
        self._entries[(user_id, connector_name)] = (nonce, self._clock() + self._ttl)

    def is_pending(self, user_id: str, connector_name: str) -> bool:
        self._purge()
        return (user_id, connector_name) in self._entries

    def pop(self, user_id: str, connector_name: str, nonce: str) -> bool:
        """Remove and return True if a matching, unexpired entry exists."""
        self._purge()
        entry = self._entries.get((user_id, connector_name))
        if entry is None or not hmac.compare_digest(entry[0], nonce):
            return False
        del self._entries[(user_id, connector_name)]
        return True

    def discard(self, user_id: str, connector_name: str) -> None:
        self._entries.pop((user_id, connector_name), None)
