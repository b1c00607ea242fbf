"""
OAuthProvider — the provider-side half of a connector: authorization URL,
code exchange, refresh and revocation.

Two flows exist:

* redirect (Google): ``get_auth_url(state)`` → browser consent →
  ``/connectors/callback?code&state`` → ``exchange_code(code)``.
* link token (Plaid): ``create_link_token(user_id)`` → client-side widget →
  ``/connectors/exchange-token`` → ``exchange_code(public_token)``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import httpx

from utils.schemas import OAuthTokens


class OAuthProvider(ABC):
    """Abstract base for provider authorization clients."""

    uses_link_token: bool = False

    def __init__(self, *, http: Optional[httpx.AsyncClient] = None, timeout: float = 20.0) -> None:
        self._http = http
        self._timeout = timeout

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Injected client when given, otherwise a short-lived one per call."""
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            yield client

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        ...

    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's authorization URL.

        Parameters
        ----------
        state : str
            Opaque signed state (encodes user_id, connector and nonce).
        """
        raise NotImplementedError(f"{type(self).__name__} does not use a redirect flow")

    async def create_link_token(self, user_id: str) -> str:
        """Create a client-side link token (link-token providers only)."""
        raise NotImplementedError(f"{type(self).__name__} does not use a link-token flow")

    @abstractmethod
    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange a one-time authorization code (or public token) for tokens."""
        ...

    @abstractmethod
    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """
        Exchange a refresh token for a new access token.

        Raises ``ProviderError`` when the provider rejects the refresh token.
        ``refresh_token`` on the result is None unless the provider rotated it.
        """
        ...

    async def revoke(self, token: str) -> bool:
        """
        Revoke the token at the provider (optional).
        Returns True on success, False if the provider doesn't support revocation.
        """
        return False

    def is_configured(self) -> bool:
        """
        Return True if this provider has all required config
        (client IDs, secrets, etc.).
        """
        return True
