"""
Token manager — get / refresh / store per-user credentials.

This is the single interface that tools use to get an active token
for a given user + provider combination.

Refresh is single-flight per (user_id, provider): the first caller that
finds an expired access token takes the key's lock, re-reads the store,
refreshes at the provider and writes the new rows in one transaction.
Callers that queued on the same lock find the fresh token on their re-read
and return it without a second provider call.  Non-expired reads never
touch the lock.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Callable, Mapping, Optional, Tuple

from connectors.credential_store import CredentialStore
from connectors.errors import AuthRequired, CredentialNotFound, ProviderError, RefreshFailed
from connectors.oauth import OAuthProvider
from utils.schemas import Credential, TokenKind, TokenPair, utcnow

logger = logging.getLogger(__name__)


def _pair(access: Credential, refresh: Optional[Credential]) -> TokenPair:
    return TokenPair(
        access_token=access.token_value,
        refresh_token=refresh.token_value if refresh else None,
        expires_at=access.expires_at,
    )


class TokenLifecycleManager:
    """Expiry policy and refresh coordination over a ``CredentialStore``."""

    def __init__(
        self,
        store: CredentialStore,
        oauth_providers: Mapping[str, OAuthProvider],
        *,
        clock: Callable[[], datetime] = utcnow,
        refresh_timeout: float = 20.0,
    ) -> None:
        self._store = store
        self._providers = oauth_providers
        self._clock = clock
        self._refresh_timeout = refresh_timeout
        # Entries vanish once no caller holds or awaits the lock
        self._refresh_locks: weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str, provider: str) -> asyncio.Lock:
        key = (user_id, provider)
        lock = self._refresh_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._refresh_locks[key] = lock
        return lock

    async def _read(self, user_id: str, provider: str, kind: TokenKind) -> Optional[Credential]:
        try:
            return await self._store.get(user_id, provider, kind)
        except CredentialNotFound:
            return None

    # ── Reads ───────────────────────────────────────────────────────────

    async def get_valid_credential(self, user_id: str, provider: str) -> TokenPair:
        """
        Return a usable token pair for the user + provider.

        Raises
        ------
        AuthRequired
            The user never authorized this provider.
        RefreshFailed
            The access token expired and could not be refreshed.
        StorageError
            The credential store is unavailable.
        """
        access = await self._read(user_id, provider, TokenKind.ACCESS)
        if access is None:
            raise AuthRequired(user_id, provider)

        if not access.is_expired(self._clock()):
            refresh = await self._read(user_id, provider, TokenKind.REFRESH)
            return _pair(access, refresh)

        # Shielded so an abandoned request cannot interrupt exchange + persist
        task = asyncio.ensure_future(self._refresh_locked(user_id, provider))
        return await asyncio.shield(task)

    async def has_grant(self, user_id: str, provider: str) -> bool:
        return await self._store.exists(user_id, provider, TokenKind.ACCESS)

    # ── Refresh ─────────────────────────────────────────────────────────

    async def _refresh_locked(self, user_id: str, provider: str) -> TokenPair:
        async with self._lock_for(user_id, provider):
            access = await self._read(user_id, provider, TokenKind.ACCESS)
            if access is None:
                raise AuthRequired(user_id, provider)
            refresh = await self._read(user_id, provider, TokenKind.REFRESH)

            if not access.is_expired(self._clock()):
                logger.debug("Token for %s/%s already refreshed by a concurrent caller", provider, user_id)
                return _pair(access, refresh)

            if refresh is None:
                raise RefreshFailed(user_id, provider, "no refresh token")

            oauth = self._providers.get(provider)
            if oauth is None:
                raise RefreshFailed(user_id, provider, f"no OAuth client for '{provider}'")

            try:
                tokens = await asyncio.wait_for(oauth.refresh(refresh.token_value), self._refresh_timeout)
            except asyncio.TimeoutError as exc:
                logger.warning("Token refresh timed out for %s/%s", provider, user_id)
                raise RefreshFailed(user_id, provider, "timeout") from exc
            except ProviderError as exc:
                logger.warning("Token refresh failed for %s/%s: %s", provider, user_id, exc)
                raise RefreshFailed(user_id, provider, exc.provider_code or str(exc)) from exc

            now = self._clock()
            new_access = Credential(
                user_id=user_id,
                provider=provider,
                token_kind=TokenKind.ACCESS,
                token_value=tokens.access_token,
                issued_at=now,
                expires_at=tokens.expires_at,
            )
            # Some providers rotate refresh tokens
            if tokens.refresh_token:
                new_refresh = Credential(
                    user_id=user_id,
                    provider=provider,
                    token_kind=TokenKind.REFRESH,
                    token_value=tokens.refresh_token,
                    issued_at=now,
                )
            else:
                new_refresh = refresh

            await self._store.put_many([new_access, new_refresh])
            logger.info("Refreshed %s token for user %s", provider, user_id)
            return _pair(new_access, new_refresh)

    # ── Writes ──────────────────────────────────────────────────────────

    async def store_initial_grant(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Persist the result of a code exchange in one transaction."""
        now = self._clock()
        rows = [
            Credential(
                user_id=user_id,
                provider=provider,
                token_kind=TokenKind.ACCESS,
                token_value=access_token,
                issued_at=now,
                expires_at=expires_at,
            )
        ]
        if refresh_token:
            rows.append(
                Credential(
                    user_id=user_id,
                    provider=provider,
                    token_kind=TokenKind.REFRESH,
                    token_value=refresh_token,
                    issued_at=now,
                )
            )
        await self._store.put_many(rows)
        logger.info("Stored %s grant for user %s", provider, user_id)

    async def revoke(self, user_id: str, provider: str) -> bool:
        """
        Revoke at the provider (best effort) and delete the stored grant.
        Returns True if anything was deleted.
        """
        access = await self._read(user_id, provider, TokenKind.ACCESS)
        oauth = self._providers.get(provider)
        if access is not None and oauth is not None:
            revoked = await oauth.revoke(access.token_value)
            if not revoked:
                logger.warning("Provider-side revocation of %s for %s did not succeed", provider, user_id)

        deleted = await self._store.delete(user_id, provider)
        return deleted > 0
