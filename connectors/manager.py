"""
ConnectorManager — per-user connection lifecycle.

    Unconnected ─connect()─▶ AuthorizationPending ─complete_authorization()─▶
    Connected+Authenticated ─(refresh fails)─▶ Connected, not authenticated

Connection status is always derived from the token manager at the time of
the call; it is never stored.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, Iterable, List, Optional

from connectors.errors import (
    AuthorizationError,
    AuthRequired,
    ProviderError,
    RefreshFailed,
    UnknownConnector,
)
from connectors.registry import ConnectorRegistry
from connectors.state import PendingAuthorizations, StateSigner
from connectors.token_manager import TokenLifecycleManager
from utils.schemas import ConnectionStatus, ConnectResult

logger = logging.getLogger(__name__)


class ConnectorManager:
    """Authorization flows and connection status for every registered connector."""

    def __init__(
        self,
        registry: ConnectorRegistry,
        tokens: TokenLifecycleManager,
        signer: StateSigner,
        pending: PendingAuthorizations,
    ) -> None:
        self._registry = registry
        self._tokens = tokens
        self._signer = signer
        self._pending = pending

    @property
    def registry(self) -> ConnectorRegistry:
        return self._registry

    # ── Authorization ───────────────────────────────────────────────────

    async def connect(self, connector_name: str, user_id: str) -> ConnectResult:
        """
        Start authorization for a user.

        Redirect connectors return ``auth_url``; link-token connectors return
        ``link_token`` with ``immediate=True`` so the client opens the widget
        straight away.
        """
        connector = self._registry.get_connector(connector_name)
        if not connector.is_configured():
            raise AuthorizationError(f"Connector '{connector_name}' is not configured")

        if connector.oauth.uses_link_token:
            link_token = await connector.oauth.create_link_token(user_id)
            self._pending.add(user_id, connector_name, secrets.token_urlsafe(16))
            logger.info("Issued link token: user=%s connector=%s", user_id, connector_name)
            return ConnectResult(connector_name=connector_name, link_token=link_token, immediate=True)

        state = self._signer.create(user_id, connector_name)
        self._pending.add(user_id, connector_name, state.nonce)
        auth_url = connector.oauth.get_auth_url(self._signer.encode(state))
        logger.info("Issued auth URL: user=%s connector=%s", user_id, connector_name)
        return ConnectResult(connector_name=connector_name, auth_url=auth_url)

    async def complete_authorization(
        self,
        code: str,
        state: str,
        connector_name: Optional[str] = None,
    ) -> str:
        """
        Finish a redirect flow: verify state, exchange the code, store the grant.

        Returns the user id carried in the state.  Raises ``AuthorizationError``
        on any failure; nothing is stored in that case.
        """
        parsed = self._signer.verify(state)
        if connector_name is not None and connector_name != parsed.connector_name:
            raise AuthorizationError("OAuth state was issued for a different connector")

        try:
            connector = self._registry.get_connector(parsed.connector_name)
        except UnknownConnector as exc:
            raise AuthorizationError(f"Connector '{parsed.connector_name}' not available") from exc

        if not self._pending.pop(parsed.user_id, parsed.connector_name, parsed.nonce):
            raise AuthorizationError("No pending authorization for this state")

        try:
            tokens = await connector.oauth.exchange_code(code)
        except ProviderError as exc:
            logger.error("Code exchange failed for %s: %s", parsed.connector_name, exc)
            raise AuthorizationError(f"Code exchange failed: {exc.provider_code or exc}") from exc

        await self._tokens.store_initial_grant(
            parsed.user_id,
            parsed.connector_name,
            tokens.access_token,
            tokens.refresh_token,
            tokens.expires_at,
        )
        logger.info("OAuth connected: user=%s connector=%s", parsed.user_id, parsed.connector_name)
        return parsed.user_id

    async def exchange_public_token(self, connector_name: str, user_id: str, public_token: str) -> None:
        """Finish a link-token flow by exchanging the public token."""
        connector = self._registry.get_connector(connector_name)
        if not connector.oauth.uses_link_token:
            raise AuthorizationError(f"Connector '{connector_name}' does not use a link-token flow")

        try:
            tokens = await connector.oauth.exchange_code(public_token)
        except ProviderError as exc:
            logger.error("Public token exchange failed for %s: %s", connector_name, exc)
            raise AuthorizationError(f"Token exchange failed: {exc.provider_code or exc}") from exc

        await self._tokens.store_initial_grant(
            user_id,
            connector_name,
            tokens.access_token,
            tokens.refresh_token,
            tokens.expires_at,
        )
        self._pending.discard(user_id, connector_name)
        logger.info("Link-token connected: user=%s connector=%s", user_id, connector_name)

    # ── Status ──────────────────────────────────────────────────────────

    async def get_connector_status(self, connector_name: str, user_id: str) -> ConnectionStatus:
        connector = self._registry.get_connector(connector_name)
        pending = self._pending.is_pending(user_id, connector_name)
        try:
            await self._tokens.get_valid_credential(user_id, connector_name)
        except AuthRequired:
            return ConnectionStatus(
                connector_id=connector.id,
                connector_name=connector_name,
                authorization_pending=pending,
            )
        except RefreshFailed as exc:
            return ConnectionStatus(
                connector_id=connector.id,
                connector_name=connector_name,
                is_connected=True,
                authorization_pending=pending,
                error=exc.message,
            )
        return ConnectionStatus(
            connector_id=connector.id,
            connector_name=connector_name,
            is_connected=True,
            is_authenticated=True,
            authorization_pending=pending,
        )

    async def list_activated(self, user_id: str) -> List[ConnectionStatus]:
        """Status of every registered connector, in registration order."""
        return [
            await self.get_connector_status(connector.name, user_id)
            for connector in self._registry.list_connectors()
        ]

    async def disconnect(self, connector_name: str, user_id: str) -> bool:
        self._registry.get_connector(connector_name)
        self._pending.discard(user_id, connector_name)
        removed = await self._tokens.revoke(user_id, connector_name)
        logger.info("Disconnected %s for user %s (removed=%s)", connector_name, user_id, removed)
        return removed

    # ── Tools ───────────────────────────────────────────────────────────

    def get_tool_definitions(self, connector_names: Iterable[str]) -> List[Dict[str, Any]]:
        """Function schemas grouped by connector; unknown names are left out."""
        return [
            {
                "connectorName": name,
                "functions": [d.to_function_schema() for d in definitions],
            }
            for name, definitions in self._registry.get_tool_definitions(connector_names).items()
        ]
