"""
Centralised service wiring.

Every request handler reaches the core through one ``Services`` object
stored on ``app.state``; ``build_services`` is the only place that knows
how the pieces fit together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import Settings
from connectors.credential_store import CredentialStore
from connectors.encryption import TokenCipher
from connectors.manager import ConnectorManager
from connectors.registry import ConnectorRegistry, build_default_registry
from connectors.state import PendingAuthorizations, StateSigner
from connectors.token_manager import TokenLifecycleManager
from core.agent_service import AgentService
from core.tool_dispatcher import ToolDispatcher
from utils.llm_providers import BaseLLMProvider


@dataclass
class Services:
    settings: Settings
    http: httpx.AsyncClient
    registry: ConnectorRegistry
    store: CredentialStore
    tokens: TokenLifecycleManager
    manager: ConnectorManager
    dispatcher: ToolDispatcher
    agent: AgentService

    async def aclose(self) -> None:
        await self.http.aclose()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    http: Optional[httpx.AsyncClient] = None,
    registry: Optional[ConnectorRegistry] = None,
    llm: Optional[BaseLLMProvider] = None,
) -> Services:
    """
    Construct the full object graph.

    ``http`` is shared by OAuth clients and tool calls; tests pass one
    backed by ``httpx.MockTransport``.
    """
    http = http or httpx.AsyncClient(timeout=httpx.Timeout(settings.provider_timeout_seconds))
    registry = registry or build_default_registry(settings, http=http)

    store = CredentialStore(session_factory, TokenCipher(settings.token_encryption_key or None))
    tokens = TokenLifecycleManager(
        store,
        {connector.name: connector.oauth for connector in registry.list_connectors()},
        refresh_timeout=settings.provider_timeout_seconds,
    )
    manager = ConnectorManager(
        registry,
        tokens,
        StateSigner(settings.oauth_state_secret, settings.oauth_state_ttl_seconds),
        PendingAuthorizations(settings.oauth_state_ttl_seconds),
    )
    dispatcher = ToolDispatcher(registry, tokens, http, timeout=settings.provider_timeout_seconds)
    agent = AgentService(
        registry,
        dispatcher,
        llm,
        provider_name=settings.agent_model_provider,
        model=settings.agent_model,
        temperature=settings.agent_temperature,
        max_tool_rounds=settings.agent_max_tool_rounds,
    )
    return Services(
        settings=settings,
        http=http,
        registry=registry,
        store=store,
        tokens=tokens,
        manager=manager,
        dispatcher=dispatcher,
        agent=agent,
    )
