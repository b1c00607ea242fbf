"""
BaseConnector — abstract interface for all connectors.

A connector pairs an ``OAuthProvider`` (how a user grants access) with an
ordered list of ``ToolDefinition`` objects and one handler per definition.
Handlers are methods tagged with ``@tool("functionName")``::

    class GoogleSheetsConnector(BaseConnector):
        @tool("readSheet")
        async def read_sheet(self, client: ProviderClient, args: dict) -> dict:
            ...
"""

from __future__ import annotations

import inspect
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from connectors.http import ProviderClient
from connectors.oauth import OAuthProvider
from connectors.schema import ToolDefinition

ToolHandler = Callable[[ProviderClient, Dict[str, Any]], Awaitable[Any]]


def tool(function_name: str) -> Callable:
    """Decorator that binds a connector method to a tool definition by name."""

    def decorator(func: Callable) -> Callable:
        func.tool_name = function_name  # type: ignore[attr-defined]
        return func

    return decorator


class BaseConnector(ABC):
    """Abstract base for all connectors."""

    # False for providers that take the access token in the request body
    sends_bearer_token: bool = True

    def __init__(self, tool_definitions: List[ToolDefinition]) -> None:
        self._definitions: Dict[str, ToolDefinition] = {}
        for definition in tool_definitions:
            if definition.function_name in self._definitions:
                raise ValueError(
                    f"Duplicate function '{definition.function_name}' in connector '{self.name}'"
                )
            self._definitions[definition.function_name] = definition

        self._handlers: Dict[str, ToolHandler] = {}
        for _, method in inspect.getmembers(self, inspect.ismethod):
            tool_name = getattr(method, "tool_name", None)
            if tool_name:
                self._handlers[tool_name] = method

        missing = [name for name in self._definitions if name not in self._handlers]
        if missing:
            raise ValueError(f"Connector '{self.name}' has no handler for: {', '.join(missing)}")

    # ── Identity ────────────────────────────────────────────────────────

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique slug: 'google-sheets', 'plaid', ..."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    def description(self) -> str:
        return ""

    @property
    def icon(self) -> str:
        """Optional emoji / icon for UI."""
        return "🔗"

    @property
    def id(self) -> str:
        """Stable identifier derived from the name."""
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"connector:{self.name}"))

    @property
    @abstractmethod
    def oauth(self) -> OAuthProvider:
        ...

    # ── Tools ───────────────────────────────────────────────────────────

    @property
    def tool_definitions(self) -> List[ToolDefinition]:
        return list(self._definitions.values())

    def get_tool(self, function_name: str) -> Optional[ToolDefinition]:
        return self._definitions.get(function_name)

    async def call(self, function_name: str, arguments: Dict[str, Any], client: ProviderClient) -> Any:
        """Run the handler for ``function_name``.  Arguments are already validated."""
        handler = self._handlers.get(function_name)
        if handler is None or function_name not in self._definitions:
            raise KeyError(function_name)
        return await handler(client, arguments)

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """
        Return True if this connector has all required config
        (API keys, client IDs, etc.).
        """
        return self.oauth.is_configured()

    def metadata(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "configured": self.is_configured(),
            "link_token": self.oauth.uses_link_token,
        }
