"""
ConnectorRegistry — read-only catalog of connectors and their tools.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import httpx

from config.settings import Settings
from config.tool_catalog import ToolCatalog
from connectors.base import BaseConnector
from connectors.errors import UnknownConnector
from connectors.google_docs import GoogleDocsConnector
from connectors.google_drive import GoogleDriveConnector
from connectors.google_sheets import GoogleSheetsConnector
from connectors.plaid import PlaidConnector
from connectors.schema import ToolDefinition

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Registry of connectors keyed by name, in registration order."""

    def __init__(self, connectors: Iterable[BaseConnector] = ()) -> None:
        self._connectors: Dict[str, BaseConnector] = {}
        for connector in connectors:
            self.register(connector)

    def register(self, connector: BaseConnector) -> None:
        if connector.name in self._connectors:
            raise ValueError(f"Connector '{connector.name}' is already registered")
        self._connectors[connector.name] = connector
        if connector.is_configured():
            logger.info("Connector registered: %s (%s)", connector.display_name, connector.name)
        else:
            logger.warning(
                "Connector %s registered but not configured (missing client_id/secret)",
                connector.name,
            )

    def get_connector(self, name: str) -> BaseConnector:
        try:
            return self._connectors[name]
        except KeyError:
            raise UnknownConnector(name) from None

    def has_connector(self, name: str) -> bool:
        return name in self._connectors

    def list_connectors(self) -> List[BaseConnector]:
        return list(self._connectors.values())

    def get_tool(self, connector_name: str, function_name: str) -> Optional[ToolDefinition]:
        connector = self._connectors.get(connector_name)
        if connector is None:
            return None
        return connector.get_tool(function_name)

    def get_tool_definitions(self, names: Iterable[str]) -> Dict[str, List[ToolDefinition]]:
        """Definitions for each known name; unknown names are left out."""
        return {
            name: self._connectors[name].tool_definitions
            for name in names
            if name in self._connectors
        }

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all available connectors."""
        return [c.metadata() for c in self._connectors.values()]


def build_default_registry(
    settings: Settings,
    *,
    catalog: Optional[ToolCatalog] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> ConnectorRegistry:
    """Google Sheets, Google Docs, Google Drive and Plaid, with tools from the catalog."""
    catalog = catalog or ToolCatalog()
    return ConnectorRegistry(
        [
            GoogleSheetsConnector(settings, catalog.get_tool_definitions("google-sheets"), http=http),
            GoogleDocsConnector(settings, catalog.get_tool_definitions("google-docs"), http=http),
            GoogleDriveConnector(settings, catalog.get_tool_definitions("google-drive"), http=http),
            PlaidConnector(settings, catalog.get_tool_definitions("plaid"), http=http),
        ]
    )
