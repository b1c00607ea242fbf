"""
ToolCatalog — loads config/tool_catalog.yaml and exposes each connector's
display metadata and tool definitions.
"""

import pathlib
from typing import Any, Dict, List

import yaml

from connectors.schema import ToolDefinition


class ToolCatalog:
    def __init__(self, catalog_path: str | None = None):
        if catalog_path is None:
            catalog_path = str(
                pathlib.Path(__file__).parent / "tool_catalog.yaml"
            )
        with open(catalog_path, "r", encoding="utf-8") as fh:
            self.catalog: Dict[str, Any] = yaml.safe_load(fh)

    def get_connector_entry(self, connector_name: str) -> Dict[str, Any]:
        if connector_name not in self.catalog["connectors"]:
            raise ValueError(f"Unknown connector in tool catalog: {connector_name}")
        return self.catalog["connectors"][connector_name]

    def get_tool_definitions(self, connector_name: str) -> List[ToolDefinition]:
        """Parsed definitions in catalog order."""
        entry = self.get_connector_entry(connector_name)
        return [ToolDefinition.from_dict(fn) for fn in entry.get("functions", [])]

    def list_connector_names(self) -> List[str]:
        return list(self.catalog["connectors"].keys())
