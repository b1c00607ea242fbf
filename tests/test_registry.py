"""
Tests for the connector registry and the YAML tool catalog.
"""

import pytest

from config.tool_catalog import ToolCatalog
from connectors.errors import UnknownConnector
from connectors.registry import ConnectorRegistry, build_default_registry
from fakes import FETCH_TOOL, EchoConnector


class TestToolCatalog:
    def setup_method(self):
        self.catalog = ToolCatalog()

    def test_lists_all_connectors(self):
        assert self.catalog.list_connector_names() == [
            "google-sheets",
            "google-docs",
            "google-drive",
            "plaid",
        ]

    def test_definitions_in_catalog_order(self):
        names = [d.function_name for d in self.catalog.get_tool_definitions("google-sheets")]
        assert names == ["readSheet", "updateSheet", "createSheet", "batchUpdate"]

    def test_unknown_connector(self):
        with pytest.raises(ValueError):
            self.catalog.get_connector_entry("dropbox")

    def test_read_tools_are_idempotent(self):
        drive = {d.function_name: d for d in self.catalog.get_tool_definitions("google-drive")}
        assert drive["listFiles"].idempotent is True
        assert drive["readFile"].idempotent is True
        assert drive["deleteFile"].idempotent is False


class TestDefaultRegistry:
    def test_registration_order_and_tools(self, settings):
        registry = build_default_registry(settings)

        assert [c.name for c in registry.list_connectors()] == [
            "google-sheets",
            "google-docs",
            "google-drive",
            "plaid",
        ]
        assert registry.get_tool("plaid", "intiatePayment") is not None
        assert registry.get_tool("google-docs", "readDocument") is not None

    def test_unknown_names_are_omitted(self, settings):
        registry = build_default_registry(settings)

        result = registry.get_tool_definitions(["google-sheets", "dropbox", "plaid"])

        assert list(result.keys()) == ["google-sheets", "plaid"]

    def test_every_connector_reports_configured(self, settings):
        providers = build_default_registry(settings).list_providers()
        assert all(p["configured"] for p in providers)
        assert [p["link_token"] for p in providers] == [False, False, False, True]

    def test_unconfigured_without_credentials(self, settings):
        bare = settings.model_copy(update={"google_client_id": "", "plaid_secret": ""})
        registry = build_default_registry(bare)
        assert registry.get_connector("google-drive").is_configured() is False
        assert registry.get_connector("plaid").is_configured() is False

    def test_connector_ids_are_stable(self, settings):
        first = build_default_registry(settings).get_connector("plaid").id
        second = build_default_registry(settings).get_connector("plaid").id
        assert first == second


class TestConnectorRegistry:
    def test_duplicate_name_rejected(self):
        registry = ConnectorRegistry([EchoConnector()])
        with pytest.raises(ValueError):
            registry.register(EchoConnector())

    def test_unknown_connector_raises(self):
        registry = ConnectorRegistry()
        with pytest.raises(UnknownConnector):
            registry.get_connector("echo")
        assert registry.get_tool("echo", "lookup") is None

    def test_unknown_function(self):
        registry = ConnectorRegistry([EchoConnector()])
        assert registry.get_tool("echo", "missing") is None
        assert registry.has_connector("echo") is True

    def test_duplicate_function_rejected(self):
        with pytest.raises(ValueError):
            EchoConnector(definitions=[FETCH_TOOL, FETCH_TOOL])

    def test_definition_without_handler_rejected(self):
        orphan = {**FETCH_TOOL, "name": "orphan"}
        with pytest.raises(ValueError):
            EchoConnector(definitions=[orphan])
