"""
HTTP-level tests for the connector and chat routes.
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from connectors.errors import AuthorizationError, AuthRequired, StorageError
from connectors.manager import ConnectorManager
from connectors.registry import build_default_registry
from connectors.state import PendingAuthorizations, StateSigner
from core.services import Services
from main import create_app
from utils.schemas import ChatReply

API_KEY = {"x-api-key": "test-key"}


def _not_authorized(user_id, provider):
    raise AuthRequired(user_id, provider)


@pytest.fixture
def services(settings):
    registry = build_default_registry(settings)
    tokens = MagicMock()
    tokens.get_valid_credential = AsyncMock(side_effect=_not_authorized)
    tokens.revoke = AsyncMock(return_value=True)
    tokens.store_initial_grant = AsyncMock()
    manager = ConnectorManager(registry, tokens, StateSigner("secret"), PendingAuthorizations())
    return Services(
        settings=settings,
        http=MagicMock(),
        registry=registry,
        store=MagicMock(),
        tokens=tokens,
        manager=manager,
        dispatcher=MagicMock(),
        agent=MagicMock(),
    )


@pytest.fixture
def client(settings, services):
    return TestClient(create_app(settings, services))


class TestConnectorRoutes:
    def test_providers_is_public(self, client):
        response = client.get("/api/connectors/providers")
        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["google-sheets", "google-docs", "google-drive", "plaid"]

    def test_auth_requires_api_key(self, client):
        response = client.post("/api/connectors/auth", json={"connectorName": "google-docs", "userId": "u1"})
        assert response.status_code == 401

        response = client.post(
            "/api/connectors/auth",
            json={"connectorName": "google-docs", "userId": "u1"},
            headers={"x-api-key": "wrong"},
        )
        assert response.status_code == 401

    def test_auth_returns_google_url(self, client):
        response = client.post(
            "/api/connectors/auth",
            json={"connectorName": "google-docs", "userId": "u1"},
            headers=API_KEY,
        )
        assert response.status_code == 200
        assert response.json()["url"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")

    def test_auth_unknown_connector(self, client):
        response = client.post(
            "/api/connectors/auth",
            json={"connectorName": "dropbox", "userId": "u1"},
            headers=API_KEY,
        )
        assert response.status_code == 404
        assert response.json()["code"] == "UNKNOWN_CONNECTOR"

    def test_callback_success_redirects_to_app(self, client, services):
        with patch.object(services.manager, "complete_authorization", AsyncMock(return_value="u1")):
            response = client.get(
                "/api/connectors/callback",
                params={"code": "c", "state": "s"},
                follow_redirects=False,
            )
        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test"

    @pytest.mark.parametrize(
        "params, reason",
        [
            ({"error": "access_denied"}, "provider_access_denied"),
            ({"code": "c"}, "missing_params"),
        ],
    )
    def test_callback_without_code(self, client, params, reason):
        response = client.get("/api/connectors/callback", params=params, follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == f"http://app.test/dashboard?error={reason}"

    @pytest.mark.parametrize(
        "error, reason",
        [
            (AuthorizationError("bad state"), "auth_failed"),
            (StorageError("db down"), "tokens_not_stored"),
        ],
    )
    def test_callback_failures(self, client, services, error, reason):
        with patch.object(services.manager, "complete_authorization", AsyncMock(side_effect=error)):
            response = client.get(
                "/api/connectors/callback",
                params={"code": "c", "state": "s"},
                follow_redirects=False,
            )
        assert response.headers["location"] == f"http://app.test/dashboard?error={reason}"

    def test_callback_with_non_ascii_state(self, client):
        response = client.get(
            "/api/connectors/callback",
            params={"code": "c", "state": "eyJhIjoxfQ==.é"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert response.headers["location"] == "http://app.test/dashboard?error=auth_failed"

    def test_exchange_token(self, client, services):
        with patch.object(services.manager, "exchange_public_token", AsyncMock()) as exchange:
            response = client.post(
                "/api/connectors/exchange-token",
                json={"connectorName": "plaid", "userId": "u1", "publicToken": "public-sandbox"},
                headers=API_KEY,
            )
        assert response.json() == {"success": True}
        exchange.assert_awaited_once_with("plaid", "u1", "public-sandbox")

    def test_function_schemas(self, client):
        response = client.post(
            "/api/connectors/list/func-schema",
            json={"connectorNames": ["google-sheets", "dropbox"]},
            headers=API_KEY,
        )
        groups = response.json()["functionSchemas"]
        assert [g["connectorName"] for g in groups] == ["google-sheets"]
        read = groups[0]["functions"][0]
        assert read["name"] == "readSheet"
        assert read["responseSchema"]["json_schema"]["strict"] is True

    def test_list_with_user(self, client):
        response = client.get("/api/connectors/list", params={"user_id": "u1"}, headers=API_KEY)
        body = response.json()
        assert len(body["connectors"]) == 4
        assert all(c["is_connected"] is False for c in body["connectors"])
        assert body["activatedConnectors"] == []

    def test_disconnect(self, client, services):
        response = client.delete("/api/connectors/google-drive", params={"user_id": "u1"}, headers=API_KEY)
        assert response.json() == {"status": "disconnected", "connector": "google-drive"}
        services.tokens.revoke.assert_awaited_once_with("u1", "google-drive")


class TestApiRoutes:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.json()["status"] == "ok"

    def test_chat(self, client, services):
        services.agent.chat = AsyncMock(return_value=ChatReply(content="hi", reauth_required=["plaid"]))
        response = client.post(
            "/api/ai/chat",
            json={"userId": "u1", "messages": [{"role": "user", "content": "hello"}], "connectorNames": ["plaid"]},
            headers=API_KEY,
        )
        assert response.status_code == 200
        assert response.json()["reauth_required"] == ["plaid"]
        services.agent.chat.assert_awaited_once()

    def test_chat_requires_messages(self, client):
        response = client.post("/api/ai/chat", json={"userId": "u1", "messages": []}, headers=API_KEY)
        assert response.status_code == 422
