"""
Tests for provider error mapping, the retrying request helper and the
Google / Plaid authorization clients.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from connectors.errors import ProviderError
from connectors.google import GoogleOAuth
from connectors.http import ProviderClient, raise_for_provider
from connectors.plaid import PlaidClient


def _mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRaiseForProvider:
    def test_success_passes(self):
        raise_for_provider(httpx.Response(200, json={}), "google")

    def test_google_error_status(self):
        response = httpx.Response(403, json={"error": {"status": "PERMISSION_DENIED", "message": "No access"}})
        with pytest.raises(ProviderError) as exc_info:
            raise_for_provider(response, "google")
        assert exc_info.value.provider_code == "PERMISSION_DENIED"
        assert exc_info.value.status == 403
        assert exc_info.value.retryable is False
        assert "No access" in exc_info.value.message

    def test_plaid_error_code(self):
        response = httpx.Response(400, json={"error_code": "ITEM_LOGIN_REQUIRED", "error_message": "relink"})
        with pytest.raises(ProviderError) as exc_info:
            raise_for_provider(response, "plaid")
        assert exc_info.value.provider_code == "ITEM_LOGIN_REQUIRED"

    def test_oauth_error_string(self):
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})
        with pytest.raises(ProviderError) as exc_info:
            raise_for_provider(response)
        assert exc_info.value.provider_code == "invalid_grant"

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_retryable_statuses(self, status):
        with pytest.raises(ProviderError) as exc_info:
            raise_for_provider(httpx.Response(status, text="busy"))
        assert exc_info.value.retryable is True
        assert exc_info.value.provider_code == f"http_{status}"


class TestProviderClient:
    @pytest.mark.asyncio
    async def test_bearer_header_sent(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"ok": True})

        async with _mock_client(handler) as http:
            client = ProviderClient(http, "tok", provider="google")
            assert await client.get_json("https://api.example.test/x") == {"ok": True}
        assert seen["auth"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_no_bearer_when_disabled(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={})

        async with _mock_client(handler) as http:
            await ProviderClient(http, "tok", bearer=False).post_json("https://api.example.test/x", json={})
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_idempotent_call_retried_once_after_timeout(self):
        hits = []

        def handler(request):
            hits.append(request)
            if len(hits) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={"ok": True})

        async with _mock_client(handler) as http:
            client = ProviderClient(http, "tok", idempotent=True)
            assert await client.get_json("https://api.example.test/x") == {"ok": True}
        assert client.attempts == 2

    @pytest.mark.asyncio
    async def test_retry_happens_at_most_once(self):
        def handler(request):
            return httpx.Response(503, json={})

        async with _mock_client(handler) as http:
            client = ProviderClient(http, "tok", idempotent=True)
            with pytest.raises(ProviderError):
                await client.get_json("https://api.example.test/x")
        assert client.attempts == 2

    @pytest.mark.asyncio
    async def test_non_idempotent_not_retried(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _mock_client(handler) as http:
            client = ProviderClient(http, "tok", idempotent=False)
            with pytest.raises(ProviderError) as exc_info:
                await client.post_json("https://api.example.test/x", json={})
        assert exc_info.value.provider_code == "network_error"
        assert client.attempts == 1

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"status": "NOT_FOUND", "message": "gone"}})

        async with _mock_client(handler) as http:
            client = ProviderClient(http, "tok", idempotent=True)
            with pytest.raises(ProviderError):
                await client.get_json("https://api.example.test/x")
        assert client.attempts == 1


class TestGoogleOAuth:
    def test_auth_url_requests_offline_access(self, settings):
        url = GoogleOAuth("google-sheets", settings).get_auth_url("signed-state")
        query = parse_qs(urlparse(url).query)

        assert query["state"] == ["signed-state"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["redirect_uri"] == ["http://api.test/api/connectors/callback"]
        assert "https://www.googleapis.com/auth/spreadsheets" in query["scope"][0].split()

    @pytest.mark.asyncio
    async def test_exchange_code(self, settings):
        def handler(request):
            form = parse_qs(request.content.decode())
            assert form["grant_type"] == ["authorization_code"]
            assert form["code"] == ["abc"]
            return httpx.Response(
                200,
                json={"access_token": "ya29.a", "refresh_token": "1//r", "expires_in": 3599, "scope": "a b"},
            )

        async with _mock_client(handler) as http:
            tokens = await GoogleOAuth("google-docs", settings, http=http).exchange_code("abc")

        assert tokens.access_token == "ya29.a"
        assert tokens.refresh_token == "1//r"
        assert tokens.expires_at is not None
        assert tokens.scopes == ["a", "b"]

    @pytest.mark.asyncio
    async def test_revoked_refresh_token(self, settings):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."})

        async with _mock_client(handler) as http:
            with pytest.raises(ProviderError) as exc_info:
                await GoogleOAuth("google-docs", settings, http=http).refresh("1//r")
        assert exc_info.value.provider_code == "invalid_grant"

    @pytest.mark.asyncio
    async def test_non_json_token_response(self, settings):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with _mock_client(handler) as http:
            with pytest.raises(ProviderError) as exc_info:
                await GoogleOAuth("google-docs", settings, http=http).refresh("1//r")
        assert exc_info.value.provider_code == "invalid_response"

    def test_not_configured_without_client_id(self, settings):
        bare = settings.model_copy(update={"google_client_id": ""})
        assert GoogleOAuth("google-drive", bare).is_configured() is False


class TestPlaidClient:
    @pytest.mark.asyncio
    async def test_public_token_exchange(self, settings):
        def handler(request):
            assert request.url.path == "/item/public_token/exchange"
            assert request.headers["PLAID-CLIENT-ID"] == "plaid-client"
            return httpx.Response(200, json={"access_token": "access-sandbox-1", "item_id": "item"})

        async with _mock_client(handler) as http:
            tokens = await PlaidClient(settings, http=http).exchange_code("public-sandbox-1")

        assert tokens.access_token == "access-sandbox-1"
        assert tokens.refresh_token is None
        assert tokens.expires_at is not None

    @pytest.mark.asyncio
    async def test_refresh_not_supported(self, settings):
        with pytest.raises(ProviderError) as exc_info:
            await PlaidClient(settings).refresh("anything")
        assert exc_info.value.provider_code == "not_refreshable"

    def test_link_token_request_for_payment(self, settings):
        body = PlaidClient(settings).link_token_request("user-1", payment_id="pay-1")
        assert body["products"] == ["payment_initiation"]
        assert body["payment_initiation"] == {"payment_id": "pay-1"}
        assert body["user"] == {"client_user_id": "user-1"}
