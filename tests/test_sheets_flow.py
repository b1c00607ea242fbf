"""
End-to-end: authorize Google Sheets, read a range, and refresh the token
once it expires, against a mocked Google.
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from connectors.errors import DispatchError, DispatchErrorKind
from core.services import build_services
from utils.schemas import TokenKind


class FakeGoogle:
    def __init__(self, code_expires_in=3600):
        self.code_expires_in = code_expires_in
        self.token_requests = []
        self.api_requests = []
        self.issued = 0

    def __call__(self, request):
        if request.url.host == "oauth2.googleapis.com":
            form = parse_qs(request.content.decode())
            self.token_requests.append(form)
            self.issued += 1
            body = {"access_token": f"ya29.{self.issued}", "expires_in": 3600, "scope": "spreadsheets"}
            if form["grant_type"] == ["authorization_code"]:
                body["refresh_token"] = "1//refresh"
                body["expires_in"] = self.code_expires_in
            return httpx.Response(200, json=body)

        if request.url.host == "sheets.googleapis.com":
            self.api_requests.append(request)
            return httpx.Response(
                200,
                json={
                    "range": "Sheet1!A1:B2",
                    "majorDimension": "ROWS",
                    "values": [["name", "qty"], ["apples", 3]],
                },
            )

        return httpx.Response(404, json={"error": {"status": "NOT_FOUND", "message": "unexpected"}})


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def services(settings, session_factory, google):
    return build_services(
        settings,
        session_factory,
        http=httpx.AsyncClient(transport=httpx.MockTransport(google)),
    )


async def _authorize(services, user_id="user-1"):
    result = await services.manager.connect("google-sheets", user_id)
    state = parse_qs(urlparse(result.auth_url).query)["state"][0]
    return await services.manager.complete_authorization("auth-code", state, "google-sheets")


class TestSheetsFlow:
    @pytest.mark.asyncio
    async def test_read_sheet_after_authorization(self, services, google):
        assert await _authorize(services) == "user-1"

        result = await services.dispatcher.dispatch(
            "google-sheets", "readSheet", {"spreadsheetId": "sheet-1", "range": "Sheet1!A1:B2"}, "user-1"
        )

        assert result.data == {
            "values": [["name", "qty"], ["apples", "3"]],
            "metadata": {"range": "Sheet1!A1:B2", "totalRows": 2, "totalColumns": 2},
        }
        request = google.api_requests[0]
        assert request.headers["authorization"] == "Bearer ya29.1"
        assert request.url.path.startswith("/v4/spreadsheets/sheet-1/values/")
        await services.aclose()

    @pytest.mark.asyncio
    async def test_read_before_authorization(self, services, google):
        with pytest.raises(DispatchError) as exc_info:
            await services.dispatcher.dispatch(
                "google-sheets", "readSheet", {"spreadsheetId": "sheet-1", "range": "A1"}, "user-1"
            )
        assert exc_info.value.kind == DispatchErrorKind.NOT_AUTHENTICATED
        assert google.api_requests == []
        await services.aclose()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_before_call(self, services, google):
        google.code_expires_in = -60
        await _authorize(services)

        await services.dispatcher.dispatch(
            "google-sheets", "readSheet", {"spreadsheetId": "sheet-1", "range": "A1:B2"}, "user-1"
        )

        assert [form["grant_type"] for form in google.token_requests] == [
            ["authorization_code"],
            ["refresh_token"],
        ]
        assert google.token_requests[1]["refresh_token"] == ["1//refresh"]
        assert google.api_requests[0].headers["authorization"] == "Bearer ya29.2"
        refresh = await services.store.get("user-1", "google-sheets", TokenKind.REFRESH)
        assert refresh.token_value == "1//refresh"
        await services.aclose()
