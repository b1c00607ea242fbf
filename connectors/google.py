"""
Google OAuth2 web flow and the base class shared by the Google Sheets,
Docs and Drive connectors.

Each connector requests its own scope set, so each one holds its own grant.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from connectors.base import BaseConnector
from connectors.errors import ProviderError
from connectors.http import ProviderClient, raise_for_provider, response_json
from connectors.oauth import OAuthProvider
from connectors.schema import ToolDefinition
from utils.schemas import OAuthTokens, utcnow

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

# REST bases used by the connectors
SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
DOCS_API = "https://docs.googleapis.com/v1/documents"
DRIVE_API = "https://www.googleapis.com/drive/v3/files"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3/files"

GOOGLE_SCOPES: Dict[str, List[str]] = {
    "google-drive": ["https://www.googleapis.com/auth/drive"],
    "google-sheets": [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive",
    ],
    "google-docs": [
        "https://www.googleapis.com/auth/drive",
        "https://www.googleapis.com/auth/documents",
    ],
}


def _to_tokens(data: Dict[str, Any]) -> OAuthTokens:
    if not data.get("access_token"):
        raise ProviderError("No access token received from Google", code="invalid_response")
    expires_in = data.get("expires_in")
    return OAuthTokens(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
        scopes=data.get("scope", "").split(),
    )


class GoogleOAuth(OAuthProvider):
    """OAuth2 client for one Google connector's scope set."""

    def __init__(
        self,
        connector_name: str,
        settings: Settings,
        *,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(http=http, timeout=settings.provider_timeout_seconds)
        self._connector_name = connector_name
        self._settings = settings

    @property
    def scopes(self) -> List[str]:
        return GOOGLE_SCOPES[self._connector_name]

    def is_configured(self) -> bool:
        return bool(self._settings.google_client_id and self._settings.google_client_secret)

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": self._settings.google_client_id,
            "redirect_uri": self._settings.oauth_callback_url,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                resp = await client.post(_GOOGLE_TOKEN_URL, data=data)
        except httpx.TimeoutException as exc:
            raise ProviderError("Google token endpoint timed out", code="timeout", retryable=True) from exc
        except httpx.TransportError as exc:
            raise ProviderError(f"Google token endpoint unreachable: {exc}", code="network_error", retryable=True) from exc
        raise_for_provider(resp, "google")
        return response_json(resp, "google")

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Exchange auth code for tokens."""
        data = await self._token_request(
            {
                "code": code,
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "redirect_uri": self._settings.oauth_callback_url,
                "grant_type": "authorization_code",
            }
        )
        return _to_tokens(data)

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """Use refresh token to get a new access token."""
        data = await self._token_request(
            {
                "client_id": self._settings.google_client_id,
                "client_secret": self._settings.google_client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            }
        )
        return _to_tokens(data)

    async def revoke(self, token: str) -> bool:
        """Revoke the token at Google."""
        try:
            async with self._client() as client:
                resp = await client.post(_GOOGLE_REVOKE_URL, params={"token": token})
        except httpx.HTTPError as exc:
            logger.warning("Google revoke failed for %s: %s", self._connector_name, exc)
            return False
        return resp.status_code == 200


class GoogleConnector(BaseConnector):
    """Base for connectors that authorize through Google OAuth."""

    def __init__(
        self,
        settings: Settings,
        tool_definitions: List[ToolDefinition],
        *,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._oauth = GoogleOAuth(self.name, settings, http=http)
        super().__init__(tool_definitions)

    @property
    def oauth(self) -> GoogleOAuth:
        return self._oauth


async def move_to_folder(client: ProviderClient, file_id: str, folder_id: str) -> List[str]:
    """Re-parent a Drive file, returning its new parents."""
    current = await client.get_json(f"{DRIVE_API}/{file_id}", params={"fields": "parents"})
    moved = await client.patch_json(
        f"{DRIVE_API}/{file_id}",
        params={
            "addParents": folder_id,
            "removeParents": ",".join(current.get("parents", [])),
            "fields": "id, parents",
        },
        json={},
    )
    return moved.get("parents", [])
