"""
Error taxonomy for credentials, connectors and tool dispatch.

Every error raised by the core derives from ``ConnectorHubError`` so the
HTTP layer can render them with one exception handler.  Each class carries a
stable ``code`` string that is safe to show to API clients.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ConnectorHubError(Exception):
    """Base class for every error raised by the connector core."""

    code = "INTERNAL"
    http_status = 500

    def __init__(self, message: str = "", **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


# ── Storage ─────────────────────────────────────────────────────────────


class StorageError(ConnectorHubError):
    """The credential store is unavailable or rejected a write.

    Fatal for the current call and never retried automatically.
    """

    code = "STORAGE_ERROR"
    http_status = 503


class CredentialNotFound(ConnectorHubError, KeyError):
    code = "CREDENTIAL_NOT_FOUND"
    http_status = 404

    def __str__(self) -> str:
        return self.message


# ── Credentials ─────────────────────────────────────────────────────────


class AuthRequired(ConnectorHubError):
    """The user never authorized this provider.  Remedy: start authorization."""

    code = "AUTH_REQUIRED"
    http_status = 401

    def __init__(self, user_id: str, provider: str) -> None:
        super().__init__(
            f"No credentials for '{provider}'. User must authorize first.",
            user_id=user_id,
            provider=provider,
        )
        self.user_id = user_id
        self.provider = provider


class RefreshFailed(ConnectorHubError):
    """A grant exists but could not be refreshed.  Remedy: re-authorize."""

    code = "REAUTH_REQUIRED"
    http_status = 401

    def __init__(self, user_id: str, provider: str, reason: str = "") -> None:
        super().__init__(
            f"Credentials for '{provider}' could not be refreshed: {reason or 'no refresh token'}",
            user_id=user_id,
            provider=provider,
        )
        self.user_id = user_id
        self.provider = provider
        self.reason = reason


class AuthorizationError(ConnectorHubError):
    """The authorization-code (or public-token) exchange could not complete."""

    code = "AUTHORIZATION_FAILED"
    http_status = 400


# ── Registry / providers ────────────────────────────────────────────────


class UnknownConnector(ConnectorHubError, KeyError):
    code = "UNKNOWN_CONNECTOR"
    http_status = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Connector '{name}' not found", connector=name)
        self.name = name

    def __str__(self) -> str:
        return self.message


class ProviderError(ConnectorHubError):
    """A third-party API call failed (network, rate limit, 4xx/5xx, timeout)."""

    code = "PROVIDER_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message, status=status, provider_code=code, retryable=retryable)
        self.status = status
        self.provider_code = code
        self.retryable = retryable

    @property
    def is_timeout(self) -> bool:
        return self.provider_code == "timeout"


# ── Dispatch ────────────────────────────────────────────────────────────


class DispatchErrorKind(str, Enum):
    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    SCHEMA_VIOLATION = "SCHEMA_VIOLATION"


_DISPATCH_HTTP_STATUS = {
    DispatchErrorKind.UNKNOWN_TOOL: 404,
    DispatchErrorKind.INVALID_ARGUMENTS: 422,
    DispatchErrorKind.NOT_AUTHENTICATED: 401,
    DispatchErrorKind.PROVIDER_ERROR: 502,
    DispatchErrorKind.SCHEMA_VIOLATION: 500,
}


class DispatchError(ConnectorHubError):
    """A tool call could not be completed.

    ``kind`` tells the caller which remedy applies; ``fields`` names the
    offending argument or response paths for ``INVALID_ARGUMENTS`` and
    ``SCHEMA_VIOLATION``.
    """

    def __init__(
        self,
        kind: DispatchErrorKind,
        message: str,
        *,
        connector: str = "",
        function: str = "",
        fields: Optional[List[str]] = None,
        status: Optional[int] = None,
        provider_code: Optional[str] = None,
        retryable: bool = False,
        reauth: bool = False,
    ) -> None:
        super().__init__(message, connector=connector, function=function)
        self.kind = kind
        self.connector = connector
        self.function = function
        self.fields = fields or []
        self.status = status
        self.provider_code = provider_code
        self.retryable = retryable
        self.reauth = reauth

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind.value

    @property
    def http_status(self) -> int:  # type: ignore[override]
        return _DISPATCH_HTTP_STATUS[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.kind == DispatchErrorKind.SCHEMA_VIOLATION:
            body["error"] = "The service returned an unexpected response."
        if self.fields and self.kind == DispatchErrorKind.INVALID_ARGUMENTS:
            body["fields"] = self.fields
        if self.kind == DispatchErrorKind.PROVIDER_ERROR:
            body["status"] = self.status
            body["retryable"] = self.retryable
        if self.reauth:
            body["connector"] = self.connector
            body["reauth_required"] = True
        return body
