"""
Provider HTTP helper — one place where third-party responses become
``ProviderError``.

Every call carries an explicit timeout.  Calls made on behalf of an
idempotent tool are retried once on a retryable failure (timeout, network
error, 429, 5xx); everything else is attempted exactly once.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from connectors.errors import ProviderError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def _error_code(response: httpx.Response) -> str:
    """Pull a provider error code out of the body, falling back to the status."""
    try:
        body = response.json()
    except ValueError:
        return f"http_{response.status_code}"
    if isinstance(body, dict):
        # Plaid: {"error_code": "..."}
        if body.get("error_code"):
            return str(body["error_code"])
        err = body.get("error")
        # Google REST: {"error": {"status": "PERMISSION_DENIED", ...}}
        if isinstance(err, dict):
            return str(err.get("status") or err.get("code") or f"http_{response.status_code}")
        # OAuth token endpoint: {"error": "invalid_grant"}
        if isinstance(err, str) and err:
            return err
    return f"http_{response.status_code}"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        for key in ("error_message", "error_description", "display_message"):
            if body.get(key):
                return str(body[key])
    return response.reason_phrase


def raise_for_provider(response: httpx.Response, provider: str = "") -> None:
    """Raise ``ProviderError`` for any non-2xx response."""
    if response.is_success:
        return
    status = response.status_code
    raise ProviderError(
        f"{provider or 'provider'} returned {status}: {_error_message(response)}",
        status=status,
        code=_error_code(response),
        retryable=status in _RETRYABLE_STATUS,
    )


def response_json(response: httpx.Response, provider: str = "") -> Any:
    """Decode a successful response body, raising ``ProviderError`` if it is not JSON."""
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderError(
            f"{provider or 'provider'} returned a non-JSON body",
            status=response.status_code,
            code="invalid_response",
        ) from exc


class ProviderClient:
    """Authenticated request helper handed to tool handlers.

    Parameters
    ----------
    http : httpx.AsyncClient
        Shared client (owned by the caller).
    access_token : str, optional
        Sent as a bearer token unless the request overrides ``Authorization``.
    timeout : float
        Per-request timeout in seconds.
    idempotent : bool
        Whether a retryable failure may be retried once.
    bearer : bool
        Send the access token as an ``Authorization`` header.  Providers that
        take the token in the request body turn this off.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        access_token: Optional[str] = None,
        *,
        provider: str = "",
        timeout: float = 20.0,
        idempotent: bool = False,
        bearer: bool = True,
        user_id: str = "",
    ) -> None:
        self._http = http
        self._access_token = access_token
        self._bearer = bearer
        self.user_id = user_id
        self._provider = provider
        self._timeout = httpx.Timeout(timeout)
        self._idempotent = idempotent
        self.attempts = 0

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    def _headers(self, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._access_token and self._bearer:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if extra:
            headers.update(extra)
        return headers

    async def _send_once(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        self.attempts += 1
        try:
            response = await self._http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                f"{self._provider or 'provider'} timed out after {self._timeout.read}s",
                code="timeout",
                retryable=True,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(
                f"{self._provider or 'provider'} unreachable: {exc}",
                code="network_error",
                retryable=True,
            ) from exc
        raise_for_provider(response, self._provider)
        return response

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged = self._headers(headers)
        try:
            return await self._send_once(method, url, headers=merged, **kwargs)
        except ProviderError as exc:
            if not (self._idempotent and exc.retryable):
                raise
            logger.warning("Retrying %s %s after %s", method, url, exc.provider_code)
        return await self._send_once(method, url, headers=merged, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.request("GET", url, **kwargs)
        return response_json(response, self._provider)

    async def post_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.request("POST", url, **kwargs)
        return response_json(response, self._provider) if response.content else {}

    async def patch_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.request("PATCH", url, **kwargs)
        return response_json(response, self._provider) if response.content else {}

    async def put_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.request("PUT", url, **kwargs)
        return response_json(response, self._provider) if response.content else {}

    async def delete(self, url: str, **kwargs: Any) -> None:
        await self.request("DELETE", url, **kwargs)
