"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request, status

from core.services import Services


def get_services(request: Request) -> Services:
    """The service container built at startup."""
    return request.app.state.services


async def require_api_key(
    request: Request,
    x_api_key: str = Header("", alias="x-api-key"),
) -> None:
    """Reject requests whose ``x-api-key`` header does not match ``API_KEY``."""
    expected = get_services(request).settings.api_key
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
