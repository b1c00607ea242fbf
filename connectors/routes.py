"""
Connector API routes — authorize, OAuth callback, token exchange, list,
function schemas, disconnect.

Route prefix: /api/connectors
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from api.dependencies import get_services, require_api_key
from connectors.errors import AuthorizationError, StorageError
from core.services import Services
from utils.schemas import ConnectorAuthRequest, FunctionSchemaRequest, TokenExchangeRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])


def _dashboard_error(services: Services, reason: str) -> RedirectResponse:
    return RedirectResponse(
        f"{services.settings.app_url}/dashboard?error={quote(reason)}",
        status_code=302,
    )


@router.get("/providers")
async def list_providers(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    """
    List all available connector providers and their configuration status.
    No auth required — used by frontend to show available connectors.
    """
    return services.registry.list_providers()


@router.post("/auth", dependencies=[Depends(require_api_key)])
async def authorize(
    body: ConnectorAuthRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Start authorization for a connector.

    Redirect connectors return ``{url}`` to open in a popup; Plaid returns
    ``{url: <link_token>, immediate: true}`` for Plaid Link.
    """
    result = await services.manager.connect(body.connector_name, body.user_id)
    if result.immediate:
        return {"url": result.link_token, "immediate": True}
    return {"url": result.auth_url}


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    """
    OAuth callback — the provider redirects here after consent.

    Exchanges the code, stores the grant and sends the browser back to the
    app.  Failures go to ``/dashboard?error=…``; tokens never appear in the
    response.
    """
    if error:
        logger.warning("Provider returned authorization error: %s", error)
        return _dashboard_error(services, f"provider_{error}")
    if not code or not state:
        return _dashboard_error(services, "missing_params")

    try:
        user_id = await services.manager.complete_authorization(code, state)
    except AuthorizationError as exc:
        logger.warning("OAuth callback rejected: %s", exc.message)
        return _dashboard_error(services, "auth_failed")
    except StorageError as exc:
        logger.error("OAuth callback could not store tokens: %s", exc.message)
        return _dashboard_error(services, "tokens_not_stored")

    logger.info("OAuth callback completed for user %s", user_id)
    return RedirectResponse(services.settings.app_url, status_code=302)


@router.post("/exchange-token", dependencies=[Depends(require_api_key)])
async def exchange_token(
    body: TokenExchangeRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Exchange a Plaid Link public token for a stored access credential."""
    await services.manager.exchange_public_token(body.connector_name, body.user_id, body.public_token)
    return {"success": True}


@router.post("/list/func-schema", dependencies=[Depends(require_api_key)])
async def function_schemas(
    body: FunctionSchemaRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return {"functionSchemas": services.manager.get_tool_definitions(body.connector_names)}


@router.get("/list", dependencies=[Depends(require_api_key)])
async def list_connectors(
    user_id: Optional[str] = Query(None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """All connectors, enriched with the user's connection status when ``user_id`` is given."""
    connectors = services.registry.list_providers()
    if not user_id:
        return {"connectors": connectors, "activatedConnectors": []}

    statuses = {s.connector_name: s for s in await services.manager.list_activated(user_id)}
    enriched = [
        {
            **c,
            "is_connected": statuses[c["name"]].is_connected,
            "is_authenticated": statuses[c["name"]].is_authenticated,
            "authorization_pending": statuses[c["name"]].authorization_pending,
        }
        for c in connectors
    ]
    activated = [s.model_dump() for s in statuses.values() if s.is_connected]
    return {"connectors": enriched, "activatedConnectors": activated}


@router.delete("/{connector_name}", dependencies=[Depends(require_api_key)])
async def disconnect(
    connector_name: str,
    user_id: str = Query(...),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Revoke and delete a user's grant for one connector."""
    removed = await services.manager.disconnect(connector_name, user_id)
    return {"status": "disconnected" if removed else "not_connected", "connector": connector_name}
