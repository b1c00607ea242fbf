"""
REST API routes — chat and health.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.dependencies import get_services, require_api_key
from core.services import Services
from utils.schemas import ChatReply, ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ai/chat", dependencies=[Depends(require_api_key)])
async def chat(
    request: ChatRequest,
    services: Services = Depends(get_services),
) -> ChatReply:
    """One chat turn; the model may use tools of the selected connectors."""
    reply = await services.agent.chat(
        request.user_id,
        request.messages,
        request.connector_names,
        request.system_prompt,
    )
    if reply.reauth_required:
        logger.info("Chat for %s needs re-authorization of %s", request.user_id, reply.reauth_required)
    return reply


@router.get("/health")
async def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {
        "status": "ok",
        "connectors": [c.name for c in services.registry.list_connectors()],
    }
