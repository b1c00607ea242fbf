"""
Pydantic schemas for credentials, connection state, tool results and the
HTTP API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Credentials
# ═══════════════════════════════════════════════════════════════════════════════


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class Credential(BaseModel):
    """One stored token.  A refresh replaces the whole record."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    provider: str
    token_kind: TokenKind
    token_value: str = Field(..., repr=False)
    issued_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        """No expiry means never expired; otherwise expired at ``expires_at`` itself."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class TokenPair(BaseModel):
    """What callers get back from the token manager."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    expires_at: Optional[datetime] = None


class OAuthTokens(BaseModel):
    """Normalised result of a code exchange or a refresh at the provider."""

    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(None, repr=False)
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# Connection state
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectionStatus(BaseModel):
    connector_id: str
    connector_name: str
    is_connected: bool = False
    is_authenticated: bool = False
    authorization_pending: bool = False
    error: Optional[str] = None


class ConnectResult(BaseModel):
    """Either a redirect URL or, for link-token providers, a client-side token."""

    connector_name: str
    auth_url: Optional[str] = None
    link_token: Optional[str] = None
    immediate: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# Tool calls
# ═══════════════════════════════════════════════════════════════════════════════


class ToolCall(BaseModel):
    """A structured tool-call request produced by the language model."""

    id: str = ""
    connector_name: str
    function_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    # Set when the model's arguments could not be read as a JSON object
    arguments_error: Optional[str] = None


class ToolResult(BaseModel):
    connector_name: str
    function_name: str
    data: Any = None
    attempts: int = 1
    time_taken_ms: int = 0


class ChatMessage(BaseModel):
    role: str
    content: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)


class LLMResponse(BaseModel):
    """Opaque model turn: a final answer, or tool calls to run first."""

    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class ChatReply(BaseModel):
    content: str
    role: str = "assistant"
    tool_results: List[Dict[str, Any]] = Field(default_factory=list)
    reauth_required: List[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP API
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectorAuthRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connector_name: str = Field(..., alias="connectorName")
    user_id: str = Field(..., alias="userId")


class TokenExchangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connector_name: str = Field(..., alias="connectorName")
    user_id: str = Field(..., alias="userId")
    public_token: str = Field(..., alias="publicToken", repr=False)


class FunctionSchemaRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connector_names: List[str] = Field(default_factory=list, alias="connectorNames")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    messages: List[ChatMessage] = Field(..., min_length=1)
    connector_names: List[str] = Field(default_factory=list, alias="connectorNames")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
