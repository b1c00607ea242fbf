"""
AgentService — one chat turn with tool use.

The model sees the selected connectors' tools, may request tool calls, and
gets their results back as tool messages.  Tool failures are turned into
messages the model can act on; the user-facing reply additionally lists
the connectors that need re-authorization.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Set

from connectors.errors import DispatchError, DispatchErrorKind
from connectors.registry import ConnectorRegistry
from core.tool_dispatcher import ToolDispatcher
from utils.llm_providers import BaseLLMProvider, get_llm_provider, qualify_tool_name
from utils.schemas import ChatMessage, ChatReply, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant with access to the user's connected services. "
    "Use the available tools when they help answer the request. If a tool reports "
    "that a service must be reconnected, tell the user which service to reconnect."
)


class AgentService:
    def __init__(
        self,
        registry: ConnectorRegistry,
        dispatcher: ToolDispatcher,
        llm: Optional[BaseLLMProvider] = None,
        *,
        provider_name: str = "openai",
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tool_rounds: int = 3,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._llm = llm
        self._provider_name = provider_name
        self._model = model
        self._temperature = temperature
        self._max_tool_rounds = max_tool_rounds

    @property
    def llm(self) -> BaseLLMProvider:
        if self._llm is None:
            self._llm = get_llm_provider(self._provider_name, default_model=self._model)
        return self._llm

    def build_tools(self, connector_names: List[str]) -> List[Dict[str, Any]]:
        """Model-facing tool schemas for the selected connectors."""
        tools: List[Dict[str, Any]] = []
        for connector_name, definitions in self._registry.get_tool_definitions(connector_names).items():
            for definition in definitions:
                tools.append(
                    {
                        "name": qualify_tool_name(connector_name, definition.function_name),
                        "description": definition.description,
                        "parameters": definition.parameters.to_json_schema(),
                    }
                )
        return tools

    async def chat(
        self,
        user_id: str,
        messages: List[ChatMessage],
        connector_names: List[str],
        system_prompt: Optional[str] = None,
    ) -> ChatReply:
        tools = self.build_tools(connector_names)
        allowed = set(connector_names)
        history = list(messages)
        tool_results: List[Dict[str, Any]] = []
        reauth: List[str] = []
        prompt = system_prompt or DEFAULT_SYSTEM_PROMPT

        for round_num in range(1, self._max_tool_rounds + 1):
            response = await self.llm.complete(
                history, tools, system_prompt=prompt, temperature=self._temperature
            )
            if not response.wants_tools:
                return ChatReply(content=response.content, tool_results=tool_results, reauth_required=reauth)

            logger.info("Round %d: model requested %d tool call(s)", round_num, len(response.tool_calls))
            history.append(ChatMessage(role="assistant", content=response.content, tool_calls=response.tool_calls))
            for call in response.tool_calls:
                content = await self._run_tool(user_id, call, allowed, tool_results, reauth)
                history.append(
                    ChatMessage(
                        role="tool",
                        tool_call_id=call.id,
                        name=qualify_tool_name(call.connector_name, call.function_name),
                        content=content,
                    )
                )

        logger.info("Tool round limit (%d) reached; asking for a final answer", self._max_tool_rounds)
        response = await self.llm.complete(
            history, tools, system_prompt=prompt, allow_tools=False, temperature=self._temperature
        )
        return ChatReply(content=response.content, tool_results=tool_results, reauth_required=reauth)

    async def _run_tool(
        self,
        user_id: str,
        call: ToolCall,
        allowed: Set[str],
        tool_results: List[Dict[str, Any]],
        reauth: List[str],
    ) -> str:
        """Dispatch one call and return the tool message content."""
        entry: Dict[str, Any] = {"connector": call.connector_name, "function": call.function_name}
        try:
            if call.connector_name not in allowed:
                raise DispatchError(
                    DispatchErrorKind.UNKNOWN_TOOL,
                    f"Unknown tool '{call.function_name}' for connector '{call.connector_name}'",
                    connector=call.connector_name,
                    function=call.function_name,
                )
            if call.arguments_error is not None:
                raise DispatchError(
                    DispatchErrorKind.INVALID_ARGUMENTS,
                    f"Invalid arguments: {call.arguments_error}",
                    connector=call.connector_name,
                    function=call.function_name,
                    fields=["arguments"],
                )
            result = await self._dispatcher.dispatch(
                call.connector_name, call.function_name, call.arguments, user_id
            )
        except DispatchError as exc:
            entry.update(success=False, code=exc.code)
            tool_results.append(entry)
            return self._error_message(exc, reauth)

        entry.update(success=True, data=result.data, time_taken_ms=result.time_taken_ms)
        tool_results.append(entry)
        return json.dumps(result.data, default=str)

    @staticmethod
    def _error_message(exc: DispatchError, reauth: List[str]) -> str:
        if exc.kind == DispatchErrorKind.NOT_AUTHENTICATED:
            if exc.connector not in reauth:
                reauth.append(exc.connector)
            return (
                f"The {exc.connector} connection is not authorized. "
                "Ask the user to reconnect this service, then try again."
            )
        if exc.kind in (DispatchErrorKind.PROVIDER_ERROR, DispatchErrorKind.SCHEMA_VIOLATION):
            hint = " It may succeed if retried later." if exc.retryable else ""
            return f"The {exc.connector} service could not complete {exc.function}.{hint}"
        return exc.message
