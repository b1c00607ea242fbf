"""
Thin adapter layer over LLM provider SDKs (OpenAI, Anthropic, …).

Each provider exposes the same interface so callers never import
provider-specific code: a list of chat messages plus a list of tool
schemas goes in, and either a final answer or a set of tool calls comes
out.

Tool names given to the model are ``"{connector}__{function}"``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from config.settings import config
from utils.schemas import ChatMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)

TOOL_NAME_SEPARATOR = "__"


def qualify_tool_name(connector_name: str, function_name: str) -> str:
    return f"{connector_name}{TOOL_NAME_SEPARATOR}{function_name}"


def split_tool_name(name: str) -> Tuple[str, str]:
    """``"google-sheets__readSheet"`` → ``("google-sheets", "readSheet")``."""
    connector_name, _, function_name = name.partition(TOOL_NAME_SEPARATOR)
    return connector_name, function_name


def _tool_call(call_id: str, name: str, arguments: Any, error: Optional[str] = None) -> ToolCall:
    connector_name, function_name = split_tool_name(name)
    if error is None and not isinstance(arguments, dict):
        error = "Tool arguments must be a JSON object"
    if error is not None:
        logger.warning("Rejecting tool call %s: %s", name, error)
        return ToolCall(
            id=call_id,
            connector_name=connector_name,
            function_name=function_name,
            arguments_error=error,
        )
    return ToolCall(
        id=call_id,
        connector_name=connector_name,
        function_name=function_name,
        arguments=arguments,
    )


class BaseLLMProvider(ABC):
    """Common interface that every concrete provider implements."""

    @abstractmethod
    async def complete(
        self,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
        *,
        system_prompt: Optional[str] = None,
        allow_tools: bool = True,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """
        Parameters
        ----------
        tools : ``[{"name", "description", "parameters"}]`` with qualified names.
        allow_tools : when False the model must answer in text even though
            ``tools`` (needed to interpret earlier tool turns) is passed.
        """
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# OpenAI
# ═══════════════════════════════════════════════════════════════════════════════


class OpenAIProvider(BaseLLMProvider):
    def __init__(self, api_key: str, default_model: str = "gpt-4o"):
        from openai import AsyncOpenAI

        self.client = AsyncOpenAI(api_key=api_key)
        self.default_model = default_model

    @staticmethod
    def _to_openai(messages: List[ChatMessage], system_prompt: Optional[str]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        if system_prompt:
            converted.append({"role": "system", "content": system_prompt})
        for msg in messages:
            if msg.role == "tool":
                converted.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content})
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append(
                    {
                        "role": "assistant",
                        "content": msg.content or None,
                        "tool_calls": [
                            {
                                "id": call.id,
                                "type": "function",
                                "function": {
                                    "name": qualify_tool_name(call.connector_name, call.function_name),
                                    "arguments": json.dumps(call.arguments),
                                },
                            }
                            for call in msg.tool_calls
                        ],
                    }
                )
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return converted

    async def complete(
        self,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
        *,
        system_prompt: Optional[str] = None,
        allow_tools: bool = True,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        model = model or self.default_model

        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = [{"type": "function", "function": t} for t in tools]
            kwargs["tool_choice"] = "auto" if allow_tools else "none"

        response = await self.client.chat.completions.create(
            model=model,
            messages=self._to_openai(messages, system_prompt),
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

        message = response.choices[0].message
        calls: List[ToolCall] = []
        for call in message.tool_calls or []:
            arguments: Any = None
            error: Optional[str] = None
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError:
                error = "Tool arguments were not valid JSON"
            calls.append(_tool_call(call.id, call.function.name, arguments, error))

        return LLMResponse(content=message.content or "", tool_calls=calls)


# ═══════════════════════════════════════════════════════════════════════════════
# Anthropic
# ═══════════════════════════════════════════════════════════════════════════════


class AnthropicProvider(BaseLLMProvider):
    def __init__(self, api_key: str, default_model: str = "claude-3-5-sonnet-20241022"):
        from anthropic import AsyncAnthropic

        self.client = AsyncAnthropic(api_key=api_key)
        self.default_model = default_model

    @staticmethod
    def _to_anthropic(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.role == "tool":
                block = {"type": "tool_result", "tool_use_id": msg.tool_call_id, "content": msg.content}
                # Consecutive tool results go back in a single user turn
                last = converted[-1] if converted else None
                if last and last["role"] == "user" and isinstance(last["content"], list):
                    last["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            elif msg.role == "assistant" and msg.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for call in msg.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": qualify_tool_name(call.connector_name, call.function_name),
                            "input": call.arguments,
                        }
                    )
                converted.append({"role": "assistant", "content": blocks})
            else:
                converted.append({"role": msg.role, "content": msg.content})
        return converted

    async def complete(
        self,
        messages: List[ChatMessage],
        tools: List[Dict[str, Any]],
        *,
        system_prompt: Optional[str] = None,
        allow_tools: bool = True,
        temperature: float = 0.3,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        model = model or self.default_model

        system_parts = [m.content for m in messages if m.role == "system"]
        if system_prompt:
            system_parts.insert(0, system_prompt)

        kwargs: Dict[str, Any] = {}
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if tools:
            kwargs["tools"] = [
                {"name": t["name"], "description": t["description"], "input_schema": t["parameters"]}
                for t in tools
            ]
            kwargs["tool_choice"] = {"type": "auto"} if allow_tools else {"type": "none"}

        response = await self.client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=self._to_anthropic(messages),
            **kwargs,
        )

        text_parts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                calls.append(_tool_call(block.id, block.name, block.input if block.input is not None else {}))

        return LLMResponse(content="".join(text_parts), tool_calls=calls)


# ═══════════════════════════════════════════════════════════════════════════════
# Factory
# ═══════════════════════════════════════════════════════════════════════════════

_provider_cache: Dict[str, BaseLLMProvider] = {}


def get_llm_provider(
    provider_name: str,
    *,
    api_key: str | None = None,
    default_model: str | None = None,
) -> BaseLLMProvider:
    """
    Return (and cache) an LLM provider instance.

    Parameters
    ----------
    provider_name : "openai" | "anthropic"
    api_key       : explicit key; if omitted, read from config.
    default_model : override the default model for this provider instance.
    """

    cache_key = f"{provider_name}:{default_model or 'default'}"
    if cache_key in _provider_cache:
        return _provider_cache[cache_key]

    if provider_name == "openai":
        key = api_key or config.openai_api_key
        instance = OpenAIProvider(api_key=key, default_model=default_model or "gpt-4o")
    elif provider_name == "anthropic":
        key = api_key or (config.anthropic_api_key or "")
        instance = AnthropicProvider(
            api_key=key,
            default_model=default_model or "claude-3-5-sonnet-20241022",
        )
    else:
        raise ValueError(f"Unsupported LLM provider: {provider_name}")

    _provider_cache[cache_key] = instance
    return instance
