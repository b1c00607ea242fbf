"""
ToolDispatcher — runs one model-requested tool call.

Stages, in order; each one short-circuits the rest:

1. resolve the tool definition            → UNKNOWN_TOOL
2. validate arguments against its schema  → INVALID_ARGUMENTS
3. obtain a valid credential              → NOT_AUTHENTICATED
4. call the provider (timeout, one retry for idempotent reads)
                                          → PROVIDER_ERROR
5. shape the response to its schema       → SCHEMA_VIOLATION
   (also raised when the provider body lacks fields a handler reads)

Nothing touches the network or the credential store before step 3.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

import httpx

from connectors.errors import (
    AuthRequired,
    DispatchError,
    DispatchErrorKind,
    ProviderError,
    RefreshFailed,
)
from connectors.http import ProviderClient
from connectors.registry import ConnectorRegistry
from connectors.schema import shape_response, validate_arguments
from connectors.token_manager import TokenLifecycleManager
from utils.schemas import ToolResult

logger = logging.getLogger(__name__)


class ToolDispatcher:
    def __init__(
        self,
        registry: ConnectorRegistry,
        tokens: TokenLifecycleManager,
        http: httpx.AsyncClient,
        *,
        timeout: float = 20.0,
    ) -> None:
        """
        Parameters
        ----------
        registry : connector catalog used for schema resolution.
        tokens   : source of valid credentials; the credential provider key
                   is the connector name.
        http     : shared client for provider calls (owned by the caller).
        timeout  : per-request provider timeout in seconds.
        """
        self._registry = registry
        self._tokens = tokens
        self._http = http
        self._timeout = timeout

    async def dispatch(
        self,
        connector_name: str,
        function_name: str,
        arguments: Dict[str, Any],
        user_id: str,
    ) -> ToolResult:
        start = time.perf_counter()

        definition = self._registry.get_tool(connector_name, function_name)
        if definition is None:
            raise DispatchError(
                DispatchErrorKind.UNKNOWN_TOOL,
                f"Unknown tool '{function_name}' for connector '{connector_name}'",
                connector=connector_name,
                function=function_name,
            )

        issues = validate_arguments(definition.parameters, arguments)
        if issues:
            raise DispatchError(
                DispatchErrorKind.INVALID_ARGUMENTS,
                "Invalid arguments: " + "; ".join(str(issue) for issue in issues),
                connector=connector_name,
                function=function_name,
                fields=[issue.path or "arguments" for issue in issues],
            )

        try:
            credential = await self._tokens.get_valid_credential(user_id, connector_name)
        except (AuthRequired, RefreshFailed) as exc:
            raise DispatchError(
                DispatchErrorKind.NOT_AUTHENTICATED,
                exc.message,
                connector=connector_name,
                function=function_name,
                reauth=True,
            ) from exc

        connector = self._registry.get_connector(connector_name)
        client = ProviderClient(
            self._http,
            credential.access_token,
            provider=connector_name,
            timeout=self._timeout,
            idempotent=definition.idempotent,
            bearer=connector.sends_bearer_token,
            user_id=user_id,
        )
        try:
            raw = await connector.call(function_name, dict(arguments), client)
        except ProviderError as exc:
            logger.warning(
                "%s.%s failed for user %s: status=%s code=%s",
                connector_name, function_name, user_id, exc.status, exc.provider_code,
            )
            raise DispatchError(
                DispatchErrorKind.PROVIDER_ERROR,
                exc.message,
                connector=connector_name,
                function=function_name,
                status=exc.status,
                provider_code=exc.provider_code,
                retryable=exc.retryable,
            ) from exc
        except (KeyError, TypeError) as exc:
            # Provider body lacked a field the handler reads
            logger.error(
                "Unexpected %s response shape in %s for user %s: %r",
                connector_name, function_name, user_id, exc,
            )
            raise DispatchError(
                DispatchErrorKind.SCHEMA_VIOLATION,
                f"Response from {connector_name}.{function_name} was missing expected data",
                connector=connector_name,
                function=function_name,
            ) from exc

        response_schema = definition.response_schema
        shaped, issues = shape_response(response_schema.schema_, raw, strict=response_schema.strict)
        if issues:
            # Our handler produced something its own schema rejects
            logger.error(
                "Schema violation in %s.%s response: %s",
                connector_name, function_name, "; ".join(str(issue) for issue in issues),
            )
            raise DispatchError(
                DispatchErrorKind.SCHEMA_VIOLATION,
                f"Response from {connector_name}.{function_name} did not match its schema",
                connector=connector_name,
                function=function_name,
                fields=[issue.path for issue in issues],
            )

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info("%s.%s completed in %dms (attempts=%d)", connector_name, function_name, elapsed_ms, client.attempts)
        return ToolResult(
            connector_name=connector_name,
            function_name=function_name,
            data=shaped,
            attempts=max(client.attempts, 1),
            time_taken_ms=elapsed_ms,
        )
