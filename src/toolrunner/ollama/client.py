"""Async Ollama client wrapper.

This module provides an async wrapper around the ollama.AsyncClient for
communicating with the Ollama API. All chat operations stream internally;
`chat()` collects the chunks into a single ModelResponse, including any
tool calls the model requested. The client is designed to be created once
at startup and shared across sessions.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, AsyncIterator

import httpx
import ollama

from toolrunner.errors import ModelHTTPError, ModelResponseError, ModelTimeoutError
from toolrunner.ollama.types import ModelResponse, TokenUsage, ToolCallPayload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _chunk_to_dict(chunk: Any) -> dict[str, Any]:
    """Convert a streamed chunk to a plain dict."""
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump()
    if isinstance(chunk, dict):
        return chunk
    return vars(chunk)


def _parse_tool_call(raw_call: Any) -> ToolCallPayload:
    """Convert one Ollama tool call into a ToolCallPayload.

    Ollama returns arguments as a mapping; some models emit a JSON string
    instead. Both are normalised to a JSON string.

    Raises:
        ModelResponseError: If the call has no function name
    """
    call = _chunk_to_dict(raw_call)
    function = call.get("function") or {}
    if not isinstance(function, dict):
        function = _chunk_to_dict(function)

    name = function.get("name")
    if not name:
        raise ModelResponseError(f"Tool call without a function name: {call!r}")

    arguments = function.get("arguments", {})
    if isinstance(arguments, str):
        arguments_json = arguments
    else:
        arguments_json = json.dumps(arguments if arguments is not None else {})

    call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"
    return ToolCallPayload(id=call_id, name=name, arguments_json=arguments_json)


class OllamaClient:
    """Async client for interacting with Ollama API.

    This client wraps ollama.AsyncClient and provides high-level async methods
    for chatting with tool schemas and checking connectivity. Failures are
    translated into ModelHTTPError, ModelTimeoutError or ModelResponseError so
    callers can tell them apart.

    Attributes:
        host: The Ollama server URL (e.g., "http://localhost:11434")
        timeout: Seconds allowed for one complete chat call
        _client: The underlying ollama.AsyncClient instance
    """

    def __init__(self, host: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the Ollama client.

        Args:
            host: The Ollama server URL
            timeout: Seconds allowed for one complete chat call
        """
        self.host = host
        self.timeout = timeout
        self._client = ollama.AsyncClient(host=host)
        logger.info(f"OllamaClient initialized with host: {host}")

    async def check_connection(self) -> bool:
        """Check if the Ollama server is reachable.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            # Try to list models as a connectivity check
            await self._client.list()
            logger.debug("Ollama connection check: successful")
            return True
        except Exception as e:
            logger.warning(f"Ollama connection check failed: {e}")
            return False

    async def chat_stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
        format: str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream chat responses from Ollama.

        Args:
            model: The model name to use for the chat
            messages: List of message dicts in Ollama format
            tools: Optional tool schemas in function-calling format
            options: Optional model parameters (temperature, num_predict, etc.)
            format: Optional response format (e.g. "json")

        Yields:
            dict: Response chunks from Ollama. The final chunk has done=True
                  and carries eval_count and prompt_eval_count.
        """
        logger.debug(f"Starting chat stream with model: {model}")
        logger.debug(f"Message count: {len(messages)}, tool count: {len(tools or [])}")

        async for chunk in await self._client.chat(
            model=model,
            messages=messages,
            tools=tools or None,
            stream=True,
            options=options,
            format=format,
        ):
            chunk_dict = _chunk_to_dict(chunk)
            logger.debug(f"Received chunk: done={chunk_dict.get('done')}")
            yield chunk_dict

        logger.debug("Chat stream completed")

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        options: dict[str, Any] | None = None,
        format: str | None = None,
    ) -> ModelResponse:
        """Send a chat request and collect the complete response.

        Args:
            model: The model name to use for the chat
            messages: List of message dicts in Ollama format
            tools: Optional tool schemas in function-calling format
            options: Optional model parameters
            format: Optional response format (e.g. "json")

        Returns:
            ModelResponse with content, tool calls and token usage

        Raises:
            ModelHTTPError: If Ollama returns an error status or is unreachable
            ModelTimeoutError: If the call exceeds the configured timeout
            ModelResponseError: If the stream ends without a completion marker
                                or contains a malformed tool call
        """
        try:
            return await asyncio.wait_for(
                self._collect(model, messages, tools, options, format),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Chat request to {model} timed out after {self.timeout}s")
            raise ModelTimeoutError(self.timeout)
        except ollama.ResponseError as e:
            logger.error(f"Ollama API error ({e.status_code}): {e.error}")
            raise ModelHTTPError(
                f"Ollama API error: {e.error}", status_code=e.status_code
            ) from e
        except (ConnectionError, httpx.TransportError) as e:
            logger.error(f"Could not reach Ollama at {self.host}: {e}")
            raise ModelHTTPError(f"Could not reach Ollama at {self.host}: {e}") from e

    async def _collect(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        options: dict[str, Any] | None,
        format: str | None,
    ) -> ModelResponse:
        content_parts: list[str] = []
        tool_calls: list[ToolCallPayload] = []
        final_chunk: dict[str, Any] | None = None

        async for chunk in self.chat_stream(
            model=model,
            messages=messages,
            tools=tools,
            options=options,
            format=format,
        ):
            message = chunk.get("message") or {}
            content = message.get("content") or ""
            if content:
                content_parts.append(content)

            for raw_call in message.get("tool_calls") or []:
                tool_calls.append(_parse_tool_call(raw_call))

            if chunk.get("done"):
                final_chunk = chunk
                break

        if final_chunk is None:
            raise ModelResponseError("Stream ended without completion marker")

        content = "".join(content_parts)
        return ModelResponse(
            content=content or None,
            tool_calls=tool_calls,
            usage=TokenUsage.from_counts(
                final_chunk.get("prompt_eval_count"), final_chunk.get("eval_count")
            ),
            model=final_chunk.get("model") or model,
            raw=final_chunk,
        )

    async def close(self) -> None:
        """Close the client and clean up resources.

        ollama.AsyncClient uses httpx internally which handles cleanup.
        """
        logger.debug("OllamaClient closed")
