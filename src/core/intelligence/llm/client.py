# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Model backend using LiteLLM for multi-provider support.

The conversation orchestrator talks to the model through the
ModelBackend protocol. LiteLLMBackend is the production implementation:
a streaming completion with tool calling, over any provider LiteLLM
supports (OpenAI, Anthropic, Ollama, ...). API keys and endpoints are
passed directly to ``acompletion()`` rather than through environment
variables.

Example:
    >>> backend = LiteLLMBackend(settings.llm)
    >>> async for chunk in backend.stream_with_tools(messages, tools):
    ...     if chunk.text:
    ...         print(chunk.text, end="")
    ...     for call in chunk.tool_calls:
    ...         print(f"Execute: {call.name}({call.arguments})")
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional, Protocol

import litellm
from litellm import acompletion

from src.core.config.settings import LLMSettings

logger = logging.getLogger(__name__)


@dataclass
class ToolCall:
    """A tool call requested by the model.

    Attributes:
        id: Unique identifier for this tool call.
        name: Name of the tool to execute.
        arguments: Arguments to pass to the tool.
    """

    id: str
    name: str
    arguments: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        """Convert to the OpenAI tool_calls entry of an assistant message."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }


@dataclass
class StreamChunk:
    """One piece of a streamed completion.

    Text chunks arrive as the model generates them. The final chunk of a
    stream carries the finish reason and, when the model asked for tools,
    the fully assembled tool calls.

    Attributes:
        text: Generated text fragment.
        tool_calls: Complete tool calls (final chunk only).
        finish_reason: Why generation stopped (final chunk only).
    """

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


class LLMError(Exception):
    """Exception raised when a model operation fails.

    Attributes:
        message: Error description.
        model: Model that caused the error.
        original_error: Original exception if any.
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.model = model
        self.original_error = original_error
        super().__init__(self.message)


class ModelBackend(Protocol):
    """What the orchestrator needs from a model."""

    def stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion that may request tool calls.

        Raises:
            LLMError: If the completion fails.
        """
        ...


class LiteLLMBackend:
    """Model backend over LiteLLM's ``acompletion``.

    Args:
        settings: LLM configuration.
        model: Override the provider's default model.

    Example:
        >>> backend = LiteLLMBackend(settings.llm)
        >>> chunks = backend.stream_with_tools(messages, registry.get_definitions())
    """

    def __init__(
        self,
        settings: LLMSettings,
        model: Optional[str] = None,
    ):
        self._settings = settings
        self._model = model or settings.get_default_model()

        litellm.set_verbose = False
        litellm.drop_params = True

        logger.info(
            "LiteLLMBackend initialized with model=%s, timeout=%.1fs, max_retries=%d",
            self._model,
            settings.request_timeout,
            settings.max_retries,
        )

    @property
    def model(self) -> str:
        return self._model

    def _provider_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        api_key = self._settings.get_api_key()
        if api_key:
            params["api_key"] = api_key
        if self._model.startswith("ollama/"):
            params["api_base"] = self._settings.ollama_base_url
        return params

    async def stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion with tool calling support.

        Tool call fragments are accumulated by index and emitted, parsed,
        on the final chunk.

        Args:
            messages: Conversation messages in OpenAI format.
            tools: Tool definitions in OpenAI format.

        Yields:
            StreamChunk objects; the last one has ``finish_reason`` set.

        Raises:
            LLMError: If the completion fails.
            ValueError: If messages list is empty.
        """
        if not messages:
            raise ValueError("Messages list cannot be empty")

        request: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
            "timeout": self._settings.request_timeout,
            "num_retries": self._settings.max_retries,
            "stream": True,
            **self._provider_params(),
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        pending: dict[int, dict[str, str]] = {}
        finish_reason: Optional[str] = None

        try:
            response = await acompletion(**request)

            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta.content:
                    yield StreamChunk(text=delta.content)

                for fragment in getattr(delta, "tool_calls", None) or []:
                    slot = pending.setdefault(
                        fragment.index or 0, {"id": "", "name": "", "arguments": ""}
                    )
                    if fragment.id:
                        slot["id"] = fragment.id
                    if fragment.function is not None:
                        if fragment.function.name:
                            slot["name"] = fragment.function.name
                        if fragment.function.arguments:
                            slot["arguments"] += fragment.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason

        except Exception as e:
            logger.error(
                "Streaming completion failed: model=%s, error=%s",
                self._model,
                str(e),
            )
            raise LLMError(
                message=f"Streaming completion failed: {str(e)}",
                model=self._model,
                original_error=e,
            ) from e

        tool_calls = [self._parse_tool_call(index, slot) for index, slot in sorted(pending.items())]
        logger.debug(
            "Streaming completion finished: model=%s, finish_reason=%s, tool_calls=%d",
            self._model,
            finish_reason,
            len(tool_calls),
        )
        yield StreamChunk(
            tool_calls=tool_calls,
            finish_reason=finish_reason or ("tool_calls" if tool_calls else "stop"),
        )

    @staticmethod
    def _parse_tool_call(index: int, slot: dict[str, str]) -> ToolCall:
        try:
            arguments = json.loads(slot["arguments"]) if slot["arguments"] else {}
        except json.JSONDecodeError:
            logger.warning("Unparseable arguments for tool call %s", slot["name"])
            arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}

        return ToolCall(
            id=slot["id"] or f"call_{index}",
            name=slot["name"],
            arguments=arguments,
        )

    def __repr__(self) -> str:
        return f"LiteLLMBackend(model={self._model!r})"
