# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Test doubles shared by unit and integration tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

from src.core.intelligence.llm import LLMError, StreamChunk, ToolCall

FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    """Clock whose time tests can move."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class ScriptedBackend:
    """ModelBackend replaying scripted responses.

    Each response is a list of StreamChunks, or an Exception raised when
    the response is requested. Every call's messages and tools are kept.
    """

    def __init__(self, responses: list[list[StreamChunk] | Exception]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def script(self, *responses: list[StreamChunk] | Exception) -> None:
        """Queue more responses."""
        self._responses.extend(responses)

    async def stream_with_tools(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self._responses:
            raise LLMError("No scripted response left")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        for chunk in response:
            yield chunk


def text_response(*parts: str) -> list[StreamChunk]:
    """Scripted reply made of text chunks."""
    return [StreamChunk(text=part) for part in parts] + [StreamChunk(finish_reason="stop")]


def tool_response(*calls: tuple[str, dict[str, Any]], text: str = "") -> list[StreamChunk]:
    """Scripted reply requesting tool calls."""
    chunks = [StreamChunk(text=text)] if text else []
    tool_calls = [
        ToolCall(id=f"call_{index}", name=name, arguments=arguments)
        for index, (name, arguments) in enumerate(calls)
    ]
    chunks.append(StreamChunk(tool_calls=tool_calls, finish_reason="tool_calls"))
    return chunks
