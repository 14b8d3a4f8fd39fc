# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Model backend module using LiteLLM.

Components:
- ModelBackend: Protocol the orchestrator depends on
- LiteLLMBackend: Streaming tool-calling completions via LiteLLM

Example:
    >>> from src.core.intelligence.llm import LiteLLMBackend
    >>> backend = LiteLLMBackend(settings.llm)
"""

from src.core.intelligence.llm.client import (
    LiteLLMBackend,
    LLMError,
    ModelBackend,
    StreamChunk,
    ToolCall,
)

__all__ = [
    "LiteLLMBackend",
    "LLMError",
    "ModelBackend",
    "StreamChunk",
    "ToolCall",
]
