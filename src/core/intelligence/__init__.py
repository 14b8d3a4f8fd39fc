# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Intelligence module for model access.

The module uses LiteLLM as the unified interface to model providers,
enabling support for OpenAI, Anthropic, Ollama and many others.

Example:
    >>> from src.core.intelligence import LiteLLMBackend
    >>> backend = LiteLLMBackend(settings.llm)
"""

from src.core.intelligence.llm import (
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
