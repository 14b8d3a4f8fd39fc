# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core tool infrastructure for model tool calling.

Base Classes:
    BaseTool: Abstract base class for all tools
    FunctionTool: Tool wrapping a plain async function
    ToolContext: Caller identity and tenant scope during execution
    ToolSpec: Read-only description shown to the model
    ToolExecutionResult: Envelope returned by every execution
    RiskTier: low / medium / high

Registry:
    ToolRegistry: Registration, spec aggregation and safe execution

Confirmation:
    ConfirmationGate: Pending confirmations for gated tools

Usage:
    from src.core.tools import BaseTool, ToolContext, ToolExecutionResult
    from src.core.tools import ToolRegistry

    class MyTool(BaseTool):
        ...

    registry = ToolRegistry()
    registry.register(MyTool())
"""

from src.core.tools.base import (
    BaseTool,
    FunctionTool,
    RiskTier,
    ToolContext,
    ToolExecutionResult,
    ToolSpec,
)
from src.core.tools.confirmation import (
    ConfirmationError,
    ConfirmationExpiredError,
    ConfirmationGate,
    ConfirmationNotFoundError,
    ConfirmationStatus,
    PendingConfirmation,
)
from src.core.tools.registry import (
    DuplicateToolError,
    ToolNotFoundError,
    ToolRegistry,
    ToolRegistryError,
)

__all__ = [
    # Base classes
    "BaseTool",
    "FunctionTool",
    "RiskTier",
    "ToolContext",
    "ToolExecutionResult",
    "ToolSpec",
    # Registry
    "ToolRegistry",
    "ToolRegistryError",
    "DuplicateToolError",
    "ToolNotFoundError",
    # Confirmation
    "ConfirmationGate",
    "ConfirmationStatus",
    "PendingConfirmation",
    "ConfirmationError",
    "ConfirmationNotFoundError",
    "ConfirmationExpiredError",
]
