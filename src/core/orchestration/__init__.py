# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation orchestration.

This package turns user utterances into streamed assistant replies:
- Fast path: deterministic answers without quota, context or model
- Quota gate: upgrade prompt when the turn feature is used up
- Bounded context: a fixed-size window per conversation
- Tool loop: model tool calls executed through the registry, gated
  tools paused until the user confirms
- Metering: usage recorded once per completed turn

Usage:
    from src.core.orchestration import ConversationOrchestrator

    orchestrator = ConversationOrchestrator(registry, ledger, backend, gate)
    async for event in orchestrator.run_turn(text, context):
        ...
"""

from src.core.orchestration.events import (
    ClientActionEvent,
    ConfirmationRequiredEvent,
    DoneEvent,
    ErrorEvent,
    TokenEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnEvent,
    TurnStatus,
    UpgradeRequiredEvent,
    to_ndjson,
)
from src.core.orchestration.exceptions import OrchestrationError, PausedTurnNotFoundError
from src.core.orchestration.fast_path import FastPathAnswer, FastPathClassifier
from src.core.orchestration.history import ConversationHistory, ConversationWindow
from src.core.orchestration.orchestrator import (
    APOLOGY_MESSAGE,
    ClientActionSource,
    ConversationOrchestrator,
)

__all__ = [
    # Orchestrator
    "ConversationOrchestrator",
    "ClientActionSource",
    "APOLOGY_MESSAGE",
    # Fast path
    "FastPathClassifier",
    "FastPathAnswer",
    # History
    "ConversationHistory",
    "ConversationWindow",
    # Events
    "TurnEvent",
    "TurnStatus",
    "TokenEvent",
    "ToolCallEvent",
    "ToolResultEvent",
    "ConfirmationRequiredEvent",
    "UpgradeRequiredEvent",
    "ClientActionEvent",
    "ErrorEvent",
    "DoneEvent",
    "to_ndjson",
    # Exceptions
    "OrchestrationError",
    "PausedTurnNotFoundError",
]
