# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Events streamed to the client during a conversation turn.

A turn is an ordered stream of events, serialized one JSON object per
line. Every stream ends with exactly one ``done`` event whose status
says how the turn ended.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class TurnStatus(str, Enum):
    COMPLETED = "completed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    QUOTA_EXCEEDED = "quota_exceeded"
    FAILED = "failed"


class TokenEvent(BaseModel):
    """A fragment of the assistant's reply."""

    type: Literal["token"] = "token"
    text: str


class ToolCallEvent(BaseModel):
    """A tool is about to run."""

    type: Literal["tool_call"] = "tool_call"
    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    """Outcome of one tool call."""

    type: Literal["tool_result"] = "tool_result"
    call_id: str
    name: str
    success: bool
    error: str | None = None


class ConfirmationRequiredEvent(BaseModel):
    """A gated tool call waits for the user's decision."""

    type: Literal["confirmation_required"] = "confirmation_required"
    confirmation_id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    risk: str
    prompt: str
    expires_at: str


class UpgradeRequiredEvent(BaseModel):
    """The principal's quota for the turn feature is used up."""

    type: Literal["upgrade_required"] = "upgrade_required"
    feature: str
    used: int
    limit: int
    message: str


class ClientActionEvent(BaseModel):
    """Something the app should do (navigate, open a composer, ...)."""

    type: Literal["client_action"] = "client_action"
    action: dict[str, Any]


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str
    retryable: bool = True


class DoneEvent(BaseModel):
    """End of the turn stream."""

    type: Literal["done"] = "done"
    status: TurnStatus = TurnStatus.COMPLETED
    fast_path: bool = False
    usage_recorded: bool = False
    tool_calls: int = 0
    confirmation_id: str | None = None


TurnEvent = Annotated[
    Union[
        TokenEvent,
        ToolCallEvent,
        ToolResultEvent,
        ConfirmationRequiredEvent,
        UpgradeRequiredEvent,
        ClientActionEvent,
        ErrorEvent,
        DoneEvent,
    ],
    Field(discriminator="type"),
]


def to_ndjson(event: BaseModel) -> str:
    """Serialize one event as a newline-terminated JSON line."""
    return event.model_dump_json() + "\n"
