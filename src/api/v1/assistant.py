# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assistant API endpoints.

This module provides endpoints for the conversation orchestrator:
- GET /tools - Tool specs offered to the model
- POST /turns - Run a conversation turn, streamed as NDJSON
- POST /confirmations/{confirmation_id} - Approve or deny a gated tool
  call and stream the rest of its turn

Streams are newline-delimited JSON: one event object per line, ending
with a ``done`` event.

Example:
    POST /api/v1/assistant/turns
    {"message": "Which students are struggling in Grade R?"}
"""

import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from src.api.dependencies import CurrentPrincipal, Orchestrator, Registry
from src.core.orchestration import (
    ErrorEvent,
    PausedTurnNotFoundError,
    to_ndjson,
)
from src.core.tools import (
    ConfirmationError,
    ConfirmationExpiredError,
    ConfirmationNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


# ============================================================================
# Request / Response Models
# ============================================================================


class TurnRequest(BaseModel):
    """One user utterance."""

    message: str = Field(min_length=1, max_length=4000, description="What the user said")
    conversation_id: str | None = Field(default=None, description="Conversation to continue")
    language: str = Field(default="en", description="Preferred response language")


class ConfirmationDecision(BaseModel):
    approved: bool = Field(description="Whether the user approved the tool call")


class ToolSpecResponse(BaseModel):
    """A tool as the model sees it, plus its risk metadata."""

    name: str
    description: str
    input_schema: dict[str, Any]
    risk: str
    requires_confirmation: bool


# ============================================================================
# Helpers
# ============================================================================


async def _ndjson_stream(events: AsyncIterator[BaseModel]) -> AsyncIterator[str]:
    """Serialize turn events, turning a mid-stream failure into an error line."""
    try:
        async for event in events:
            yield to_ndjson(event)
    except Exception as e:
        logger.exception("Conversation turn failed: %s", e)
        yield to_ndjson(ErrorEvent(message="The turn could not be completed"))


def _streaming_response(events: AsyncIterator[BaseModel]) -> StreamingResponse:
    return StreamingResponse(
        _ndjson_stream(events),
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/tools", response_model=list[ToolSpecResponse])
async def list_tools(principal: CurrentPrincipal, registry: Registry) -> list[ToolSpecResponse]:
    """List the tools the assistant may call."""
    specs = []
    for spec in registry.get_tool_specs():
        tool = registry.get(spec.name)
        specs.append(
            ToolSpecResponse(
                **spec.to_dict(),
                risk=tool.risk.value,
                requires_confirmation=tool.requires_confirmation,
            )
        )
    return specs


@router.post("/turns")
async def run_turn(
    request: TurnRequest,
    principal: CurrentPrincipal,
    orchestrator: Orchestrator,
) -> StreamingResponse:
    """Run a conversation turn.

    Fast-path questions are answered without consuming quota. A turn
    whose quota is used up yields an ``upgrade_required`` event.
    """
    if not request.message.strip():
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Message cannot be blank",
        )

    context = principal.tool_context(
        conversation_id=request.conversation_id,
        language=request.language,
    )
    return _streaming_response(orchestrator.run_turn(request.message, context))


@router.post("/confirmations/{confirmation_id}")
async def resolve_confirmation(
    confirmation_id: str,
    decision: ConfirmationDecision,
    principal: CurrentPrincipal,
    orchestrator: Orchestrator,
) -> StreamingResponse:
    """Approve or deny a pending tool call and continue its turn."""
    try:
        events = await orchestrator.resume_after_confirmation(
            confirmation_id,
            decision.approved,
            principal.id,
        )
    except (ConfirmationNotFoundError, PausedTurnNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConfirmationExpiredError as e:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(e))
    except ConfirmationError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    return _streaming_response(events)
