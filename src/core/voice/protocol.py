# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Wire protocol of the streaming voice channel.

Text frames carry JSON events; binary frames carry audio chunks.

Server -> client events:
    {"type": "partial_transcript", "text": "..."}
    {"type": "final_transcript", "text": "..."}
    {"type": "assistant_token", "text": "..."}
    {"type": "done"}

Client -> server control:
    {"type": "done"}  (no more audio follows)
"""

import logging
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class PartialTranscript(BaseModel):
    """Interim transcription of the user's speech."""

    type: Literal["partial_transcript"] = "partial_transcript"
    text: str = ""


class FinalTranscript(BaseModel):
    """Settled transcription of one user utterance."""

    type: Literal["final_transcript"] = "final_transcript"
    text: str = ""


class AssistantToken(BaseModel):
    """A fragment of the assistant's reply."""

    type: Literal["assistant_token"] = "assistant_token"
    text: str = ""


class Done(BaseModel):
    """End of stream marker, in either direction."""

    type: Literal["done"] = "done"


VoiceEvent = Annotated[
    Union[PartialTranscript, FinalTranscript, AssistantToken, Done],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[VoiceEvent] = TypeAdapter(VoiceEvent)


def decode_frame(frame: str | bytes) -> VoiceEvent | None:
    """Decode an inbound text frame into a voice event.

    Binary frames are audio and never events. Malformed or unknown
    frames are dropped.

    Args:
        frame: Raw frame as received from the channel.

    Returns:
        The decoded event, or None if the frame should be ignored.
    """
    if isinstance(frame, (bytes, bytearray, memoryview)):
        return None

    try:
        return _event_adapter.validate_json(frame)
    except ValidationError:
        logger.debug("Dropping malformed voice frame: %.120s", frame)
        return None


def encode_event(event: BaseModel) -> str:
    return event.model_dump_json()
