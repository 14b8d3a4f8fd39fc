# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provider real-time session transport.

Connects to an OpenAI-compatible real-time endpoint, configures server
side VAD and input transcription, and normalizes the provider's event
stream into the four voice event kinds:

    conversation.item.input_audio_transcription.delta      -> partial_transcript
    conversation.item.input_audio_transcription.completed  -> final_transcript
    response.audio_transcript.delta / output_text.delta    -> assistant_token
    response.audio_transcript.done                         -> assistant_token
    response.done                                          -> done

Audio goes out base64 encoded in ``input_audio_buffer.append`` events.
Stopping the active session commits the input buffer and waits for the
provider's acknowledgement.
"""

import asyncio
import base64
import json
import logging
from typing import Any

from src.core.voice.protocol import (
    AssistantToken,
    Done,
    FinalTranscript,
    PartialTranscript,
    VoiceEvent,
)
from src.core.voice.transport.base import TransportEndpoint, TransportKind
from src.core.voice.transport.websocket_transport import Connector, WebSocketTransport

logger = logging.getLogger(__name__)

DEFAULT_VAD_SILENCE_MS = 700
MIN_VAD_SILENCE_MS = 300
MAX_VAD_SILENCE_MS = 2000
DEFAULT_TRANSCRIPTION_MODEL = "whisper-1"


def build_session_config(options: dict[str, Any]) -> dict[str, Any]:
    """Build the ``session.update`` event sent right after connecting.

    Args:
        options: Endpoint options (vad_silence_ms, transcription_model,
            language).

    Returns:
        The provider event as a dictionary.
    """
    silence = int(options.get("vad_silence_ms") or DEFAULT_VAD_SILENCE_MS)
    silence = max(MIN_VAD_SILENCE_MS, min(MAX_VAD_SILENCE_MS, silence))

    transcription: dict[str, Any] = {
        "model": options.get("transcription_model") or DEFAULT_TRANSCRIPTION_MODEL,
    }
    if options.get("language"):
        transcription["language"] = options["language"]

    return {
        "type": "session.update",
        "session": {
            "turn_detection": {"type": "server_vad", "silence_duration_ms": silence},
            "input_audio_transcription": transcription,
            "modalities": ["text", "audio"],
        },
    }


class RealtimeTransport(WebSocketTransport):
    """Streams audio into a provider real-time session (``webrtc`` kind)."""

    def __init__(
        self,
        open_timeout: float = 10.0,
        close_timeout: float = 1.0,
        connector: Connector | None = None,
    ) -> None:
        super().__init__(
            open_timeout=open_timeout,
            close_timeout=close_timeout,
            connector=connector,
        )
        self._session_active = False
        self._commit_ack: asyncio.Event | None = None

    @property
    def kind(self) -> TransportKind:
        return TransportKind.WEBRTC

    @property
    def has_active_session(self) -> bool:
        return self._session_active and self.is_open

    async def _on_open(self, endpoint: TransportEndpoint) -> None:
        await self._send(json.dumps(build_session_config(endpoint.options)))
        self._session_active = True
        logger.debug("Real-time session configured")

    def decode(self, frame: str | bytes) -> list[VoiceEvent]:
        if isinstance(frame, (bytes, bytearray, memoryview)):
            return []
        try:
            message = json.loads(frame)
        except ValueError:
            logger.debug("Dropping malformed provider frame: %.120s", frame)
            return []
        if not isinstance(message, dict):
            return []

        return self._translate(message)

    def _translate(self, message: dict[str, Any]) -> list[VoiceEvent]:
        kind = message.get("type")

        if kind == "conversation.item.input_audio_transcription.delta":
            return [PartialTranscript(text=message.get("delta") or "")]
        if kind == "conversation.item.input_audio_transcription.completed":
            return [FinalTranscript(text=message.get("transcript") or "")]
        if kind in ("response.audio_transcript.delta", "response.output_text.delta"):
            return [AssistantToken(text=message.get("delta") or "")]
        if kind == "response.audio_transcript.done":
            transcript = message.get("transcript")
            return [AssistantToken(text=transcript)] if transcript else []
        if kind == "response.done":
            return [Done()]

        if kind == "input_audio_buffer.committed":
            self._acknowledge_commit()
        elif kind == "error":
            error = message.get("error") or {}
            logger.warning(
                "Provider error: %s (%s)",
                error.get("message"),
                error.get("code") or error.get("type"),
            )
            # A rejected commit (e.g. an empty buffer) still ends the wait
            self._acknowledge_commit()
        return []

    def _acknowledge_commit(self) -> None:
        if self._commit_ack is not None:
            self._commit_ack.set()

    async def send_audio(self, chunk: bytes) -> None:
        payload = {
            "type": "input_audio_buffer.append",
            "audio": base64.b64encode(chunk).decode("ascii"),
        }
        await self._send(json.dumps(payload))

    async def stop_active_session(self) -> None:
        """Commit the input buffer and wait for the acknowledgement."""
        if not self.has_active_session:
            return

        self._commit_ack = asyncio.Event()
        try:
            await self._send(json.dumps({"type": "input_audio_buffer.commit"}))
            await self._commit_ack.wait()
        finally:
            self._commit_ack = None
            self._session_active = False
        logger.debug("Real-time session input committed")

    async def send_done(self) -> None:
        # Provider sessions have no end-of-audio marker; closing ends them.
        return None

    async def close(self) -> None:
        self._session_active = False
        await super().close()

    async def abort(self) -> None:
        self._session_active = False
        await super().abort()
