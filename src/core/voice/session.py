# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Voice session lifecycle management.

A voice session streams microphone audio to a transcription channel and
dispatches the transcript and token events it sends back. Its state
machine:

    disconnected -> connecting -> streaming -> stopping -> finished

``error`` is reachable from every non-terminal state; ``finished`` and
``error`` are terminal. Transport resources (channel,
capture tracks, recorder) are attached only while the session is
connecting, streaming or stopping.

``stop()`` is idempotent: concurrent and repeated calls share one
in-flight teardown. ``cancel()`` aborts immediately, including a
teardown that is already running.

Example:
    manager = VoiceSessionManager(
        backend=select_transport_backend(settings.voice, runtime="web"),
        capture=ChunkedAudioCapture(microphone.stream),
        credential_issuer=build_credential_issuer(settings.voice),
        settings=settings.voice,
        callbacks=VoiceSessionCallbacks(on_final_transcript=handle_utterance),
    )
    if await manager.start():
        ...
        await manager.stop()
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from src.core.config.settings import VoiceSettings
from src.core.voice.capture import AudioCaptureDevice
from src.core.voice.credentials import CredentialIssuer
from src.core.voice.exceptions import (
    InvalidStateTransitionError,
    TeardownTimeoutError,
    TransportError,
)
from src.core.voice.protocol import (
    AssistantToken,
    Done,
    FinalTranscript,
    PartialTranscript,
    VoiceEvent,
)
from src.core.voice.transport.base import TransportBackend, TransportKind
from src.infrastructure.events import EventBus, EventTypes
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class VoiceStatus(str, Enum):
    """Voice session states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPING = "stopping"
    FINISHED = "finished"
    ERROR = "error"


VALID_TRANSITIONS: dict[VoiceStatus, set[VoiceStatus]] = {
    VoiceStatus.DISCONNECTED: {
        VoiceStatus.CONNECTING,
        VoiceStatus.FINISHED,
        VoiceStatus.ERROR,
    },
    VoiceStatus.CONNECTING: {
        VoiceStatus.STREAMING,
        VoiceStatus.STOPPING,
        VoiceStatus.FINISHED,
        VoiceStatus.ERROR,
    },
    VoiceStatus.STREAMING: {
        VoiceStatus.STOPPING,
        VoiceStatus.FINISHED,
        VoiceStatus.ERROR,
    },
    VoiceStatus.STOPPING: {
        VoiceStatus.FINISHED,
        VoiceStatus.ERROR,
    },
    VoiceStatus.FINISHED: set(),
    VoiceStatus.ERROR: set(),
}

TERMINAL_STATES = frozenset({VoiceStatus.FINISHED, VoiceStatus.ERROR})


@dataclass
class VoiceSession:
    """State of one voice session.

    Attributes:
        transport_kind: Backend family carrying the session.
        id: Session identifier.
        status: Current lifecycle state.
        started_at: When start() was called.
        ended_at: When a terminal state was reached.
        error: Error that moved the session to ``error``.
        teardown_errors: Non-fatal failures recorded while tearing down.
    """

    transport_kind: TransportKind
    id: str = field(default_factory=lambda: str(uuid4()))
    status: VoiceStatus = VoiceStatus.DISCONNECTED
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: str | None = None
    teardown_errors: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "transport_kind": self.transport_kind.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "error": self.error,
            "teardown_errors": list(self.teardown_errors),
        }


@dataclass
class VoiceSessionCallbacks:
    """Consumer callbacks. Each may be a plain function or a coroutine function.

    Attributes:
        on_partial_transcript: Receives interim transcript text.
        on_final_transcript: Receives settled transcript text.
        on_assistant_token: Receives assistant reply fragments.
        on_done: Called when the remote end signals completion.
        on_status_change: Receives (old_status, new_status).
    """

    on_partial_transcript: Callable[[str], Any] | None = None
    on_final_transcript: Callable[[str], Any] | None = None
    on_assistant_token: Callable[[str], Any] | None = None
    on_done: Callable[[], Any] | None = None
    on_status_change: Callable[[VoiceStatus, VoiceStatus], Any] | None = None


class VoiceSessionManager:
    """Drives one voice session over an injected transport backend.

    Args:
        backend: Transport backend selected for this runtime.
        capture: Audio capture device.
        credential_issuer: Issues the endpoint to connect to.
        settings: Voice settings (timeouts, chunk interval).
        callbacks: Consumer callbacks.
        event_bus: Optional bus receiving status change events.
        clock: Source of the current time.
    """

    def __init__(
        self,
        backend: TransportBackend,
        capture: AudioCaptureDevice,
        credential_issuer: CredentialIssuer,
        settings: VoiceSettings | None = None,
        callbacks: VoiceSessionCallbacks | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._backend = backend
        self._capture = capture
        self._issuer = credential_issuer
        self._settings = settings or VoiceSettings()
        self._callbacks = callbacks or VoiceSessionCallbacks()
        self._event_bus = event_bus
        self._clock = clock

        self._session = VoiceSession(transport_kind=backend.kind)

        self._channel_attached = False
        self._capture_attached = False
        self._recorder_attached = False

        self._connect_task: asyncio.Task[None] | None = None
        self._stop_task: asyncio.Task[None] | None = None
        self._failure_task: asyncio.Task[None] | None = None
        self._start_interrupted = False

    @property
    def session(self) -> VoiceSession:
        return self._session

    @property
    def status(self) -> VoiceStatus:
        return self._session.status

    @property
    def has_attached_resources(self) -> bool:
        """Whether any transport resource is still referenced."""
        return self._channel_attached or self._capture_attached or self._recorder_attached

    # =========================================================================
    # State machine
    # =========================================================================

    async def _transition(self, new_status: VoiceStatus, error: Exception | None = None) -> None:
        old_status = self._session.status
        if new_status not in VALID_TRANSITIONS[old_status]:
            raise InvalidStateTransitionError(
                f"Invalid voice session transition: {old_status.value} -> {new_status.value}"
            )

        self._session.status = new_status
        if error is not None:
            self._session.error = str(error)
        if new_status in TERMINAL_STATES:
            self._session.ended_at = self._clock()

        logger.info(
            "Voice session %s: %s -> %s",
            self._session.id,
            old_status.value,
            new_status.value,
        )

        await self._notify(self._callbacks.on_status_change, old_status, new_status)

        if self._event_bus is not None:
            await self._event_bus.publish(
                EventTypes.Voice.STATUS_CHANGED,
                {
                    "session_id": self._session.id,
                    "from": old_status.value,
                    "to": new_status.value,
                    "transport_kind": self._session.transport_kind.value,
                    "error": self._session.error,
                },
            )

    async def _notify(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Voice session callback failed: %s", str(e), exc_info=True)

    # =========================================================================
    # Start
    # =========================================================================

    async def start(self) -> bool:
        """Connect the channel and begin streaming audio.

        Returns:
            True once streaming; False if connecting failed or was
            interrupted by stop() or cancel().

        Raises:
            InvalidStateTransitionError: If the session already started.
        """
        if self._session.status != VoiceStatus.DISCONNECTED:
            raise InvalidStateTransitionError(
                f"Cannot start a voice session in state {self._session.status.value}"
            )

        self._session.started_at = self._clock()
        await self._transition(VoiceStatus.CONNECTING)

        connect_task = asyncio.create_task(self._connect())
        self._connect_task = connect_task
        try:
            await connect_task
        except asyncio.CancelledError:
            if self._start_interrupted:
                logger.info("Voice session %s start interrupted", self._session.id)
                return False
            raise
        except Exception as e:
            logger.warning("Voice session %s failed to start: %s", self._session.id, str(e))
            if self._session.status == VoiceStatus.CONNECTING:
                await self._transition(VoiceStatus.ERROR, error=e)
            return False
        finally:
            self._connect_task = None

        if self._session.status != VoiceStatus.CONNECTING:
            return False

        await self._transition(VoiceStatus.STREAMING)
        return True

    async def _connect(self) -> None:
        try:
            endpoint = await self._issuer.issue(self._backend.kind)

            self._channel_attached = True
            try:
                await asyncio.wait_for(
                    self._backend.open(endpoint, self._dispatch, self._on_channel_closed),
                    timeout=self._settings.connect_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransportError(
                    f"Voice channel did not open within {self._settings.connect_timeout}s"
                ) from e

            self._capture_attached = True
            await self._capture.open()

            self._recorder_attached = True
            await self._capture.start(
                self._send_chunk,
                self._settings.chunk_interval_ms,
                on_error=self._on_capture_error,
            )

            if not self._backend.is_open:
                raise TransportError("Voice channel closed while connecting")
        except (Exception, asyncio.CancelledError):
            await self._release_resources()
            raise

    async def _interrupt_start(self) -> None:
        connect_task = self._connect_task
        if connect_task is None or connect_task.done():
            return
        self._start_interrupted = True
        connect_task.cancel()
        await asyncio.wait({connect_task})

    # =========================================================================
    # Streaming
    # =========================================================================

    async def _send_chunk(self, chunk: bytes) -> None:
        if not self._backend.is_open:
            return
        try:
            await self._backend.send_audio(chunk)
        except TransportError as e:
            logger.warning("Dropping audio chunk: %s", str(e))
            self._schedule_failure(e)

    async def _dispatch(self, event: VoiceEvent) -> None:
        if self._session.is_terminal:
            return

        if isinstance(event, PartialTranscript):
            await self._notify(self._callbacks.on_partial_transcript, event.text)
        elif isinstance(event, FinalTranscript):
            await self._notify(self._callbacks.on_final_transcript, event.text)
        elif isinstance(event, AssistantToken):
            await self._notify(self._callbacks.on_assistant_token, event.text)
        elif isinstance(event, Done):
            await self._notify(self._callbacks.on_done)

    async def _on_channel_closed(self, error: Exception | None) -> None:
        if self._session.status != VoiceStatus.STREAMING:
            logger.debug("Voice channel closed in state %s", self._session.status.value)
            return
        self._schedule_failure(error or TransportError("Voice channel closed by remote end"))

    async def _on_capture_error(self, error: Exception) -> None:
        self._schedule_failure(error)

    def _schedule_failure(self, error: Exception) -> None:
        # Runs outside the capture and receive tasks, which it tears down
        if self._session.status != VoiceStatus.STREAMING or self._failure_task is not None:
            return
        self._failure_task = asyncio.create_task(self._fail(error))

    async def _fail(self, error: Exception) -> None:
        logger.error("Voice session %s transport error: %s", self._session.id, str(error))
        await self._release_resources()
        if self._session.status == VoiceStatus.STREAMING:
            await self._transition(VoiceStatus.ERROR, error=error)

    async def _await_failure(self) -> bool:
        failure_task = self._failure_task
        if failure_task is None:
            return False
        if failure_task is asyncio.current_task():
            return True
        await asyncio.wait({failure_task})
        return True

    # =========================================================================
    # Stop / cancel
    # =========================================================================

    async def stop(self) -> None:
        """Stop the session gracefully. No-op from a terminal state.

        Concurrent and repeated calls share the single teardown in flight.
        """
        if await self._await_failure() or self._session.is_terminal:
            return

        if self._session.status == VoiceStatus.DISCONNECTED:
            await self._transition(VoiceStatus.FINISHED)
            return

        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._teardown())

        stop_task = self._stop_task
        if stop_task is asyncio.current_task():
            return
        try:
            await asyncio.shield(stop_task)
        except asyncio.CancelledError:
            if stop_task.cancelled():
                # Aborted by cancel()
                return
            raise

    async def _teardown(self) -> None:
        if self._session.status == VoiceStatus.CONNECTING:
            await self._transition(VoiceStatus.STOPPING)
            await self._interrupt_start()
        elif self._session.status == VoiceStatus.STREAMING:
            await self._transition(VoiceStatus.STOPPING)

        if self._channel_attached and self._backend.has_active_session:
            try:
                await asyncio.wait_for(
                    self._backend.stop_active_session(),
                    timeout=self._settings.stop_timeout,
                )
            except asyncio.TimeoutError:
                self._record_teardown_error(
                    "stop_active_session",
                    TeardownTimeoutError(
                        f"Active session did not stop within {self._settings.stop_timeout}s"
                    ),
                )
            except Exception as e:
                self._record_teardown_error("stop_active_session", e)

        if self._recorder_attached:
            self._recorder_attached = False
            try:
                await self._capture.stop()
            except Exception as e:
                self._record_teardown_error("stop_recorder", e)

        if self._capture_attached:
            self._capture_attached = False
            try:
                await self._capture.release()
            except Exception as e:
                self._record_teardown_error("release_capture", e)

        if self._channel_attached:
            try:
                if self._backend.is_open:
                    await self._backend.send_done()
                    await asyncio.sleep(self._settings.done_grace)
                await self._backend.close()
            except Exception as e:
                self._record_teardown_error("close_channel", e)
            finally:
                self._channel_attached = False
            await asyncio.sleep(self._settings.settle_delay)

        if not self._session.is_terminal:
            await self._transition(VoiceStatus.FINISHED)
        await self._publish_degraded_teardown()

    async def cancel(self) -> None:
        """Abort the session immediately. No-op from a terminal state.

        Sends no done signal and waits for no grace period; a stop()
        in flight is aborted.
        """
        if await self._await_failure() or self._session.is_terminal:
            return

        await self._interrupt_start()

        stop_task = self._stop_task
        if stop_task is not None and not stop_task.done():
            stop_task.cancel()
            await asyncio.wait({stop_task})

        await self._release_resources()
        if not self._session.is_terminal:
            await self._transition(VoiceStatus.FINISHED)
        await self._publish_degraded_teardown()

    async def _release_resources(self) -> None:
        """Abort every attached resource, recording failures."""
        if self._recorder_attached:
            self._recorder_attached = False
            try:
                await self._capture.stop()
            except Exception as e:
                self._record_teardown_error("stop_recorder", e)

        if self._capture_attached:
            self._capture_attached = False
            try:
                await self._capture.release()
            except Exception as e:
                self._record_teardown_error("release_capture", e)

        if self._channel_attached:
            self._channel_attached = False
            try:
                await self._backend.abort()
            except Exception as e:
                self._record_teardown_error("abort_channel", e)

    def _record_teardown_error(self, step: str, error: Exception) -> None:
        message = f"{step}: {error}"
        self._session.teardown_errors.append(message)
        if isinstance(error, TeardownTimeoutError):
            logger.warning("Voice session %s teardown timeout: %s", self._session.id, message)
        else:
            logger.warning("Voice session %s teardown step failed: %s", self._session.id, message)

    async def _publish_degraded_teardown(self) -> None:
        if self._event_bus is None or not self._session.teardown_errors:
            return
        await self._event_bus.publish(
            EventTypes.Voice.TEARDOWN_DEGRADED,
            {
                "session_id": self._session.id,
                "errors": list(self._session.teardown_errors),
            },
        )
