# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base transport abstraction for voice sessions.

Defines the interface every streaming backend implements so that the
session manager drives one lifecycle regardless of the runtime target.
A backend is selected once per process and owns a single channel at a
time.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from src.core.voice.protocol import VoiceEvent

EventHandler = Callable[[VoiceEvent], Awaitable[None]]
CloseHandler = Callable[[Exception | None], Awaitable[None]]


class TransportKind(str, Enum):
    """Runtime family of a transport backend."""

    WEBSOCKET_RECORDER = "websocket+recorder"
    WEBRTC = "webrtc"


@dataclass(frozen=True)
class TransportEndpoint:
    """Where and how a transport backend connects.

    Attributes:
        url: WebSocket URL of the channel.
        token: Bearer credential, empty when the endpoint is open.
        expires_at: Expiry of a short-lived credential, if known.
        options: Backend specific extras (VAD tuning, language, ...).
    """

    url: str
    token: str = ""
    expires_at: datetime | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}


class TransportBackend(ABC):
    """One bidirectional streaming channel: audio in, events out.

    Inbound events are delivered to the ``on_event`` handler in channel
    order. When the channel ends without ``close()`` or ``abort()``
    having been called, ``on_close`` is invoked once with the error that
    ended it (None for a clean remote close).
    """

    @property
    @abstractmethod
    def kind(self) -> TransportKind:
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the channel is still usable."""
        pass

    @property
    def has_active_session(self) -> bool:
        """Whether a provider-side session must be stopped before closing."""
        return False

    @abstractmethod
    async def open(
        self,
        endpoint: TransportEndpoint,
        on_event: EventHandler,
        on_close: CloseHandler,
    ) -> None:
        """Open the channel and start delivering events.

        Returns once the channel is confirmed open.

        Raises:
            TransportError: If the channel cannot be opened.
        """
        pass

    @abstractmethod
    async def send_audio(self, chunk: bytes) -> None:
        """Send one audio chunk.

        Raises:
            TransportError: If the channel is closed or broken.
        """
        pass

    async def stop_active_session(self) -> None:
        """Stop the provider-side session. Callers bound this with a timeout."""
        return None

    @abstractmethod
    async def send_done(self) -> None:
        """Tell the remote end that no more audio follows."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the channel gracefully, draining buffered events."""
        pass

    @abstractmethod
    async def abort(self) -> None:
        """Drop the channel immediately without a closing handshake."""
        pass
