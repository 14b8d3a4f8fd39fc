# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""WebSocket transport for the streaming transcription service.

Audio chunks go out as binary frames; the service answers with the JSON
events of ``src.core.voice.protocol``. This is the backend used where
audio is recorded locally and pushed over a plain WebSocket
(``websocket+recorder``).
"""

import asyncio
import logging
from typing import Any, Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from src.core.voice.exceptions import TransportError
from src.core.voice.protocol import Done, VoiceEvent, decode_frame, encode_event
from src.core.voice.transport.base import (
    CloseHandler,
    EventHandler,
    TransportBackend,
    TransportEndpoint,
    TransportKind,
)

logger = logging.getLogger(__name__)

Connector = Callable[..., Any]


class WebSocketTransport(TransportBackend):
    """Streams audio over a WebSocket and decodes the event frames.

    Args:
        open_timeout: Seconds to wait for the opening handshake.
        close_timeout: Seconds to wait for the closing handshake and for
            buffered events to drain.
        connector: Coroutine factory opening the connection. Defaults to
            ``websockets.asyncio.client.connect``.

    Example:
        transport = WebSocketTransport(open_timeout=10.0)
        await transport.open(endpoint, on_event, on_close)
        await transport.send_audio(chunk)
        await transport.send_done()
        await transport.close()
    """

    def __init__(
        self,
        open_timeout: float = 10.0,
        close_timeout: float = 1.0,
        connector: Connector | None = None,
    ) -> None:
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._connector = connector or connect
        self._connection: ClientConnection | None = None
        self._receiver: asyncio.Task[None] | None = None
        self._on_event: EventHandler | None = None
        self._on_close: CloseHandler | None = None
        self._closing = False
        self._closed = True

    @property
    def kind(self) -> TransportKind:
        return TransportKind.WEBSOCKET_RECORDER

    @property
    def is_open(self) -> bool:
        return self._connection is not None and not self._closed

    async def open(
        self,
        endpoint: TransportEndpoint,
        on_event: EventHandler,
        on_close: CloseHandler,
    ) -> None:
        if self._connection is not None:
            raise TransportError("Transport already has an open channel")

        self._closing = False
        try:
            self._connection = await self._connector(
                endpoint.url,
                additional_headers=endpoint.headers or None,
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except (WebSocketException, OSError, TimeoutError) as e:
            raise TransportError(f"Could not connect to voice channel: {e}") from e

        self._closed = False
        self._on_event = on_event
        self._on_close = on_close
        logger.info("Voice channel opened: %s (%s)", endpoint.url, self.kind.value)

        try:
            await self._on_open(endpoint)
        except Exception:
            await self.abort()
            raise

        self._receiver = asyncio.create_task(self._receive_loop())

    async def _on_open(self, endpoint: TransportEndpoint) -> None:
        """Hook for backends that configure the channel after connecting."""
        return None

    def decode(self, frame: str | bytes) -> list[VoiceEvent]:
        """Translate one inbound frame into zero or more events."""
        event = decode_frame(frame)
        return [event] if event is not None else []

    async def _receive_loop(self) -> None:
        error: Exception | None = None
        connection = self._connection
        try:
            async for frame in connection:
                for event in self.decode(frame):
                    await self._on_event(event)
        except ConnectionClosed as e:
            error = TransportError(f"Voice channel closed unexpectedly: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Voice channel receive failed: %s", str(e), exc_info=True)
            error = TransportError(f"Voice channel receive failed: {e}")

        self._closed = True
        if not self._closing and self._on_close is not None:
            await self._on_close(error)

    async def _send(self, message: str | bytes) -> None:
        if not self.is_open:
            raise TransportError("Voice channel is not open")
        try:
            await self._connection.send(message)
        except (ConnectionClosed, OSError) as e:
            self._closed = True
            raise TransportError(f"Voice channel send failed: {e}") from e

    async def send_audio(self, chunk: bytes) -> None:
        await self._send(chunk)

    async def send_done(self) -> None:
        await self._send(encode_event(Done()))

    async def close(self) -> None:
        self._closing = True
        connection, self._connection = self._connection, None
        self._closed = True
        if connection is None:
            return

        try:
            await connection.close()
        except (WebSocketException, OSError) as e:
            raise TransportError(f"Voice channel close failed: {e}") from e
        finally:
            await self._drain_receiver()
        logger.info("Voice channel closed")

    async def _drain_receiver(self) -> None:
        receiver, self._receiver = self._receiver, None
        if receiver is None or receiver.done():
            return
        _, pending = await asyncio.wait({receiver}, timeout=self._close_timeout)
        if pending:
            receiver.cancel()

    async def abort(self) -> None:
        self._closing = True
        connection, self._connection = self._connection, None
        self._closed = True

        receiver, self._receiver = self._receiver, None
        if receiver is not None and not receiver.done():
            receiver.cancel()

        if connection is not None:
            raw_transport = getattr(connection, "transport", None)
            if raw_transport is not None:
                raw_transport.abort()
            logger.info("Voice channel aborted")
