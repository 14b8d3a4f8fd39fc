# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audio capture devices feeding a voice session.

A capture device has two resource layers, mirroring a browser's media
stream and recorder: the device tracks (acquired by ``open`` and given
back by ``release``) and the recorder that slices them into chunks
(``start`` / ``stop``). The session manager tears them down in that
order.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable

from src.core.voice.exceptions import AudioCaptureError

logger = logging.getLogger(__name__)

ChunkHandler = Callable[[bytes], Awaitable[None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]
AudioSource = Callable[[], AsyncIterator[bytes]]

# 16 kHz mono 16-bit PCM
DEFAULT_SAMPLE_RATE = 16000
DEFAULT_SAMPLE_WIDTH = 2
DEFAULT_CHANNELS = 1


class AudioCaptureDevice(ABC):
    """Source of fixed-duration audio chunks."""

    @abstractmethod
    async def open(self) -> None:
        """Acquire the device tracks.

        Raises:
            AudioCaptureError: If the device is unavailable.
        """
        pass

    @abstractmethod
    async def start(
        self,
        on_chunk: ChunkHandler,
        interval_ms: int,
        on_error: ErrorHandler | None = None,
    ) -> None:
        """Begin chunked recording, calling ``on_chunk`` for every chunk."""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop recording. Buffered audio is flushed first."""
        pass

    @abstractmethod
    async def release(self) -> None:
        """Give the device tracks back."""
        pass

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @property
    @abstractmethod
    def is_recording(self) -> bool:
        pass


class ChunkedAudioCapture(AudioCaptureDevice):
    """Groups a raw PCM byte stream into chunks of a nominal duration.

    Args:
        source: Factory returning the PCM byte stream of the device.
        sample_rate: Samples per second.
        sample_width: Bytes per sample.
        channels: Number of interleaved channels.

    Example:
        capture = ChunkedAudioCapture(microphone.stream)
        await capture.open()
        await capture.start(channel.send_audio, interval_ms=250)
    """

    def __init__(
        self,
        source: AudioSource,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        sample_width: int = DEFAULT_SAMPLE_WIDTH,
        channels: int = DEFAULT_CHANNELS,
    ) -> None:
        self._source_factory = source
        self._bytes_per_ms = sample_rate * sample_width * channels / 1000
        self._stream: AsyncIterator[bytes] | None = None
        self._task: asyncio.Task[None] | None = None
        self._buffer = bytearray()
        self._on_chunk: ChunkHandler | None = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    @property
    def is_recording(self) -> bool:
        return self._task is not None and not self._task.done()

    def chunk_size(self, interval_ms: int) -> int:
        return max(int(self._bytes_per_ms * interval_ms), 1)

    async def open(self) -> None:
        if self._stream is not None:
            return
        try:
            self._stream = self._source_factory()
        except Exception as e:
            raise AudioCaptureError(f"Audio device unavailable: {e}") from e
        logger.debug("Audio capture opened")

    async def start(
        self,
        on_chunk: ChunkHandler,
        interval_ms: int,
        on_error: ErrorHandler | None = None,
    ) -> None:
        if self._stream is None:
            raise AudioCaptureError("Audio capture is not open")
        if self.is_recording:
            return

        self._on_chunk = on_chunk
        self._task = asyncio.create_task(
            self._record(self._stream, on_chunk, self.chunk_size(interval_ms), on_error)
        )
        logger.debug("Audio capture started (interval=%sms)", interval_ms)

    async def _record(
        self,
        stream: AsyncIterator[bytes],
        on_chunk: ChunkHandler,
        chunk_size: int,
        on_error: ErrorHandler | None,
    ) -> None:
        try:
            async for data in stream:
                self._buffer.extend(data)
                while len(self._buffer) >= chunk_size:
                    chunk = bytes(self._buffer[:chunk_size])
                    del self._buffer[:chunk_size]
                    await on_chunk(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Audio capture failed: %s", str(e))
            if on_error is not None:
                await on_error(AudioCaptureError(str(e)))

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._buffer and self._on_chunk is not None:
            chunk = bytes(self._buffer)
            self._buffer.clear()
            await self._on_chunk(chunk)
        self._on_chunk = None

    async def release(self) -> None:
        stream, self._stream = self._stream, None
        self._buffer.clear()
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.debug("Audio capture released")
