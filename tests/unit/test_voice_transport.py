# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for voice transports, wire protocol, credentials and capture."""

import asyncio
import base64
import json
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

from src.core.config.settings import VoiceSettings
from src.core.voice import (
    AssistantToken,
    AudioCaptureError,
    ChunkedAudioCapture,
    CredentialError,
    Done,
    FinalTranscript,
    HTTPCredentialIssuer,
    PartialTranscript,
    RealtimeTransport,
    StaticCredentialIssuer,
    TransportEndpoint,
    TransportError,
    TransportKind,
    WebSocketTransport,
    build_credential_issuer,
    decode_frame,
)
from src.core.voice.protocol import encode_event
from src.core.voice.transport import build_session_config, resolve_transport_kind
from src.core.voice.transport.factory import select_transport_backend

TOKEN_URL = "https://api.test/voice/token"


class FakeConnection:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, ack_commits: bool = False) -> None:
        self.sent: list[str | bytes] = []
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        self.ack_commits = ack_commits

    def __aiter__(self) -> "FakeConnection":
        return self

    async def __anext__(self) -> str | bytes:
        frame = await self.inbox.get()
        if frame is None:
            raise StopAsyncIteration
        if isinstance(frame, Exception):
            raise frame
        return frame

    async def send(self, message: str | bytes) -> None:
        self.sent.append(message)
        if self.ack_commits and isinstance(message, str):
            if json.loads(message).get("type") == "input_audio_buffer.commit":
                self.feed(json.dumps({"type": "input_audio_buffer.committed"}))

    async def close(self) -> None:
        self.closed = True
        self.inbox.put_nowait(None)

    def feed(self, *frames: Any) -> None:
        for frame in frames:
            self.inbox.put_nowait(frame)


class Recorder:
    """Collects the events and close notifications of a transport."""

    def __init__(self) -> None:
        self.events: list[Any] = []
        self.close_errors: list[Exception | None] = []
        self.closed = asyncio.Event()

    async def on_event(self, event: Any) -> None:
        self.events.append(event)

    async def on_close(self, error: Exception | None) -> None:
        self.close_errors.append(error)
        self.closed.set()


def _connector(connection: FakeConnection, calls: list[tuple[str, dict[str, Any]]]):
    async def connect(url: str, **kwargs: Any) -> FakeConnection:
        calls.append((url, kwargs))
        return connection

    return connect


class TestProtocol:
    """Tests for the wire protocol."""

    def test_decode_known_events(self) -> None:
        assert decode_frame('{"type": "partial_transcript", "text": "hel"}') == (
            PartialTranscript(text="hel")
        )
        assert decode_frame('{"type": "final_transcript", "text": "hello"}') == (
            FinalTranscript(text="hello")
        )
        assert decode_frame('{"type": "assistant_token", "text": "Hi"}') == (
            AssistantToken(text="Hi")
        )
        assert decode_frame('{"type": "done"}') == Done()

    @pytest.mark.parametrize(
        "frame",
        [b"\x00\x01", "not json", '{"type": "mystery"}', "[1, 2]"],
    )
    def test_ignored_frames(self, frame: str | bytes) -> None:
        assert decode_frame(frame) is None

    def test_encode_done(self) -> None:
        assert json.loads(encode_event(Done())) == {"type": "done"}


class TestWebSocketTransport:
    """Tests for the plain websocket backend."""

    @pytest.mark.asyncio
    async def test_open_sends_credentials(self) -> None:
        calls: list[tuple[str, dict[str, Any]]] = []
        connector = _connector(FakeConnection(), calls)
        transport = WebSocketTransport(open_timeout=5.0, connector=connector)
        recorder = Recorder()

        await transport.open(
            TransportEndpoint(url="ws://voice.test/stream", token="secret"),
            recorder.on_event,
            recorder.on_close,
        )

        assert transport.is_open
        assert transport.kind == TransportKind.WEBSOCKET_RECORDER
        url, kwargs = calls[0]
        assert url == "ws://voice.test/stream"
        assert kwargs["additional_headers"] == {"Authorization": "Bearer secret"}
        assert kwargs["open_timeout"] == 5.0
        await transport.close()

    @pytest.mark.asyncio
    async def test_frames_are_decoded_in_order(self) -> None:
        connection = FakeConnection()
        transport = WebSocketTransport(connector=_connector(connection, []))
        recorder = Recorder()
        await transport.open(
            TransportEndpoint(url="ws://voice.test"), recorder.on_event, recorder.on_close
        )

        connection.feed(
            '{"type": "partial_transcript", "text": "wh"}',
            b"\x00\x00",
            "garbage",
            '{"type": "final_transcript", "text": "when is sports day"}',
            '{"type": "done"}',
            None,
        )
        await recorder.closed.wait()

        assert [type(e) for e in recorder.events] == [PartialTranscript, FinalTranscript, Done]
        assert recorder.close_errors == [None]
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_receive_failure_reports_error(self) -> None:
        connection = FakeConnection()
        transport = WebSocketTransport(connector=_connector(connection, []))
        recorder = Recorder()
        await transport.open(
            TransportEndpoint(url="ws://voice.test"), recorder.on_event, recorder.on_close
        )

        connection.feed(RuntimeError("socket reset"))
        await recorder.closed.wait()

        assert isinstance(recorder.close_errors[0], TransportError)

    @pytest.mark.asyncio
    async def test_send_audio_and_done(self) -> None:
        connection = FakeConnection()
        transport = WebSocketTransport(connector=_connector(connection, []))
        recorder = Recorder()
        await transport.open(
            TransportEndpoint(url="ws://voice.test"), recorder.on_event, recorder.on_close
        )

        await transport.send_audio(b"\x01\x02")
        await transport.send_done()
        await transport.close()

        assert connection.sent[0] == b"\x01\x02"
        assert json.loads(connection.sent[1]) == {"type": "done"}
        assert connection.closed
        # A local close is not reported as a remote one
        assert recorder.close_errors == []

    @pytest.mark.asyncio
    async def test_send_after_close_fails(self) -> None:
        transport = WebSocketTransport(connector=_connector(FakeConnection(), []))
        recorder = Recorder()
        await transport.open(
            TransportEndpoint(url="ws://voice.test"), recorder.on_event, recorder.on_close
        )
        await transport.abort()

        with pytest.raises(TransportError):
            await transport.send_audio(b"\x00")

    @pytest.mark.asyncio
    async def test_connect_failure(self) -> None:
        async def refuse(url: str, **kwargs: Any) -> None:
            raise OSError("connection refused")

        transport = WebSocketTransport(connector=refuse)
        recorder = Recorder()

        with pytest.raises(TransportError, match="Could not connect"):
            await transport.open(
                TransportEndpoint(url="ws://voice.test"), recorder.on_event, recorder.on_close
            )
        assert not transport.is_open


class TestRealtimeTransport:
    """Tests for the provider real-time backend."""

    def test_session_config_defaults(self) -> None:
        config = build_session_config({})

        assert config["type"] == "session.update"
        session = config["session"]
        assert session["turn_detection"]["silence_duration_ms"] == 700
        assert session["input_audio_transcription"] == {"model": "whisper-1"}

    @pytest.mark.parametrize(("requested", "applied"), [(100, 300), (1200, 1200), (9000, 2000)])
    def test_session_config_clamps_vad(self, requested: int, applied: int) -> None:
        config = build_session_config({"vad_silence_ms": requested, "language": "en"})

        assert config["session"]["turn_detection"]["silence_duration_ms"] == applied
        assert config["session"]["input_audio_transcription"]["language"] == "en"

    def test_provider_events_are_normalized(self) -> None:
        transport = RealtimeTransport()

        def decode(message: dict[str, Any]) -> list[Any]:
            return transport.decode(json.dumps(message))

        assert decode(
            {"type": "conversation.item.input_audio_transcription.delta", "delta": "ho"}
        ) == [PartialTranscript(text="ho")]
        assert decode(
            {
                "type": "conversation.item.input_audio_transcription.completed",
                "transcript": "homework",
            }
        ) == [FinalTranscript(text="homework")]
        assert decode({"type": "response.output_text.delta", "delta": "Sure"}) == [
            AssistantToken(text="Sure")
        ]
        assert decode({"type": "response.audio_transcript.done", "transcript": ""}) == []
        assert decode({"type": "response.done"}) == [Done()]
        assert decode({"type": "rate_limits.updated"}) == []
        assert transport.decode(b"\x00") == []

    @pytest.mark.asyncio
    async def test_session_lifecycle(self) -> None:
        connection = FakeConnection(ack_commits=True)
        transport = RealtimeTransport(connector=_connector(connection, []))
        recorder = Recorder()

        await transport.open(
            TransportEndpoint(url="wss://rt.test", token="ek", options={"vad_silence_ms": 900}),
            recorder.on_event,
            recorder.on_close,
        )

        assert transport.kind == TransportKind.WEBRTC
        assert transport.has_active_session
        update = json.loads(connection.sent[0])
        assert update["session"]["turn_detection"]["silence_duration_ms"] == 900

        await transport.send_audio(b"\x10\x20")
        appended = json.loads(connection.sent[1])
        assert appended["type"] == "input_audio_buffer.append"
        assert base64.b64decode(appended["audio"]) == b"\x10\x20"

        await asyncio.wait_for(transport.stop_active_session(), timeout=1.0)
        assert not transport.has_active_session

        await transport.send_done()
        await transport.close()
        assert [json.loads(m)["type"] for m in connection.sent] == [
            "session.update",
            "input_audio_buffer.append",
            "input_audio_buffer.commit",
        ]

    @pytest.mark.asyncio
    async def test_provider_error_ends_commit_wait(self) -> None:
        connection = FakeConnection()
        transport = RealtimeTransport(connector=_connector(connection, []))
        recorder = Recorder()
        await transport.open(
            TransportEndpoint(url="wss://rt.test"), recorder.on_event, recorder.on_close
        )

        stopping = asyncio.create_task(transport.stop_active_session())
        await asyncio.sleep(0)
        connection.feed(json.dumps({"type": "error", "error": {"message": "buffer empty"}}))
        await asyncio.wait_for(stopping, timeout=1.0)

        assert not transport.has_active_session
        await transport.close()


class TestTransportSelection:
    """Tests for choosing the transport backend."""

    @pytest.mark.parametrize(
        ("transport", "runtime", "expected"),
        [
            ("websocket", "web", TransportKind.WEBSOCKET_RECORDER),
            ("webrtc", "server", TransportKind.WEBRTC),
            ("auto", "web", TransportKind.WEBRTC),
            ("auto", "iOS", TransportKind.WEBRTC),
            ("auto", "server", TransportKind.WEBSOCKET_RECORDER),
        ],
    )
    def test_resolve_kind(self, transport: str, runtime: str, expected: TransportKind) -> None:
        settings = VoiceSettings(transport=transport)

        assert resolve_transport_kind(settings, runtime) == expected

    def test_select_backend(self) -> None:
        assert isinstance(
            select_transport_backend(VoiceSettings(), runtime="android"), RealtimeTransport
        )
        backend = select_transport_backend(VoiceSettings(), runtime="server")
        assert type(backend) is WebSocketTransport


class TestCredentialIssuers:
    """Tests for endpoint issuing."""

    @pytest.mark.asyncio
    async def test_static_issuer(self) -> None:
        issuer = StaticCredentialIssuer(VoiceSettings(static_token="dev-token"))

        websocket = await issuer.issue(TransportKind.WEBSOCKET_RECORDER)
        realtime = await issuer.issue(TransportKind.WEBRTC)

        assert websocket.url == "ws://localhost:8765/stream"
        assert websocket.headers == {"Authorization": "Bearer dev-token"}
        assert realtime.url == "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview"
        assert realtime.options["vad_silence_ms"] == 700

    @pytest.mark.asyncio
    async def test_http_issuer_token_reply(self) -> None:
        requests: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "token": "short-lived",
                    "url": "wss://voice.test/session",
                    "expires_at": "2025-03-15T12:05:00+00:00",
                },
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            issuer = HTTPCredentialIssuer(VoiceSettings(token_url=TOKEN_URL), client=client)
            endpoint = await issuer.issue(TransportKind.WEBSOCKET_RECORDER)

        assert requests == [{"transport": "websocket+recorder"}]
        assert endpoint.token == "short-lived"
        assert endpoint.url == "wss://voice.test/session"
        assert endpoint.expires_at == datetime(2025, 3, 15, 12, 5, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_http_issuer_client_secret_reply(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"client_secret": {"value": "ek_123", "expires_at": 1742040300}}
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            issuer = HTTPCredentialIssuer(VoiceSettings(token_url=TOKEN_URL), client=client)
            endpoint = await issuer.issue(TransportKind.WEBRTC)

        assert endpoint.token == "ek_123"
        assert endpoint.url.startswith("wss://api.openai.com/v1/realtime")
        assert endpoint.expires_at == datetime.fromtimestamp(1742040300, tz=timezone.utc)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [httpx.Response(503, text="down"), httpx.Response(200, json={"url": "wss://x"})],
    )
    async def test_http_issuer_failures(self, response: httpx.Response) -> None:
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: response)
        ) as client:
            issuer = HTTPCredentialIssuer(VoiceSettings(token_url=TOKEN_URL), client=client)

            with pytest.raises(CredentialError):
                await issuer.issue(TransportKind.WEBRTC)

    def test_http_issuer_requires_url(self) -> None:
        with pytest.raises(CredentialError):
            HTTPCredentialIssuer(VoiceSettings())

    def test_build_issuer(self) -> None:
        assert isinstance(build_credential_issuer(VoiceSettings()), StaticCredentialIssuer)
        assert isinstance(
            build_credential_issuer(VoiceSettings(token_url=TOKEN_URL)), HTTPCredentialIssuer
        )


class TestChunkedAudioCapture:
    """Tests for chunking a PCM stream."""

    def test_chunk_size(self) -> None:
        capture = ChunkedAudioCapture(lambda: None)

        # 16 kHz, 16-bit mono: 32 bytes per millisecond
        assert capture.chunk_size(250) == 8000
        assert capture.chunk_size(0) == 1

    @pytest.mark.asyncio
    async def test_chunks_and_flush_on_stop(self) -> None:
        drained = asyncio.Event()

        async def microphone():
            yield b"\x01" * 5000
            yield b"\x02" * 5000
            drained.set()

        chunks: list[bytes] = []

        async def on_chunk(chunk: bytes) -> None:
            chunks.append(chunk)

        capture = ChunkedAudioCapture(microphone)
        await capture.open()
        await capture.start(on_chunk, interval_ms=250)
        await drained.wait()
        await capture.stop()
        await capture.release()

        assert [len(c) for c in chunks] == [8000, 2000]
        assert chunks[0] == b"\x01" * 5000 + b"\x02" * 3000
        assert not capture.is_open
        assert not capture.is_recording

    @pytest.mark.asyncio
    async def test_unavailable_device(self) -> None:
        def no_device():
            raise OSError("no microphone")

        capture = ChunkedAudioCapture(no_device)

        with pytest.raises(AudioCaptureError, match="unavailable"):
            await capture.open()

    @pytest.mark.asyncio
    async def test_start_requires_open(self) -> None:
        async def on_chunk(chunk: bytes) -> None:
            return None

        with pytest.raises(AudioCaptureError):
            await ChunkedAudioCapture(lambda: None).start(on_chunk, interval_ms=250)

    @pytest.mark.asyncio
    async def test_read_failure_reaches_error_handler(self) -> None:
        async def broken_microphone():
            yield b"\x00" * 10
            raise OSError("device lost")

        errors: list[Exception] = []
        failed = asyncio.Event()

        async def on_chunk(chunk: bytes) -> None:
            return None

        async def on_error(error: Exception) -> None:
            errors.append(error)
            failed.set()

        capture = ChunkedAudioCapture(broken_microphone)
        await capture.open()
        await capture.start(on_chunk, interval_ms=250, on_error=on_error)
        await failed.wait()

        assert isinstance(errors[0], AudioCaptureError)
        await capture.stop()
        await capture.release()
