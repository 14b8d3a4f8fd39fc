# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Real-time voice sessions.

Components:
    VoiceSessionManager: Session state machine and teardown ordering
    TransportBackend: Streaming channel abstraction (websocket, webrtc)
    AudioCaptureDevice: Chunked audio source
    CredentialIssuer: Endpoint and credential issuing
    protocol: Wire events of the streaming channel

Usage:
    from src.core.voice import VoiceSessionManager, select_transport_backend

    backend = select_transport_backend(settings.voice, runtime="server")
    manager = VoiceSessionManager(backend, capture, issuer, settings.voice)
"""

from src.core.voice.capture import AudioCaptureDevice, ChunkedAudioCapture
from src.core.voice.credentials import (
    CredentialIssuer,
    HTTPCredentialIssuer,
    StaticCredentialIssuer,
    build_credential_issuer,
)
from src.core.voice.exceptions import (
    AudioCaptureError,
    CredentialError,
    InvalidStateTransitionError,
    TeardownTimeoutError,
    TransportError,
    VoiceSessionError,
)
from src.core.voice.protocol import (
    AssistantToken,
    Done,
    FinalTranscript,
    PartialTranscript,
    VoiceEvent,
    decode_frame,
)
from src.core.voice.session import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    VoiceSession,
    VoiceSessionCallbacks,
    VoiceSessionManager,
    VoiceStatus,
)
from src.core.voice.transport import (
    RealtimeTransport,
    TransportBackend,
    TransportEndpoint,
    TransportKind,
    WebSocketTransport,
    select_transport_backend,
)

__all__ = [
    # Session
    "VoiceSessionManager",
    "VoiceSession",
    "VoiceSessionCallbacks",
    "VoiceStatus",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # Transport
    "TransportBackend",
    "TransportEndpoint",
    "TransportKind",
    "WebSocketTransport",
    "RealtimeTransport",
    "select_transport_backend",
    # Capture and credentials
    "AudioCaptureDevice",
    "ChunkedAudioCapture",
    "CredentialIssuer",
    "StaticCredentialIssuer",
    "HTTPCredentialIssuer",
    "build_credential_issuer",
    # Protocol
    "VoiceEvent",
    "PartialTranscript",
    "FinalTranscript",
    "AssistantToken",
    "Done",
    "decode_frame",
    # Errors
    "VoiceSessionError",
    "InvalidStateTransitionError",
    "TransportError",
    "TeardownTimeoutError",
    "CredentialError",
    "AudioCaptureError",
]
