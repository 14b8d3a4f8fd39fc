# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Streaming transport backends for voice sessions."""

from src.core.voice.transport.base import (
    CloseHandler,
    EventHandler,
    TransportBackend,
    TransportEndpoint,
    TransportKind,
)
from src.core.voice.transport.factory import (
    resolve_transport_kind,
    select_transport_backend,
)
from src.core.voice.transport.realtime_transport import (
    RealtimeTransport,
    build_session_config,
)
from src.core.voice.transport.websocket_transport import WebSocketTransport

__all__ = [
    "TransportBackend",
    "TransportEndpoint",
    "TransportKind",
    "EventHandler",
    "CloseHandler",
    "WebSocketTransport",
    "RealtimeTransport",
    "build_session_config",
    "resolve_transport_kind",
    "select_transport_backend",
]
