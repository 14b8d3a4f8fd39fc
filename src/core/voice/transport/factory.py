# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Transport backend selection.

The backend is chosen once, when the session manager is built, from the
configured transport or, in ``auto`` mode, from the runtime the process
serves.
"""

import logging

from src.core.config.settings import VoiceSettings
from src.core.voice.transport.base import TransportBackend, TransportKind
from src.core.voice.transport.realtime_transport import RealtimeTransport
from src.core.voice.transport.websocket_transport import WebSocketTransport

logger = logging.getLogger(__name__)

# Runtimes able to carry a provider real-time session
REALTIME_RUNTIMES = frozenset({"web", "android", "ios"})


def resolve_transport_kind(settings: VoiceSettings, runtime: str = "server") -> TransportKind:
    """Resolve which transport family to use.

    Args:
        settings: Voice settings.
        runtime: Runtime target ("web", "android", "ios", "server", ...).

    Returns:
        The transport kind.
    """
    if settings.transport == "websocket":
        return TransportKind.WEBSOCKET_RECORDER
    if settings.transport == "webrtc":
        return TransportKind.WEBRTC
    if runtime.lower() in REALTIME_RUNTIMES:
        return TransportKind.WEBRTC
    return TransportKind.WEBSOCKET_RECORDER


def select_transport_backend(
    settings: VoiceSettings,
    runtime: str = "server",
) -> TransportBackend:
    """Build the transport backend for this process.

    Example:
        backend = select_transport_backend(settings.voice, runtime="web")
    """
    kind = resolve_transport_kind(settings, runtime)
    logger.info("Selected voice transport: %s (runtime=%s)", kind.value, runtime)

    if kind == TransportKind.WEBRTC:
        return RealtimeTransport(open_timeout=settings.connect_timeout)
    return WebSocketTransport(open_timeout=settings.connect_timeout)
