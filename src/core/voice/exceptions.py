# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions of the voice session layer."""


class VoiceSessionError(Exception):
    """Base exception for voice session errors."""

    pass


class InvalidStateTransitionError(VoiceSessionError):
    """Raised when a session is asked to move along an illegal edge."""

    pass


class TransportError(VoiceSessionError):
    """Raised when the streaming channel cannot be opened or breaks."""

    pass


class TeardownTimeoutError(TransportError):
    """Raised when a bounded teardown step does not finish in time.

    Never fatal: the session still finishes, the failure is only recorded.
    """

    pass


class CredentialError(VoiceSessionError):
    """Raised when no endpoint or credential can be issued."""

    pass


class AudioCaptureError(VoiceSessionError):
    """Raised when the capture device cannot be opened or read."""

    pass
