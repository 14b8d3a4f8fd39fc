# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation orchestration exceptions."""


class OrchestrationError(Exception):
    """Base exception for conversation orchestration errors."""

    pass


class PausedTurnNotFoundError(OrchestrationError):
    """Raised when a confirmation does not belong to a paused turn."""

    pass
