# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for the assistant control plane.

Using constants instead of string literals gives a single source of
truth for event names. Pattern subscribers ("quota.*") pick up new
events automatically.
"""


class EventTypes:
    """All control plane event types organized by domain."""

    class Quota:
        """Quota ledger events."""

        USAGE_RECORDED = "quota.usage.recorded"
        EXCEEDED = "quota.exceeded"
        ALLOCATED = "quota.allocation.updated"
        REVOKED = "quota.allocation.revoked"
        REQUEST_SUBMITTED = "quota.request.submitted"
        REQUEST_REVIEWED = "quota.request.reviewed"

    class Voice:
        """Voice session events."""

        STATUS_CHANGED = "voice.session.status_changed"
        TEARDOWN_DEGRADED = "voice.session.teardown_degraded"

    class Assistant:
        """Conversation orchestrator events."""

        TURN_COMPLETED = "assistant.turn.completed"
        TOOL_EXECUTED = "assistant.tool.executed"
        CONFIRMATION_REQUESTED = "assistant.confirmation.requested"
        CONFIRMATION_RESOLVED = "assistant.confirmation.resolved"


class EventPatterns:
    """Wildcard patterns for subscribing to a whole domain."""

    ALL_QUOTA = "quota.*"
    ALL_VOICE = "voice.*"
    ALL_ASSISTANT = "assistant.*"
