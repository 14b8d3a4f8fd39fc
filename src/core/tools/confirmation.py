# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Explicit confirmation of gated tool calls.

Tools flagged ``requires_confirmation`` (typically medium and high risk,
such as creating tasks or messaging parents) never run on the model's
word alone. The orchestrator parks the call here as a pending
confirmation and only executes it after the same principal approves it.
Every resolution stays in the audit log.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

from src.core.tools.base import BaseTool, RiskTier, ToolContext
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class ConfirmationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


class ConfirmationError(Exception):
    """Base exception for confirmation gate errors."""

    pass


class ConfirmationNotFoundError(ConfirmationError):
    """Raised when a confirmation ID is unknown."""

    pass


class ConfirmationExpiredError(ConfirmationError):
    """Raised when resolving a confirmation after its TTL."""

    pass


@dataclass(frozen=True)
class PendingConfirmation:
    """A parked tool call awaiting the user's decision."""

    tool_name: str
    arguments: dict[str, Any]
    risk: RiskTier
    prompt: str
    principal_id: str
    organization_id: str
    conversation_id: str | None
    created_at: datetime
    expires_at: datetime
    id: str = field(default_factory=lambda: str(uuid4()))
    status: ConfirmationStatus = ConfirmationStatus.PENDING
    resolved_at: datetime | None = None

    @property
    def approved(self) -> bool:
        return self.status == ConfirmationStatus.APPROVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "arguments": self.arguments,
            "risk": self.risk.value,
            "prompt": self.prompt,
            "status": self.status.value,
            "expires_at": self.expires_at.isoformat(),
        }


class ConfirmationGate:
    """Holds pending confirmations and records how they were resolved.

    Confirmations nobody answers are swept into the audit log as expired
    whenever a new one is requested, so the pending map only holds live
    entries. The audit log keeps the most recent ``audit_log_size``
    resolutions.

    Args:
        ttl_seconds: How long a pending confirmation stays answerable.
        clock: Source of the current time.
        audit_log_size: Number of resolutions kept in the audit log.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
        audit_log_size: int = 1000,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._pending: dict[str, PendingConfirmation] = {}
        self._audit_log: deque[PendingConfirmation] = deque(maxlen=audit_log_size)

    @staticmethod
    def requires_confirmation(tool: BaseTool) -> bool:
        return tool.requires_confirmation

    def request(
        self,
        tool: BaseTool,
        arguments: dict[str, Any],
        context: ToolContext,
    ) -> PendingConfirmation:
        """Park a tool call until the principal decides."""
        now = self._clock()
        self.prune_expired()
        pending = PendingConfirmation(
            tool_name=tool.name,
            arguments=dict(arguments),
            risk=tool.risk,
            prompt=tool.confirmation_prompt(arguments),
            principal_id=context.principal_id,
            organization_id=context.organization_id,
            conversation_id=context.conversation_id,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._pending[pending.id] = pending
        logger.info(
            "Confirmation %s requested for %s (risk=%s) by %s",
            pending.id,
            tool.name,
            tool.risk.value,
            context.principal_id,
        )
        return pending

    def get(self, confirmation_id: str) -> PendingConfirmation | None:
        return self._pending.get(confirmation_id)

    def prune_expired(self) -> int:
        """Move every pending confirmation past its TTL to the audit log.

        Returns:
            Number of confirmations expired.
        """
        now = self._clock()
        expired_ids = [cid for cid, pending in self._pending.items() if now > pending.expires_at]
        for confirmation_id in expired_ids:
            pending = self._pending.pop(confirmation_id)
            self._audit_log.append(
                replace(pending, status=ConfirmationStatus.EXPIRED, resolved_at=now)
            )
        if expired_ids:
            logger.info("Expired %d unanswered confirmations", len(expired_ids))
        return len(expired_ids)

    def resolve(
        self,
        confirmation_id: str,
        approved: bool,
        principal_id: str,
    ) -> PendingConfirmation:
        """Record the principal's decision on a pending call.

        Raises:
            ConfirmationNotFoundError: If no pending confirmation has that ID.
            ConfirmationError: If another principal tries to resolve it.
            ConfirmationExpiredError: If the TTL elapsed.
        """
        pending = self._pending.get(confirmation_id)
        if pending is None:
            if self._expired_recently(confirmation_id, principal_id):
                raise ConfirmationExpiredError(f"Confirmation {confirmation_id} expired")
            raise ConfirmationNotFoundError(f"No pending confirmation {confirmation_id}")
        if pending.principal_id != principal_id:
            raise ConfirmationError("Only the requesting principal can resolve a confirmation")

        del self._pending[confirmation_id]
        now = self._clock()
        if now > pending.expires_at:
            expired = replace(pending, status=ConfirmationStatus.EXPIRED, resolved_at=now)
            self._audit_log.append(expired)
            raise ConfirmationExpiredError(f"Confirmation {confirmation_id} expired")

        status = ConfirmationStatus.APPROVED if approved else ConfirmationStatus.DENIED
        resolved = replace(pending, status=status, resolved_at=now)
        self._audit_log.append(resolved)
        logger.info(
            "Confirmation %s for %s %s by %s",
            confirmation_id,
            pending.tool_name,
            status.value,
            principal_id,
        )
        return resolved

    def _expired_recently(self, confirmation_id: str, principal_id: str) -> bool:
        # Swept entries still answer as expired while they remain in the audit log
        return any(
            entry.id == confirmation_id
            and entry.principal_id == principal_id
            and entry.status == ConfirmationStatus.EXPIRED
            for entry in self._audit_log
        )

    @property
    def audit_log(self) -> list[PendingConfirmation]:
        return list(self._audit_log)
