# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota ledger data models.

Pydantic models shared by the ledger, its stores and the quota API.
Allocations are treated as values: stores hand out copies and every
change goes through a store write.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.utils.datetime import utc_now


def _new_id() -> str:
    return str(uuid4())


class QuotaFeature(str, Enum):
    """Metered assistant features."""

    LESSON_GENERATION = "lesson_generation"
    GRADING_ASSISTANCE = "grading_assistance"
    HOMEWORK_HELP = "homework_help"
    CHAT_COMPLETIONS = "chat_completions"
    IMAGE_GENERATION = "image_generation"
    TEXT_TO_SPEECH = "text_to_speech"
    SPEECH_TO_TEXT = "speech_to_text"


class ScopeType(str, Enum):
    PRINCIPAL = "principal"
    ORGANIZATION = "organization"


class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class AllocationAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    REVOKED = "revoked"


class UsageStatus(str, Enum):
    ACCEPTED = "accepted"
    QUOTA_EXCEEDED = "quota_exceeded"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class QuotaAllocation(BaseModel):
    """Limit and consumption of one feature for one scope and period.

    ``used <= limit`` holds after every accepted consumption unless
    ``allow_overage`` was explicitly granted.
    """

    id: str = Field(default_factory=_new_id)
    scope_type: ScopeType = ScopeType.PRINCIPAL
    scope_id: str
    organization_id: str | None = None
    feature: QuotaFeature
    period_start: datetime
    period_end: datetime
    limit: int = Field(ge=0)
    used: int = Field(default=0, ge=0)
    priority: Priority = Priority.NORMAL
    auto_renew: bool = False
    allow_overage: bool = False
    version: int = 1
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)

    def can_consume(self, amount: int) -> bool:
        """Check whether consuming amount keeps the allocation valid."""
        return self.allow_overage or self.used + amount <= self.limit


class AllocationHistoryEntry(BaseModel):
    """Immutable audit record of an allocation change."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    actor_id: str
    scope_id: str
    feature: QuotaFeature
    action: AllocationAction
    delta: int
    previous_limit: int
    new_limit: int
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class UsageEvent(BaseModel):
    """One accepted consumption. Append-only."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    scope_id: str
    organization_id: str | None = None
    feature: QuotaFeature
    amount: int
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)


class QuotaCheckResult(BaseModel):
    """Read-only answer to "may this scope consume this much?"."""

    scope_id: str
    feature: QuotaFeature
    allowed: bool
    used: int
    limit: int
    remaining: int
    requires_upgrade: bool


class UsageRecordResult(BaseModel):
    """Outcome of record_usage().

    A rejected consumption carries ``status=quota_exceeded`` and
    ``requires_upgrade=True``; nothing was consumed.
    """

    scope_id: str
    feature: QuotaFeature
    status: UsageStatus
    amount: int
    used: int
    limit: int
    remaining: int
    requires_upgrade: bool = False
    event_id: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status == UsageStatus.ACCEPTED


class AllocationOptions(BaseModel):
    """Options applied to every feature of one allocate() call."""

    reason: str | None = None
    scope_type: ScopeType = ScopeType.PRINCIPAL
    organization_id: str | None = None
    priority: Priority = Priority.NORMAL
    auto_renew: bool = False
    allow_overage: bool = False


class BulkAllocationItem(BaseModel):
    scope_id: str
    quotas: dict[QuotaFeature, int]
    options: AllocationOptions = Field(default_factory=AllocationOptions)


class BulkAllocationResult(BaseModel):
    """Per-item outcome of bulk_allocate(); items do not share a transaction."""

    scope_id: str
    success: bool
    allocations: list[QuotaAllocation] = Field(default_factory=list)
    error: str | None = None


class AllocationRequest(BaseModel):
    """A principal's request for more quota, reviewed by an administrator."""

    id: str = Field(default_factory=_new_id)
    requester_id: str
    scope_id: str
    organization_id: str
    quotas: dict[QuotaFeature, int]
    reason: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_note: str | None = None


class OptimizationSuggestion(BaseModel):
    """Advisory reallocation hint derived from usage events."""

    scope_id: str
    feature: QuotaFeature
    kind: Literal["increase", "decrease"]
    current_limit: int
    used: int
    projected_usage: int
    suggested_limit: int
    reason: str


class FeatureUsage(BaseModel):
    feature: QuotaFeature
    used: int
    limit: int
    remaining: int
    percentage_used: float
    explicit: bool


class UsageSummary(BaseModel):
    """All features of one scope for the current period."""

    scope_id: str
    period_start: datetime
    period_end: datetime
    features: list[FeatureUsage]


class AllocationHistoryPage(BaseModel):
    entries: list[AllocationHistoryEntry]
    total: int
