# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""ORM tables backing the SQL quota store.

Allocations are never hard-deleted; revocation sets quota_limit to zero.
History, usage events and allocation requests are append-only apart from
request review fields.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.utils.datetime import utc_now


class Base(DeclarativeBase):
    pass


class QuotaAllocationRow(Base):
    __tablename__ = "quota_allocations"
    __table_args__ = (
        UniqueConstraint(
            "scope_id", "feature", "period_start", name="uq_quota_allocations_scope_period"
        ),
        Index("ix_quota_allocations_org_feature", "organization_id", "feature", "period_start"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    scope_type: Mapped[str] = mapped_column(String(20))
    scope_id: Mapped[str] = mapped_column(String(64))
    organization_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    feature: Mapped[str] = mapped_column(String(40))
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    quota_limit: Mapped[int] = mapped_column(Integer, default=0)
    used: Mapped[int] = mapped_column(Integer, default=0)
    priority: Mapped[str] = mapped_column(String(10), default="normal")
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_overage: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[int] = mapped_column(Integer, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class AllocationHistoryRow(Base):
    __tablename__ = "quota_allocation_history"
    __table_args__ = (Index("ix_quota_history_scope", "scope_id", "timestamp"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    actor_id: Mapped[str] = mapped_column(String(64))
    scope_id: Mapped[str] = mapped_column(String(64))
    feature: Mapped[str] = mapped_column(String(40))
    action: Mapped[str] = mapped_column(String(20))
    delta: Mapped[int] = mapped_column(Integer)
    previous_limit: Mapped[int] = mapped_column(Integer)
    new_limit: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class UsageEventRow(Base):
    __tablename__ = "quota_usage_events"
    __table_args__ = (Index("ix_quota_usage_scope_feature", "scope_id", "feature", "timestamp"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    scope_id: Mapped[str] = mapped_column(String(64))
    organization_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    feature: Mapped[str] = mapped_column(String(40))
    amount: Mapped[int] = mapped_column(Integer)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class AllocationRequestRow(Base):
    __tablename__ = "quota_allocation_requests"
    __table_args__ = (Index("ix_quota_requests_org_status", "organization_id", "status"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    requester_id: Mapped[str] = mapped_column(String(64))
    scope_id: Mapped[str] = mapped_column(String(64))
    organization_id: Mapped[str] = mapped_column(String(64))
    quotas: Mapped[dict[str, int]] = mapped_column(JSON)
    reason: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)
