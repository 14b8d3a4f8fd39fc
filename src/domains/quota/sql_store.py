# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementation of the quota store.

Consumption is a single conditional statement:

    UPDATE quota_allocations
       SET used = used + :amount
     WHERE scope_id = :scope AND feature = :feature AND period_start = :start
       AND (allow_overage OR used + :amount <= quota_limit)
    RETURNING *

The database serializes concurrent updates of the same row, so no
application lock is needed and a rejected consumption changes nothing.
Allocation edits use an optimistic version check.

Example:
    database = Database(settings.database.url)
    store = SQLAlchemyQuotaStore(database)
    ledger = QuotaLedger(store, settings.quota)
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from src.domains.quota.exceptions import DuplicateAllocationConflictError
from src.domains.quota.models import (
    AllocationAction,
    AllocationHistoryEntry,
    AllocationRequest,
    Priority,
    QuotaAllocation,
    QuotaFeature,
    RequestStatus,
    ScopeType,
    UsageEvent,
)
from src.domains.quota.store import QuotaStore
from src.infrastructure.database import (
    AllocationHistoryRow,
    AllocationRequestRow,
    Database,
    QuotaAllocationRow,
    UsageEventRow,
)
from src.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)


def _to_allocation(row: QuotaAllocationRow) -> QuotaAllocation:
    return QuotaAllocation(
        id=row.id,
        scope_type=ScopeType(row.scope_type),
        scope_id=row.scope_id,
        organization_id=row.organization_id,
        feature=QuotaFeature(row.feature),
        period_start=ensure_utc(row.period_start),
        period_end=ensure_utc(row.period_end),
        limit=row.quota_limit,
        used=row.used,
        priority=Priority(row.priority),
        auto_renew=row.auto_renew,
        allow_overage=row.allow_overage,
        version=row.version,
        updated_at=ensure_utc(row.updated_at),
    )


def _to_history(row: AllocationHistoryRow) -> AllocationHistoryEntry:
    return AllocationHistoryEntry(
        id=row.id,
        actor_id=row.actor_id,
        scope_id=row.scope_id,
        feature=QuotaFeature(row.feature),
        action=AllocationAction(row.action),
        delta=row.delta,
        previous_limit=row.previous_limit,
        new_limit=row.new_limit,
        reason=row.reason,
        timestamp=ensure_utc(row.timestamp),
    )


def _to_event(row: UsageEventRow) -> UsageEvent:
    return UsageEvent(
        id=row.id,
        scope_id=row.scope_id,
        organization_id=row.organization_id,
        feature=QuotaFeature(row.feature),
        amount=row.amount,
        metadata=row.metadata_json or {},
        timestamp=ensure_utc(row.timestamp),
    )


def _to_request(row: AllocationRequestRow) -> AllocationRequest:
    return AllocationRequest(
        id=row.id,
        requester_id=row.requester_id,
        scope_id=row.scope_id,
        organization_id=row.organization_id,
        quotas={QuotaFeature(k): v for k, v in row.quotas.items()},
        reason=row.reason,
        status=RequestStatus(row.status),
        created_at=ensure_utc(row.created_at),
        reviewed_by=row.reviewed_by,
        reviewed_at=ensure_utc(row.reviewed_at),
        review_note=row.review_note,
    )


class SQLAlchemyQuotaStore(QuotaStore):
    """Quota store backed by SQLAlchemy async sessions.

    Args:
        database: Database owning the engine and sessionmaker.
    """

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_allocation(
        self, scope_id: str, feature: QuotaFeature, period_start: datetime
    ) -> QuotaAllocation | None:
        async with self._db.session() as session:
            row = await session.scalar(
                select(QuotaAllocationRow).where(
                    QuotaAllocationRow.scope_id == scope_id,
                    QuotaAllocationRow.feature == feature.value,
                    QuotaAllocationRow.period_start == period_start,
                )
            )
            return _to_allocation(row) if row else None

    async def list_allocations(
        self,
        period_start: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
        feature: QuotaFeature | None = None,
    ) -> list[QuotaAllocation]:
        query = select(QuotaAllocationRow).where(QuotaAllocationRow.period_start == period_start)
        if scope_id is not None:
            query = query.where(QuotaAllocationRow.scope_id == scope_id)
        if organization_id is not None:
            query = query.where(QuotaAllocationRow.organization_id == organization_id)
        if feature is not None:
            query = query.where(QuotaAllocationRow.feature == feature.value)

        async with self._db.session() as session:
            rows = (await session.scalars(query)).all()
            return [_to_allocation(row) for row in rows]

    async def create_allocation(self, allocation: QuotaAllocation) -> QuotaAllocation:
        async with self._db.session() as session:
            session.add(
                QuotaAllocationRow(
                    id=allocation.id,
                    scope_type=allocation.scope_type.value,
                    scope_id=allocation.scope_id,
                    organization_id=allocation.organization_id,
                    feature=allocation.feature.value,
                    period_start=allocation.period_start,
                    period_end=allocation.period_end,
                    quota_limit=allocation.limit,
                    used=allocation.used,
                    priority=allocation.priority.value,
                    auto_renew=allocation.auto_renew,
                    allow_overage=allocation.allow_overage,
                    version=allocation.version,
                    updated_at=allocation.updated_at,
                )
            )
            try:
                await session.flush()
            except IntegrityError as e:
                raise DuplicateAllocationConflictError(
                    "Allocation already exists",
                    details={"scope_id": allocation.scope_id, "feature": allocation.feature.value},
                ) from e
        return allocation

    async def update_allocation(
        self, allocation: QuotaAllocation, expected_version: int
    ) -> QuotaAllocation:
        statement = (
            update(QuotaAllocationRow)
            .where(
                QuotaAllocationRow.scope_id == allocation.scope_id,
                QuotaAllocationRow.feature == allocation.feature.value,
                QuotaAllocationRow.period_start == allocation.period_start,
                QuotaAllocationRow.version == expected_version,
            )
            .values(
                quota_limit=allocation.limit,
                organization_id=allocation.organization_id,
                scope_type=allocation.scope_type.value,
                priority=allocation.priority.value,
                auto_renew=allocation.auto_renew,
                allow_overage=allocation.allow_overage,
                version=QuotaAllocationRow.version + 1,
                updated_at=utc_now(),
            )
            .returning(QuotaAllocationRow)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            row = (await session.scalars(statement)).one_or_none()
            if row is None:
                raise DuplicateAllocationConflictError(
                    "Allocation changed concurrently",
                    details={"scope_id": allocation.scope_id, "feature": allocation.feature.value},
                )
            return _to_allocation(row)

    async def try_consume(
        self,
        scope_id: str,
        feature: QuotaFeature,
        period_start: datetime,
        amount: int,
    ) -> QuotaAllocation | None:
        statement = (
            update(QuotaAllocationRow)
            .where(
                QuotaAllocationRow.scope_id == scope_id,
                QuotaAllocationRow.feature == feature.value,
                QuotaAllocationRow.period_start == period_start,
                or_(
                    QuotaAllocationRow.allow_overage.is_(True),
                    QuotaAllocationRow.used + amount <= QuotaAllocationRow.quota_limit,
                ),
            )
            .values(
                used=QuotaAllocationRow.used + amount,
                updated_at=utc_now(),
            )
            .returning(QuotaAllocationRow)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            row = (await session.scalars(statement)).one_or_none()
            if row is None:
                logger.debug(
                    "Consumption rejected: scope=%s feature=%s amount=%d",
                    scope_id,
                    feature.value,
                    amount,
                )
                return None
            return _to_allocation(row)

    async def append_history(self, entry: AllocationHistoryEntry) -> None:
        async with self._db.session() as session:
            session.add(
                AllocationHistoryRow(
                    id=entry.id,
                    actor_id=entry.actor_id,
                    scope_id=entry.scope_id,
                    feature=entry.feature.value,
                    action=entry.action.value,
                    delta=entry.delta,
                    previous_limit=entry.previous_limit,
                    new_limit=entry.new_limit,
                    reason=entry.reason,
                    timestamp=entry.timestamp,
                )
            )

    async def list_history(
        self,
        scope_id: str,
        feature: QuotaFeature | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AllocationHistoryEntry], int]:
        conditions = [AllocationHistoryRow.scope_id == scope_id]
        if feature is not None:
            conditions.append(AllocationHistoryRow.feature == feature.value)

        async with self._db.session() as session:
            total = await session.scalar(
                select(func.count()).select_from(AllocationHistoryRow).where(*conditions)
            )
            rows = (
                await session.scalars(
                    select(AllocationHistoryRow)
                    .where(*conditions)
                    .order_by(AllocationHistoryRow.timestamp.desc())
                    .limit(limit)
                    .offset(offset)
                )
            ).all()
            return [_to_history(row) for row in rows], total or 0

    async def append_usage_event(self, event: UsageEvent) -> None:
        async with self._db.session() as session:
            session.add(
                UsageEventRow(
                    id=event.id,
                    scope_id=event.scope_id,
                    organization_id=event.organization_id,
                    feature=event.feature.value,
                    amount=event.amount,
                    metadata_json=event.metadata,
                    timestamp=event.timestamp,
                )
            )

    async def list_usage_events(
        self,
        since: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
    ) -> list[UsageEvent]:
        query = select(UsageEventRow).where(UsageEventRow.timestamp >= since)
        if scope_id is not None:
            query = query.where(UsageEventRow.scope_id == scope_id)
        if organization_id is not None:
            query = query.where(UsageEventRow.organization_id == organization_id)

        async with self._db.session() as session:
            rows = (await session.scalars(query.order_by(UsageEventRow.timestamp))).all()
            return [_to_event(row) for row in rows]

    async def save_request(self, request: AllocationRequest) -> AllocationRequest:
        async with self._db.session() as session:
            await session.merge(
                AllocationRequestRow(
                    id=request.id,
                    requester_id=request.requester_id,
                    scope_id=request.scope_id,
                    organization_id=request.organization_id,
                    quotas={feature.value: limit for feature, limit in request.quotas.items()},
                    reason=request.reason,
                    status=request.status.value,
                    created_at=request.created_at,
                    reviewed_by=request.reviewed_by,
                    reviewed_at=request.reviewed_at,
                    review_note=request.review_note,
                )
            )
        return request

    async def transition_request(
        self, request: AllocationRequest, expected_status: RequestStatus
    ) -> bool:
        statement = (
            update(AllocationRequestRow)
            .where(
                AllocationRequestRow.id == request.id,
                AllocationRequestRow.status == expected_status.value,
            )
            .values(
                status=request.status.value,
                reviewed_by=request.reviewed_by,
                reviewed_at=request.reviewed_at,
                review_note=request.review_note,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as session:
            result = await session.execute(statement)
            return result.rowcount == 1

    async def get_request(self, request_id: str) -> AllocationRequest | None:
        async with self._db.session() as session:
            row = await session.get(AllocationRequestRow, request_id)
            return _to_request(row) if row else None

    async def list_requests(
        self, organization_id: str, status: RequestStatus | None = None
    ) -> list[AllocationRequest]:
        query = select(AllocationRequestRow).where(
            AllocationRequestRow.organization_id == organization_id
        )
        if status is not None:
            query = query.where(AllocationRequestRow.status == status.value)

        async with self._db.session() as session:
            rows = (
                await session.scalars(query.order_by(AllocationRequestRow.created_at.desc()))
            ).all()
            return [_to_request(row) for row in rows]
