# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Persistence interface for the quota ledger.

QuotaStore is the ledger's only path to shared state. Implementations
must make try_consume() atomic per (scope, feature, period): the check
``used + amount <= limit`` and the increment happen as one step, so
concurrent consumers serialize on the allocation and never clamp.

InMemoryQuotaStore serves tests and single-process deployments. The SQL
implementation lives in sql_store.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime

from src.domains.quota.exceptions import DuplicateAllocationConflictError
from src.domains.quota.models import (
    AllocationHistoryEntry,
    AllocationRequest,
    QuotaAllocation,
    QuotaFeature,
    RequestStatus,
    UsageEvent,
)
from src.utils.datetime import utc_now

AllocationKey = tuple[str, QuotaFeature, datetime]


class QuotaStore(ABC):
    """Abstract persistence collaborator of the quota ledger."""

    @abstractmethod
    async def get_allocation(
        self, scope_id: str, feature: QuotaFeature, period_start: datetime
    ) -> QuotaAllocation | None:
        """Get the allocation of a scope for a feature and period."""
        pass

    @abstractmethod
    async def list_allocations(
        self,
        period_start: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
        feature: QuotaFeature | None = None,
    ) -> list[QuotaAllocation]:
        """List allocations of a period, filtered by scope or organization."""
        pass

    @abstractmethod
    async def create_allocation(self, allocation: QuotaAllocation) -> QuotaAllocation:
        """Insert a new allocation.

        Raises:
            DuplicateAllocationConflictError: If one already exists for the key.
        """
        pass

    @abstractmethod
    async def update_allocation(
        self, allocation: QuotaAllocation, expected_version: int
    ) -> QuotaAllocation:
        """Replace limit and options if the stored version matches.

        ``used`` is never written here; only try_consume() changes it.

        Raises:
            DuplicateAllocationConflictError: If the version does not match.
        """
        pass

    @abstractmethod
    async def try_consume(
        self,
        scope_id: str,
        feature: QuotaFeature,
        period_start: datetime,
        amount: int,
    ) -> QuotaAllocation | None:
        """Atomically add amount to used if the limit permits.

        Returns:
            The updated allocation, or None if the consumption was rejected
            or no allocation exists.
        """
        pass

    @abstractmethod
    async def append_history(self, entry: AllocationHistoryEntry) -> None:
        pass

    @abstractmethod
    async def list_history(
        self,
        scope_id: str,
        feature: QuotaFeature | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AllocationHistoryEntry], int]:
        """List history newest first, with the total count before paging."""
        pass

    @abstractmethod
    async def append_usage_event(self, event: UsageEvent) -> None:
        pass

    @abstractmethod
    async def list_usage_events(
        self,
        since: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
    ) -> list[UsageEvent]:
        pass

    @abstractmethod
    async def save_request(self, request: AllocationRequest) -> AllocationRequest:
        """Insert or replace an allocation request."""
        pass

    @abstractmethod
    async def transition_request(
        self, request: AllocationRequest, expected_status: RequestStatus
    ) -> bool:
        """Replace a request only if its stored status is still expected_status.

        Returns:
            True if the request was written, False if its status had changed.
        """
        pass

    @abstractmethod
    async def get_request(self, request_id: str) -> AllocationRequest | None:
        pass

    @abstractmethod
    async def list_requests(
        self, organization_id: str, status: RequestStatus | None = None
    ) -> list[AllocationRequest]:
        pass


class InMemoryQuotaStore(QuotaStore):
    """Process-local store with one asyncio lock per allocation key."""

    def __init__(self) -> None:
        self._allocations: dict[AllocationKey, QuotaAllocation] = {}
        self._locks: defaultdict[AllocationKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._history: list[AllocationHistoryEntry] = []
        self._events: list[UsageEvent] = []
        self._requests: dict[str, AllocationRequest] = {}

    async def get_allocation(
        self, scope_id: str, feature: QuotaFeature, period_start: datetime
    ) -> QuotaAllocation | None:
        allocation = self._allocations.get((scope_id, feature, period_start))
        return allocation.model_copy() if allocation else None

    async def list_allocations(
        self,
        period_start: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
        feature: QuotaFeature | None = None,
    ) -> list[QuotaAllocation]:
        results = []
        for allocation in self._allocations.values():
            if allocation.period_start != period_start:
                continue
            if scope_id is not None and allocation.scope_id != scope_id:
                continue
            if organization_id is not None and allocation.organization_id != organization_id:
                continue
            if feature is not None and allocation.feature != feature:
                continue
            results.append(allocation.model_copy())
        return results

    async def create_allocation(self, allocation: QuotaAllocation) -> QuotaAllocation:
        key = (allocation.scope_id, allocation.feature, allocation.period_start)
        async with self._locks[key]:
            if key in self._allocations:
                raise DuplicateAllocationConflictError(
                    "Allocation already exists",
                    details={"scope_id": allocation.scope_id, "feature": allocation.feature.value},
                )
            self._allocations[key] = allocation.model_copy()
        return allocation.model_copy()

    async def update_allocation(
        self, allocation: QuotaAllocation, expected_version: int
    ) -> QuotaAllocation:
        key = (allocation.scope_id, allocation.feature, allocation.period_start)
        async with self._locks[key]:
            current = self._allocations.get(key)
            if current is None or current.version != expected_version:
                raise DuplicateAllocationConflictError(
                    "Allocation changed concurrently",
                    details={"scope_id": allocation.scope_id, "feature": allocation.feature.value},
                )
            updated = current.model_copy(
                update={
                    "limit": allocation.limit,
                    "organization_id": allocation.organization_id,
                    "scope_type": allocation.scope_type,
                    "priority": allocation.priority,
                    "auto_renew": allocation.auto_renew,
                    "allow_overage": allocation.allow_overage,
                    "version": current.version + 1,
                    "updated_at": utc_now(),
                }
            )
            self._allocations[key] = updated
        return updated.model_copy()

    async def try_consume(
        self,
        scope_id: str,
        feature: QuotaFeature,
        period_start: datetime,
        amount: int,
    ) -> QuotaAllocation | None:
        key = (scope_id, feature, period_start)
        async with self._locks[key]:
            current = self._allocations.get(key)
            if current is None or not current.can_consume(amount):
                return None
            updated = current.model_copy(
                update={"used": current.used + amount, "updated_at": utc_now()}
            )
            self._allocations[key] = updated
        return updated.model_copy()

    async def append_history(self, entry: AllocationHistoryEntry) -> None:
        self._history.append(entry)

    async def list_history(
        self,
        scope_id: str,
        feature: QuotaFeature | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AllocationHistoryEntry], int]:
        matching = [
            entry
            for entry in reversed(self._history)
            if entry.scope_id == scope_id and (feature is None or entry.feature == feature)
        ]
        return matching[offset : offset + limit], len(matching)

    async def append_usage_event(self, event: UsageEvent) -> None:
        self._events.append(event)

    async def list_usage_events(
        self,
        since: datetime,
        scope_id: str | None = None,
        organization_id: str | None = None,
    ) -> list[UsageEvent]:
        return [
            event
            for event in self._events
            if event.timestamp >= since
            and (scope_id is None or event.scope_id == scope_id)
            and (organization_id is None or event.organization_id == organization_id)
        ]

    async def save_request(self, request: AllocationRequest) -> AllocationRequest:
        self._requests[request.id] = request.model_copy()
        return request

    async def transition_request(
        self, request: AllocationRequest, expected_status: RequestStatus
    ) -> bool:
        stored = self._requests.get(request.id)
        if stored is None or stored.status != expected_status:
            return False
        self._requests[request.id] = request.model_copy()
        return True

    async def get_request(self, request_id: str) -> AllocationRequest | None:
        request = self._requests.get(request_id)
        return request.model_copy() if request else None

    async def list_requests(
        self, organization_id: str, status: RequestStatus | None = None
    ) -> list[AllocationRequest]:
        requests = [
            request.model_copy()
            for request in self._requests.values()
            if request.organization_id == organization_id
            and (status is None or request.status == status)
        ]
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

