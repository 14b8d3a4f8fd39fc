# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota ledger service.

This module provides the QuotaLedger that handles:
- Read-only quota checks before metered work
- Atomic usage recording against monthly allocations
- Allocation management with organization pool limits and audit history
- Allocation requests and their review
- Advisory reallocation suggestions from usage events

A scope consuming a feature for the first time in a period gets an
allocation created on demand: a renewal of the previous period's
allocation when it was marked auto_renew, otherwise the tier default.

Example:
    >>> ledger = QuotaLedger(InMemoryQuotaStore(), settings.quota)
    >>> check = await ledger.check_allowed("teacher-1", "lesson_generation")
    >>> if check.allowed:
    ...     result = await ledger.record_usage("teacher-1", "lesson_generation")
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from src.core.config.settings import QuotaSettings
from src.domains.quota.cache import QuotaViewCache
from src.domains.quota.exceptions import (
    AllocationNotFoundError,
    AllocationPoolExceededError,
    AllocationRequestNotFoundError,
    DuplicateAllocationConflictError,
    InvalidAllocationError,
    QuotaLedgerError,
)
from src.domains.quota.models import (
    AllocationAction,
    AllocationHistoryEntry,
    AllocationHistoryPage,
    AllocationOptions,
    AllocationRequest,
    BulkAllocationItem,
    BulkAllocationResult,
    FeatureUsage,
    OptimizationSuggestion,
    QuotaAllocation,
    QuotaCheckResult,
    QuotaFeature,
    RequestStatus,
    ScopeType,
    UsageEvent,
    UsageRecordResult,
    UsageStatus,
    UsageSummary,
)
from src.domains.quota.store import QuotaStore
from src.domains.quota.tiers import role_default_quotas, tier_limit
from src.infrastructure.events import EventBus, EventTypes
from src.utils.datetime import month_period, previous_month_start, utc_now

logger = logging.getLogger(__name__)

TierResolver = Callable[[str], Awaitable[str | None]]
Period = tuple[datetime, datetime]

SUMMARY_VIEW = "summary"


class QuotaLedger:
    """Per-feature, per-scope usage limits with auditable allocations.

    Attributes:
        _store: Persistence collaborator; the only path to shared state.
        _settings: Quota settings (tier, share cap, retries, thresholds).
        _cache: Optional read-view cache for usage summaries.
        _event_bus: Optional event bus for quota notifications.

    Example:
        >>> ledger = QuotaLedger(store, settings.quota, event_bus=bus)
        >>> await ledger.allocate(
        ...     "principal-1",
        ...     "teacher-1",
        ...     {QuotaFeature.CHAT_COMPLETIONS: 200},
        ...     AllocationOptions(organization_id="school-1", reason="Term start"),
        ... )
    """

    def __init__(
        self,
        store: QuotaStore,
        settings: QuotaSettings | None = None,
        cache: QuotaViewCache | None = None,
        event_bus: EventBus | None = None,
        tier_resolver: TierResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the ledger.

        Args:
            store: Quota store.
            settings: Quota settings, defaults applied when omitted.
            cache: Read-view cache; summaries are not cached when omitted.
            event_bus: Event bus for quota events.
            tier_resolver: Async lookup of a scope's subscription tier.
                The configured default tier is used when it returns None.
            clock: Source of the current time, used for period boundaries.
        """
        self._store = store
        self._settings = settings or QuotaSettings()
        self._cache = cache
        self._event_bus = event_bus
        self._tier_resolver = tier_resolver
        self._clock = clock

    # ========== Usage ==========

    async def check_allowed(
        self,
        scope_id: str,
        feature: QuotaFeature | str,
        amount: int = 1,
    ) -> QuotaCheckResult:
        """Check whether a scope may consume amount of a feature.

        Read-only: no allocation is created. A scope without an allocation
        is evaluated against the limit it would receive on first use.

        Args:
            scope_id: Principal or organization identifier.
            feature: Metered feature.
            amount: Units the caller intends to consume.

        Returns:
            QuotaCheckResult with limit, usage and upgrade hint.
        """
        _validate_amount(amount)
        feature = QuotaFeature(feature)
        period = self._current_period()

        allocation = await self._store.get_allocation(scope_id, feature, period[0])
        if allocation is None:
            allocation = await self._default_allocation(scope_id, feature, period, None)

        allowed = allocation.can_consume(amount)
        return QuotaCheckResult(
            scope_id=scope_id,
            feature=feature,
            allowed=allowed,
            used=allocation.used,
            limit=allocation.limit,
            remaining=allocation.remaining,
            requires_upgrade=not allowed,
        )

    async def record_usage(
        self,
        scope_id: str,
        feature: QuotaFeature | str,
        amount: int = 1,
        metadata: dict[str, Any] | None = None,
        organization_id: str | None = None,
    ) -> UsageRecordResult:
        """Consume amount of a feature for a scope.

        The consumption is accepted only if it keeps ``used <= limit``
        (or the allocation allows overage); a rejected attempt consumes
        nothing and is reported as ``quota_exceeded``.

        Args:
            scope_id: Principal or organization identifier.
            feature: Metered feature.
            amount: Units to consume.
            metadata: Free-form context stored on the usage event.
            organization_id: Organization of the scope, stored on an
                allocation created by this call and on the usage event.

        Returns:
            UsageRecordResult describing the outcome.
        """
        _validate_amount(amount)
        feature = QuotaFeature(feature)
        period = self._current_period()

        allocation = await self._ensure_allocation(scope_id, feature, period, organization_id)
        organization_id = organization_id or allocation.organization_id

        consumed = await self._store.try_consume(scope_id, feature, period[0], amount)
        if consumed is None:
            current = await self._store.get_allocation(scope_id, feature, period[0]) or allocation
            logger.info(
                "Quota exceeded: scope=%s feature=%s used=%d limit=%d amount=%d",
                scope_id,
                feature.value,
                current.used,
                current.limit,
                amount,
            )
            await self._publish(
                EventTypes.Quota.EXCEEDED,
                {
                    "scope_id": scope_id,
                    "feature": feature.value,
                    "used": current.used,
                    "limit": current.limit,
                    "amount": amount,
                },
                organization_id,
            )
            return UsageRecordResult(
                scope_id=scope_id,
                feature=feature,
                status=UsageStatus.QUOTA_EXCEEDED,
                amount=amount,
                used=current.used,
                limit=current.limit,
                remaining=current.remaining,
                requires_upgrade=True,
            )

        event = UsageEvent(
            scope_id=scope_id,
            organization_id=organization_id,
            feature=feature,
            amount=amount,
            metadata=metadata or {},
            timestamp=self._clock(),
        )
        await self._store.append_usage_event(event)
        await self._invalidate(scope_id)
        await self._publish(
            EventTypes.Quota.USAGE_RECORDED,
            {
                "scope_id": scope_id,
                "feature": feature.value,
                "amount": amount,
                "used": consumed.used,
                "limit": consumed.limit,
            },
            organization_id,
        )
        logger.debug(
            "Usage recorded: scope=%s feature=%s used=%d/%d",
            scope_id,
            feature.value,
            consumed.used,
            consumed.limit,
        )
        return UsageRecordResult(
            scope_id=scope_id,
            feature=feature,
            status=UsageStatus.ACCEPTED,
            amount=amount,
            used=consumed.used,
            limit=consumed.limit,
            remaining=consumed.remaining,
            event_id=event.id,
        )

    # ========== Allocation management ==========

    async def allocate(
        self,
        actor_id: str,
        scope_id: str,
        quotas: dict[QuotaFeature, int] | dict[str, int],
        options: AllocationOptions | None = None,
    ) -> list[QuotaAllocation]:
        """Create or update the current-period allocations of a scope.

        Args:
            actor_id: Principal performing the change (recorded in history).
            scope_id: Scope receiving the allocation.
            quotas: New limit per feature.
            options: Reason, organization, priority and renewal options.

        Returns:
            The written allocations, one per feature.

        Raises:
            InvalidAllocationError: If quotas is empty or holds a negative limit.
            AllocationNotFoundError: If the scope already holds allocations
                of another organization this period.
            AllocationPoolExceededError: If a limit exceeds the organization
                pool or the individual share cap.
            DuplicateAllocationConflictError: If concurrent writers kept
                winning after all retries.
        """
        options = options or AllocationOptions()
        normalized = _normalize_quotas(quotas)
        period = self._current_period()

        if not await self.scope_belongs_to(scope_id, options.organization_id):
            raise AllocationNotFoundError(
                f"Scope {scope_id} is not managed by organization {options.organization_id}",
                details={"scope_id": scope_id},
            )

        if options.scope_type == ScopeType.PRINCIPAL and options.organization_id:
            for feature, limit in normalized.items():
                await self._check_pool(scope_id, options.organization_id, feature, limit, period)

        written: list[QuotaAllocation] = []
        for feature, limit in normalized.items():
            allocation, previous_limit, action = await self._write_allocation(
                scope_id, feature, limit, options, period
            )
            await self._store.append_history(
                AllocationHistoryEntry(
                    actor_id=actor_id,
                    scope_id=scope_id,
                    feature=feature,
                    action=action,
                    delta=limit - previous_limit,
                    previous_limit=previous_limit,
                    new_limit=limit,
                    reason=options.reason,
                    timestamp=self._clock(),
                )
            )
            written.append(allocation)

        await self._invalidate(scope_id)
        await self._publish(
            EventTypes.Quota.ALLOCATED,
            {
                "actor_id": actor_id,
                "scope_id": scope_id,
                "quotas": {feature.value: limit for feature, limit in normalized.items()},
            },
            options.organization_id,
        )
        logger.info(
            "Allocated quotas: actor=%s scope=%s features=%s",
            actor_id,
            scope_id,
            ",".join(feature.value for feature in normalized),
        )
        return written

    async def revoke(
        self,
        actor_id: str,
        scope_id: str,
        feature: QuotaFeature | str,
        reason: str | None = None,
        organization_id: str | None = None,
    ) -> QuotaAllocation:
        """Revoke a scope's current allocation by setting its limit to zero.

        Allocations are never deleted, so usage history stays intact.
        Overage is switched off as well, so a revoked allocation admits
        no further usage.

        Args:
            actor_id: Principal performing the revocation.
            scope_id: Scope losing the allocation.
            feature: Feature to revoke.
            reason: Optional audit reason.
            organization_id: When given, only an allocation owned by this
                organization can be revoked.

        Raises:
            AllocationNotFoundError: If the scope has no allocation this
                period, or it belongs to another organization.
            DuplicateAllocationConflictError: If retries were exhausted.
        """
        feature = QuotaFeature(feature)
        period = self._current_period()

        for attempt in range(1, self._settings.conflict_retries + 1):
            current = await self._store.get_allocation(scope_id, feature, period[0])
            if current is None or not _owned_by(current.organization_id, organization_id):
                raise AllocationNotFoundError(
                    f"No {feature.value} allocation for scope {scope_id}",
                    details={"scope_id": scope_id, "feature": feature.value},
                )
            try:
                revoked = await self._store.update_allocation(
                    current.model_copy(
                        update={"limit": 0, "auto_renew": False, "allow_overage": False}
                    ),
                    expected_version=current.version,
                )
            except DuplicateAllocationConflictError:
                logger.warning(
                    "Revoke conflict for %s/%s (attempt %d)", scope_id, feature.value, attempt
                )
                continue

            await self._store.append_history(
                AllocationHistoryEntry(
                    actor_id=actor_id,
                    scope_id=scope_id,
                    feature=feature,
                    action=AllocationAction.REVOKED,
                    delta=-current.limit,
                    previous_limit=current.limit,
                    new_limit=0,
                    reason=reason,
                    timestamp=self._clock(),
                )
            )
            await self._invalidate(scope_id)
            await self._publish(
                EventTypes.Quota.REVOKED,
                {"actor_id": actor_id, "scope_id": scope_id, "feature": feature.value},
                revoked.organization_id,
            )
            logger.info("Revoked %s allocation of %s by %s", feature.value, scope_id, actor_id)
            return revoked

        raise DuplicateAllocationConflictError(
            "Allocation kept changing concurrently",
            details={"scope_id": scope_id, "feature": feature.value},
        )

    async def bulk_allocate(
        self,
        actor_id: str,
        items: list[BulkAllocationItem],
    ) -> list[BulkAllocationResult]:
        """Allocate for several scopes, reporting success per item.

        Items are independent: a failure does not undo earlier items.
        """
        results: list[BulkAllocationResult] = []
        for item in items:
            try:
                allocations = await self.allocate(actor_id, item.scope_id, item.quotas, item.options)
            except QuotaLedgerError as e:
                logger.warning("Bulk allocation failed for %s: %s", item.scope_id, str(e))
                results.append(
                    BulkAllocationResult(scope_id=item.scope_id, success=False, error=e.message)
                )
                continue
            results.append(
                BulkAllocationResult(scope_id=item.scope_id, success=True, allocations=allocations)
            )
        return results

    async def apply_role_defaults(
        self,
        actor_id: str,
        scope_id: str,
        role: str,
        organization_id: str | None = None,
    ) -> list[QuotaAllocation]:
        """Allocate the starting quotas of a role (teacher, principal, ...)."""
        return await self.allocate(
            actor_id,
            scope_id,
            role_default_quotas(role),
            AllocationOptions(
                reason=f"Default quotas for role {role}",
                organization_id=organization_id,
            ),
        )

    # ========== Allocation requests ==========

    async def request_allocation(
        self,
        requester_id: str,
        scope_id: str,
        organization_id: str,
        quotas: dict[QuotaFeature, int] | dict[str, int],
        reason: str,
    ) -> AllocationRequest:
        """Record a pending request for more quota. Grants nothing.

        Raises:
            InvalidAllocationError: If quotas is empty or negative.
        """
        request = AllocationRequest(
            requester_id=requester_id,
            scope_id=scope_id,
            organization_id=organization_id,
            quotas=_normalize_quotas(quotas),
            reason=reason,
            created_at=self._clock(),
        )
        await self._store.save_request(request)
        await self._publish(
            EventTypes.Quota.REQUEST_SUBMITTED,
            {"request_id": request.id, "scope_id": scope_id, "requester_id": requester_id},
            organization_id,
        )
        logger.info("Allocation request %s submitted by %s", request.id, requester_id)
        return request

    async def list_allocation_requests(
        self,
        organization_id: str,
        status: RequestStatus | None = None,
    ) -> list[AllocationRequest]:
        return await self._store.list_requests(organization_id, status)

    async def review_allocation_request(
        self,
        actor_id: str,
        request_id: str,
        approve: bool,
        note: str | None = None,
        organization_id: str | None = None,
    ) -> AllocationRequest:
        """Approve or reject a pending request.

        The request leaves the pending state through a conditional store
        write, so of two concurrent reviews only one takes effect. Approval
        then allocates the requested quotas; if that allocation fails the
        request is put back to pending and the error propagates.

        Args:
            actor_id: Reviewing principal.
            request_id: Request to review.
            approve: Approve (allocate) or reject.
            note: Optional review note.
            organization_id: When given, only requests of this organization
                can be reviewed.

        Raises:
            AllocationRequestNotFoundError: If the request does not exist or
                belongs to another organization.
            InvalidAllocationError: If the request was already reviewed.
        """
        request = await self._store.get_request(request_id)
        if request is None or not _owned_by(request.organization_id, organization_id):
            raise AllocationRequestNotFoundError(f"Allocation request {request_id} not found")

        reviewed = request.model_copy(
            update={
                "status": RequestStatus.APPROVED if approve else RequestStatus.REJECTED,
                "reviewed_by": actor_id,
                "reviewed_at": self._clock(),
                "review_note": note,
            }
        )
        if request.status != RequestStatus.PENDING or not await self._store.transition_request(
            reviewed, RequestStatus.PENDING
        ):
            current = await self._store.get_request(request_id) or request
            raise InvalidAllocationError(
                f"Allocation request {request_id} was already {current.status.value}"
            )

        if approve:
            try:
                await self.allocate(
                    actor_id,
                    request.scope_id,
                    request.quotas,
                    AllocationOptions(
                        reason=f"Approved request {request.id}: {request.reason}",
                        organization_id=request.organization_id,
                    ),
                )
            except QuotaLedgerError:
                await self._store.transition_request(request, reviewed.status)
                raise

        await self._publish(
            EventTypes.Quota.REQUEST_REVIEWED,
            {"request_id": request.id, "status": reviewed.status.value, "actor_id": actor_id},
            request.organization_id,
        )
        return reviewed

    # ========== Read views ==========

    async def get_optimal_suggestions(self, organization_id: str) -> list[OptimizationSuggestion]:
        """Suggest allocation changes for an organization's principals.

        Projects each allocation's usage to the end of the period from the
        recent daily rate. Projected exhaustion suggests an increase;
        sustained low use past mid-period suggests a decrease. Advisory
        only, computed from a snapshot without any locking.
        """
        now = self._clock()
        start, end = month_period(now)
        allocations = [
            allocation
            for allocation in await self._store.list_allocations(
                start, organization_id=organization_id
            )
            if allocation.scope_type == ScopeType.PRINCIPAL and allocation.limit > 0
        ]
        if not allocations:
            return []

        since = max(start, now - timedelta(days=self._settings.suggestion_lookback_days))
        events = await self._store.list_usage_events(since, organization_id=organization_id)
        observed: dict[tuple[str, QuotaFeature], int] = {}
        for event in events:
            key = (event.scope_id, event.feature)
            observed[key] = observed.get(key, 0) + event.amount

        elapsed_days = max((now - since).total_seconds() / 86400, 1.0)
        remaining_days = max((end - now).total_seconds() / 86400, 0.0)
        period_elapsed = (now - start) / (end - start)

        suggestions: list[OptimizationSuggestion] = []
        for allocation in allocations:
            daily_rate = observed.get((allocation.scope_id, allocation.feature), 0) / elapsed_days
            projected = allocation.used + math.ceil(daily_rate * remaining_days)

            if projected > allocation.limit * self._settings.high_utilization_threshold:
                suggestions.append(
                    OptimizationSuggestion(
                        scope_id=allocation.scope_id,
                        feature=allocation.feature,
                        kind="increase",
                        current_limit=allocation.limit,
                        used=allocation.used,
                        projected_usage=projected,
                        suggested_limit=math.ceil(projected * 1.2),
                        reason=(
                            f"Projected to use {projected} of {allocation.limit} "
                            "before the period ends"
                        ),
                    )
                )
            elif (
                period_elapsed >= 0.5
                and projected < allocation.limit * self._settings.low_utilization_threshold
            ):
                suggestions.append(
                    OptimizationSuggestion(
                        scope_id=allocation.scope_id,
                        feature=allocation.feature,
                        kind="decrease",
                        current_limit=allocation.limit,
                        used=allocation.used,
                        projected_usage=projected,
                        suggested_limit=max(math.ceil(projected * 1.5), 1),
                        reason=(
                            f"Projected to use only {projected} of {allocation.limit} "
                            "this period"
                        ),
                    )
                )

        suggestions.sort(key=lambda s: (s.kind != "increase", s.scope_id, s.feature.value))
        return suggestions

    async def scope_organization(self, scope_id: str) -> str | None:
        """Organization owning a scope's current-period allocations, if any."""
        allocations = await self._store.list_allocations(
            self._current_period()[0], scope_id=scope_id
        )
        owners = {a.organization_id for a in allocations if a.organization_id is not None}
        return owners.pop() if len(owners) == 1 else None

    async def scope_belongs_to(self, scope_id: str, organization_id: str | None) -> bool:
        """Whether an organization may manage a scope.

        True when no organization is given or none of the scope's
        current-period allocations belongs to a different organization.
        """
        if organization_id is None:
            return True
        allocations = await self._store.list_allocations(
            self._current_period()[0], scope_id=scope_id
        )
        return all(_owned_by(a.organization_id, organization_id) for a in allocations)

    async def get_history(
        self,
        scope_id: str,
        feature: QuotaFeature | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AllocationHistoryPage:
        """Get allocation history of a scope, newest first."""
        entries, total = await self._store.list_history(
            scope_id,
            QuotaFeature(feature) if feature is not None else None,
            limit=limit,
            offset=offset,
        )
        return AllocationHistoryPage(entries=entries, total=total)

    async def get_usage_summary(self, scope_id: str) -> UsageSummary:
        """Get usage of every feature for a scope in the current period.

        Served from the view cache when present; write paths invalidate it.
        """
        if self._cache is not None:
            cached = await self._cache.get(scope_id, SUMMARY_VIEW)
            if cached is not None:
                return UsageSummary.model_validate(cached)

        period = self._current_period()
        explicit = {
            allocation.feature: allocation
            for allocation in await self._store.list_allocations(period[0], scope_id=scope_id)
        }

        features: list[FeatureUsage] = []
        for feature in QuotaFeature:
            allocation = explicit.get(feature)
            if allocation is None:
                allocation = await self._default_allocation(scope_id, feature, period, None)
            percentage = round(allocation.used / allocation.limit * 100, 1) if allocation.limit else 0.0
            features.append(
                FeatureUsage(
                    feature=feature,
                    used=allocation.used,
                    limit=allocation.limit,
                    remaining=allocation.remaining,
                    percentage_used=percentage,
                    explicit=feature in explicit,
                )
            )

        summary = UsageSummary(
            scope_id=scope_id,
            period_start=period[0],
            period_end=period[1],
            features=features,
        )
        if self._cache is not None:
            await self._cache.set(
                scope_id,
                SUMMARY_VIEW,
                summary.model_dump(mode="json"),
                self._settings.cache_ttl_seconds,
            )
        return summary

    # ========== Internals ==========

    def _current_period(self) -> Period:
        return month_period(self._clock())

    async def _resolve_tier(self, scope_id: str) -> str:
        if self._tier_resolver is not None:
            tier = await self._tier_resolver(scope_id)
            if tier:
                return tier
        return self._settings.default_tier

    async def _default_allocation(
        self,
        scope_id: str,
        feature: QuotaFeature,
        period: Period,
        organization_id: str | None,
    ) -> QuotaAllocation:
        """Build, without persisting, the allocation a scope gets on first use."""
        start, end = period
        previous = await self._store.get_allocation(scope_id, feature, previous_month_start(start))
        if previous is not None and previous.auto_renew:
            return QuotaAllocation(
                scope_type=previous.scope_type,
                scope_id=scope_id,
                organization_id=previous.organization_id,
                feature=feature,
                period_start=start,
                period_end=end,
                limit=previous.limit,
                priority=previous.priority,
                auto_renew=True,
                allow_overage=previous.allow_overage,
            )

        tier = await self._resolve_tier(scope_id)
        return QuotaAllocation(
            scope_id=scope_id,
            organization_id=organization_id,
            feature=feature,
            period_start=start,
            period_end=end,
            limit=tier_limit(tier, feature),
        )

    async def _ensure_allocation(
        self,
        scope_id: str,
        feature: QuotaFeature,
        period: Period,
        organization_id: str | None,
    ) -> QuotaAllocation:
        existing = await self._store.get_allocation(scope_id, feature, period[0])
        if existing is not None:
            return existing

        candidate = await self._default_allocation(scope_id, feature, period, organization_id)
        try:
            created = await self._store.create_allocation(candidate)
        except DuplicateAllocationConflictError:
            # A concurrent first use created it; consume against that one.
            existing = await self._store.get_allocation(scope_id, feature, period[0])
            if existing is None:
                raise
            return existing

        logger.info(
            "Created %s allocation for %s with limit %d",
            feature.value,
            scope_id,
            created.limit,
        )
        return created

    async def _check_pool(
        self,
        scope_id: str,
        organization_id: str,
        feature: QuotaFeature,
        limit: int,
        period: Period,
    ) -> None:
        pool_allocation = await self._store.get_allocation(organization_id, feature, period[0])
        if pool_allocation is not None:
            pool = pool_allocation.limit
        else:
            pool = tier_limit(await self._resolve_tier(organization_id), feature)

        cap = math.floor(pool * self._settings.max_individual_share)
        if limit > cap:
            raise AllocationPoolExceededError(
                f"{feature.value} limit {limit} exceeds the maximum individual quota of {cap}",
                details={"scope_id": scope_id, "feature": feature.value, "cap": cap},
            )

        members = await self._store.list_allocations(
            period[0], organization_id=organization_id, feature=feature
        )
        allocated = sum(
            member.limit
            for member in members
            if member.scope_type == ScopeType.PRINCIPAL and member.scope_id != scope_id
        )
        if allocated + limit > pool:
            raise AllocationPoolExceededError(
                f"{feature.value} pool of {organization_id} has {pool - allocated} "
                f"left, {limit} requested",
                details={
                    "scope_id": scope_id,
                    "feature": feature.value,
                    "pool": pool,
                    "allocated": allocated,
                },
            )

    async def _write_allocation(
        self,
        scope_id: str,
        feature: QuotaFeature,
        limit: int,
        options: AllocationOptions,
        period: Period,
    ) -> tuple[QuotaAllocation, int, AllocationAction]:
        """Create or version-checked update, retried on conflict.

        Returns:
            Tuple of (written allocation, previous limit, history action).
        """
        start, end = period
        for attempt in range(1, self._settings.conflict_retries + 1):
            current = await self._store.get_allocation(scope_id, feature, start)
            try:
                if current is None:
                    created = await self._store.create_allocation(
                        QuotaAllocation(
                            scope_type=options.scope_type,
                            scope_id=scope_id,
                            organization_id=options.organization_id,
                            feature=feature,
                            period_start=start,
                            period_end=end,
                            limit=limit,
                            priority=options.priority,
                            auto_renew=options.auto_renew,
                            allow_overage=options.allow_overage,
                        )
                    )
                    return created, 0, AllocationAction.CREATED

                updated = await self._store.update_allocation(
                    current.model_copy(
                        update={
                            "limit": limit,
                            "scope_type": options.scope_type,
                            "organization_id": options.organization_id or current.organization_id,
                            "priority": options.priority,
                            "auto_renew": options.auto_renew,
                            "allow_overage": options.allow_overage,
                        }
                    ),
                    expected_version=current.version,
                )
                return updated, current.limit, AllocationAction.UPDATED
            except DuplicateAllocationConflictError:
                logger.warning(
                    "Allocation conflict for %s/%s (attempt %d)", scope_id, feature.value, attempt
                )

        raise DuplicateAllocationConflictError(
            "Allocation kept changing concurrently",
            details={"scope_id": scope_id, "feature": feature.value},
        )

    async def _invalidate(self, scope_id: str) -> None:
        if self._cache is not None:
            await self._cache.invalidate(scope_id)

    async def _publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        organization_id: str | None,
    ) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event_type, payload, organization_id=organization_id)


def _validate_amount(amount: int) -> None:
    if amount < 1:
        raise ValueError(f"amount must be a positive integer, got {amount}")


def _owned_by(owner_id: str | None, organization_id: str | None) -> bool:
    """Whether an organization may manage a record owned by owner_id.

    No organization means an unrestricted caller; unowned records are
    open to any organization.
    """
    return organization_id is None or owner_id is None or owner_id == organization_id


def _normalize_quotas(quotas: dict[QuotaFeature, int] | dict[str, int]) -> dict[QuotaFeature, int]:
    if not quotas:
        raise InvalidAllocationError("At least one feature quota is required")

    normalized: dict[QuotaFeature, int] = {}
    for feature, limit in quotas.items():
        try:
            key = QuotaFeature(feature)
        except ValueError as e:
            raise InvalidAllocationError(f"Unknown feature: {feature}") from e
        if limit < 0:
            raise InvalidAllocationError(f"{key.value} limit must not be negative")
        normalized[key] = int(limit)
    return normalized
