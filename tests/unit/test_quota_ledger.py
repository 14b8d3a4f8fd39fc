# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the quota ledger service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.core.config.settings import QuotaSettings
from src.domains.quota import (
    AllocationAction,
    AllocationNotFoundError,
    AllocationOptions,
    AllocationPoolExceededError,
    AllocationRequestNotFoundError,
    BulkAllocationItem,
    InMemoryQuotaStore,
    InMemoryQuotaViewCache,
    InvalidAllocationError,
    QuotaFeature,
    QuotaLedger,
    RequestStatus,
    ScopeType,
    UsageStatus,
)
from src.infrastructure.events import EventBus, EventTypes
from tests.fakes import MutableClock

CHAT = QuotaFeature.CHAT_COMPLETIONS
ORG = AllocationOptions(organization_id="school-1")


class TestCheckAllowed:
    """Tests for read-only quota checks."""

    @pytest.mark.asyncio
    async def test_unallocated_scope_uses_tier_default(
        self, ledger: QuotaLedger, quota_store: InMemoryQuotaStore, clock: MutableClock
    ) -> None:
        check = await ledger.check_allowed("teacher-1", CHAT)

        assert check.allowed
        assert check.limit == 100
        assert check.used == 0
        assert not check.requires_upgrade
        # Nothing is persisted by a check
        assert await quota_store.list_allocations(clock().replace(day=1, hour=0)) == []

    @pytest.mark.asyncio
    async def test_exhausted_scope_requires_upgrade(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 1})
        await ledger.record_usage("teacher-1", CHAT)

        check = await ledger.check_allowed("teacher-1", "chat_completions")

        assert not check.allowed
        assert check.requires_upgrade
        assert check.remaining == 0

    @pytest.mark.asyncio
    async def test_amount_must_be_positive(self, ledger: QuotaLedger) -> None:
        with pytest.raises(ValueError):
            await ledger.check_allowed("teacher-1", CHAT, amount=0)

    @pytest.mark.asyncio
    async def test_tier_resolver(self, quota_store: InMemoryQuotaStore, clock: MutableClock) -> None:
        ledger = QuotaLedger(
            quota_store,
            tier_resolver=AsyncMock(return_value="pro"),
            clock=clock,
        )

        check = await ledger.check_allowed("teacher-1", QuotaFeature.LESSON_GENERATION)

        assert check.limit == 50


class TestRecordUsage:
    """Tests for consumption."""

    @pytest.mark.asyncio
    async def test_first_use_creates_allocation(
        self, ledger: QuotaLedger, quota_store: InMemoryQuotaStore, clock: MutableClock
    ) -> None:
        result = await ledger.record_usage(
            "teacher-1", CHAT, metadata={"conversation_id": "c1"}, organization_id="school-1"
        )

        assert result.accepted
        assert result.status == UsageStatus.ACCEPTED
        assert result.used == 1
        assert result.limit == 100
        assert result.event_id is not None

        events = await quota_store.list_usage_events(clock().replace(day=1))
        assert len(events) == 1
        assert events[0].organization_id == "school-1"
        assert events[0].metadata == {"conversation_id": "c1"}

    @pytest.mark.asyncio
    async def test_rejection_consumes_nothing(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 2})

        await ledger.record_usage("teacher-1", CHAT, amount=2)
        rejected = await ledger.record_usage("teacher-1", CHAT)

        assert not rejected.accepted
        assert rejected.status == UsageStatus.QUOTA_EXCEEDED
        assert rejected.requires_upgrade
        assert rejected.used == 2
        assert rejected.event_id is None

    @pytest.mark.asyncio
    async def test_last_unit_race_has_exactly_one_winner(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 10})
        await ledger.record_usage("teacher-1", CHAT, amount=9)

        results = await asyncio.gather(
            ledger.record_usage("teacher-1", CHAT),
            ledger.record_usage("teacher-1", CHAT),
        )

        assert sorted(r.status for r in results) == [
            UsageStatus.ACCEPTED,
            UsageStatus.QUOTA_EXCEEDED,
        ]
        check = await ledger.check_allowed("teacher-1", CHAT)
        assert check.used == 10

    @pytest.mark.asyncio
    async def test_concurrent_first_use_never_exceeds_limit(
        self, ledger: QuotaLedger, quota_store: InMemoryQuotaStore, clock: MutableClock
    ) -> None:
        results = await asyncio.gather(
            *[ledger.record_usage("teacher-1", QuotaFeature.LESSON_GENERATION) for _ in range(12)]
        )

        # Free tier: 5 lessons
        assert sum(r.accepted for r in results) == 5
        events = await quota_store.list_usage_events(clock().replace(day=1))
        assert len(events) == 5

    @pytest.mark.asyncio
    async def test_overage_only_when_granted(self, ledger: QuotaLedger) -> None:
        await ledger.allocate(
            "admin", "teacher-1", {CHAT: 1}, AllocationOptions(allow_overage=True)
        )

        await ledger.record_usage("teacher-1", CHAT)
        result = await ledger.record_usage("teacher-1", CHAT)

        assert result.accepted
        assert result.used == 2

    @pytest.mark.asyncio
    async def test_events_published(self, ledger: QuotaLedger, event_bus: EventBus) -> None:
        seen: list[str] = []

        async def handler(event) -> None:
            seen.append(event.event_type)

        event_bus.subscribe("quota.*", handler)
        await ledger.allocate("admin", "teacher-1", {CHAT: 1})
        await ledger.record_usage("teacher-1", CHAT)
        await ledger.record_usage("teacher-1", CHAT)

        assert seen == [
            EventTypes.Quota.ALLOCATED,
            EventTypes.Quota.USAGE_RECORDED,
            EventTypes.Quota.EXCEEDED,
        ]

    @pytest.mark.asyncio
    async def test_auto_renew_carries_limit_into_next_period(
        self, ledger: QuotaLedger, clock: MutableClock
    ) -> None:
        await ledger.allocate(
            "admin", "teacher-1", {CHAT: 7}, AllocationOptions(auto_renew=True)
        )
        await ledger.record_usage("teacher-1", CHAT, amount=7)

        clock.advance(days=20)  # April
        result = await ledger.record_usage("teacher-1", CHAT)

        assert result.accepted
        assert result.limit == 7
        assert result.used == 1


class TestAllocate:
    """Tests for allocation management."""

    @pytest.mark.asyncio
    async def test_create_then_update_records_history(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 20}, ORG)
        updated = await ledger.allocate("admin", "teacher-1", {CHAT: 30}, ORG)

        assert updated[0].limit == 30
        assert updated[0].version == 2

        page = await ledger.get_history("teacher-1")
        assert page.total == 2
        newest, oldest = page.entries
        assert oldest.action == AllocationAction.CREATED
        assert newest.action == AllocationAction.UPDATED
        assert newest.previous_limit == 20
        assert newest.delta == 10

    @pytest.mark.asyncio
    async def test_individual_share_cap(self, ledger: QuotaLedger) -> None:
        # Free pool is 100 chat completions; one principal may hold half
        await ledger.allocate("admin", "teacher-1", {CHAT: 50}, ORG)

        with pytest.raises(AllocationPoolExceededError):
            await ledger.allocate("admin", "teacher-2", {CHAT: 51}, ORG)

    @pytest.mark.asyncio
    async def test_pool_total(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 50}, ORG)
        await ledger.allocate("admin", "teacher-2", {CHAT: 50}, ORG)

        with pytest.raises(AllocationPoolExceededError):
            await ledger.allocate("admin", "teacher-3", {CHAT: 1}, ORG)

        # Re-allocating an existing member does not count them twice
        await ledger.allocate("admin", "teacher-2", {CHAT: 40}, ORG)

    @pytest.mark.asyncio
    async def test_organization_pool_allocation_raises_the_cap(self, ledger: QuotaLedger) -> None:
        await ledger.allocate(
            "admin",
            "school-1",
            {CHAT: 1000},
            AllocationOptions(scope_type=ScopeType.ORGANIZATION, organization_id="school-1"),
        )

        allocations = await ledger.allocate("admin", "teacher-1", {CHAT: 500}, ORG)

        assert allocations[0].limit == 500

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quotas", [{}, {CHAT: -1}, {"teleportation": 3}])
    async def test_invalid_quotas(self, ledger: QuotaLedger, quotas) -> None:
        with pytest.raises(InvalidAllocationError):
            await ledger.allocate("admin", "teacher-1", quotas)

    @pytest.mark.asyncio
    async def test_lowering_below_usage_blocks_further_use(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 10})
        await ledger.record_usage("teacher-1", CHAT, amount=5)

        await ledger.allocate("admin", "teacher-1", {CHAT: 3})

        assert not (await ledger.record_usage("teacher-1", CHAT)).accepted

    @pytest.mark.asyncio
    async def test_role_defaults(self, ledger: QuotaLedger) -> None:
        allocations = await ledger.apply_role_defaults("admin", "teacher-1", "teacher")

        limits = {a.feature: a.limit for a in allocations}
        assert limits[CHAT] == 200

    @pytest.mark.asyncio
    async def test_scope_owned_by_another_organization(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 10}, ORG)

        with pytest.raises(AllocationNotFoundError):
            await ledger.allocate(
                "principal-9",
                "teacher-1",
                {CHAT: 0},
                AllocationOptions(organization_id="school-2"),
            )

        allocation = (await ledger.allocate("admin", "teacher-1", {CHAT: 12}, ORG))[0]
        assert allocation.organization_id == "school-1"
        assert await ledger.scope_organization("teacher-1") == "school-1"
        assert await ledger.scope_organization("teacher-2") is None
        assert await ledger.scope_belongs_to("teacher-1", "school-1")
        assert not await ledger.scope_belongs_to("teacher-1", "school-2")


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_keeps_usage(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 10})
        await ledger.record_usage("teacher-1", CHAT, amount=4)

        revoked = await ledger.revoke("admin", "teacher-1", CHAT, reason="Left school")

        assert revoked.limit == 0
        assert revoked.used == 4
        assert not (await ledger.check_allowed("teacher-1", CHAT)).allowed

        entry = (await ledger.get_history("teacher-1", CHAT)).entries[0]
        assert entry.action == AllocationAction.REVOKED
        assert entry.delta == -10
        assert entry.reason == "Left school"

    @pytest.mark.asyncio
    async def test_revoke_unknown_allocation(self, ledger: QuotaLedger) -> None:
        with pytest.raises(AllocationNotFoundError):
            await ledger.revoke("admin", "teacher-1", CHAT)

    @pytest.mark.asyncio
    async def test_revoke_clears_overage(self, ledger: QuotaLedger) -> None:
        await ledger.allocate(
            "admin",
            "teacher-1",
            {CHAT: 5},
            AllocationOptions(organization_id="school-1", allow_overage=True),
        )

        revoked = await ledger.revoke("admin", "teacher-1", CHAT)
        result = await ledger.record_usage("teacher-1", CHAT, amount=3)

        assert not revoked.allow_overage
        assert result.status == UsageStatus.QUOTA_EXCEEDED
        assert not result.accepted
        assert not (await ledger.check_allowed("teacher-1", CHAT)).allowed

    @pytest.mark.asyncio
    async def test_revoke_allocation_of_another_organization(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 10}, ORG)

        with pytest.raises(AllocationNotFoundError):
            await ledger.revoke("principal-9", "teacher-1", CHAT, organization_id="school-2")

        assert (await ledger.check_allowed("teacher-1", CHAT)).limit == 10


class TestBulkAllocate:
    @pytest.mark.asyncio
    async def test_items_succeed_or_fail_independently(self, ledger: QuotaLedger) -> None:
        results = await ledger.bulk_allocate(
            "admin",
            [
                BulkAllocationItem(scope_id="teacher-1", quotas={CHAT: 30}, options=ORG),
                BulkAllocationItem(scope_id="teacher-2", quotas={CHAT: 90}, options=ORG),
                BulkAllocationItem(scope_id="teacher-3", quotas={CHAT: 20}, options=ORG),
            ],
        )

        assert [r.success for r in results] == [True, False, True]
        assert "maximum individual quota" in results[1].error
        assert results[2].allocations[0].limit == 20


class TestAllocationRequests:
    """Tests for the request and review flow."""

    @pytest.mark.asyncio
    async def test_request_grants_nothing_until_approved(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )

        assert request.status == RequestStatus.PENDING
        assert (await ledger.check_allowed("teacher-1", CHAT)).limit == 100

        reviewed = await ledger.review_allocation_request("principal-1", request.id, True, "OK")

        assert reviewed.status == RequestStatus.APPROVED
        assert reviewed.reviewed_by == "principal-1"
        assert (await ledger.check_allowed("teacher-1", CHAT)).limit == 40

    @pytest.mark.asyncio
    async def test_reject_and_listing(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )

        await ledger.review_allocation_request("principal-1", request.id, False)

        pending = await ledger.list_allocation_requests("school-1", RequestStatus.PENDING)
        rejected = await ledger.list_allocation_requests("school-1", RequestStatus.REJECTED)
        assert pending == []
        assert [r.id for r in rejected] == [request.id]
        assert (await ledger.check_allowed("teacher-1", CHAT)).limit == 100

    @pytest.mark.asyncio
    async def test_review_twice(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )
        await ledger.review_allocation_request("principal-1", request.id, False)

        with pytest.raises(InvalidAllocationError):
            await ledger.review_allocation_request("principal-1", request.id, True)

    @pytest.mark.asyncio
    async def test_failed_approval_leaves_request_pending(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 80}, "Everything"
        )

        with pytest.raises(AllocationPoolExceededError):
            await ledger.review_allocation_request("principal-1", request.id, True)

        pending = await ledger.list_allocation_requests("school-1", RequestStatus.PENDING)
        assert [r.id for r in pending] == [request.id]

    @pytest.mark.asyncio
    async def test_unknown_request(self, ledger: QuotaLedger) -> None:
        with pytest.raises(AllocationRequestNotFoundError):
            await ledger.review_allocation_request("principal-1", "missing", True)

    @pytest.mark.asyncio
    async def test_review_request_of_another_organization(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )

        with pytest.raises(AllocationRequestNotFoundError):
            await ledger.review_allocation_request(
                "principal-9", request.id, True, organization_id="school-2"
            )

        pending = await ledger.list_allocation_requests("school-1", RequestStatus.PENDING)
        assert [r.id for r in pending] == [request.id]

    @pytest.mark.asyncio
    async def test_concurrent_reviews_apply_once(self, ledger: QuotaLedger) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )

        results = await asyncio.gather(
            ledger.review_allocation_request("principal-1", request.id, True),
            ledger.review_allocation_request("principal-2", request.id, True),
            return_exceptions=True,
        )

        reviewed = [r for r in results if not isinstance(r, Exception)]
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(reviewed) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidAllocationError)

        page = await ledger.get_history("teacher-1", CHAT)
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_transition_requires_expected_status(
        self, ledger: QuotaLedger, quota_store: InMemoryQuotaStore
    ) -> None:
        request = await ledger.request_allocation(
            "teacher-1", "teacher-1", "school-1", {CHAT: 40}, "Exam season"
        )
        approved = request.model_copy(update={"status": RequestStatus.APPROVED})
        rejected = request.model_copy(update={"status": RequestStatus.REJECTED})

        assert await quota_store.transition_request(approved, RequestStatus.PENDING)
        assert not await quota_store.transition_request(rejected, RequestStatus.PENDING)
        assert (await quota_store.get_request(request.id)).status == RequestStatus.APPROVED


class TestSuggestions:
    """Tests for advisory reallocation hints."""

    @pytest.mark.asyncio
    async def test_projected_exhaustion_suggests_increase(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 40}, ORG)
        await ledger.record_usage("teacher-1", CHAT, amount=38, organization_id="school-1")

        suggestions = await ledger.get_optimal_suggestions("school-1")

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.kind == "increase"
        assert suggestion.scope_id == "teacher-1"
        assert suggestion.projected_usage > 40
        assert suggestion.suggested_limit > suggestion.projected_usage

    @pytest.mark.asyncio
    async def test_idle_allocation_past_mid_period_suggests_decrease(
        self, ledger: QuotaLedger, clock: MutableClock
    ) -> None:
        await ledger.allocate("admin", "teacher-2", {CHAT: 40}, ORG)

        assert await ledger.get_optimal_suggestions("school-1") == []

        clock.advance(days=10)
        suggestions = await ledger.get_optimal_suggestions("school-1")

        assert [s.kind for s in suggestions] == ["decrease"]
        assert suggestions[0].suggested_limit == 1

    @pytest.mark.asyncio
    async def test_other_organizations_are_ignored(self, ledger: QuotaLedger) -> None:
        await ledger.allocate(
            "admin", "teacher-9", {CHAT: 40}, AllocationOptions(organization_id="school-2")
        )
        await ledger.record_usage("teacher-9", CHAT, amount=40, organization_id="school-2")

        assert await ledger.get_optimal_suggestions("school-1") == []


class TestUsageSummary:
    """Tests for the cached usage summary."""

    @pytest.mark.asyncio
    async def test_summary_covers_every_feature(self, ledger: QuotaLedger) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 20})
        await ledger.record_usage("teacher-1", CHAT, amount=5)

        summary = await ledger.get_usage_summary("teacher-1")

        by_feature = {f.feature: f for f in summary.features}
        assert len(by_feature) == len(QuotaFeature)
        assert by_feature[CHAT].explicit
        assert by_feature[CHAT].percentage_used == 25.0
        assert not by_feature[QuotaFeature.HOMEWORK_HELP].explicit
        assert by_feature[QuotaFeature.HOMEWORK_HELP].limit == 15

    @pytest.mark.asyncio
    async def test_writes_invalidate_cached_summary(
        self, quota_store: InMemoryQuotaStore, clock: MutableClock
    ) -> None:
        cache = InMemoryQuotaViewCache()
        ledger = QuotaLedger(quota_store, QuotaSettings(), cache=cache, clock=clock)

        await ledger.get_usage_summary("teacher-1")
        assert await cache.get("teacher-1", "summary") is not None

        await ledger.record_usage("teacher-1", CHAT)
        assert await cache.get("teacher-1", "summary") is None

        summary = await ledger.get_usage_summary("teacher-1")
        chat = next(f for f in summary.features if f.feature == CHAT)
        assert chat.used == 1
