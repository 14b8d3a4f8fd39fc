# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota API endpoints.

This module provides endpoints for the quota ledger:
- GET /check - May the caller consume a feature?
- POST /usage - Record consumption for the caller
- GET /summary - Usage of all features this period
- GET /history - Allocation history of a scope
- POST /allocations - Allocate quotas to a scope (admin)
- POST /allocations/bulk - Allocate to many scopes (admin)
- POST /allocations/{scope_id}/revoke - Revoke a feature (admin)
- POST /requests - Request more quota
- GET /requests - List allocation requests (admin)
- POST /requests/{request_id}/review - Approve or reject (admin)
- GET /suggestions - Advisory reallocation hints (admin)

Example:
    GET /api/v1/quota/check?feature=chat_completions
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import AdminPrincipal, CurrentPrincipal, Ledger, resolve_scope
from src.domains.quota import (
    AllocationHistoryEntry,
    AllocationNotFoundError,
    AllocationOptions,
    AllocationPoolExceededError,
    AllocationRequest,
    AllocationRequestNotFoundError,
    BulkAllocationItem,
    BulkAllocationResult,
    DuplicateAllocationConflictError,
    InvalidAllocationError,
    OptimizationSuggestion,
    QuotaAllocation,
    QuotaCheckResult,
    QuotaFeature,
    QuotaLedgerError,
    RequestStatus,
    UsageRecordResult,
    UsageSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class UsageRequest(BaseModel):
    """Consumption reported by a metered feature."""

    feature: QuotaFeature = Field(description="Metered feature")
    amount: int = Field(default=1, ge=1, description="Units consumed")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Free-form context")


class AllocateRequest(BaseModel):
    """Quotas to grant one scope."""

    scope_id: str = Field(min_length=1, description="Principal or organization ID")
    quotas: dict[QuotaFeature, int] = Field(description="New monthly limit per feature")
    options: AllocationOptions = Field(default_factory=AllocationOptions)


class BulkAllocateRequest(BaseModel):
    items: list[BulkAllocationItem] = Field(min_length=1, description="Independent allocations")


class RevokeRequest(BaseModel):
    feature: QuotaFeature = Field(description="Feature to revoke")
    reason: str | None = Field(default=None, description="Why the feature is revoked")


class CreateAllocationRequest(BaseModel):
    """A principal asking for more quota."""

    quotas: dict[QuotaFeature, int] = Field(description="Requested limit per feature")
    reason: str = Field(min_length=1, description="Why more quota is needed")
    scope_id: str | None = Field(default=None, description="Scope; defaults to the caller")


class ReviewRequest(BaseModel):
    approve: bool = Field(description="Approve (true) or reject (false)")
    note: str | None = Field(default=None, description="Reviewer note")


class HistoryResponse(BaseModel):
    entries: list[AllocationHistoryEntry]
    total: int
    limit: int
    offset: int


# ============================================================================
# Error mapping
# ============================================================================


def _to_http_error(error: QuotaLedgerError) -> HTTPException:
    """Map a ledger error to its HTTP status."""
    if isinstance(error, (AllocationNotFoundError, AllocationRequestNotFoundError)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (AllocationPoolExceededError, DuplicateAllocationConflictError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, InvalidAllocationError):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.message)


def _with_organization(options: AllocationOptions, organization_id: str) -> AllocationOptions:
    """Pin allocation options to the caller's organization, whatever the body says."""
    return options.model_copy(update={"organization_id": organization_id})


# ============================================================================
# Caller endpoints
# ============================================================================


@router.get("/check", response_model=QuotaCheckResult)
async def check_quota(
    principal: CurrentPrincipal,
    ledger: Ledger,
    feature: QuotaFeature = Query(description="Metered feature"),
    amount: int = Query(default=1, ge=1, description="Units the caller intends to consume"),
) -> QuotaCheckResult:
    """Check whether the caller may consume a feature."""
    return await ledger.check_allowed(principal.id, feature, amount)


@router.post("/usage", response_model=UsageRecordResult)
async def record_usage(
    request: UsageRequest,
    principal: CurrentPrincipal,
    ledger: Ledger,
) -> UsageRecordResult:
    """Record consumption for the caller.

    A rejected consumption is not an HTTP error: the result carries
    ``status=quota_exceeded`` and ``requires_upgrade=true``.
    """
    try:
        return await ledger.record_usage(
            principal.id,
            request.feature,
            request.amount,
            metadata=request.metadata,
            organization_id=principal.organization_id,
        )
    except QuotaLedgerError as e:
        raise _to_http_error(e)


@router.get("/summary", response_model=UsageSummary)
async def get_summary(
    principal: CurrentPrincipal,
    ledger: Ledger,
    scope_id: str | None = Query(default=None, description="Scope; defaults to the caller"),
) -> UsageSummary:
    """Get usage of every feature this period."""
    return await ledger.get_usage_summary(await resolve_scope(principal, scope_id, ledger))


@router.get("/history", response_model=HistoryResponse)
async def get_history(
    principal: CurrentPrincipal,
    ledger: Ledger,
    scope_id: str | None = Query(default=None, description="Scope; defaults to the caller"),
    feature: QuotaFeature | None = Query(default=None, description="Filter by feature"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> HistoryResponse:
    """Get allocation history, newest first."""
    page = await ledger.get_history(
        await resolve_scope(principal, scope_id, ledger),
        feature,
        limit=limit,
        offset=offset,
    )
    return HistoryResponse(entries=page.entries, total=page.total, limit=limit, offset=offset)


@router.post(
    "/requests",
    response_model=AllocationRequest,
    status_code=status.HTTP_201_CREATED,
)
async def create_request(
    request: CreateAllocationRequest,
    principal: CurrentPrincipal,
    ledger: Ledger,
) -> AllocationRequest:
    """Ask an administrator for more quota. Grants nothing by itself."""
    try:
        return await ledger.request_allocation(
            requester_id=principal.id,
            scope_id=await resolve_scope(principal, request.scope_id, ledger),
            organization_id=principal.organization_id,
            quotas=request.quotas,
            reason=request.reason,
        )
    except QuotaLedgerError as e:
        raise _to_http_error(e)


# ============================================================================
# Administrator endpoints
# ============================================================================


@router.post("/allocations", response_model=list[QuotaAllocation])
async def allocate(
    request: AllocateRequest,
    principal: AdminPrincipal,
    ledger: Ledger,
) -> list[QuotaAllocation]:
    """Create or update a scope's allocations for this period."""
    try:
        return await ledger.allocate(
            principal.id,
            request.scope_id,
            request.quotas,
            _with_organization(request.options, principal.organization_id),
        )
    except QuotaLedgerError as e:
        logger.info("Allocation for %s rejected: %s", request.scope_id, e.message)
        raise _to_http_error(e)


@router.post("/allocations/bulk", response_model=list[BulkAllocationResult])
async def bulk_allocate(
    request: BulkAllocateRequest,
    principal: AdminPrincipal,
    ledger: Ledger,
) -> list[BulkAllocationResult]:
    """Allocate to many scopes; each item succeeds or fails on its own."""
    items = [
        item.model_copy(
            update={"options": _with_organization(item.options, principal.organization_id)}
        )
        for item in request.items
    ]
    return await ledger.bulk_allocate(principal.id, items)


@router.post("/allocations/{scope_id}/revoke", response_model=QuotaAllocation)
async def revoke(
    scope_id: str,
    request: RevokeRequest,
    principal: AdminPrincipal,
    ledger: Ledger,
) -> QuotaAllocation:
    """Revoke a feature: the limit drops to zero, history is kept."""
    try:
        return await ledger.revoke(
            principal.id,
            scope_id,
            request.feature,
            request.reason,
            organization_id=principal.organization_id,
        )
    except QuotaLedgerError as e:
        raise _to_http_error(e)


@router.get("/requests", response_model=list[AllocationRequest])
async def list_requests(
    principal: AdminPrincipal,
    ledger: Ledger,
    request_status: RequestStatus | None = Query(default=None, alias="status"),
) -> list[AllocationRequest]:
    """List the organization's allocation requests."""
    return await ledger.list_allocation_requests(principal.organization_id, request_status)


@router.post("/requests/{request_id}/review", response_model=AllocationRequest)
async def review_request(
    request_id: str,
    request: ReviewRequest,
    principal: AdminPrincipal,
    ledger: Ledger,
) -> AllocationRequest:
    """Approve (allocating the requested quotas) or reject a request."""
    try:
        return await ledger.review_allocation_request(
            principal.id,
            request_id,
            request.approve,
            note=request.note,
            organization_id=principal.organization_id,
        )
    except QuotaLedgerError as e:
        raise _to_http_error(e)


@router.get("/suggestions", response_model=list[OptimizationSuggestion])
async def get_suggestions(
    principal: AdminPrincipal,
    ledger: Ledger,
) -> list[OptimizationSuggestion]:
    """Get advisory reallocation hints for the organization."""
    return await ledger.get_optimal_suggestions(principal.organization_id)
