# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Quota domain package.

This package provides the quota ledger:
- Atomic usage recording against monthly per-feature allocations
- Allocation management within organization pools, with audit history
- Allocation requests and advisory reallocation suggestions
"""

from src.domains.quota.cache import (
    InMemoryQuotaViewCache,
    QuotaViewCache,
    RedisQuotaViewCache,
)
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
    AllocationOptions,
    AllocationRequest,
    BulkAllocationItem,
    BulkAllocationResult,
    OptimizationSuggestion,
    Priority,
    QuotaAllocation,
    QuotaCheckResult,
    QuotaFeature,
    RequestStatus,
    ScopeType,
    UsageRecordResult,
    UsageStatus,
    UsageSummary,
)
from src.domains.quota.service import QuotaLedger
from src.domains.quota.sql_store import SQLAlchemyQuotaStore
from src.domains.quota.store import InMemoryQuotaStore, QuotaStore

__all__ = [
    # Service
    "QuotaLedger",
    # Stores
    "QuotaStore",
    "InMemoryQuotaStore",
    "SQLAlchemyQuotaStore",
    # Caches
    "QuotaViewCache",
    "InMemoryQuotaViewCache",
    "RedisQuotaViewCache",
    # Models
    "AllocationAction",
    "QuotaFeature",
    "ScopeType",
    "Priority",
    "RequestStatus",
    "UsageStatus",
    "QuotaAllocation",
    "AllocationHistoryEntry",
    "AllocationOptions",
    "AllocationRequest",
    "BulkAllocationItem",
    "BulkAllocationResult",
    "OptimizationSuggestion",
    "QuotaCheckResult",
    "UsageRecordResult",
    "UsageSummary",
    # Errors
    "QuotaLedgerError",
    "InvalidAllocationError",
    "AllocationPoolExceededError",
    "DuplicateAllocationConflictError",
    "AllocationNotFoundError",
    "AllocationRequestNotFoundError",
]
