# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Custom exceptions for the quota ledger.

This module defines the exception hierarchy for quota operations:
- QuotaLedgerError: Base exception for all ledger errors
- InvalidAllocationError: Malformed allocation or request input
- AllocationPoolExceededError: Organization pool or share cap exceeded
- DuplicateAllocationConflictError: Concurrent allocation write lost
- AllocationNotFoundError: No allocation exists for the scope
- AllocationRequestNotFoundError: Unknown allocation request

Exhausted quota is not an exception: record_usage() reports it through
a structured result so callers can show an upgrade prompt.
"""


class QuotaLedgerError(Exception):
    """Base exception for all quota ledger errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class InvalidAllocationError(QuotaLedgerError):
    """Raised when allocation input is invalid (negative limit, no features)."""

    pass


class AllocationPoolExceededError(QuotaLedgerError):
    """Raised when an allocation would exceed the organization's pool.

    Covers both the pool total and the per-principal share cap.
    """

    pass


class DuplicateAllocationConflictError(QuotaLedgerError):
    """Raised when a concurrent writer created or updated the same allocation.

    The store raises it on a unique-key or version mismatch; the ledger
    retries a bounded number of times before surfacing it.
    """

    pass


class AllocationNotFoundError(QuotaLedgerError):
    """Raised when revoking or reading an allocation that does not exist."""

    pass


class AllocationRequestNotFoundError(QuotaLedgerError):
    """Raised when an allocation request ID is unknown."""

    pass
