# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    quota: Quota ledger endpoints (check, usage, allocations, requests).
    assistant: Conversation orchestrator endpoints (tools, turns, confirmations).
"""

from fastapi import APIRouter

from src.api.v1 import assistant, quota

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

# Include domain routers
router.include_router(quota.router, prefix="/quota", tags=["Quota"])
router.include_router(assistant.router, prefix="/assistant", tags=["Assistant"])

__all__ = ["router"]
