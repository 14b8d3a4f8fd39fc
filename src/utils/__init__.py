# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for the assistant control plane.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime and quota period operations
"""

from src.utils.datetime import (
    ensure_utc,
    month_period,
    month_start,
    next_month_start,
    previous_month_start,
    utc_now,
)
from src.utils.logging import bind_context, clear_context, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "ensure_utc",
    "month_start",
    "next_month_start",
    "previous_month_start",
    "month_period",
]
