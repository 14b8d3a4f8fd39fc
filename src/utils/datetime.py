# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for quota periods and session timestamps.

All datetimes handled by the control plane are timezone-aware UTC.
Quota allocations are monthly, so this module also owns the calendar
month arithmetic used to compute period boundaries.

Usage:
------
    from src.utils.datetime import utc_now, month_period

    start, end = month_period(utc_now())
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Naive datetimes are assumed to be UTC (SQLite drops tzinfo).

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def month_start(dt: datetime) -> datetime:
    """Return the first instant of the UTC calendar month containing dt."""
    dt = ensure_utc(dt)
    return dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(dt: datetime) -> datetime:
    """Return the first instant of the UTC calendar month after dt."""
    start = month_start(dt)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def previous_month_start(dt: datetime) -> datetime:
    """Return the first instant of the UTC calendar month before dt."""
    start = month_start(dt)
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


def month_period(dt: datetime) -> tuple[datetime, datetime]:
    """Get the monthly quota period containing dt.

    Args:
        dt: Any instant inside the period.

    Returns:
        Tuple of (period_start, period_end), end exclusive.

    Example:
        >>> month_period(datetime(2025, 12, 14, tzinfo=timezone.utc))
        (datetime(2025, 12, 1, ...), datetime(2026, 1, 1, ...))
    """
    return month_start(dt), next_month_start(dt)
