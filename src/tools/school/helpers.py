# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Helper functions shared by the school data tools."""

from typing import Any, Iterable


def int_param(params: dict[str, Any], key: str, default: int, minimum: int = 1, maximum: int = 365) -> int:
    """Read an integer parameter, falling back to a default and clamping it.

    Args:
        params: Tool parameters.
        key: Parameter name.
        default: Value used when the parameter is absent.
        minimum: Lower bound.
        maximum: Upper bound.

    Returns:
        The clamped integer value.
    """
    value = params.get(key)
    if value is None:
        return default
    return max(minimum, min(maximum, int(value)))


def average(scores: Iterable[float]) -> float | None:
    """Mean of the scores rounded to one decimal, or None when there are none."""
    values = list(scores)
    if not values:
        return None
    return round(sum(values) / len(values), 1)
