# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Subscription tier and role quota defaults.

Monthly limits applied when a scope consumes a feature it has no
explicit allocation for. Unknown tiers fall back to ``free``.
"""

from src.domains.quota.models import QuotaFeature

F = QuotaFeature

# Allocation-managed features share the same table per pool size.
_POOL_FREE = {
    F.CHAT_COMPLETIONS: 100,
    F.IMAGE_GENERATION: 10,
    F.TEXT_TO_SPEECH: 50,
    F.SPEECH_TO_TEXT: 50,
}
_POOL_STARTER = {
    F.CHAT_COMPLETIONS: 500,
    F.IMAGE_GENERATION: 50,
    F.TEXT_TO_SPEECH: 200,
    F.SPEECH_TO_TEXT: 200,
}
_POOL_PREMIUM = {
    F.CHAT_COMPLETIONS: 2000,
    F.IMAGE_GENERATION: 200,
    F.TEXT_TO_SPEECH: 500,
    F.SPEECH_TO_TEXT: 500,
}
_POOL_ENTERPRISE = {
    F.CHAT_COMPLETIONS: 10000,
    F.IMAGE_GENERATION: 1000,
    F.TEXT_TO_SPEECH: 2000,
    F.SPEECH_TO_TEXT: 2000,
}

TIER_LIMITS: dict[str, dict[QuotaFeature, int]] = {
    "free": {
        F.LESSON_GENERATION: 5,
        F.GRADING_ASSISTANCE: 5,
        F.HOMEWORK_HELP: 15,
        **_POOL_FREE,
    },
    "parent_starter": {
        F.LESSON_GENERATION: 0,
        F.GRADING_ASSISTANCE: 0,
        F.HOMEWORK_HELP: 30,
        **_POOL_STARTER,
    },
    "parent_plus": {
        F.LESSON_GENERATION: 0,
        F.GRADING_ASSISTANCE: 0,
        F.HOMEWORK_HELP: 100,
        **_POOL_STARTER,
    },
    "private_teacher": {
        F.LESSON_GENERATION: 20,
        F.GRADING_ASSISTANCE: 20,
        F.HOMEWORK_HELP: 100,
        **_POOL_STARTER,
    },
    "pro": {
        F.LESSON_GENERATION: 50,
        F.GRADING_ASSISTANCE: 100,
        F.HOMEWORK_HELP: 300,
        **_POOL_PREMIUM,
    },
    "enterprise": {
        F.LESSON_GENERATION: 5000,
        F.GRADING_ASSISTANCE: 10000,
        F.HOMEWORK_HELP: 30000,
        **_POOL_ENTERPRISE,
    },
}

ROLE_DEFAULT_QUOTAS: dict[str, dict[QuotaFeature, int]] = {
    "teacher": {
        F.CHAT_COMPLETIONS: 200,
        F.IMAGE_GENERATION: 20,
        F.TEXT_TO_SPEECH: 100,
        F.SPEECH_TO_TEXT: 100,
    },
    "principal": {
        F.CHAT_COMPLETIONS: 500,
        F.IMAGE_GENERATION: 50,
        F.TEXT_TO_SPEECH: 200,
        F.SPEECH_TO_TEXT: 200,
    },
    "principal_admin": {
        F.CHAT_COMPLETIONS: 800,
        F.IMAGE_GENERATION: 80,
        F.TEXT_TO_SPEECH: 300,
        F.SPEECH_TO_TEXT: 300,
    },
}

ALLOCATION_MANAGER_ROLES = frozenset({"principal", "principal_admin", "super_admin"})


def tier_limit(tier: str, feature: QuotaFeature) -> int:
    """Get the monthly default limit of a feature for a tier."""
    limits = TIER_LIMITS.get(tier, TIER_LIMITS["free"])
    return limits.get(feature, 0)


def role_default_quotas(role: str) -> dict[QuotaFeature, int]:
    """Get per-role starting quotas; unknown roles get the teacher set."""
    return dict(ROLE_DEFAULT_QUOTAS.get(role, ROLE_DEFAULT_QUOTAS["teacher"]))


def can_manage_allocations(role: str | None) -> bool:
    return role in ALLOCATION_MANAGER_ROLES
