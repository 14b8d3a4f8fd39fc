# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration (API) tests
"""

from collections.abc import Callable, Iterator
from datetime import timedelta

import pytest

from src.core.config import clear_settings_cache
from src.core.intelligence.llm import StreamChunk
from src.core.tools import ToolContext
from src.domains.quota import InMemoryQuotaStore, InMemoryQuotaViewCache, QuotaLedger
from src.infrastructure.events import EventBus
from src.tools import (
    Assignment,
    CalendarEvent,
    Grade,
    Group,
    InMemorySchoolDirectory,
    Member,
)
from tests.fakes import FIXED_NOW, MutableClock, ScriptedBackend


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    """Keep cached settings from leaking between tests."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def quota_store() -> InMemoryQuotaStore:
    return InMemoryQuotaStore()


@pytest.fixture
def ledger(
    quota_store: InMemoryQuotaStore, event_bus: EventBus, clock: MutableClock
) -> QuotaLedger:
    """Quota ledger over the in-memory store, pinned to FIXED_NOW."""
    return QuotaLedger(
        quota_store,
        cache=InMemoryQuotaViewCache(),
        event_bus=event_bus,
        clock=clock,
    )


@pytest.fixture
def tool_context() -> ToolContext:
    """A teacher of school-1."""
    return ToolContext(
        organization_id="school-1",
        principal_id="teacher-1",
        role="teacher",
        conversation_id="conv-1",
    )


@pytest.fixture
def leader_context() -> ToolContext:
    """The principal of school-1."""
    return ToolContext(
        organization_id="school-1",
        principal_id="principal-1",
        role="principal",
        conversation_id="conv-2",
    )


@pytest.fixture
def directory() -> InMemorySchoolDirectory:
    """Two schools; school-2 records must never leak into school-1 answers."""
    return InMemorySchoolDirectory(
        members=[
            Member("m1", "school-1", "Thandi", "Nkosi", group_id="g1"),
            Member("m2", "school-1", "Sipho", "Dlamini", group_id="g1"),
            Member("m3", "school-1", "Lerato", "Mokoena", group_id="g2", status="inactive"),
            Member("x1", "school-2", "Other", "Learner", group_id="gx"),
        ],
        groups=[
            Group("g1", "school-1", "Grade R Sunflowers"),
            Group("g2", "school-1", "Grade 1 Daisies"),
            Group("gx", "school-2", "Other School Class"),
        ],
        grades=[
            Grade("m1", "school-1", "math", 85.0, FIXED_NOW - timedelta(days=2), "Counting"),
            Grade("m1", "school-1", "reading", 75.0, FIXED_NOW - timedelta(days=5)),
            Grade("m2", "school-1", "math", 50.0, FIXED_NOW - timedelta(days=1), "Counting"),
            Grade("m2", "school-1", "math", 40.0, FIXED_NOW - timedelta(days=3)),
            Grade("m1", "school-1", "math", 10.0, FIXED_NOW - timedelta(days=90)),
            Grade("x1", "school-2", "math", 99.0, FIXED_NOW - timedelta(days=1)),
        ],
        events=[
            CalendarEvent("e1", "school-1", "Sports day", FIXED_NOW + timedelta(days=2)),
            CalendarEvent("e2", "school-1", "Term ends", FIXED_NOW + timedelta(days=30)),
            CalendarEvent("ex", "school-2", "Other event", FIXED_NOW + timedelta(days=1)),
        ],
        assignments=[
            Assignment("a1", "school-1", "Shapes worksheet", FIXED_NOW + timedelta(days=3), "math"),
            Assignment(
                "a2",
                "school-1",
                "Reading log",
                FIXED_NOW + timedelta(days=10),
                "reading",
                status="graded",
            ),
            Assignment("ax", "school-2", "Other homework", FIXED_NOW + timedelta(days=3)),
        ],
    )


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    """Factory for ScriptedBackend instances."""

    def _make(*responses: list[StreamChunk] | Exception) -> ScriptedBackend:
        return ScriptedBackend(list(responses))

    return _make


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
