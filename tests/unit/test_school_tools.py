# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the organization-scoped school data tools."""

import pytest

from src.core.tools import ToolContext
from src.tools import InMemorySchoolDirectory
from src.tools.school import (
    AnalyzeClassPerformanceTool,
    GetAssignmentsTool,
    GetMemberListTool,
    GetMemberProgressTool,
    GetScheduleTool,
)
from src.tools.school.helpers import average, int_param
from src.tools.school.schedule import resolve_start_date
from tests.fakes import FIXED_NOW


def _other_school() -> ToolContext:
    return ToolContext(organization_id="school-2", principal_id="t-2", role="teacher")


class TestGetMemberList:
    """Tests for the roster tool."""

    @pytest.mark.asyncio
    async def test_lists_only_own_active_members(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext
    ) -> None:
        result = await GetMemberListTool(directory).execute({}, tool_context)

        assert result.success
        ids = [m["id"] for m in result.result["members"]]
        assert ids == ["m1", "m2"]
        assert result.result["organization_id"] == "school-1"

    @pytest.mark.asyncio
    async def test_include_inactive(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext
    ) -> None:
        result = await GetMemberListTool(directory).execute(
            {"include_inactive": True}, tool_context
        )

        assert result.result["count"] == 3

    @pytest.mark.asyncio
    async def test_group_filter(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext
    ) -> None:
        result = await GetMemberListTool(directory).execute({"group_id": "g1"}, tool_context)

        assert result.result["count"] == 2

    @pytest.mark.asyncio
    async def test_group_of_another_school_is_not_found(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext
    ) -> None:
        result = await GetMemberListTool(directory).execute({"group_id": "gx"}, tool_context)

        assert not result.success
        assert result.error == "Group not found"

    @pytest.mark.asyncio
    async def test_limit_is_clamped(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext
    ) -> None:
        result = await GetMemberListTool(directory).execute({"limit": 0}, tool_context)

        assert result.result["count"] == 1


class TestGetMemberProgress:
    """Tests for the member progress tool."""

    @pytest.mark.asyncio
    async def test_progress_within_period(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetMemberProgressTool(directory, clock=clock)

        result = await tool.execute({"member_id": "m1"}, tool_context)

        assert result.success
        progress = result.result["progress"]
        assert result.result["member"]["name"] == "Thandi Nkosi"
        # The 90-day-old grade is outside the default 30 days
        assert progress["total_assessments"] == 2
        assert progress["average_score"] == 80.0
        assert progress["recent_grades"][0]["subject"] == "math"

    @pytest.mark.asyncio
    async def test_subject_filter(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetMemberProgressTool(directory, clock=clock)

        result = await tool.execute(
            {"member_id": "m1", "subject": "math", "date_range_days": 365}, tool_context
        )

        assert result.result["progress"]["total_assessments"] == 2
        assert result.result["progress"]["average_score"] == 47.5

    @pytest.mark.asyncio
    async def test_member_of_another_school_is_not_found(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetMemberProgressTool(directory, clock=clock)

        result = await tool.execute({"member_id": "x1"}, tool_context)

        assert not result.success
        assert result.error == "Member not found"


class TestAnalyzeClassPerformance:
    """Tests for the class performance tool."""

    @pytest.mark.asyncio
    async def test_flags_struggling_members(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = AnalyzeClassPerformanceTool(directory, clock=clock)

        result = await tool.execute({"group_id": "g1"}, tool_context)

        assert result.success
        data = result.result
        assert data["group"] == {"id": "g1", "name": "Grade R Sunflowers", "student_count": 2}
        assert data["performance"]["average_score"] == 62.5
        assert data["performance"]["total_assessments"] == 4
        assert data["insights"]["struggling_students"] == [
            {"id": "m2", "name": "Sipho Dlamini", "average": 45.0}
        ]
        assert data["insights"]["needs_attention"] is True

    @pytest.mark.asyncio
    async def test_whole_school_never_includes_other_tenants(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = AnalyzeClassPerformanceTool(directory, clock=clock)

        result = await tool.execute({}, tool_context)

        assert result.result["group"]["name"] == "All Classes"
        assert result.result["performance"]["total_assessments"] == 4

    @pytest.mark.asyncio
    async def test_empty_group_fails(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        # g2 holds only an inactive member
        tool = AnalyzeClassPerformanceTool(directory, clock=clock)

        result = await tool.execute({"group_id": "g2"}, tool_context)

        assert not result.success
        assert result.error == "No students found in group"

    @pytest.mark.asyncio
    async def test_other_school_sees_only_its_own_data(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = AnalyzeClassPerformanceTool(directory, clock=clock)

        result = await tool.execute({}, _other_school())

        assert result.result["performance"]["average_score"] == 99.0
        assert result.result["group"]["student_count"] == 1


class TestSchedule:
    """Tests for the calendar and assignment tools."""

    @pytest.mark.asyncio
    async def test_schedule_defaults_to_next_week(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetScheduleTool(directory, clock=clock)

        result = await tool.execute({}, tool_context)

        assert result.success
        assert [e["title"] for e in result.result["events"]] == ["Sports day"]
        assert result.result["period"]["start"] == "2025-03-15"
        assert result.result["period"]["end"] == "2025-03-22"

    @pytest.mark.asyncio
    async def test_schedule_rejects_bad_date(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetScheduleTool(directory, clock=clock)

        result = await tool.execute({"start_date": "next blue moon"}, tool_context)

        assert not result.success
        assert "Invalid start_date" in result.error

    def test_resolve_start_date(self) -> None:
        assert resolve_start_date(None, FIXED_NOW).isoformat() == "2025-03-15"
        assert resolve_start_date("tomorrow", FIXED_NOW).isoformat() == "2025-03-16"
        assert resolve_start_date("2025-04-01T08:00", FIXED_NOW).isoformat() == "2025-04-01"

    @pytest.mark.asyncio
    async def test_assignments_with_status_filter(
        self, directory: InMemorySchoolDirectory, tool_context: ToolContext, clock
    ) -> None:
        tool = GetAssignmentsTool(directory, clock=clock)

        everything = await tool.execute({}, tool_context)
        graded = await tool.execute({"status": "graded"}, tool_context)

        assert [a["id"] for a in everything.result["assignments"]] == ["a1", "a2"]
        assert [a["id"] for a in graded.result["assignments"]] == ["a2"]
        assert graded.result["filters"]["status"] == "graded"


class TestHelpers:
    def test_int_param(self) -> None:
        assert int_param({}, "days", 7) == 7
        assert int_param({"days": 1000}, "days", 7) == 365
        assert int_param({"days": -3}, "days", 7) == 1

    def test_average(self) -> None:
        assert average([]) is None
        assert average([1, 2]) == 1.5
