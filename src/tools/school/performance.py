# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Analyze class performance tool.

Aggregates recent grades of a group (or of the whole organization) and
flags members whose average is below the struggling threshold.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable

from src.core.tools import BaseTool, ToolContext, ToolExecutionResult
from src.tools.directory import SchoolDirectory
from src.tools.school.helpers import average, int_param
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BACK = 30
STRUGGLING_THRESHOLD = 60.0
MAX_GROUP_SIZE = 1000


class AnalyzeClassPerformanceTool(BaseTool):
    """Tool to analyze a class's recent performance."""

    def __init__(
        self,
        directory: SchoolDirectory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = directory
        self._clock = clock

    @property
    def name(self) -> str:
        return "analyze_class_performance"

    @property
    def description(self) -> str:
        return "Analyze overall class or group performance with insights"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "group_id": {
                    "type": "string",
                    "description": "ID of the class/group to analyze",
                },
                "subject": {
                    "type": "string",
                    "description": "Filter by specific subject (optional)",
                },
                "days_back": {
                    "type": "integer",
                    "description": f"Number of days to analyze (default: {DEFAULT_DAYS_BACK})",
                },
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        """Execute the analysis.

        Args:
            params: Tool parameters (group_id, subject, days_back).
            context: Tool context carrying the organization scope.

        Returns:
            ToolExecutionResult with group, performance and insights.
        """
        group_id = params.get("group_id")
        subject = params.get("subject")
        days_back = int_param(params, "days_back", DEFAULT_DAYS_BACK)

        group_name = "All Classes"
        if group_id:
            group = await self._directory.get_group(context.organization_id, group_id)
            if group is None:
                return ToolExecutionResult.fail("Group not found")
            group_name = group.name

        members = await self._directory.list_members(
            context.organization_id,
            group_id=group_id,
            limit=MAX_GROUP_SIZE,
        )
        if not members:
            return ToolExecutionResult.fail("No students found in group")

        grades = await self._directory.list_grades(
            context.organization_id,
            [m.id for m in members],
            self._clock() - timedelta(days=days_back),
            subject=subject,
        )

        scores_by_member: dict[str, list[float]] = defaultdict(list)
        for grade in grades:
            scores_by_member[grade.member_id].append(grade.score)

        names = {m.id: m.full_name for m in members}
        struggling = []
        for member_id, scores in scores_by_member.items():
            member_average = average(scores)
            if member_average is not None and member_average < STRUGGLING_THRESHOLD:
                struggling.append(
                    {"id": member_id, "name": names[member_id], "average": member_average}
                )
        struggling.sort(key=lambda s: s["average"])

        logger.debug(
            "Analyzed %d grades for group %s: %d struggling",
            len(grades),
            group_id,
            len(struggling),
        )

        return ToolExecutionResult.ok(
            {
                "group": {
                    "id": group_id,
                    "name": group_name,
                    "student_count": len(members),
                },
                "performance": {
                    "average_score": average(g.score for g in grades) or 0.0,
                    "total_assessments": len(grades),
                    "period_days": days_back,
                    "subject": subject or "all subjects",
                },
                "insights": {
                    "struggling_students": struggling,
                    "needs_attention": bool(struggling),
                },
            }
        )
