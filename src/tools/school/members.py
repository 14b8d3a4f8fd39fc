# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Member tools: roster listing and individual progress.

Both tools read through the SchoolDirectory and are scoped by the
organization in the tool context; IDs from another organization are
reported as not found.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from src.core.tools import BaseTool, ToolContext, ToolExecutionResult
from src.tools.directory import SchoolDirectory
from src.tools.school.helpers import average, int_param
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MEMBER_LIMIT = 50
MAX_MEMBER_LIMIT = 200
DEFAULT_PROGRESS_DAYS = 30
RECENT_GRADES_LIMIT = 20


class GetMemberListTool(BaseTool):
    """Tool to list the members of the caller's organization."""

    def __init__(self, directory: SchoolDirectory) -> None:
        self._directory = directory

    @property
    def name(self) -> str:
        return "get_member_list"

    @property
    def description(self) -> str:
        return (
            "Get list of members (students/employees/athletes) with optional "
            "filters by group"
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "group_id": {
                    "type": "string",
                    "description": "Filter by specific group/class/team ID",
                },
                "include_inactive": {
                    "type": "boolean",
                    "description": "Include inactive members (default: false)",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of results (default: {DEFAULT_MEMBER_LIMIT})",
                },
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        group_id = params.get("group_id")
        include_inactive = bool(params.get("include_inactive", False))
        limit = int_param(params, "limit", DEFAULT_MEMBER_LIMIT, maximum=MAX_MEMBER_LIMIT)

        if group_id:
            group = await self._directory.get_group(context.organization_id, group_id)
            if group is None:
                return ToolExecutionResult.fail("Group not found")

        members = await self._directory.list_members(
            context.organization_id,
            group_id=group_id,
            include_inactive=include_inactive,
            limit=limit,
        )

        logger.debug(
            "Listed %d members for organization %s (group=%s)",
            len(members),
            context.organization_id,
            group_id,
        )

        return ToolExecutionResult.ok(
            {
                "count": len(members),
                "members": [m.to_dict() for m in members],
                "organization_id": context.organization_id,
            }
        )


class GetMemberProgressTool(BaseTool):
    """Tool to summarize one member's recent grades."""

    def __init__(
        self,
        directory: SchoolDirectory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = directory
        self._clock = clock

    @property
    def name(self) -> str:
        return "get_member_progress"

    @property
    def description(self) -> str:
        return "Get detailed progress and performance data for a specific member"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "member_id": {
                    "type": "string",
                    "description": "ID of the member to get progress for",
                },
                "subject": {
                    "type": "string",
                    "description": "Filter by specific subject (optional)",
                },
                "date_range_days": {
                    "type": "integer",
                    "description": f"Number of days to look back (default: {DEFAULT_PROGRESS_DAYS})",
                },
            },
            "required": ["member_id"],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        member = await self._directory.get_member(context.organization_id, params["member_id"])
        if member is None:
            return ToolExecutionResult.fail("Member not found")

        days_back = int_param(params, "date_range_days", DEFAULT_PROGRESS_DAYS)
        since = self._clock() - timedelta(days=days_back)

        grades = await self._directory.list_grades(
            context.organization_id,
            [member.id],
            since,
            subject=params.get("subject"),
        )
        recent = grades[:RECENT_GRADES_LIMIT]

        return ToolExecutionResult.ok(
            {
                "member": {"id": member.id, "name": member.full_name},
                "progress": {
                    "average_score": average(g.score for g in recent),
                    "total_assessments": len(recent),
                    "recent_grades": [g.to_dict() for g in recent],
                    "period_days": days_back,
                },
            }
        )
