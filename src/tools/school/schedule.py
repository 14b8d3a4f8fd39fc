# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schedule tools: school calendar and assignments."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable

from src.core.tools import BaseTool, ToolContext, ToolExecutionResult
from src.tools.directory import SchoolDirectory
from src.tools.school.helpers import int_param
from src.utils.datetime import utc_now

DEFAULT_SCHEDULE_DAYS = 7
DEFAULT_DAYS_AHEAD = 30
ASSIGNMENT_STATUSES = ["pending", "submitted", "graded", "all"]


def resolve_start_date(value: str | None, now: datetime) -> date:
    """Resolve "today", "tomorrow" or an ISO date.

    Raises:
        ValueError: If the value is not a recognised date.
    """
    if not value or value == "today":
        return now.date()
    if value == "tomorrow":
        return now.date() + timedelta(days=1)
    return date.fromisoformat(value[:10])


class GetScheduleTool(BaseTool):
    """Tool to list calendar events of the caller's organization."""

    def __init__(
        self,
        directory: SchoolDirectory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = directory
        self._clock = clock

    @property
    def name(self) -> str:
        return "get_schedule"

    @property
    def description(self) -> str:
        return "Get schedule or calendar events for a date range"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "start_date": {
                    "type": "string",
                    "description": 'Start date (ISO format or "today", "tomorrow")',
                },
                "days": {
                    "type": "integer",
                    "description": f"Number of days to show (default: {DEFAULT_SCHEDULE_DAYS})",
                },
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        try:
            start_day = resolve_start_date(params.get("start_date"), self._clock())
        except ValueError:
            return ToolExecutionResult.fail(
                f"Invalid start_date: {params.get('start_date')!r}"
            )

        days = int_param(params, "days", DEFAULT_SCHEDULE_DAYS)
        start = datetime.combine(start_day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=days)

        events = await self._directory.list_events(context.organization_id, start, end)

        return ToolExecutionResult.ok(
            {
                "period": {
                    "start": start.date().isoformat(),
                    "end": end.date().isoformat(),
                    "days": days,
                },
                "events": [e.to_dict() for e in events],
                "count": len(events),
            }
        )


class GetAssignmentsTool(BaseTool):
    """Tool to list upcoming assignments."""

    def __init__(
        self,
        directory: SchoolDirectory,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._directory = directory
        self._clock = clock

    @property
    def name(self) -> str:
        return "get_assignments"

    @property
    def description(self) -> str:
        return "Get list of assignments with optional filters"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": ASSIGNMENT_STATUSES,
                    "description": "Filter by assignment status (default: all)",
                },
                "subject": {
                    "type": "string",
                    "description": "Filter by subject",
                },
                "days_ahead": {
                    "type": "integer",
                    "description": f"Number of days to look ahead (default: {DEFAULT_DAYS_AHEAD})",
                },
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        status = params.get("status") or "all"
        subject = params.get("subject")
        days_ahead = int_param(params, "days_ahead", DEFAULT_DAYS_AHEAD)

        assignments = await self._directory.list_assignments(
            context.organization_id,
            due_before=self._clock() + timedelta(days=days_ahead),
            status=None if status == "all" else status,
            subject=subject,
        )

        return ToolExecutionResult.ok(
            {
                "assignments": [a.to_dict() for a in assignments],
                "count": len(assignments),
                "filters": {
                    "status": status,
                    "subject": subject,
                    "days_ahead": days_ahead,
                },
            }
        )
