# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Automation tools: task workflows and worksheet generation.

Both start work on the user's behalf and are confirmed before running.
"""

from typing import Any

from src.core.tools import BaseTool, RiskTier, ToolContext, ToolExecutionResult
from src.tools.actions import TASK_TEMPLATES, AssistantActions

WORKSHEET_TYPES = ["math", "reading", "activity"]
AGE_GROUPS = ["3-4 years", "4-5 years", "5-6 years", "6-7 years"]
DIFFICULTIES = ["Easy", "Medium", "Hard"]


class CreateTaskTool(BaseTool):
    """Tool to start an automated task from a template."""

    def __init__(self, actions: AssistantActions) -> None:
        self._actions = actions

    @property
    def name(self) -> str:
        return "create_task"

    @property
    def description(self) -> str:
        return "Create an automated task or workflow"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "template_id": {
                    "type": "string",
                    "enum": list(TASK_TEMPLATES),
                    "description": "Task template ID (e.g., weekly_grade_report, lesson_plan_sequence)",
                },
                "custom_params": {
                    "type": "object",
                    "description": "Custom parameters for the task",
                },
            },
            "required": ["template_id"],
        }

    @property
    def risk(self) -> RiskTier:
        return RiskTier.MEDIUM

    @property
    def requires_confirmation(self) -> bool:
        return True

    def confirmation_prompt(self, params: dict[str, Any]) -> str:
        template = (params.get("template_id") or "").replace("_", " ")
        return f"Create the automated task \"{template}\"?"

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        result = await self._actions.create_task(
            params["template_id"], params.get("custom_params") or {}, context
        )
        return ToolExecutionResult.ok(result)


class GenerateWorksheetTool(BaseTool):
    """Tool to generate an educational worksheet."""

    def __init__(self, actions: AssistantActions) -> None:
        self._actions = actions

    @property
    def name(self) -> str:
        return "generate_worksheet"

    @property
    def description(self) -> str:
        return "Generate educational worksheets (math, reading, or activity)"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": WORKSHEET_TYPES,
                    "description": "Type of worksheet to generate",
                },
                "age_group": {"type": "string", "enum": AGE_GROUPS},
                "difficulty": {"type": "string", "enum": DIFFICULTIES},
                "topic": {"type": "string"},
                "problem_count": {"type": "integer"},
            },
            "required": ["type", "age_group"],
        }

    @property
    def risk(self) -> RiskTier:
        return RiskTier.MEDIUM

    @property
    def requires_confirmation(self) -> bool:
        return True

    def confirmation_prompt(self, params: dict[str, Any]) -> str:
        return (
            f"Generate a {params.get('type', '')} worksheet "
            f"for {params.get('age_group', '')}?"
        )

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        request = {
            "type": params["type"],
            "age_group": params["age_group"],
            "difficulty": params.get("difficulty") or "Medium",
            "topic": params.get("topic"),
            "problem_count": params.get("problem_count") or 10,
        }
        result = await self._actions.generate_worksheet(request, context)
        return ToolExecutionResult.ok(result)
