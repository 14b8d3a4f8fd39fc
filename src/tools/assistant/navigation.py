# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Navigate to screen tool.

Asks the app to open one of its screens. The app receives the action
in the turn's event stream and performs the navigation itself.
"""

from typing import Any

from src.core.tools import BaseTool, ToolContext, ToolExecutionResult
from src.tools.actions import SCREENS, AssistantActions


class NavigateToScreenTool(BaseTool):
    """Tool to open a screen of the app."""

    def __init__(self, actions: AssistantActions) -> None:
        self._actions = actions

    @property
    def name(self) -> str:
        return "navigate_to_screen"

    @property
    def description(self) -> str:
        return (
            "Navigate to a specific screen in the app "
            "(e.g., students, lessons, worksheets, reports)"
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "screen": {
                    "type": "string",
                    "enum": list(SCREENS),
                    "description": "Screen name: " + ", ".join(SCREENS),
                },
                "params": {
                    "type": "object",
                    "description": "Optional parameters to pass to the screen",
                },
            },
            "required": ["screen"],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        result = await self._actions.navigate_to_screen(
            params["screen"], params.get("params") or {}, context
        )
        return ToolExecutionResult.ok(result)
