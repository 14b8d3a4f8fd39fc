# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Messaging tools.

compose_message only opens a pre-filled composer; the user still sends
it. send_announcement reaches every recipient of an audience directly,
so it is high risk and always confirmed first.
"""

from typing import Any

from src.core.tools import BaseTool, RiskTier, ToolContext, ToolExecutionResult
from src.tools.actions import AssistantActions

RECIPIENTS = ["parent", "teacher"]
AUDIENCES = ["all_parents", "all_staff", "everyone"]


class ComposeMessageTool(BaseTool):
    """Tool to open the message composer with pre-filled content."""

    def __init__(self, actions: AssistantActions) -> None:
        self._actions = actions

    @property
    def name(self) -> str:
        return "compose_message"

    @property
    def description(self) -> str:
        return "Open message composer with pre-filled content"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "subject": {"type": "string"},
                "body": {"type": "string"},
                "recipient": {
                    "type": "string",
                    "enum": RECIPIENTS,
                    "description": "parent or teacher",
                },
            },
            "required": [],
        }

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        result = await self._actions.compose_message(
            params.get("subject") or "",
            params.get("body") or "",
            params.get("recipient") or "parent",
            context,
        )
        return ToolExecutionResult.ok(result)


class SendAnnouncementTool(BaseTool):
    """Tool to broadcast an announcement to an audience of the organization."""

    def __init__(self, actions: AssistantActions) -> None:
        self._actions = actions

    @property
    def name(self) -> str:
        return "send_announcement"

    @property
    def description(self) -> str:
        return (
            "Send an announcement to all parents, all staff or everyone in the "
            "school. Only school leaders can send announcements."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "body": {"type": "string"},
                "audience": {
                    "type": "string",
                    "enum": AUDIENCES,
                    "description": "Who receives the announcement (default: all_parents)",
                },
            },
            "required": ["title", "body"],
        }

    @property
    def risk(self) -> RiskTier:
        return RiskTier.HIGH

    @property
    def requires_confirmation(self) -> bool:
        return True

    def confirmation_prompt(self, params: dict[str, Any]) -> str:
        audience = (params.get("audience") or "all_parents").replace("_", " ")
        return f"Send the announcement \"{params.get('title', '')}\" to {audience}?"

    async def execute(self, params: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        if not context.is_school_leader:
            return ToolExecutionResult.fail("Only school leaders can send announcements")

        result = await self._actions.send_announcement(
            params["title"],
            params["body"],
            params.get("audience") or "all_parents",
            context,
        )
        return ToolExecutionResult.ok(result)
