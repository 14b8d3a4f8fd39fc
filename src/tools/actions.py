# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""App-side actions the assistant can trigger.

Navigation, composers, task automation and worksheets live in the app,
not in this service. Action tools call an AssistantActions collaborator;
the default implementation turns every call into a ClientAction that is
streamed to the app, which performs it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4

from src.core.tools import ToolContext

logger = logging.getLogger(__name__)

SCREENS = (
    "dashboard",
    "students",
    "lessons",
    "worksheets",
    "assignments",
    "reports",
    "settings",
    "chat",
    "messages",
    "calendar",
)

TASK_TEMPLATES = (
    "weekly_grade_report",
    "lesson_plan_sequence",
    "parent_progress_update",
    "attendance_follow_up",
)


@dataclass(frozen=True)
class ClientAction:
    """An instruction for the app to carry out.

    Attributes:
        type: Action kind ("navigate", "compose_message", ...).
        payload: Action parameters.
        principal_id: Principal the action was taken for.
        conversation_id: Conversation that produced it, if any.
        id: Action identifier.
    """

    type: str
    payload: dict[str, Any]
    principal_id: str
    conversation_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "payload": self.payload}


class AssistantActions(Protocol):
    """App capabilities exposed to the action tools."""

    async def navigate_to_screen(
        self, screen: str, params: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]: ...

    async def compose_message(
        self, subject: str, body: str, recipient: str, context: ToolContext
    ) -> dict[str, Any]: ...

    async def create_task(
        self, template_id: str, custom_params: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]: ...

    async def generate_worksheet(
        self, request: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]: ...

    async def send_announcement(
        self, title: str, body: str, audience: str, context: ToolContext
    ) -> dict[str, Any]: ...


class ClientActionQueue:
    """AssistantActions that queue ClientActions for the app.

    Actions are kept per conversation (or per principal when there is no
    conversation) until the orchestrator drains them into the turn's
    event stream.
    """

    def __init__(self) -> None:
        self._queues: dict[str, list[ClientAction]] = {}

    @staticmethod
    def _key(principal_id: str, conversation_id: str | None) -> str:
        return conversation_id or f"principal:{principal_id}"

    def _push(
        self, action_type: str, payload: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]:
        action = ClientAction(
            type=action_type,
            payload=payload,
            principal_id=context.principal_id,
            conversation_id=context.conversation_id,
        )
        key = self._key(context.principal_id, context.conversation_id)
        self._queues.setdefault(key, []).append(action)
        logger.info(
            "Queued client action %s (%s) for %s",
            action.type,
            action.id,
            context.principal_id,
        )
        return {"queued": True, "action_id": action.id, "type": action_type}

    def drain(self, principal_id: str, conversation_id: str | None = None) -> list[ClientAction]:
        """Remove and return the queued actions of a conversation."""
        return self._queues.pop(self._key(principal_id, conversation_id), [])

    def pending_count(self) -> int:
        return sum(len(actions) for actions in self._queues.values())

    async def navigate_to_screen(
        self, screen: str, params: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]:
        return self._push("navigate", {"screen": screen, "params": params}, context)

    async def compose_message(
        self, subject: str, body: str, recipient: str, context: ToolContext
    ) -> dict[str, Any]:
        payload = {"subject": subject, "body": body, "recipient": recipient}
        return self._push("compose_message", payload, context)

    async def create_task(
        self, template_id: str, custom_params: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]:
        payload = {"template_id": template_id, "custom_params": custom_params}
        return self._push("create_task", payload, context)

    async def generate_worksheet(
        self, request: dict[str, Any], context: ToolContext
    ) -> dict[str, Any]:
        return self._push("generate_worksheet", dict(request), context)

    async def send_announcement(
        self, title: str, body: str, audience: str, context: ToolContext
    ) -> dict[str, Any]:
        payload = {"title": title, "body": body, "audience": audience}
        return self._push("send_announcement", payload, context)
