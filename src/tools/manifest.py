# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Central tool manifest for all available tools.

This is the SINGLE source of truth for the assistant's tools. The
registry is built from it once, at application start-up.

To add a new tool:
1. Create the tool class in the appropriate category package
   (src/tools/school/ or src/tools/assistant/)
2. Add an entry to TOOL_MANIFEST below

Categories decide which collaborator the tool is built with:
- school: reads through the SchoolDirectory
- assistant: acts through AssistantActions
"""

from typing import Literal, TypedDict

from src.core.tools import BaseTool
from src.tools.assistant import (
    ComposeMessageTool,
    CreateTaskTool,
    GenerateWorksheetTool,
    NavigateToScreenTool,
    SendAnnouncementTool,
)
from src.tools.school import (
    AnalyzeClassPerformanceTool,
    GetAssignmentsTool,
    GetMemberListTool,
    GetMemberProgressTool,
    GetScheduleTool,
)

ToolCategory = Literal["school", "assistant"]


class ToolInfo(TypedDict):
    """Information about a registered tool."""

    tool_class: type[BaseTool]
    category: ToolCategory


TOOL_MANIFEST: dict[str, ToolInfo] = {
    # =========================================================================
    # ASSISTANT TOOLS
    # Make the app navigate, open composers or start work
    # =========================================================================
    "navigate_to_screen": {"tool_class": NavigateToScreenTool, "category": "assistant"},
    "compose_message": {"tool_class": ComposeMessageTool, "category": "assistant"},
    "create_task": {"tool_class": CreateTaskTool, "category": "assistant"},
    "generate_worksheet": {"tool_class": GenerateWorksheetTool, "category": "assistant"},
    "send_announcement": {"tool_class": SendAnnouncementTool, "category": "assistant"},
    # =========================================================================
    # SCHOOL TOOLS
    # Read organization-scoped school data
    # =========================================================================
    "get_member_list": {"tool_class": GetMemberListTool, "category": "school"},
    "get_member_progress": {"tool_class": GetMemberProgressTool, "category": "school"},
    "get_schedule": {"tool_class": GetScheduleTool, "category": "school"},
    "get_assignments": {"tool_class": GetAssignmentsTool, "category": "school"},
    "analyze_class_performance": {
        "tool_class": AnalyzeClassPerformanceTool,
        "category": "school",
    },
}


def get_tool_names(category: ToolCategory | None = None) -> list[str]:
    """Get manifest tool names, optionally of one category."""
    return [
        name
        for name, info in TOOL_MANIFEST.items()
        if category is None or info["category"] == category
    ]
