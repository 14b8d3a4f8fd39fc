# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assistant tool implementations.

Tools are organized by functional category:

- school: Organization-scoped data (members, progress, schedule,
  assignments, class performance)
- assistant: App actions (navigation, composers, tasks, worksheets,
  announcements)

The manifest.py file is the central registry of all available tools.
The loader.py file builds the ToolRegistry from it at start-up.

Usage:
    from src.tools import create_tool_registry, InMemorySchoolDirectory

    registry = create_tool_registry(InMemorySchoolDirectory(), ClientActionQueue())
"""

from src.tools.actions import (
    AssistantActions,
    ClientAction,
    ClientActionQueue,
)
from src.tools.directory import (
    Assignment,
    CalendarEvent,
    Grade,
    Group,
    InMemorySchoolDirectory,
    Member,
    SchoolDirectory,
)
from src.tools.loader import create_tool_registry
from src.tools.manifest import TOOL_MANIFEST, get_tool_names

__all__ = [
    # Factory
    "create_tool_registry",
    # Manifest access
    "TOOL_MANIFEST",
    "get_tool_names",
    # Collaborators
    "SchoolDirectory",
    "InMemorySchoolDirectory",
    "AssistantActions",
    "ClientActionQueue",
    "ClientAction",
    # School records
    "Member",
    "Group",
    "Grade",
    "CalendarEvent",
    "Assignment",
]
