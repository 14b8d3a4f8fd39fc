# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School data tools.

Tools for querying members, progress, calendar and class performance.
All of them are scoped by the organization in the tool context.
"""

from src.tools.school.schedule import GetAssignmentsTool, GetScheduleTool
from src.tools.school.members import GetMemberListTool, GetMemberProgressTool
from src.tools.school.performance import AnalyzeClassPerformanceTool

__all__ = [
    "GetMemberListTool",
    "GetMemberProgressTool",
    "GetScheduleTool",
    "GetAssignmentsTool",
    "AnalyzeClassPerformanceTool",
]
