# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Assistant action tools.

Tools that make the app do something: navigate, open composers, start
automated tasks, generate worksheets and send announcements.
"""

from src.tools.assistant.automation import CreateTaskTool, GenerateWorksheetTool
from src.tools.assistant.messaging import ComposeMessageTool, SendAnnouncementTool
from src.tools.assistant.navigation import NavigateToScreenTool

__all__ = [
    "NavigateToScreenTool",
    "ComposeMessageTool",
    "SendAnnouncementTool",
    "CreateTaskTool",
    "GenerateWorksheetTool",
]
