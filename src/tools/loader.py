# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tool registry factory.

This module is the SINGLE place where tools are instantiated and
registered. It runs once at start-up; nothing is imported or
registered per turn.

Usage:
    from src.tools import create_tool_registry

    registry = create_tool_registry(directory, actions)
    orchestrator = ConversationOrchestrator(registry=registry, ...)
"""

import logging
from typing import Iterable

from src.core.tools import BaseTool, ToolRegistry
from src.tools.actions import AssistantActions
from src.tools.directory import SchoolDirectory
from src.tools.manifest import TOOL_MANIFEST, ToolInfo

logger = logging.getLogger(__name__)


def _build_tool(
    tool_info: ToolInfo,
    directory: SchoolDirectory,
    actions: AssistantActions,
) -> BaseTool:
    if tool_info["category"] == "school":
        return tool_info["tool_class"](directory)
    return tool_info["tool_class"](actions)


def create_tool_registry(
    directory: SchoolDirectory,
    actions: AssistantActions,
    enabled: Iterable[str] | None = None,
) -> ToolRegistry:
    """Create a registry with the manifest's tools.

    Args:
        directory: School data access for the school tools.
        actions: App actions for the assistant tools.
        enabled: Tool names to register, in order. All manifest tools
            when None.

    Returns:
        ToolRegistry with the requested tools registered.

    Raises:
        ValueError: If a requested name is not in the manifest.
    """
    names = list(enabled) if enabled is not None else list(TOOL_MANIFEST)
    registry = ToolRegistry()

    for name in names:
        if name not in TOOL_MANIFEST:
            available = list(TOOL_MANIFEST.keys())
            raise ValueError(
                f"Unknown tool '{name}'. "
                f"Available tools: {available}. "
                f"Add the tool to src/tools/manifest.py first."
            )

        tool_info = TOOL_MANIFEST[name]
        registry.register(_build_tool(tool_info, directory, actions))
        logger.debug(
            "Registered tool: %s (category=%s)",
            name,
            tool_info["category"],
        )

    logger.info("Created tool registry with %d/%d tools", len(registry), len(TOOL_MANIFEST))
    return registry
