# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tool registry for managing tool instances.

The registry handles tool registration, lookup, spec aggregation for
model tool calling, and execution inside a failure boundary: execute()
never raises, it always returns a ToolExecutionResult.

The registry is constructed once at application start-up and injected
into the orchestrator.

Example:
    from src.core.tools import ToolRegistry

    registry = ToolRegistry()
    registry.register(GetScheduleTool(directory))

    specs = registry.get_tool_specs()
    result = await registry.execute("get_schedule", {"days_ahead": 7}, context)
"""

import logging
from typing import Any

from src.core.tools.base import (
    BaseTool,
    RiskTier,
    ToolContext,
    ToolExecutionResult,
    ToolSpec,
)

logger = logging.getLogger(__name__)


class ToolRegistryError(Exception):
    """Base exception for tool registry errors."""

    pass


class DuplicateToolError(ToolRegistryError, ValueError):
    """Raised when registering a name that is already taken."""

    pass


class ToolNotFoundError(ToolRegistryError, KeyError):
    """Raised by lookups of a tool that is not registered."""

    pass


class ToolRegistry:
    """Registry for managing tool instances.

    Tool specs are built lazily and cached; the cache is dropped on every
    registration change.

    Example:
        registry = ToolRegistry()
        registry.register(GetMemberListTool(directory))
        registry.register(NavigateToScreenTool(actions))

        definitions = registry.get_definitions()
        result = await registry.execute("get_member_list", {}, context)
    """

    def __init__(self) -> None:
        """Initialize an empty tool registry."""
        self._tools: dict[str, BaseTool] = {}
        self._spec_cache: tuple[ToolSpec, ...] | None = None

    def register(self, tool: BaseTool) -> None:
        """Register a tool in the registry.

        Args:
            tool: Tool instance to register.

        Raises:
            DuplicateToolError: If a tool with the same name already exists.
        """
        if tool.name in self._tools:
            raise DuplicateToolError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        self._spec_cache = None
        logger.debug("Registered tool: %s (risk=%s)", tool.name, tool.risk.value)

    def replace(self, tool: BaseTool) -> None:
        """Register or replace a tool in the registry.

        Unlike `register()`, this method will overwrite an existing
        tool with the same name.

        Args:
            tool: Tool instance to register or replace.
        """
        self._tools[tool.name] = tool
        self._spec_cache = None
        logger.debug("Registered/replaced tool: %s", tool.name)

    def unregister(self, name: str) -> None:
        """Remove a tool from the registry.

        Args:
            name: Name of the tool to remove.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        if name not in self._tools:
            raise ToolNotFoundError(f"Tool '{name}' is not registered")

        del self._tools[name]
        self._spec_cache = None
        logger.debug("Unregistered tool: %s", name)

    def get(self, name: str) -> BaseTool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If the tool is not registered.
        """
        if name not in self._tools:
            raise ToolNotFoundError(f"Tool '{name}' is not registered")

        return self._tools[name]

    def get_optional(self, name: str) -> BaseTool | None:
        """Get a tool by name, returning None if not found."""
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        """Get names of all registered tools, in registration order."""
        return list(self._tools.keys())

    def get_tool_specs(self) -> tuple[ToolSpec, ...]:
        """Get the specs of all tools as the model should see them.

        The returned tuple is cached until the next registration change;
        it carries names, descriptions and argument schemas only.

        Returns:
            Tuple of ToolSpec.
        """
        if self._spec_cache is None:
            self._spec_cache = tuple(tool.spec for tool in self._tools.values())
        return self._spec_cache

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get OpenAI-compatible definitions for all tools.

        Returns:
            List of tool definitions in OpenAI format.
        """
        return [spec.to_provider_format() for spec in self.get_tool_specs()]

    def get_tools_by_risk(self, risk: RiskTier | str) -> list[BaseTool]:
        """Get all tools of a risk tier."""
        risk = RiskTier(risk)
        return [tool for tool in self._tools.values() if tool.risk == risk]

    async def execute(
        self,
        name: str,
        args: dict[str, Any] | None,
        context: ToolContext,
    ) -> ToolExecutionResult:
        """Execute a tool inside a failure boundary.

        Unknown names, invalid arguments and executor exceptions all
        come back as ``success=False`` results. Confirmation gating is
        the caller's responsibility.

        Args:
            name: Tool name requested by the model.
            args: Arguments requested by the model.
            context: Execution context with tenant scope.

        Returns:
            ToolExecutionResult envelope.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Requested unknown tool: %s", name)
            return ToolExecutionResult.fail(f"Tool '{name}' not found")

        params = args if args is not None else {}
        if not isinstance(params, dict):
            logger.info("Non-object arguments for tool %s: %s", name, type(params).__name__)
            return ToolExecutionResult.fail(
                f"Invalid arguments for '{name}': expected an object, got {type(params).__name__}"
            )

        try:
            tool.validate_params(params)
        except Exception as e:
            logger.info("Invalid arguments for tool %s: %s", name, str(e))
            return ToolExecutionResult.fail(f"Invalid arguments for '{name}': {e}")

        try:
            outcome = await tool.execute(params, context)
        except Exception as e:
            logger.error("Tool %s failed: %s", name, str(e), exc_info=True)
            return ToolExecutionResult.fail(f"Tool '{name}' failed: {e}")

        if isinstance(outcome, ToolExecutionResult):
            return outcome
        return ToolExecutionResult.ok(outcome)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={list(self._tools.keys())})"
