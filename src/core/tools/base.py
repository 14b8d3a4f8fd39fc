# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for the tool system.

This module defines the foundational classes for the tool system:
- RiskTier: Declarative risk classification of a tool
- ToolContext: Caller identity and tenant scope available during execution
- ToolSpec: The read-only description a model sees
- ToolExecutionResult: Envelope returned by every execution
- BaseTool: Abstract base class for all tools
- FunctionTool: Adapter turning a plain async callable into a tool

Tools are executed by the conversation orchestrator when the model
requests an action through tool calling. The tenant scope always comes
from ToolContext, never from model-supplied arguments.
"""

import copy
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable


class RiskTier(str, Enum):
    """How much damage a mistaken invocation can do.

    Medium and high tools that require confirmation are only run after
    the user explicitly confirms the pending call.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class ToolContext:
    """Context available to tools during execution.

    Attributes:
        organization_id: Tenant scope injected by the identity layer.
        principal_id: Principal on whose behalf the tool runs.
        role: Principal role ("teacher", "principal", "parent", ...).
        language: Preferred response language.
        conversation_id: Conversation the call belongs to, if any.
        extra: Additional context that tools might need.
    """

    organization_id: str
    principal_id: str
    role: str
    language: str = "en"
    conversation_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_teacher(self) -> bool:
        """Check if the current principal is a teacher."""
        return self.role == "teacher"

    @property
    def is_school_leader(self) -> bool:
        """Check if the current principal runs the organization."""
        return self.role in ("principal", "principal_admin", "super_admin")


@dataclass(frozen=True)
class ToolSpec:
    """What a model is told about a tool. Holds no executor internals.

    Attributes:
        name: Unique tool name.
        description: What the tool does, for the model.
        input_schema: JSON schema of the tool's arguments.
    """

    name: str
    description: str
    input_schema: dict[str, Any]

    def to_provider_format(self) -> dict[str, Any]:
        """Convert to the OpenAI-compatible function definition.

        Returns:
            Dictionary with tool definition in OpenAI format.
        """
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": copy.deepcopy(self.input_schema),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": copy.deepcopy(self.input_schema),
        }


@dataclass
class ToolExecutionResult:
    """Result envelope of a tool execution.

    ``success=False`` always carries an error message and ``success=True``
    never does.

    Attributes:
        success: Whether the tool executed successfully.
        result: Tool-specific result data.
        error: Error message if success is False.
    """

    success: bool
    result: Any = None
    error: str | None = None

    def __post_init__(self) -> None:
        if not self.success and not self.error:
            raise ValueError("A failed tool result must carry an error message")
        if self.success and self.error is not None:
            raise ValueError("A successful tool result must not carry an error")

    @classmethod
    def ok(cls, result: Any = None) -> "ToolExecutionResult":
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, error: str) -> "ToolExecutionResult":
        return cls(success=False, error=error)

    def to_llm_message(self) -> str:
        """Convert the result into the tool message sent back to the model."""
        if not self.success:
            return f"Error: {self.error}"
        if self.result is None:
            return "Operation completed successfully."
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False, default=str)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error
        return data


_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


class BaseTool(ABC):
    """Abstract base class for all tools.

    The tool lifecycle:
    1. The model receives tool specs from the registry
    2. The model requests a call with arguments
    3. The orchestrator asks for confirmation if the tool requires it
    4. The registry validates arguments and runs `execute()`
    5. The result envelope is sent back to the model

    Example:
        class GetScheduleTool(BaseTool):
            @property
            def name(self) -> str:
                return "get_schedule"

            @property
            def description(self) -> str:
                return "List upcoming events of the school calendar"

            @property
            def parameters(self) -> dict[str, Any]:
                return {
                    "type": "object",
                    "properties": {"days_ahead": {"type": "integer"}},
                }

            async def execute(
                self, params: dict[str, Any], context: ToolContext
            ) -> ToolExecutionResult:
                events = await self._directory.list_events(context.organization_id)
                return ToolExecutionResult.ok({"events": events})
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name the model uses to call it."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does, shown to the model."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON schema (type "object") of the tool's arguments."""
        pass

    @property
    def risk(self) -> RiskTier:
        """Risk tier; low unless overridden."""
        return RiskTier.LOW

    @property
    def requires_confirmation(self) -> bool:
        """Whether a call must be confirmed by the user before it runs."""
        return False

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            input_schema=copy.deepcopy(self.parameters),
        )

    @abstractmethod
    async def execute(
        self,
        params: dict[str, Any],
        context: ToolContext,
    ) -> ToolExecutionResult | Any:
        """Execute the tool with given parameters.

        Implementations may return a ToolExecutionResult, or a plain value
        which the registry wraps as a successful result. Raised exceptions
        are converted into failed results by the registry.

        Args:
            params: Arguments from the model's tool call.
            context: Execution context with tenant scope and caller.

        Returns:
            ToolExecutionResult or a plain result value.
        """
        pass

    def confirmation_prompt(self, params: dict[str, Any]) -> str:
        """Human-readable question asked before a gated call runs."""
        return f"Allow the assistant to run {self.name}?"

    def validate_params(self, params: dict[str, Any]) -> None:
        """Validate parameters against the tool's schema before execution.

        Checks required keys, primitive types and enums of declared
        properties. Override to add custom validation logic.

        Args:
            params: Parameters to validate.

        Raises:
            ValueError: If parameters are invalid.
        """
        schema = self.parameters
        properties: dict[str, Any] = schema.get("properties", {})

        for required in schema.get("required", []):
            if required not in params:
                raise ValueError(f"Missing required parameter: {required}")

        if schema.get("additionalProperties") is False:
            unknown = sorted(set(params) - set(properties))
            if unknown:
                raise ValueError(f"Unknown parameters: {', '.join(unknown)}")

        for key, value in params.items():
            prop = properties.get(key)
            if prop is None or value is None:
                continue
            expected = _JSON_TYPES.get(prop.get("type", ""))
            if expected is not None:
                is_bool = isinstance(value, bool)
                if not isinstance(value, expected) or (is_bool and prop["type"] != "boolean"):
                    raise ValueError(f"Parameter '{key}' must be of type {prop['type']}")
            if "enum" in prop and value not in prop["enum"]:
                raise ValueError(
                    f"Parameter '{key}' must be one of: {', '.join(map(str, prop['enum']))}"
                )


ToolFunction = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


class FunctionTool(BaseTool):
    """Tool backed by a plain async function.

    Example:
        async def echo(params, context):
            return {"echo": params["text"]}

        registry.register(
            FunctionTool(
                name="echo",
                description="Echo text back",
                parameters={"type": "object", "properties": {"text": {"type": "string"}}},
                func=echo,
            )
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        func: ToolFunction,
        risk: RiskTier = RiskTier.LOW,
        requires_confirmation: bool = False,
    ) -> None:
        self._name = name
        self._description = description
        self._parameters = parameters
        self._func = func
        self._risk = risk
        self._requires_confirmation = requires_confirmation

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def parameters(self) -> dict[str, Any]:
        return self._parameters

    @property
    def risk(self) -> RiskTier:
        return self._risk

    @property
    def requires_confirmation(self) -> bool:
        return self._requires_confirmation

    async def execute(self, params: dict[str, Any], context: ToolContext) -> Any:
        return await self._func(params, context)
