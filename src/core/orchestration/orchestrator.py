# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Conversation orchestrator.

Glue between the user, the quota ledger, the model and the tools:

    utterance
        -> fast path?  yes: deterministic answer, no quota, no context
        -> check_allowed  no: upgrade prompt, no tool runs
        -> model (with tool specs) <-> tools, at most N tool rounds
        -> stream tokens
        -> record_usage (exactly once per completed turn)

A tool flagged ``requires_confirmation`` pauses the turn. The client
gets a ``confirmation_required`` event and later resumes the turn with
``resume_after_confirmation``; usage is recorded when the resumed turn
completes.

Example:
    >>> orchestrator = ConversationOrchestrator(registry, ledger, backend, gate)
    >>> async for event in orchestrator.run_turn("List my class", context):
    ...     print(event.type)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Protocol, Sequence

from pydantic import BaseModel

from src.core.config.settings import AssistantSettings
from src.core.intelligence.llm import LLMError, ModelBackend, ToolCall
from src.core.orchestration.events import (
    ClientActionEvent,
    ConfirmationRequiredEvent,
    DoneEvent,
    ErrorEvent,
    TokenEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnStatus,
    UpgradeRequiredEvent,
)
from src.core.orchestration.exceptions import PausedTurnNotFoundError
from src.core.orchestration.fast_path import FastPathClassifier
from src.core.orchestration.history import ConversationHistory
from src.core.tools import (
    BaseTool,
    ConfirmationExpiredError,
    ConfirmationGate,
    ConfirmationNotFoundError,
    PendingConfirmation,
    ToolContext,
    ToolExecutionResult,
    ToolRegistry,
)
from src.domains.quota import QuotaLedger
from src.infrastructure.events import EventBus, EventTypes
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, I'm having trouble answering right now. Please try again in a moment."
)


class ClientActionSource(Protocol):
    """Where app-side actions queued by tools are collected."""

    def drain(self, principal_id: str, conversation_id: str | None = None) -> Sequence[Any]: ...


@dataclass
class _TurnState:
    """Mutable state of one turn, kept across a confirmation pause."""

    context: ToolContext
    conversation_key: str
    messages: list[dict[str, Any]]
    iterations: int = 0
    tool_calls: int = 0
    pending_calls: list[ToolCall] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)
    final_text: str = ""
    paused: bool = False


@dataclass
class _PausedTurn:
    state: _TurnState
    call: ToolCall
    expires_at: datetime


def upgrade_message(feature: str, used: int, limit: int) -> str:
    label = feature.replace("_", " ")
    return (
        f"You've used {used} of {limit} {label} this month. "
        "Upgrade your plan to keep using the assistant."
    )


def degraded_message(failures: Sequence[tuple[str, str]]) -> str:
    """Reply used when failed tools left the model with nothing to say."""
    names = ", ".join(dict.fromkeys(name.replace("_", " ") for name, _ in failures))
    return f"Sorry, {names} is unavailable right now, so I couldn't complete your request."


class ConversationOrchestrator:
    """Runs conversation turns.

    Holds no lock across conversations; the only shared mutable state it
    touches is quota, which the ledger serializes per scope.

    Args:
        registry: Tools offered to the model.
        ledger: Quota ledger gating and metering turns.
        backend: Model backend.
        confirmation_gate: Gate for tools requiring confirmation.
        settings: Assistant configuration.
        classifier: Fast-path classifier.
        history: Conversation windows; built from settings if omitted.
        action_source: Queue of client actions produced by tools.
        event_bus: Optional event bus for assistant events.
        clock: Source of the current time.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        ledger: QuotaLedger,
        backend: ModelBackend,
        confirmation_gate: ConfirmationGate,
        settings: AssistantSettings | None = None,
        classifier: FastPathClassifier | None = None,
        history: ConversationHistory | None = None,
        action_source: ClientActionSource | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._backend = backend
        self._gate = confirmation_gate
        self._settings = settings or AssistantSettings()
        self._classifier = classifier or FastPathClassifier()
        self._history = history or ConversationHistory(self._settings.max_context_messages)
        self._actions = action_source
        self._event_bus = event_bus
        self._clock = clock
        self._paused: dict[str, _PausedTurn] = {}

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def paused_turn_count(self) -> int:
        return len(self._paused)

    async def run_turn(self, utterance: str, context: ToolContext) -> AsyncIterator[BaseModel]:
        """Run one conversation turn.

        Args:
            utterance: What the user said or typed.
            context: Caller identity and tenant scope.

        Yields:
            Turn events, ending with a DoneEvent.

        Raises:
            ValueError: If the utterance is blank.
        """
        text = utterance.strip()
        if not text:
            raise ValueError("Utterance cannot be empty")

        answer = self._classifier.classify(text)
        if answer is not None:
            logger.debug("Fast-path %s answer for %s", answer.kind, context.principal_id)
            yield TokenEvent(text=answer.text)
            await self._publish(
                EventTypes.Assistant.TURN_COMPLETED,
                context,
                {"fast_path": True, "kind": answer.kind},
            )
            yield DoneEvent(fast_path=True)
            return

        feature = self._settings.turn_feature
        check = await self._ledger.check_allowed(context.principal_id, feature)
        if not check.allowed:
            logger.info(
                "Turn blocked for %s: %s quota used %d/%d",
                context.principal_id,
                feature,
                check.used,
                check.limit,
            )
            yield UpgradeRequiredEvent(
                feature=feature,
                used=check.used,
                limit=check.limit,
                message=upgrade_message(feature, check.used, check.limit),
            )
            yield DoneEvent(status=TurnStatus.QUOTA_EXCEEDED)
            return

        state = _TurnState(
            context=context,
            conversation_key=self._conversation_key(context),
            messages=[{"role": "user", "content": text}],
        )
        async for event in self._drive(state):
            yield event

    async def resume_after_confirmation(
        self,
        confirmation_id: str,
        approved: bool,
        principal_id: str,
    ) -> AsyncIterator[BaseModel]:
        """Resolve a pending confirmation and continue its turn.

        Resolution happens before this returns, so an unknown, foreign or
        expired confirmation raises here rather than inside the stream.

        Args:
            confirmation_id: ID from the ``confirmation_required`` event.
            approved: Whether the user approved the call.
            principal_id: Principal resolving the confirmation.

        Returns:
            Event stream of the resumed turn.

        Raises:
            ConfirmationNotFoundError: Unknown confirmation.
            ConfirmationExpiredError: The confirmation timed out.
            ConfirmationError: Another principal tried to resolve it.
            PausedTurnNotFoundError: The confirmation has no paused turn.
        """
        try:
            resolved = self._gate.resolve(confirmation_id, approved, principal_id)
        except (ConfirmationNotFoundError, ConfirmationExpiredError):
            self._paused.pop(confirmation_id, None)
            raise

        paused = self._paused.pop(confirmation_id, None)
        if paused is None:
            raise PausedTurnNotFoundError(f"No paused turn for confirmation {confirmation_id}")

        await self._publish(
            EventTypes.Assistant.CONFIRMATION_RESOLVED,
            paused.state.context,
            {
                "confirmation_id": confirmation_id,
                "tool_name": resolved.tool_name,
                "status": resolved.status.value,
            },
        )
        return self._resume(paused, resolved)

    async def _resume(
        self,
        paused: _PausedTurn,
        resolved: PendingConfirmation,
    ) -> AsyncIterator[BaseModel]:
        state = paused.state
        state.paused = False
        if resolved.approved:
            async for event in self._execute_call(state, paused.call):
                yield event
        else:
            declined = ToolExecutionResult.fail(f"The user declined to run {paused.call.name}")
            async for event in self._record_result(state, paused.call, declined, failed=False):
                yield event

        async for event in self._run_tool_calls(state):
            yield event
        if state.paused:
            return

        async for event in self._drive(state):
            yield event

    async def _drive(self, state: _TurnState) -> AsyncIterator[BaseModel]:
        """Model/tool loop, from a model call to the end of the turn."""
        while True:
            use_tools = state.iterations < self._settings.max_tool_iterations
            tools = self._registry.get_definitions() if use_tools else []

            messages = self._build_messages(state)
            parts: list[str] = []
            calls: list[ToolCall] = []
            try:
                async for chunk in self._backend.stream_with_tools(messages, tools):
                    if chunk.text:
                        parts.append(chunk.text)
                        yield TokenEvent(text=chunk.text)
                    if chunk.is_final:
                        calls = list(chunk.tool_calls)
            except LLMError as e:
                logger.error(
                    "Model call failed for conversation %s: %s",
                    state.conversation_key,
                    e.message,
                )
                yield ErrorEvent(message=APOLOGY_MESSAGE)
                yield DoneEvent(status=TurnStatus.FAILED, tool_calls=state.tool_calls)
                return

            text = "".join(parts)
            if not calls or not use_tools:
                if calls:
                    logger.warning(
                        "Ignoring %d tool calls past the iteration limit in %s",
                        len(calls),
                        state.conversation_key,
                    )
                state.final_text = text
                state.messages.append({"role": "assistant", "content": text})
                break

            state.iterations += 1
            state.messages.append(
                {
                    "role": "assistant",
                    "content": text or None,
                    "tool_calls": [call.to_message() for call in calls],
                }
            )
            state.pending_calls = calls
            async for event in self._run_tool_calls(state):
                yield event
            if state.paused:
                return

        async for event in self._complete(state):
            yield event

    async def _run_tool_calls(self, state: _TurnState) -> AsyncIterator[BaseModel]:
        """Run queued calls in order; stop at the first gated one.

        A pause leaves the calls after the gated one in
        ``state.pending_calls`` for the resumed turn.
        """
        while state.pending_calls:
            call = state.pending_calls.pop(0)
            tool = self._registry.get_optional(call.name)

            if tool is not None and tool.requires_confirmation:
                try:
                    tool.validate_params(call.arguments)
                except ValueError as e:
                    invalid = ToolExecutionResult.fail(f"Invalid arguments for '{call.name}': {e}")
                    async for event in self._record_result(state, call, invalid):
                        yield event
                    continue

                async for event in self._pause(state, call, tool):
                    yield event
                return

            async for event in self._execute_call(state, call):
                yield event

    async def _pause(
        self,
        state: _TurnState,
        call: ToolCall,
        tool: BaseTool,
    ) -> AsyncIterator[BaseModel]:
        self._prune_expired()
        pending = self._gate.request(tool, call.arguments, state.context)
        self._paused[pending.id] = _PausedTurn(
            state=state,
            call=call,
            expires_at=pending.expires_at,
        )
        state.paused = True
        await self._publish(
            EventTypes.Assistant.CONFIRMATION_REQUESTED,
            state.context,
            {"confirmation_id": pending.id, "tool_name": call.name, "risk": tool.risk.value},
        )
        yield ConfirmationRequiredEvent(
            confirmation_id=pending.id,
            tool_name=call.name,
            arguments=call.arguments,
            risk=tool.risk.value,
            prompt=pending.prompt,
            expires_at=pending.expires_at.isoformat(),
        )
        yield DoneEvent(
            status=TurnStatus.AWAITING_CONFIRMATION,
            tool_calls=state.tool_calls,
            confirmation_id=pending.id,
        )

    async def _execute_call(self, state: _TurnState, call: ToolCall) -> AsyncIterator[BaseModel]:
        yield ToolCallEvent(call_id=call.id, name=call.name, arguments=call.arguments)
        result = await self._registry.execute(call.name, call.arguments, state.context)
        state.tool_calls += 1
        async for event in self._record_result(state, call, result):
            yield event

    async def _record_result(
        self,
        state: _TurnState,
        call: ToolCall,
        result: ToolExecutionResult,
        failed: bool = True,
    ) -> AsyncIterator[BaseModel]:
        state.messages.append(
            {"role": "tool", "tool_call_id": call.id, "content": result.to_llm_message()}
        )
        if not result.success and failed:
            state.failures.append((call.name, result.error or "unknown error"))

        await self._publish(
            EventTypes.Assistant.TOOL_EXECUTED,
            state.context,
            {"tool_name": call.name, "success": result.success, "error": result.error},
        )
        yield ToolResultEvent(
            call_id=call.id,
            name=call.name,
            success=result.success,
            error=result.error,
        )

        if self._actions is not None:
            for action in self._actions.drain(
                state.context.principal_id, state.context.conversation_id
            ):
                yield ClientActionEvent(action=action.to_dict())

    async def _complete(self, state: _TurnState) -> AsyncIterator[BaseModel]:
        context = state.context
        if state.failures and not state.final_text.strip():
            text = degraded_message(state.failures)
            state.messages[-1]["content"] = text
            yield TokenEvent(text=text)

        self._history.window(state.conversation_key).extend(state.messages)

        usage = await self._ledger.record_usage(
            context.principal_id,
            self._settings.turn_feature,
            metadata={
                "conversation_id": context.conversation_id,
                "tool_calls": state.tool_calls,
            },
            organization_id=context.organization_id,
        )
        if not usage.accepted:
            logger.warning(
                "Usage for completed turn of %s rejected: %d/%d",
                context.principal_id,
                usage.used,
                usage.limit,
            )

        await self._publish(
            EventTypes.Assistant.TURN_COMPLETED,
            context,
            {
                "fast_path": False,
                "tool_calls": state.tool_calls,
                "failed_tools": [name for name, _ in state.failures],
                "usage_status": usage.status.value,
            },
        )
        yield DoneEvent(usage_recorded=usage.accepted, tool_calls=state.tool_calls)

    def _build_messages(self, state: _TurnState) -> list[dict[str, Any]]:
        system = {"role": "system", "content": self._settings.system_prompt}
        window = self._history.window(state.conversation_key)
        return [system, *window.messages(), *state.messages]

    def _prune_expired(self) -> None:
        now = self._clock()
        expired = [cid for cid, paused in self._paused.items() if paused.expires_at < now]
        for confirmation_id in expired:
            del self._paused[confirmation_id]
        if expired:
            logger.debug("Dropped %d expired paused turns", len(expired))

    @staticmethod
    def _conversation_key(context: ToolContext) -> str:
        return context.conversation_id or f"principal:{context.principal_id}"

    async def _publish(
        self,
        event_type: str,
        context: ToolContext,
        payload: dict[str, Any],
    ) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            event_type,
            {
                "principal_id": context.principal_id,
                "conversation_id": context.conversation_id,
                **payload,
            },
            organization_id=context.organization_id,
        )
