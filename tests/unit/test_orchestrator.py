# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the conversation orchestrator."""

from collections.abc import Callable
from typing import Any, AsyncIterator
from unittest.mock import AsyncMock

import pytest

from src.core.config.settings import AssistantSettings
from src.core.intelligence.llm import LLMError
from src.core.orchestration import (
    APOLOGY_MESSAGE,
    ClientActionEvent,
    ConfirmationRequiredEvent,
    ConversationOrchestrator,
    DoneEvent,
    ErrorEvent,
    PausedTurnNotFoundError,
    TokenEvent,
    ToolCallEvent,
    ToolResultEvent,
    TurnStatus,
    UpgradeRequiredEvent,
)
from src.core.tools import (
    ConfirmationError,
    ConfirmationExpiredError,
    ConfirmationGate,
    ConfirmationNotFoundError,
    ToolContext,
    ToolRegistry,
)
from src.domains.quota import QuotaFeature, QuotaLedger
from src.infrastructure.events import EventBus, EventTypes
from src.tools import ClientActionQueue, InMemorySchoolDirectory, create_tool_registry
from tests.fakes import MutableClock, ScriptedBackend, text_response, tool_response

CHAT = QuotaFeature.CHAT_COMPLETIONS


@pytest.fixture
def actions() -> ClientActionQueue:
    return ClientActionQueue()


@pytest.fixture
def registry(directory: InMemorySchoolDirectory, actions: ClientActionQueue) -> ToolRegistry:
    return create_tool_registry(
        directory,
        actions,
        enabled=["get_member_list", "navigate_to_screen", "create_task", "send_announcement"],
    )


@pytest.fixture
def gate(clock: MutableClock) -> ConfirmationGate:
    return ConfirmationGate(ttl_seconds=300, clock=clock)


@pytest.fixture
def build(
    registry: ToolRegistry,
    ledger: QuotaLedger,
    gate: ConfirmationGate,
    actions: ClientActionQueue,
    event_bus: EventBus,
    clock: MutableClock,
) -> Callable[..., ConversationOrchestrator]:
    """Factory wiring an orchestrator around a scripted backend."""

    def _build(
        backend: ScriptedBackend,
        settings: AssistantSettings | None = None,
        ledger_override: Any = None,
    ) -> ConversationOrchestrator:
        return ConversationOrchestrator(
            registry=registry,
            ledger=ledger_override or ledger,
            backend=backend,
            confirmation_gate=gate,
            settings=settings,
            action_source=actions,
            event_bus=event_bus,
            clock=clock,
        )

    return _build


async def collect(stream: AsyncIterator[Any]) -> list[Any]:
    return [event async for event in stream]


async def used(ledger: QuotaLedger) -> int:
    return (await ledger.check_allowed("teacher-1", CHAT)).used


class TestFastPath:
    """Deterministic answers bypass quota, context and model."""

    @pytest.mark.asyncio
    async def test_arithmetic_skips_ledger_and_model(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend()
        ledger = AsyncMock(spec=QuotaLedger)
        orchestrator = build(backend, ledger_override=ledger)

        events = await collect(orchestrator.run_turn("what is 5 + 3?", tool_context))

        assert events == [TokenEvent(text="5 + 3 = 8"), DoneEvent(fast_path=True)]
        assert backend.calls == []
        ledger.check_allowed.assert_not_awaited()
        ledger.record_usage.assert_not_awaited()
        assert "conv-1" not in orchestrator.history

    @pytest.mark.asyncio
    async def test_blank_utterance(self, build, make_backend, tool_context: ToolContext) -> None:
        orchestrator = build(make_backend())

        with pytest.raises(ValueError):
            await collect(orchestrator.run_turn("   ", tool_context))


class TestQuotaGate:
    """Exhausted quota yields an upgrade prompt instead of a model call."""

    @pytest.mark.asyncio
    async def test_upgrade_required(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        await ledger.allocate("admin", "teacher-1", {CHAT: 1})
        await ledger.record_usage("teacher-1", CHAT)
        backend = make_backend(tool_response(("send_announcement", {"title": "x", "body": "y"})))
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Announce the closure", tool_context))

        upgrade, done = events
        assert isinstance(upgrade, UpgradeRequiredEvent)
        assert (upgrade.used, upgrade.limit) == (1, 1)
        assert "Upgrade" in upgrade.message
        assert done.status == TurnStatus.QUOTA_EXCEEDED
        assert backend.calls == []
        assert await used(ledger) == 1


class TestTurns:
    """Tests for model turns with and without tools."""

    @pytest.mark.asyncio
    async def test_text_turn_records_usage_once(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        backend = make_backend(text_response("Hello ", "Ms Naidoo."))
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Introduce yourself", tool_context))

        assert [e.text for e in events if isinstance(e, TokenEvent)] == ["Hello ", "Ms Naidoo."]
        assert events[-1] == DoneEvent(usage_recorded=True)
        assert await used(ledger) == 1

        call = backend.calls[0]
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][-1] == {"role": "user", "content": "Introduce yourself"}
        assert [t["function"]["name"] for t in call["tools"]] == [
            "get_member_list",
            "navigate_to_screen",
            "create_task",
            "send_announcement",
        ]

    @pytest.mark.asyncio
    async def test_tool_loop(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("get_member_list", {})),
            text_response("You have 2 learners."),
        )
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Who is in my class?", tool_context))

        assert [e.type for e in events] == ["tool_call", "tool_result", "token", "done"]
        assert events[1].success
        assert events[-1].tool_calls == 1
        assert await used(ledger) == 1

        followup = backend.calls[1]["messages"]
        assert followup[-2]["tool_calls"][0]["function"]["name"] == "get_member_list"
        assert followup[-1]["role"] == "tool"
        assert followup[-1]["tool_call_id"] == "call_0"
        assert '"m1"' in followup[-1]["content"]

    @pytest.mark.asyncio
    async def test_client_actions_are_streamed(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("navigate_to_screen", {"screen": "reports"})),
            text_response("Opening reports."),
        )
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Take me to reports", tool_context))

        actions = [e for e in events if isinstance(e, ClientActionEvent)]
        assert len(actions) == 1
        assert actions[0].action["type"] == "navigate"
        assert actions[0].action["payload"]["screen"] == "reports"

    @pytest.mark.asyncio
    async def test_context_carries_across_turns(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(text_response("Sports day is Monday."), text_response("At 9."))
        orchestrator = build(backend)

        await collect(orchestrator.run_turn("When is sports day?", tool_context))
        await collect(orchestrator.run_turn("What time does it start?", tool_context))

        second = backend.calls[1]["messages"]
        assert [m["content"] for m in second[1:]] == [
            "When is sports day?",
            "Sports day is Monday.",
            "What time does it start?",
        ]

    @pytest.mark.asyncio
    async def test_context_window_is_bounded(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(*[text_response(f"reply {i}") for i in range(3)])
        orchestrator = build(backend, settings=AssistantSettings(max_context_messages=2))

        for i in range(3):
            await collect(orchestrator.run_turn(f"question {i}", tool_context))

        third = backend.calls[2]["messages"]
        assert [m["content"] for m in third[1:]] == ["question 1", "reply 1", "question 2"]

    @pytest.mark.asyncio
    async def test_turn_completed_event(
        self, build, make_backend, event_bus: EventBus, tool_context: ToolContext
    ) -> None:
        completed: list[dict[str, Any]] = []

        async def on_completed(event) -> None:
            completed.append(event.payload)

        event_bus.subscribe(EventTypes.Assistant.TURN_COMPLETED, on_completed)
        orchestrator = build(make_backend(text_response("Hi there.")))

        await collect(orchestrator.run_turn("Say something nice", tool_context))

        assert completed[0]["fast_path"] is False
        assert completed[0]["usage_status"] == "accepted"
        assert completed[0]["principal_id"] == "teacher-1"


class TestFailures:
    """Tests for model and tool failures."""

    @pytest.mark.asyncio
    async def test_model_failure_records_nothing(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        orchestrator = build(make_backend(LLMError("provider down")))

        events = await collect(orchestrator.run_turn("Summarize my week", tool_context))

        assert events == [
            ErrorEvent(message=APOLOGY_MESSAGE),
            DoneEvent(status=TurnStatus.FAILED),
        ]
        assert await used(ledger) == 0
        assert orchestrator.history.window("conv-1").messages() == []

    @pytest.mark.asyncio
    async def test_failed_tool_with_silent_model_degrades(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        backend = make_backend(tool_response(("launch_rockets", {})), text_response())
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Launch the rockets", tool_context))

        result = next(e for e in events if isinstance(e, ToolResultEvent))
        assert not result.success
        assert result.error == "Tool 'launch_rockets' not found"
        tokens = [e.text for e in events if isinstance(e, TokenEvent)]
        assert tokens == [
            "Sorry, launch rockets is unavailable right now, so I couldn't complete your request."
        ]
        assert events[-1].status == TurnStatus.COMPLETED
        assert await used(ledger) == 1

    @pytest.mark.asyncio
    async def test_failed_tool_with_model_reply_is_not_overridden(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("launch_rockets", {})),
            text_response("I can't do that, but I can open the reports screen."),
        )
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Launch the rockets", tool_context))

        tokens = [e.text for e in events if isinstance(e, TokenEvent)]
        assert tokens == ["I can't do that, but I can open the reports screen."]

    @pytest.mark.asyncio
    async def test_iteration_limit_forces_final_answer(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("get_member_list", {})),
            tool_response(("get_member_list", {}), text="Here is your class."),
        )
        orchestrator = build(backend, settings=AssistantSettings(max_tool_iterations=1))

        events = await collect(orchestrator.run_turn("Who is in my class?", tool_context))

        assert backend.calls[1]["tools"] == []
        assert [e.type for e in events].count("tool_call") == 1
        assert events[-1] == DoneEvent(usage_recorded=True, tool_calls=1)


class TestConfirmation:
    """Gated tools pause the turn until the user decides."""

    @pytest.mark.asyncio
    async def test_pause_and_approve(
        self, build, make_backend, ledger: QuotaLedger, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("create_task", {"template_id": "weekly_grade_report"})),
            text_response("Your weekly grade report task is set up."),
        )
        orchestrator = build(backend)

        paused = await collect(orchestrator.run_turn("Set up weekly reports", tool_context))

        request, done = paused
        assert isinstance(request, ConfirmationRequiredEvent)
        assert request.tool_name == "create_task"
        assert request.risk == "medium"
        assert request.prompt == 'Create the automated task "weekly grade report"?'
        assert done.status == TurnStatus.AWAITING_CONFIRMATION
        assert done.confirmation_id == request.confirmation_id
        assert orchestrator.paused_turn_count == 1
        assert await used(ledger) == 0

        resumed = await collect(
            await orchestrator.resume_after_confirmation(
                request.confirmation_id, True, "teacher-1"
            )
        )

        assert [e.type for e in resumed] == [
            "tool_call",
            "tool_result",
            "client_action",
            "token",
            "done",
        ]
        assert resumed[-1] == DoneEvent(usage_recorded=True, tool_calls=1)
        assert orchestrator.paused_turn_count == 0
        assert await used(ledger) == 1

    @pytest.mark.asyncio
    async def test_denial_continues_without_running_the_tool(
        self, build, make_backend, actions: ClientActionQueue, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("create_task", {"template_id": "weekly_grade_report"})),
            text_response("Okay, I won't create it."),
        )
        orchestrator = build(backend)
        request, _ = await collect(orchestrator.run_turn("Set up weekly reports", tool_context))

        resumed = await collect(
            await orchestrator.resume_after_confirmation(
                request.confirmation_id, False, "teacher-1"
            )
        )

        result = resumed[0]
        assert isinstance(result, ToolResultEvent)
        assert not result.success
        assert result.error == "The user declined to run create_task"
        assert [e.text for e in resumed if isinstance(e, TokenEvent)] == [
            "Okay, I won't create it."
        ]
        assert resumed[-1].status == TurnStatus.COMPLETED
        assert actions.pending_count() == 0

    @pytest.mark.asyncio
    async def test_calls_after_gated_call_wait_for_resume(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(
                ("create_task", {"template_id": "weekly_grade_report"}),
                ("get_member_list", {}),
            ),
            text_response("All done."),
        )
        orchestrator = build(backend)

        paused = await collect(orchestrator.run_turn("Reports and roster", tool_context))
        assert [e.type for e in paused] == ["confirmation_required", "done"]

        resumed = await collect(
            await orchestrator.resume_after_confirmation(
                paused[0].confirmation_id, True, "teacher-1"
            )
        )

        names = [e.name for e in resumed if isinstance(e, ToolCallEvent)]
        assert names == ["create_task", "get_member_list"]
        assert resumed[-1].tool_calls == 2

    @pytest.mark.asyncio
    async def test_invalid_arguments_are_rejected_before_confirmation(
        self, build, make_backend, tool_context: ToolContext
    ) -> None:
        backend = make_backend(
            tool_response(("create_task", {"template_id": "launch_rockets"})),
            text_response("That template does not exist."),
        )
        orchestrator = build(backend)

        events = await collect(orchestrator.run_turn("Create a task", tool_context))

        assert not any(isinstance(e, ConfirmationRequiredEvent) for e in events)
        result = next(e for e in events if isinstance(e, ToolResultEvent))
        assert result.error.startswith("Invalid arguments for 'create_task'")
        assert orchestrator.paused_turn_count == 0

    @pytest.mark.asyncio
    async def test_resolution_errors(
        self, build, make_backend, tool_context: ToolContext, clock: MutableClock
    ) -> None:
        backend = make_backend(
            tool_response(("create_task", {"template_id": "weekly_grade_report"})),
        )
        orchestrator = build(backend)
        request, _ = await collect(orchestrator.run_turn("Set up weekly reports", tool_context))

        with pytest.raises(ConfirmationNotFoundError):
            await orchestrator.resume_after_confirmation("unknown", True, "teacher-1")
        with pytest.raises(ConfirmationError):
            await orchestrator.resume_after_confirmation(
                request.confirmation_id, True, "someone-else"
            )

        clock.advance(seconds=301)
        with pytest.raises(ConfirmationExpiredError):
            await orchestrator.resume_after_confirmation(
                request.confirmation_id, True, "teacher-1"
            )
        assert orchestrator.paused_turn_count == 0

    @pytest.mark.asyncio
    async def test_confirmation_without_paused_turn(
        self,
        make_backend,
        registry: ToolRegistry,
        ledger: QuotaLedger,
        gate: ConfirmationGate,
        tool_context: ToolContext,
    ) -> None:
        orchestrator = ConversationOrchestrator(registry, ledger, make_backend(), gate)
        pending = gate.request(registry.get("create_task"), {}, tool_context)

        with pytest.raises(PausedTurnNotFoundError):
            await orchestrator.resume_after_confirmation(pending.id, True, "teacher-1")
