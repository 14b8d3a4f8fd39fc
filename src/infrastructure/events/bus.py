# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus for control plane notifications.

Components publish lifecycle events (quota consumed, voice status
changed, tool confirmation requested) without knowing who listens.
Subscribers register for an exact event type or a wildcard pattern.

The bus is constructed once at application start-up and injected into
the components that publish; there is no module-level instance.

Example:
    from src.infrastructure.events import EventBus, EventTypes

    bus = EventBus()

    async def on_exceeded(event):
        print(event.payload["scope_id"])

    bus.subscribe(EventTypes.Quota.EXCEEDED, on_exceeded)
    bus.subscribe("voice.*", on_any_voice_event)

    await bus.publish(
        EventTypes.Quota.EXCEEDED,
        {"scope_id": "teacher-1", "feature": "lesson_generation"},
        organization_id="org-1",
    )
"""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[["EventData"], Awaitable[None]]


def _is_pattern(event_type: str) -> bool:
    return "*" in event_type or "?" in event_type


@dataclass
class EventData:
    """Container for event data with metadata.

    Attributes:
        event_type: The event type string.
        payload: The event payload data.
        event_id: Unique event identifier.
        timestamp: When the event was published.
        organization_id: Organization the event belongs to, if any.
    """

    event_type: str
    payload: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    organization_id: str | None = None


class EventBus:
    """In-memory async event bus with pattern matching support.

    Designed for single-process asyncio use. Handler failures are
    logged and never reach the publisher, so a broken subscriber cannot
    fail a quota consumption or a voice teardown.

    Example:
        bus = EventBus()
        bus.subscribe("quota.usage.recorded", handler)
        bus.subscribe("quota.*", pattern_handler)
        await bus.publish("quota.usage.recorded", {"amount": 1})
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pattern_handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type or pattern.

        Args:
            event_type: Event type string or pattern with wildcards.
            handler: Async function to call when event is published.
        """
        table = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        table.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Unsubscribe a handler from an event type or pattern.

        Args:
            event_type: Event type string or pattern.
            handler: The handler function to remove.

        Returns:
            True if handler was found and removed, False otherwise.
        """
        table = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        handlers = table.get(event_type)
        if not handlers or handler not in handlers:
            return False

        handlers.remove(handler)
        if not handlers:
            del table[event_type]
        return True

    def _matching_handlers(self, event_type: str) -> list[EventHandler]:
        handlers = list(self._handlers.get(event_type, []))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if fnmatch.fnmatch(event_type, pattern):
                handlers.extend(pattern_handlers)
        return handlers

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        organization_id: str | None = None,
    ) -> EventData:
        """Publish an event to all matching subscribers.

        Handlers run concurrently; an error in one handler is logged
        and does not stop the others.

        Args:
            event_type: The event type string.
            payload: Event data dictionary.
            organization_id: Optional organization scope.

        Returns:
            EventData object with event metadata.
        """
        event = EventData(
            event_type=event_type,
            payload=payload,
            organization_id=organization_id,
        )

        handlers = self._matching_handlers(event_type)
        if not handlers:
            return event

        logger.debug(
            "Publishing event %s to %d handlers (organization: %s)",
            event_type,
            len(handlers),
            organization_id,
        )

        async def safe_call(handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for event %s: %s",
                    event_type,
                    str(e),
                    exc_info=True,
                )

        await asyncio.gather(*[safe_call(handler) for handler in handlers])
        return event
