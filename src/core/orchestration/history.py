# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bounded conversation context.

Each conversation keeps at most ``max_messages`` recent messages in a
ring buffer; older messages fall off as new ones arrive. The number of
live conversations is bounded as well, least recently used first out.
"""

import logging
from collections import OrderedDict, deque
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class ConversationWindow:
    """Ring buffer of OpenAI-format messages for one conversation.

    Args:
        max_messages: Capacity of the window.
    """

    def __init__(self, max_messages: int = 10) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self._messages: deque[dict[str, Any]] = deque(maxlen=max_messages)

    @property
    def max_messages(self) -> int:
        return self._messages.maxlen or 0

    def append(self, message: dict[str, Any]) -> None:
        self._messages.append(message)

    def extend(self, messages: Iterable[dict[str, Any]]) -> None:
        self._messages.extend(messages)

    def messages(self) -> list[dict[str, Any]]:
        """Current window contents, oldest first.

        Tool results whose requesting assistant message has already been
        evicted are skipped, since a provider rejects a tool message
        without its call.
        """
        window = list(self._messages)
        start = 0
        while start < len(window) and window[start].get("role") == "tool":
            start += 1
        return window[start:]

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)


class ConversationHistory:
    """Windows of all live conversations.

    Args:
        max_messages: Capacity of each conversation window.
        max_conversations: Conversations kept before the least recently
            used one is dropped.
    """

    def __init__(self, max_messages: int = 10, max_conversations: int = 1000) -> None:
        self._max_messages = max_messages
        self._max_conversations = max_conversations
        self._windows: OrderedDict[str, ConversationWindow] = OrderedDict()

    def window(self, key: str) -> ConversationWindow:
        """Get (or create) the window of a conversation."""
        window = self._windows.get(key)
        if window is None:
            window = ConversationWindow(self._max_messages)
            self._windows[key] = window
            if len(self._windows) > self._max_conversations:
                evicted, _ = self._windows.popitem(last=False)
                logger.debug("Evicted conversation window %s", evicted)
        else:
            self._windows.move_to_end(key)
        return window

    def forget(self, key: str) -> None:
        self._windows.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._windows

    def __len__(self) -> int:
        return len(self._windows)
