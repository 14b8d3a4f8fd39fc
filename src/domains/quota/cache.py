# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-view caches for quota summaries.

Only derived views (usage summaries) are cached; allocations themselves
are always read from the store. Every write path of the ledger
invalidates the affected scope. Cache failures are logged and treated
as misses so they can never fail a consumption.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from src.infrastructure.cache import RedisClient, RedisError

logger = logging.getLogger(__name__)


class QuotaViewCache(ABC):
    """Cache of JSON-serializable quota views keyed by scope."""

    @abstractmethod
    async def get(self, scope_id: str, view: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    async def set(self, scope_id: str, view: str, value: dict[str, Any], ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def invalidate(self, scope_id: str) -> None:
        """Drop every cached view of a scope."""
        pass


class InMemoryQuotaViewCache(QuotaViewCache):
    """Dictionary cache with monotonic-clock expiry."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], tuple[float, dict[str, Any]]] = {}

    async def get(self, scope_id: str, view: str) -> dict[str, Any] | None:
        entry = self._entries.get((scope_id, view))
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at < time.monotonic():
            del self._entries[(scope_id, view)]
            return None
        return value

    async def set(self, scope_id: str, view: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._entries[(scope_id, view)] = (time.monotonic() + ttl_seconds, value)

    async def invalidate(self, scope_id: str) -> None:
        for key in [key for key in self._entries if key[0] == scope_id]:
            del self._entries[key]


class RedisQuotaViewCache(QuotaViewCache):
    """Redis-backed view cache shared across API workers.

    Args:
        client: Connected Redis client.
    """

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    @staticmethod
    def _key(scope_id: str, view: str) -> str:
        return f"quota:{scope_id}:{view}"

    async def get(self, scope_id: str, view: str) -> dict[str, Any] | None:
        try:
            return await self._client.get(self._key(scope_id, view))
        except RedisError as e:
            logger.warning("Quota view cache read failed for %s: %s", scope_id, str(e))
            return None

    async def set(self, scope_id: str, view: str, value: dict[str, Any], ttl_seconds: int) -> None:
        try:
            await self._client.set(self._key(scope_id, view), value, expire_seconds=ttl_seconds)
        except RedisError as e:
            logger.warning("Quota view cache write failed for %s: %s", scope_id, str(e))

    async def invalidate(self, scope_id: str) -> None:
        try:
            await self._client.delete_matching(self._key(scope_id, "*"))
        except RedisError as e:
            logger.warning("Quota view cache invalidation failed for %s: %s", scope_id, str(e))
