# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client for cached quota views.

This module provides an async Redis client wrapper. Keys written by the
control plane are namespaced under ``edudash:`` and values are JSON.

Example:
    from src.infrastructure.cache import RedisClient

    client = RedisClient(settings.redis)
    await client.connect()
    await client.set("quota:summary:teacher-1", summary, expire_seconds=60)
    await client.delete_matching("quota:summary:*")
    await client.close()
"""

import json
from typing import TYPE_CHECKING, Any, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

if TYPE_CHECKING:
    from src.core.config.settings import RedisSettings


class RedisError(Exception):
    """Exception raised for Redis operation failures.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying Redis error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class RedisClient:
    """Async Redis client with key namespacing and JSON values.

    A pre-built ``redis.asyncio.Redis`` can be passed for tests; otherwise
    ``connect()`` creates a pooled connection from settings.
    """

    KEY_PREFIX = "edudash"

    def __init__(
        self,
        settings: "RedisSettings | None" = None,
        redis: Optional[Redis] = None,
    ) -> None:
        self._settings = settings
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis

    async def connect(self) -> None:
        """Create the Redis connection pool and verify it.

        Raises:
            RedisError: If connection fails.
        """
        if self._redis is not None:
            return
        if self._settings is None:
            raise RedisError("Redis settings are required to connect")
        try:
            self._pool = ConnectionPool.from_url(
                self._settings.url,
                max_connections=self._settings.max_connections,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            await self._redis.ping()
        except BaseRedisError as e:
            raise RedisError("Failed to connect to Redis", e) from e

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _ensure_connected(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}:{key}"

    async def set(self, key: str, value: Any, expire_seconds: Optional[int] = None) -> None:
        """Store a JSON-serialized value.

        Args:
            key: Key without namespace prefix.
            value: JSON-serializable value.
            expire_seconds: Optional expiration time in seconds.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            payload = json.dumps(value, ensure_ascii=False, default=str)
            await redis.set(self._key(key), payload, ex=expire_seconds)
        except BaseRedisError as e:
            raise RedisError(f"Failed to set key: {key}", e) from e

    async def get(self, key: str) -> Any:
        """Get a deserialized value, or None if the key is absent.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            value = await redis.get(self._key(key))
        except BaseRedisError as e:
            raise RedisError(f"Failed to get key: {key}", e) from e
        if value is None:
            return None
        return json.loads(value)

    async def delete_matching(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern.

        Args:
            pattern: Glob pattern without namespace prefix.

        Returns:
            Number of keys deleted.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._ensure_connected()
        try:
            keys = [key async for key in redis.scan_iter(match=self._key(pattern))]
            if keys:
                return await redis.delete(*keys)
            return 0
        except BaseRedisError as e:
            raise RedisError(f"Failed to delete keys matching: {pattern}", e) from e

    async def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            redis = self._ensure_connected()
            await redis.ping()
            return True
        except (RedisError, BaseRedisError):
            return False
