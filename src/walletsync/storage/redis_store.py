"""Redis-backed fallback store.

Values are JSON-encoded strings; bounded lists use RPUSH + LTRIM in one
MULTI so the list never exceeds its capacity between the two commands.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from walletsync.errors import StorageUnavailableError
from walletsync.storage.base import DEFAULT_BUFFER_CAPACITY, KeyValueFallbackStore

logger = structlog.get_logger()


class RedisFallbackStore(KeyValueFallbackStore):
    """Durable fallback store on top of a Redis connection pool."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(key)
        except RedisError as exc:
            raise StorageUnavailableError(f"redis get failed for {key}") from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StorageUnavailableError(f"corrupt value under {key}") from exc

    async def set(self, key: str, value: Any) -> None:
        try:
            await self._redis.set(key, json.dumps(value))
        except RedisError as exc:
            raise StorageUnavailableError(f"redis set failed for {key}") from exc

    async def append_bounded(self, list_key: str, value: Any, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(list_key, json.dumps(value))
                pipe.ltrim(list_key, -capacity, -1)
                await pipe.execute()
        except RedisError as exc:
            raise StorageUnavailableError(f"redis append failed for {list_key}") from exc

    async def get_list(self, list_key: str) -> list[Any]:
        try:
            raw_items = await self._redis.lrange(list_key, 0, -1)
        except RedisError as exc:
            raise StorageUnavailableError(f"redis lrange failed for {list_key}") from exc
        items = []
        for raw in raw_items:
            try:
                items.append(json.loads(raw))
            except ValueError:
                logger.warning("fallback_list_entry_corrupt", key=list_key)
        return items
