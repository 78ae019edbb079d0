"""In-process fallback store for tests and single-process tools."""

from __future__ import annotations

import copy
from typing import Any

from walletsync.storage.base import DEFAULT_BUFFER_CAPACITY, KeyValueFallbackStore


class InMemoryFallbackStore(KeyValueFallbackStore):
    """Dict-backed store. Values are deep-copied in and out like a real medium."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._lists: dict[str, list[Any]] = {}

    async def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    async def append_bounded(self, list_key: str, value: Any, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        items = self._lists.setdefault(list_key, [])
        items.append(copy.deepcopy(value))
        if len(items) > capacity:
            del items[: len(items) - capacity]

    async def get_list(self, list_key: str) -> list[Any]:
        return copy.deepcopy(self._lists.get(list_key, []))
