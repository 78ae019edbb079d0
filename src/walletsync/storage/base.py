"""Local fallback store interface.

The fallback store is a best-effort mirror used only when the remote tier is
unreachable. It offers no transactions: any write may be lost, and callers
must be prepared for ``StorageUnavailableError`` on every call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

DEFAULT_BUFFER_CAPACITY = 100


class KeyValueFallbackStore(ABC):
    """Key -> JSON-compatible value persistence with a bounded list append."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None when absent."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def append_bounded(self, list_key: str, value: Any, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        """Append to a list, dropping the oldest entries beyond ``capacity``."""

    @abstractmethod
    async def get_list(self, list_key: str) -> list[Any]:
        """Return the list stored under ``list_key`` oldest-first ([] when absent)."""


@dataclass(frozen=True)
class FallbackKeys:
    """Key layout inside the fallback store."""

    prefix: str = "walletsync"

    @property
    def users(self) -> str:
        """Mapping of wallet -> mirrored profile."""
        return f"{self.prefix}:users"

    @property
    def activities(self) -> str:
        """Bounded buffer of activity events that failed to reach the remote sink."""
        return f"{self.prefix}:activities"

    def xp(self, wallet_address: str) -> str:
        return f"{self.prefix}:xp:{wallet_address}"
