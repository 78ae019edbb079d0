from walletsync.storage.base import FallbackKeys, KeyValueFallbackStore
from walletsync.storage.memory import InMemoryFallbackStore
from walletsync.storage.redis_store import RedisFallbackStore

__all__ = ["FallbackKeys", "InMemoryFallbackStore", "KeyValueFallbackStore", "RedisFallbackStore"]
