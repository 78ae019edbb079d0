"""Local mirror of profiles inside the fallback store.

All profiles live under one key as a ``wallet -> profile`` mapping. Reads
and writes raise ``StorageUnavailableError`` (or whatever the store raises);
callers decide whether that is fatal.
"""

from __future__ import annotations

from walletsync.profiles.schemas import UserProfile
from walletsync.storage.base import FallbackKeys, KeyValueFallbackStore


class LocalProfileMirror:
    def __init__(self, store: KeyValueFallbackStore, keys: FallbackKeys | None = None) -> None:
        self._store = store
        self._keys = keys or FallbackKeys()

    async def _load(self) -> dict[str, dict]:
        return await self._store.get(self._keys.users) or {}

    async def get(self, wallet_address: str) -> UserProfile | None:
        raw = (await self._load()).get(wallet_address)
        return UserProfile.model_validate(raw) if raw else None

    async def all(self) -> list[UserProfile]:
        return [UserProfile.model_validate(raw) for raw in (await self._load()).values()]

    async def put(self, profile: UserProfile) -> None:
        users = await self._load()
        users[profile.wallet_address] = profile.model_dump(mode="json")
        await self._store.set(self._keys.users, users)
