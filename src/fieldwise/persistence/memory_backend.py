"""In-memory backends for unit tests and local dev: dict-backed fakes."""

from __future__ import annotations

import time

from fieldwise.models.profile import Profile
from fieldwise.models.vectors import VectorEntry


class MemoryProfileStore:
    """Dict-backed IProfileStore. Stores copies so callers cannot alias state."""

    def __init__(self) -> None:
        self._profiles: dict[str, Profile] = {}

    def get(self, profile_id: str) -> Profile | None:
        profile = self._profiles.get(profile_id)
        return profile.model_copy(deep=True) if profile else None

    def put(self, profile: Profile) -> None:
        self._profiles[profile.id] = profile.model_copy(deep=True)

    def delete(self, profile_id: str) -> None:
        self._profiles.pop(profile_id, None)

    def list_all(self) -> list[Profile]:
        return [p.model_copy(deep=True) for p in self._profiles.values()]


class MemoryVectorStore:
    """Dict-backed IVectorStore, partitioned by profile id."""

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, VectorEntry]] = {}
        self.list_calls = 0

    def put_many(self, entries: list[VectorEntry]) -> None:
        for entry in entries:
            self._entries.setdefault(entry.profile_id, {})[entry.id] = entry

    def list_by_profile(self, profile_id: str) -> list[VectorEntry]:
        self.list_calls += 1
        return list(self._entries.get(profile_id, {}).values())

    def delete(self, profile_id: str, entry_id: str) -> None:
        self._entries.get(profile_id, {}).pop(entry_id, None)

    def delete_by_profile(self, profile_id: str) -> None:
        self._entries.pop(profile_id, None)


class MemoryCacheBackend:
    """Dict-backed ICacheBackend honouring TTLs."""

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        item = self._store.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= time.time():
            del self._store[key]
            return None
        return value

    def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = (value, time.time() + ttl)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def keys(self, prefix: str) -> list[str]:
        return [k for k in self._store if k.startswith(prefix)]
