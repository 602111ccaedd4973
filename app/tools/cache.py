from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    value: T
    stored_at: float


class TTLCache(Generic[T]):
    """In-memory map whose entries go stale after ``ttl_seconds``.

    Expiry is only checked on read. Stale entries are kept around so callers
    can still fall back to them when a refresh fails; ``get_fresh`` hides them,
    ``get_entry`` does not.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}

    def get_entry(self, key: str) -> Optional[CacheEntry[T]]:
        return self._entries.get(key)

    def is_fresh(self, entry: CacheEntry[T]) -> bool:
        return self._clock() - entry.stored_at < self.ttl_seconds

    def get_fresh(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None or not self.is_fresh(entry):
            return None
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
