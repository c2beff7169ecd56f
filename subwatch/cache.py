"""In-memory TTL cache shared by the session manager and the job fetcher.

Staleness is checked lazily on read; nothing runs in the background and an
expired entry stays in the map until a caller invalidates or overwrites it,
so ``age()`` can still report how stale it is.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.stored_at)

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class TTLCache(Generic[K, V]):
    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def get(self, key: K) -> V | None:
        """Stored value while it is younger than its TTL, else None."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.is_valid(self._clock()):
            return None
        return entry.value

    def entry(self, key: K) -> CacheEntry[V] | None:
        """Raw entry regardless of validity."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: K, value: V, ttl: float, *, stored_at: float | None = None) -> CacheEntry[V]:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl!r}")
        entry = CacheEntry(value=value, stored_at=self._clock() if stored_at is None else stored_at, ttl=ttl)
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def age(self, key: K) -> float | None:
        """Seconds since *key* was stored, expired or not; None when absent."""
        entry = self.entry(key)
        if entry is None:
            return None
        return entry.age(self._clock())

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
