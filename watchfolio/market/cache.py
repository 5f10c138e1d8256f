"""In-memory TTL cache for upstream payloads."""
from __future__ import annotations

import time
from typing import Any, Callable

from ..models import CacheEntry


class CacheStore:
    """Key/value cache whose entries expire after ``ttl`` seconds.

    Expired entries are kept around: :meth:`get` ignores them but
    :meth:`get_entry` still returns them so callers can serve stale data when
    the network is unavailable.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def is_valid(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < self.ttl

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` only while it is within its TTL."""
        entry = self._entries.get(key)
        if entry is not None and self.is_valid(entry):
            return entry
        return None

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key`` regardless of age."""
        return self._entries.get(key)

    def set(self, key: str, data: Any) -> CacheEntry:
        entry = CacheEntry(key=key, data=data, timestamp=self._clock())
        self._entries[key] = entry
        return entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
