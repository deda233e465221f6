"""In-memory TTL cache for raw upstream payloads.

Usage:
    cache = TTLCache(ttl_s=1800)
    text = cache.get('stooq:series:XAU:32')
    if text is None:
        text = fetch(...)
        cache.put('stooq:series:XAU:32', text)

Design:
- One entry per key; an entry is served only while now - fetched_at < ttl.
- No size bound: keys are one per provider/symbol/length, so cardinality stays low.
- Thread-safe via a lock; parallel fetch threads read and write concurrently.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntry:
    key: str
    fetched_at: float
    raw_value: Any


class TTLCache:
    def __init__(self, ttl_s: float = 1800.0):
        self.ttl_s = max(0.0, float(ttl_s))
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def _fresh(self, entry: CacheEntry, now: float) -> bool:
        return (now - entry.fetched_at) < self.ttl_s

    def get_entry(self, key: str, now: float | None = None) -> CacheEntry | None:
        now = time.time() if now is None else now
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._fresh(entry, now):
                self._misses += 1
                return None
            self._hits += 1
            return entry

    def get(self, key: str, now: float | None = None) -> Any | None:
        """Return the cached value if present and fresh; else None."""
        entry = self.get_entry(key, now=now)
        return entry.raw_value if entry else None

    def put(self, key: str, value: Any, now: float | None = None) -> CacheEntry:
        entry = CacheEntry(key=key, fetched_at=time.time() if now is None else now, raw_value=value)
        with self._lock:
            self._entries[key] = entry
        return entry

    def purge_expired(self, now: float | None = None) -> int:
        """Drop stale entries; returns number of entries removed."""
        now = time.time() if now is None else now
        with self._lock:
            stale = [k for k, e in self._entries.items() if not self._fresh(e, now)]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                'size': len(self._entries),
                'hits': self._hits,
                'misses': self._misses,
                'ttl_s': self.ttl_s,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
