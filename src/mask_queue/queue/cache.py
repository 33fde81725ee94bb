"""Content-addressed result cache with oldest-write eviction.

The cache never expires entries on its own: get() returns whatever is stored
and the caller decides freshness (see fresh_entry). When capacity is exceeded
the entry with the smallest written_at is evicted. Reads do not refresh an
entry, so this is insertion-order eviction, not LRU.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .models import CacheEntry, CropRect


class ResultCache:
    """Bounded in-memory mapping of cache key to CacheEntry."""

    def __init__(self, capacity: int = 1000, clock: Callable[[], datetime] = datetime.now):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, mask: Any, crop: CropRect) -> CacheEntry:
        """Insert or overwrite an entry, stamping written_at."""
        # Re-insert so dict order follows write order for equal timestamps
        self._entries.pop(key, None)
        entry = CacheEntry(key=key, mask=mask, crop=crop, written_at=self._clock())
        self._entries[key] = entry

        while len(self._entries) > self.capacity:
            self._evict_oldest()

        return entry

    def _evict_oldest(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].written_at)
        del self._entries[oldest_key]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()


def is_fresh(entry: CacheEntry, ttl_s: float, now: datetime) -> bool:
    return (now - entry.written_at).total_seconds() < ttl_s


def fresh_entry(
    cache: ResultCache, key: str, ttl_s: float, now: datetime
) -> Optional[CacheEntry]:
    """Return the cached entry only if it is younger than ttl_s."""
    entry = cache.get(key)
    if entry is None or not is_fresh(entry, ttl_s, now):
        return None
    return entry
