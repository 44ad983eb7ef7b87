"""In-memory cache for computed budget rollups.

Rollup endpoints recompute every budget's YTD figures from the full
allocation and expense lists.  TTLCache keeps those results for a short
window; every write route calls clear(), which also bumps a generation
counter so a rollup computed while the write was in flight is discarded
instead of cached.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable


class TTLCache:
    """Thread-safe LRU cache whose entries expire after ``ttl_seconds``.

    Usage::

        cache = TTLCache(maxsize=64, ttl_seconds=60)
        rollup = cache.get_or_compute(("funders", "2025-10-01"), compute_rollup)
        cache.clear()   # after any write
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        self._clock = clock
        # key -> (value, expires_at), least recently used first
        self._entries: "OrderedDict[Any, tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self._generation = 0
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def generation(self) -> int:
        """Number of times the cache has been cleared."""
        return self._generation

    def _live(self, key: Any, now: float) -> tuple[Any, float] | None:
        entry = self._entries.get(key)
        if entry is not None and now > entry[1]:
            del self._entries[key]
            return None
        return entry

    def get(self, key: Any) -> Any | None:
        """Return the cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._live(key, self._clock())
            if entry is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry[0]

    def _store(self, key: Any, value: Any) -> None:
        self._entries[key] = (value, self._clock() + self._ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self._maxsize:
            self._entries.popitem(last=False)

    def set(self, key: Any, value: Any) -> None:
        """Store *value* under *key*, evicting the least recently used entry if full."""
        with self._lock:
            self._store(key, value)

    def get_or_compute(self, key: Any, compute: Callable[[], Any]) -> Any:
        """Return the cached value for *key*, computing it on a miss.

        ``compute`` runs outside the lock.  Its result is stored only if no
        clear() happened meanwhile, so a stale rollup never outlives a write.
        """
        value = self.get(key)
        if value is not None:
            return value
        generation = self._generation
        value = compute()
        with self._lock:
            if generation == self._generation:
                self._store(key, value)
        return value

    def clear(self) -> None:
        """Drop every entry and reset the hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._generation += 1
            self._hits = 0
            self._misses = 0

    def delete(self, key: Any) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def stats(self) -> dict[str, int]:
        """Hit and miss counts plus the number of live entries."""
        with self._lock:
            now = self._clock()
            for key in [k for k, (_, exp) in self._entries.items() if now > exp]:
                del self._entries[key]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "generation": self._generation,
            }
