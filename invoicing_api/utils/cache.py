"""
In-process TTL cache.

Used for customer display-name lookups so repeated invoice creation for the
same customer does not re-query QuickBooks.
"""
import threading
import time
from typing import Any, Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class SimpleCache:
    """
    Simple in-memory cache with TTL support.

    Swap for Redis behind the same interface when running several workers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._cache: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                value, expiry = entry
                if self._clock() < expiry:
                    self.hits += 1
                    return value
                del self._cache[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl_seconds: int = 300) -> None:
        """Set value in cache with TTL."""
        with self._lock:
            self._cache[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        """Delete value from cache."""
        with self._lock:
            self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cached values."""
        with self._lock:
            self._cache.clear()
            self.hits = 0
            self.misses = 0

    def cleanup_expired(self) -> int:
        """Remove expired entries, return count removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._cache.items() if now >= exp]
            for k in expired:
                del self._cache[k]
        if expired:
            logger.debug("cache_entries_expired", count=len(expired))
        return len(expired)


# Global cache instance
cache = SimpleCache()
