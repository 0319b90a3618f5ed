import logging
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

# Seconds between sweeps of expired entries
CHECK_PERIOD = 600


class MemoryCache:
    """Process-wide key -> (value, expiry) store.

    Only touched from the event loop thread, so plain dict operations are
    enough: a value is either fully stored or absent. Expired entries are
    dropped when read, and all of them are swept on the first write after
    each check period.
    """

    def __init__(self, clock=time.monotonic, check_period: float = CHECK_PERIOD):
        self._store: Dict[str, Tuple[Any, float]] = {}
        self._clock = clock
        self._check_period = check_period
        self._next_sweep = clock() + check_period

    def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._store.pop(key, None)
            return None
        logger.debug(f"Cache hit for {key}")
        return value

    def set(self, key: str, value: Any, ttl: int) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            self.sweep()
        self._store[key] = (value, now + ttl)
        logger.debug(f"Cached {key} (TTL={ttl}s)")

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._store.items() if now >= expires_at]
        for key in expired:
            del self._store[key]
        self._next_sweep = now + self._check_period
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


_cache = MemoryCache()


# Dependency to provide the process-wide cache
def get_cache() -> MemoryCache:
    return _cache
