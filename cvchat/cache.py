"""Bounded in-memory caches with age-based expiry."""

import copy
import hashlib
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Any

from .config import config

logger = config.get_logger(__name__)


def make_key(*parts: Any) -> str:
    """Stable hash key for the given parts.

    Returns:
        str: Hex SHA-256 digest of the joined parts.
    """
    raw = "\x1f".join(str(part).strip().lower() for part in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def response_cache_key(query: str, style: str, entry_ids: Iterable[str]) -> str:
    return make_key(query, style, ",".join(entry_ids))


class BoundedCache:
    """Thread-safe cache that evicts the oldest insert first.

    Values are deep-copied on write and on read, so callers never share
    mutable state with the cache.
    """

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize BoundedCache.

        Args:
            max_size: Maximum number of entries kept.
            ttl_seconds: Age after which entries expire. None disables expiry.
            clock: Time source in seconds.

        Raises:
            ValueError: If max_size is not positive.
        """
        if max_size <= 0:
            msg = "max_size must be positive"
            raise ValueError(msg)
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _expired(self, stored_at: float) -> bool:
        if self.ttl_seconds is None:
            return False
        return self._clock() - stored_at > self.ttl_seconds

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                self.misses += 1
                return None
            stored_at, value = item
            if self._expired(stored_at):
                del self._store[key]
                self.misses += 1
                return None
            self.hits += 1
            return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        snapshot = copy.deepcopy(value)
        with self._lock:
            self._store.pop(key, None)
            self._store[key] = (self._clock(), snapshot)
            while len(self._store) > self.max_size:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:12])

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._store),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / lookups if lookups else 0.0,
            }
