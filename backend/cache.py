"""Nimbus Backend — In-memory forecast cache with TTL and LRU eviction"""

import math
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import CACHE_TTL_SECONDS, REFRESH_THRESHOLD_SECONDS, MAX_CACHE_SIZE

logger = logging.getLogger("nimbus.cache")


@dataclass
class CacheEntry:
    key: str
    payload: Any
    stored_at: float
    access_count: int
    last_accessed_at: float


class ResponseCache:
    """City-keyed forecast cache.

    TTL is scoped per read: an entry older than ``max_age`` is reported as a
    miss but stays in the cache, so a later ``get(key, math.inf)`` can still
    serve it as a stale fallback. Capacity is enforced on write by evicting
    the least recently accessed entry.
    """

    def __init__(
        self,
        max_size: int = MAX_CACHE_SIZE,
        ttl: float = CACHE_TTL_SECONDS,
        refresh_threshold: float = REFRESH_THRESHOLD_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._store: dict[str, CacheEntry] = {}
        self.max_size = max_size
        self.ttl = ttl
        self.refresh_threshold = refresh_threshold
        self._clock = clock

    @staticmethod
    def normalize_key(key: str) -> str:
        return key.strip().lower()

    def get(self, key: str, max_age: Optional[float] = None) -> Optional[Any]:
        entry = self._store.get(self.normalize_key(key))
        if entry is None:
            return None
        now = self._clock()
        # Recency is tracked even on stale hits
        entry.access_count += 1
        entry.last_accessed_at = now
        if max_age is None:
            max_age = self.ttl
        age = now - entry.stored_at
        if age < max_age:
            logger.debug(f"Cache hit for {entry.key} ({age / 60:.0f} minutes old)")
            return entry.payload
        logger.debug(f"Cache entry for {entry.key} too old ({age / 60:.0f} minutes)")
        return None

    def get_stale(self, key: str) -> Optional[Any]:
        """Return the entry regardless of age."""
        return self.get(key, math.inf)

    def put(self, key: str, payload: Any):
        k = self.normalize_key(key)
        now = self._clock()
        prior = self._store.get(k)
        # Replacing an entry counts as one more access
        access_count = prior.access_count + 1 if prior else 1
        self._store[k] = CacheEntry(
            key=k,
            payload=payload,
            stored_at=now,
            access_count=access_count,
            last_accessed_at=now,
        )
        self.evict_if_over_capacity()

    def evict_if_over_capacity(self):
        while len(self._store) > self.max_size:
            # min() keeps the first of equal timestamps, i.e. insertion order
            oldest_key = min(self._store, key=lambda k: self._store[k].last_accessed_at)
            del self._store[oldest_key]
            logger.info(f"Evicted {oldest_key} from cache (capacity {self.max_size})")

    def is_refresh_due(self, key: str) -> bool:
        entry = self._store.get(self.normalize_key(key))
        if entry is None:
            return False
        return self._clock() - entry.stored_at > self.refresh_threshold

    def age(self, key: str) -> Optional[float]:
        entry = self._store.get(self.normalize_key(key))
        if entry is None:
            return None
        return self._clock() - entry.stored_at

    def entry(self, key: str) -> Optional[CacheEntry]:
        return self._store.get(self.normalize_key(key))

    def invalidate(self, key: str) -> bool:
        return self._store.pop(self.normalize_key(key), None) is not None

    def clear(self):
        self._store.clear()

    def stats(self) -> list[dict]:
        now = self._clock()
        return [
            {
                "key": e.key,
                "ageSeconds": round(now - e.stored_at, 1),
                "accessCount": e.access_count,
                "refreshDue": now - e.stored_at > self.refresh_threshold,
            }
            for e in self._store.values()
        ]

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.normalize_key(key) in self._store
