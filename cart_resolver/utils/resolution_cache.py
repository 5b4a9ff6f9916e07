"""In-process TTL cache for item resolutions.

Successful and failed resolutions are stored with their own lifetimes
(30 and 5 minutes by default). Expired entries are evicted lazily on read
or in bulk via ``clear_expired``; there is no background sweep.

All operations take a lock, so the cache can be shared by concurrent
resolutions. Two callers missing the same key at once both resolve it;
the later ``put`` wins.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from cart_resolver.models.contracts import CacheStats, RawItem

logger = structlog.get_logger("cart_resolver.cache")

DEFAULT_SUCCESS_TTL = 30 * 60.0
DEFAULT_FAILURE_TTL = 5 * 60.0


def cache_key(item: RawItem, retailer_id: str | None) -> str:
    """Key for one raw item against one retailer.

    Built from name, retailer (``default`` when absent), quantity (``1`` when
    absent) and unit, so the same line at two retailers never collides.
    """
    quantity = item.quantity if item.quantity not in (None, "", 0) else 1
    if isinstance(quantity, float):
        quantity = f"{quantity:g}"
    return f"{item.name}_{retailer_id or 'default'}_{quantity}_{item.unit or ''}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    data: Any
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class ResolutionCache(ABC):
    """Key-value store with per-entry lifetimes."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``; expired entries are evicted."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl: float) -> CacheEntry: ...

    @abstractmethod
    def evict(self, key: str) -> bool: ...

    @abstractmethod
    def clear_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

    @abstractmethod
    def stats(self) -> CacheStats: ...


class InMemoryResolutionCache(ResolutionCache):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                logger.debug("resolution_cache_expired", key=key)
                return None
            return entry

    def put(self, key: str, value: Any, ttl: float) -> CacheEntry:
        entry = CacheEntry(key=key, data=value, inserted_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry
        return entry

    def evict(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expired(now)]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.info("resolution_cache_purged", evicted=len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(size=len(self._entries), keys=list(self._entries))
