"""Result cache for complete, unpaginated search outcomes.

Entries are keyed by the effective search key exactly as given; no case
folding or whitespace normalization happens here. Entries live for the
process lifetime: there is no TTL and no eviction, so memory grows with the
number of distinct queries served.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
import threading

from search_gateway.domain.search import CacheEntry, ServiceResult
from search_gateway.observability.metrics import CACHE_EVENTS


logger = logging.getLogger(__name__)


class AbstractCacheBackend(ABC):
    """Storage behind ResultCache.

    Implementations need not be thread-safe; ResultCache serializes access.
    A distributed backend only has to honour the same get/set semantics.
    """

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def keys(self) -> list[str]:
        raise NotImplementedError


class InMemoryCacheBackend(AbstractCacheBackend):
    """Single-process dictionary backend."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)


class ResultCache:
    """Memoizes ServiceResults by effective search key.

    Reads and writes of a key are atomic with respect to each other. Two
    concurrent misses for the same key may both store a value; the last write
    wins.
    """

    def __init__(self, backend: AbstractCacheBackend | None = None) -> None:
        self._backend = backend or InMemoryCacheBackend()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stores = 0

    def get(self, key: str) -> ServiceResult | None:
        """Return the stored ServiceResult for ``key`` or None on a miss."""
        entry = self.get_entry(key)
        return entry.service_result if entry is not None else None

    def get_entry(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._backend.get(key)
            if entry is None:
                self._misses += 1
            else:
                self._hits += 1

        outcome = "hit" if entry is not None else "miss"
        CACHE_EVENTS.labels(outcome=outcome).inc()
        logger.debug("Cache %s for key %r", outcome.upper(), key)
        return entry

    def put(self, key: str, service_result: ServiceResult) -> CacheEntry:
        """Store (or overwrite) the result for ``key``."""
        entry = CacheEntry(effective_key=key, service_result=service_result)
        with self._lock:
            self._backend.set(key, entry)
            self._stores += 1
        CACHE_EVENTS.labels(outcome="store").inc()
        logger.debug(
            "Stored %d results for key %r (compute %.3fs)",
            service_result.total_results,
            key,
            service_result.compute_time_seconds,
        )
        return entry

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._backend.delete(key)

    def clear(self) -> None:
        with self._lock:
            self._backend.clear()
        logger.info("Result cache cleared")

    def keys(self) -> list[str]:
        with self._lock:
            return self._backend.keys()

    @property
    def size(self) -> int:
        return len(self.keys())

    def get_stats(self) -> dict[str, int]:
        """Expose hit/miss counters for health reporting."""
        with self._lock:
            return {
                "entries": len(self._backend.keys()),
                "hits": self._hits,
                "misses": self._misses,
                "stores": self._stores,
            }
