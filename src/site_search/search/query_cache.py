"""TTL cache for ranked search and suggestion results.

Entries are keyed by ``(kind, index_handle, site_id, normalized query,
options fingerprint)``. Index mutations drop every entry of the index; the
TTL bounds staleness for writers in other processes.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
import logging
import threading
import time
from typing import Any

from site_search.observability.metrics import CACHE_LOOKUPS


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheKey:
    kind: str
    index_handle: str
    site_id: int
    query: str
    fingerprint: Hashable = ()


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float


class QueryCache:
    """Thread-safe LRU with per-entry expiry."""

    def __init__(
        self,
        *,
        ttl_seconds: float = 3600,
        max_entries: int = 1000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled and ttl_seconds > 0
        self._clock = clock
        self._entries: OrderedDict[CacheKey, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at <= self._clock():
                del self._entries[key]
                entry = None
            if entry is not None:
                self._entries.move_to_end(key)
        CACHE_LOOKUPS.labels(kind=key.kind, result="hit" if entry is not None else "miss").inc()
        return entry.value if entry is not None else None

    def put(self, key: CacheKey, value: Any) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = _Entry(value, self._clock() + self.ttl_seconds)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate_index(self, index_handle: str) -> int:
        """Drop every entry for ``index_handle``; returns how many were dropped."""
        with self._lock:
            stale = [key for key in self._entries if key.index_handle == index_handle]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Invalidated %d cached results for index %s", len(stale), index_handle)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
