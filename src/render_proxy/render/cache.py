"""In-process result cache for rendered pages.

Bounded LRU mapping from canonical URL to HTML.  Each entry also expires a
fixed time after insertion, regardless of how often it is read; an expired
entry is dropped the next time it is looked up.

The cache is process-local.  Separate proxy instances never share or
invalidate each other's entries.

Usage::

    cache = ResultCache(max_entries=50, ttl_ms=300_000)
    cache.set("https://example.com/page", html)
    html = cache.get("https://example.com/page")  # None on miss
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from render_proxy.render.config import DEFAULT_CACHE_MAX_ENTRIES, DEFAULT_CACHE_TTL_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached render.

    Attributes:
        key: Canonical URL.
        value: Rendered HTML.
        inserted_at: Clock reading (seconds) at insertion.
        ttl: Lifetime in seconds.
    """

    key: str
    value: str
    inserted_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.inserted_at >= self.ttl


class ResultCache:
    """Thread-safe LRU cache with per-entry time-to-live.

    Args:
        max_entries: Capacity.  Inserting beyond it evicts the least
            recently used entry.
        ttl_ms: Entry lifetime in milliseconds, measured from insertion.
        clock: Monotonic clock returning seconds.  Injected by tests.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_CACHE_MAX_ENTRIES,
        ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_ms / 1000.0
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        """Return the cached HTML for ``key``, or ``None`` on miss or expiry.

        A hit marks the entry as most recently used but does not extend its
        lifetime.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[key]
                logger.debug("render cache: expired %s", key)
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: str, value: str) -> None:
        """Insert or replace ``key``.  The last writer wins."""
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=self._clock(),
                ttl=self.ttl_seconds,
            )
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("render cache: evicted %s", evicted)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: object) -> bool:
        # Presence check only: neither refreshes recency nor purges.
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not entry.expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
