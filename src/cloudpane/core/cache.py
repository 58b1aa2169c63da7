"""Process-wide TTL cache shared by every module.

Keys are chosen by callers and namespaced by module and parameters
(e.g. ``"redis:my-project"``); the cache enforces no schema.

Expiry is lazy: an entry is only checked when it is read, and there is no
background sweeper. There is also no size bound and no LRU policy, so a
long session that touches many distinct keys grows without limit. That is a
known gap.

Usage:
    cache = TTLCache()
    cache.set("gce:my-project", instances, ttl=60)

    value, found = cache.get("gce:my-project")
    if found:
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached value and the monotonic time it stops being valid."""

    value: Any
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class TTLCache:
    """Thread-safe key/value store with per-entry expiry.

    Reads and writes come from the event loop and from worker threads, so
    every access takes the lock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._items: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def get(self, key: str) -> Tuple[Any, bool]:
        """Look up a key.

        Args:
            key: Cache key.

        Returns:
            ``(value, True)`` on a live hit, ``(None, False)`` when the key
            is missing or its entry has expired.
        """
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None, False
            if entry.expired(self._clock()):
                return None, False
            return entry.value, True

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value, overwriting any previous entry.

        Args:
            key: Cache key.
            value: Opaque payload.
            ttl: Seconds until the entry expires.
        """
        with self._lock:
            self._items[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        logger.debug(f"Cache: set {key} (ttl={ttl}s)")

    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        with self._lock:
            self._items.pop(key, None)

    def flush(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key)[1]

    def __len__(self) -> int:
        # Expired entries still count until overwritten or deleted.
        with self._lock:
            return len(self._items)
