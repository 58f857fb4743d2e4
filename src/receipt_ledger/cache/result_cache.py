"""
Per-owner aggregate result cache.

Entries are keyed ``<query_name>:<owner_id>:<range_start>:<range_end>[:...]``
so that invalidating an owner can find every entry embedding that owner.
Expiry is lazy: an expired entry is only removed when it is next read.
Nothing survives a process restart; entries are derived from the ledger
and can always be recomputed.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

KEY_SEPARATOR = ":"


def cache_key(query_name: str, owner_id: Any, *parts: Any) -> str:
    """Build a cache key in the shape invalidate() understands."""
    segments = [query_name, str(owner_id)]
    segments.extend("" if part is None else str(part) for part in parts)
    return KEY_SEPARATOR.join(segments)


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry (None = never expires)."""

    key: str
    value: Any
    expires_at: float | None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class ResultCache:
    """
    Process-local TTL cache with owner-scoped invalidation.

    Constructed explicitly and passed to its users; independent instances
    never share entries.
    """

    def __init__(self, default_ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic):
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Cached value, or None if absent or expired (expired entries are dropped)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value; ttl_seconds <= 0 keeps it until invalidated."""
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl > 0 else None
        with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    def invalidate(self, owner_id: Any | None = None) -> int:
        """
        Remove every entry embedding owner_id, or everything if owner_id is None.

        Returns:
            Number of entries removed
        """
        with self._lock:
            if owner_id is None or owner_id == "":
                removed = len(self._entries)
                self._entries.clear()
            else:
                owner = str(owner_id)
                infix = f"{KEY_SEPARATOR}{owner}{KEY_SEPARATOR}"
                suffix = f"{KEY_SEPARATOR}{owner}"
                prefix = f"{owner}{KEY_SEPARATOR}"
                doomed = [
                    key
                    for key in self._entries
                    if infix in key or key.endswith(suffix) or key.startswith(prefix)
                ]
                for key in doomed:
                    del self._entries[key]
                removed = len(doomed)

        logger.debug(f"Invalidated {removed} cache entries for owner {owner_id or '*'}")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
