"""
In-process TTL cache for tab reads.

Keys are collection names ("tasks", "startups", ...). Writes never update
an entry in place; they invalidate by prefix so the next read refetches.

The cache is not locked: every mutation is synchronous, so on a single
event loop no two mutations can interleave.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 30.0

_MISSING = object()


class TTLCache:
    """
    Key -> value store with a fixed time-to-live per entry.

    Args:
        ttl_seconds: Lifetime of an entry after set()
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or default if absent or expired (expired entries are evicted)."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            logger.debug(f"Cache miss: {key}")
            return default

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug(f"Cache expired: {key}")
            return default

        logger.debug(f"Cache hit: {key}")
        return value

    def __contains__(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def invalidate(self, prefix: Optional[str] = None) -> int:
        """
        Evict entries.

        Args:
            prefix: Evict keys starting with this prefix; None clears everything

        Returns:
            Number of entries evicted
        """
        if prefix is None:
            count = len(self._entries)
            self._entries.clear()
            return count

        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for prefix '{prefix}'")
        return len(keys)

    def __len__(self) -> int:
        return len(self._entries)
