"""
TTL Cache

Small in-process cache shared by the analytics components. Entries
expire after a fixed time-to-live; the last write for a key wins.
"""

import time
from typing import Any, Callable, Hashable, Optional


class TTLCache:
    """
    Key/value cache with per-instance time-to-live.

    Usage:
        cache = TTLCache(ttl_seconds=300)
        cache.set(("team", 1), data)
        data = cache.get(("team", 1))
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        """Return a fresh value for key, or default if missing or stale."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return default
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    def __len__(self) -> int:
        return len(self._entries)
