"""
Bounded identity cache with time- and count-based eviction.
"""

import time
from collections import OrderedDict
from typing import Any, Optional


class ExpiringIdCache:
    """
    Insertion-ordered id cache.

    Entries expire ``ttl_seconds`` after insertion; when ``max_size`` is
    exceeded the oldest entries are evicted first.
    """

    def __init__(self, ttl_seconds: float = 600.0, max_size: int = 10_000):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        self.evict_expired()
        return key in self._entries

    def get(self, key: str, now: Optional[float] = None) -> Optional[Any]:
        """Return the value stored for ``key`` or None when absent/expired."""
        self.evict_expired(now)
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def add(self, key: str, value: Any = True, now: Optional[float] = None) -> bool:
        """
        Record ``key``.

        Returns:
            True if the key was new, False if it was already present
        """
        now = time.time() if now is None else now
        self.evict_expired(now)

        if key in self._entries:
            return False

        self._entries[key] = (now, value)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
        return True

    def evict_expired(self, now: Optional[float] = None) -> int:
        """Drop entries older than the TTL. Returns the number evicted."""
        now = time.time() if now is None else now
        cutoff = now - self.ttl_seconds
        evicted = 0

        # Ordered by insertion time, so stop at the first live entry
        while self._entries:
            key, (inserted_at, _) = next(iter(self._entries.items()))
            if inserted_at > cutoff:
                break
            self._entries.popitem(last=False)
            evicted += 1

        return evicted

    def clear(self) -> None:
        self._entries.clear()
