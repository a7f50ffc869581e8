"""In-process TTL cache for upstream responses."""

import json
import logging
import time
from typing import Any, Callable, Dict, NamedTuple, Optional

logger = logging.getLogger(__name__)


class CacheEntry(NamedTuple):
    key: str
    data: Any
    timestamp: float


def cache_key(endpoint: str, params: Optional[dict] = None) -> str:
    """Endpoint plus a canonical serialization of its query parameters."""
    return f"{endpoint}_{json.dumps(params or {}, sort_keys=True, separators=(',', ':'))}"


class TTLCache:
    """Key/value store whose entries expire ``ttl`` seconds after being written.

    Stale entries are never swept; they stay until overwritten or cleared.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def is_valid(self, entry: Optional[CacheEntry]) -> bool:
        """Fresh means written less than ``ttl`` seconds ago."""
        return entry is not None and self._clock() - entry.timestamp < self.ttl

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry, stale or not."""
        return self._entries.get(key)

    def get(self, key: str) -> Optional[Any]:
        """Return cached data while fresh, otherwise None."""
        entry = self._entries.get(key)
        if self.is_valid(entry):
            return entry.data
        return None

    def set(self, key: str, data: Any) -> CacheEntry:
        """Store data stamped with the current clock reading."""
        entry = CacheEntry(key=key, data=data, timestamp=self._clock())
        self._entries[key] = entry
        return entry

    def clear(self) -> None:
        """Forget everything."""
        logger.info(f"Clearing {len(self._entries)} cached responses")
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.is_valid(self._entries.get(key))
