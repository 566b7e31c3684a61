"""In-memory response cache keyed by string.

Entries never expire on their own: each read passes the maximum age it
accepts, and callers clear entries they know to be stale.
"""

import time
from dataclasses import dataclass
from typing import Any

from src.timetable.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


class ResponseCache:
    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str, max_age_seconds: float) -> Any | None:
        """Return cached data younger than max_age_seconds, else None."""
        entry = self._entries.get(key)
        if entry is not None and time.monotonic() - entry.timestamp < max_age_seconds:
            logger.debug("cache_hit", key=key)
            return entry.data
        return None

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = CacheEntry(data=data, timestamp=time.monotonic())
        logger.debug("cache_set", key=key)

    def discard(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        logger.debug("cache_cleared")

    def __contains__(self, key: str) -> bool:
        return key in self._entries
