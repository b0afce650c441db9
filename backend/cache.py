# cache.py — In-process TTL cache for single-task reads
"""
Get-or-populate cache in front of single-task lookups.

Entries carry an absolute expiry computed when they are written. Expired
entries are evicted lazily on read and are never returned. The instance is
created by the application lifespan and handed to request handlers through
`get_task_cache`, never imported as a module global.
"""
import os
import time
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from fastapi import Request

logger = logging.getLogger("taskboard.cache")

DEFAULT_TTL_MINUTES = int(os.getenv("TASK_CACHE_TTL_MINUTES", "5"))


def task_cache_key(task_id: str) -> str:
    return f"task:{task_id}"


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TaskCache:
    """Key/value store with per-entry time-to-live"""

    def __init__(
        self,
        default_ttl: timedelta = timedelta(minutes=DEFAULT_TTL_MINUTES),
        clock: Callable[[], float] = time.monotonic,
    ):
        if default_ttl.total_seconds() <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired"""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            logger.debug(f"Evicted expired entry {key}")
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        ttl = ttl if ttl is not None else self.default_ttl
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=self._clock() + ttl.total_seconds(),
        )

    def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        """Live entry count; expired entries are purged first"""
        self.purge_expired()
        return {
            "entries": len(self._entries),
            "default_ttl_seconds": self.default_ttl.total_seconds(),
        }


def get_task_cache(request: Request) -> Optional[TaskCache]:
    """FastAPI dependency: the cache owned by the running application"""
    return getattr(request.app.state, "task_cache", None)
