"""In-memory cache provider using cachetools.TTLCache.

``TTLCache`` is not thread-safe on its own, so every access goes through a
re-entrant lock.  The lock is only ever held for the dict operation itself,
never across an ``await``.  The clock is injectable so expiry can be tested
without sleeping.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

import structlog
from cachetools import TTLCache

from course_rag.interfaces.cache_provider import ICacheProvider

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is evicted.
    ttl:
        Time-to-live in seconds, measured from insertion.
    timer:
        Monotonic clock used for expiry; defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl: int = 300,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._cache: TTLCache[str, Any] = TTLCache(maxsize=max_size, ttl=ttl, timer=timer)
        self._lock = threading.RLock()

    @property
    def ttl(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Retrieve the cached value for *key*, or ``None`` if missing/expired."""
        with self._lock:
            value = self._cache.get(key)
        if value is not None:
            logger.debug("cache_hit", key=key)
        else:
            logger.debug("cache_miss", key=key)
        return value

    async def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value
        logger.debug("cache_set", key=key)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)
        logger.debug("cache_delete", key=key)

    async def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in doomed:
                self._cache.pop(key, None)
        if doomed:
            logger.debug("cache_invalidated", prefix=prefix, count=len(doomed))
        return len(doomed)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._cache

    async def clear(self) -> None:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.info("cache_cleared", count=count)

    def size(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)
