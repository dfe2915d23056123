"""Cache providers.

MemoryCacheProvider is a lock-guarded ``cachetools.TTLCache``: fast, but not
shared across processes.  For multi-worker deployments, swap in a Redis
adapter implementing ICacheProvider without changing retrieval logic.
"""

from course_rag.providers.cache.memory_cache import MemoryCacheProvider

__all__ = ["MemoryCacheProvider"]
