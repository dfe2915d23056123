"""Write-through cache of final retrieval responses.

Keys are the SHA-256 of the canonical JSON of ``(query, filters, mode)``,
so two requests that differ only in filter-key order share an entry.
Entries expire after the provider's TTL (300 s by default) or on
:meth:`RetrievalCache.clear`, which ingestion calls after every write.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

import structlog

from course_rag.interfaces.cache_provider import ICacheProvider
from course_rag.models.rag import SearchType
from course_rag.models.retrieval import RetrievalResponse

logger = structlog.get_logger(logger_name=__name__)

_PREFIX = "rc:"


class RetrievalCache:
    def __init__(self, provider: ICacheProvider) -> None:
        self._provider = provider

    @staticmethod
    def key(query: str, filters: dict[str, Any], mode: SearchType | str, extra: Any = None) -> str:
        payload = {
            "query": query,
            "filters": filters,
            "mode": SearchType(mode).value,
            "extra": extra,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
        return _PREFIX + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    async def get(self, key: str) -> RetrievalResponse | None:
        return await self._provider.get(key)

    async def put(self, key: str, response: RetrievalResponse) -> None:
        await self._provider.set(key, response)

    async def clear(self) -> None:
        removed = await self._provider.delete_prefix(_PREFIX)
        logger.debug("retrieval_cache_cleared", removed=removed)

    def size(self) -> int:
        return self._provider.size()
