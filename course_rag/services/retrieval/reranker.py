"""Optional cross-encoder reranking of retrieval candidates.

Reranking is best-effort: with one candidate or none there is nothing to
reorder and the provider is never called, and a provider failure falls back
to the original ranking truncated to ``top_n``.  Successful reranking sets
``relevance_score`` and ``original_index`` on every returned result.
"""

from __future__ import annotations

import structlog

from course_rag.interfaces.reranker_provider import IRerankerProvider
from course_rag.models.rag import SearchResult
from course_rag.utils.errors import CourseRAGError

logger = structlog.get_logger(logger_name=__name__)


class RerankService:
    """Reorders :class:`SearchResult` lists with an :class:`IRerankerProvider`."""

    def __init__(self, provider: IRerankerProvider | None) -> None:
        self._provider = provider

    @property
    def enabled(self) -> bool:
        return self._provider is not None and self._provider.is_available()

    async def rerank(
        self,
        results: list[SearchResult],
        query: str,
        top_n: int,
    ) -> list[SearchResult]:
        """Return at most *top_n* results in reranked order.

        When the original order is kept (nothing to rerank, no provider, or
        the provider failed) the results carry no ``relevance_score``.
        """
        if len(results) <= 1 or not self.enabled:
            return results[:top_n]

        try:
            hits = await self._provider.rerank(query, [r.text for r in results], top_n)
        except CourseRAGError as exc:
            logger.warning(
                "rerank_failed",
                provider=exc.provider_name,
                error=exc.message,
                candidates=len(results),
            )
            return results[:top_n]
        except Exception as exc:
            logger.warning("rerank_failed", error=str(exc), candidates=len(results))
            return results[:top_n]
        if not hits:
            return results[:top_n]

        reranked = [
            results[hit.index].model_copy(
                update={"relevance_score": hit.relevance_score, "original_index": hit.index}
            )
            for hit in hits[:top_n]
        ]
        logger.debug("rerank_complete", candidates=len(results), returned=len(reranked))
        return reranked
