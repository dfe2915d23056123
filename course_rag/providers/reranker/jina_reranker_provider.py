"""Jina AI reranker provider adapter.

Calls ``POST /v1/rerank`` and maps ``results[{index, relevance_score}]`` to
:class:`RerankHit` objects.  Documents are not echoed back
(``return_documents=False``); the caller still holds them.
"""

from __future__ import annotations

import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.reranker_provider import IRerankerProvider, RerankHit
from course_rag.providers.jina_api import JinaAPIClient, build_jina_client
from course_rag.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)


class JinaRerankerProvider(IRerankerProvider):
    """Cross-encoder reranking backed by the Jina rerank API."""

    def __init__(self, settings: Settings, api_client: JinaAPIClient | None = None) -> None:
        self._model = settings.jina_reranker_model
        self._api = api_client or build_jina_client(settings)

    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankHit]:
        if not documents:
            return []
        payload = {
            "model": self._model,
            "query": query,
            "documents": documents,
            "top_n": min(top_n, len(documents)),
            "return_documents": False,
        }
        body = await self._api.post("/rerank", payload, self.get_provider_name())

        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            raise ExternalServiceError(
                message="Rerank response has no 'results' list",
                provider_name=self.get_provider_name(),
            )
        try:
            hits = [
                RerankHit(index=int(r["index"]), relevance_score=float(r["relevance_score"]))
                for r in results
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError(
                message=f"Malformed rerank response: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        hits = [h for h in hits if 0 <= h.index < len(documents)]
        hits.sort(key=lambda h: h.relevance_score, reverse=True)
        logger.debug("jina_rerank", model=self._model, candidates=len(documents), hits=len(hits))
        return hits

    def get_provider_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return self._api.has_api_key
