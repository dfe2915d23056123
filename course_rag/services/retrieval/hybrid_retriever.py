"""Query-time retrieval: cache -> embed -> search -> fuse -> rerank -> cache.

Three search modes are supported:

``hybrid`` (default)
    Runs the vector branch (a fused dense + sparse query on the vector
    store) and the BM25 keyword branch, then merges them with Reciprocal
    Rank Fusion.  If only one index is populated, or one index query fails,
    the other branch answers alone and a diagnostic note says so.  A failure
    to embed the query is not degraded; it propagates to the caller.
``semantic``
    Vector index only.
``keyword``
    Keyword index only; the query is never embedded.

Every request walks the :class:`RetrievalState` machine; the states visited
are logged and returned on the response.
"""

from __future__ import annotations

from typing import Any

import structlog

from course_rag.interfaces.embedding_provider import QUERY_OPTIONS, IEmbeddingProvider
from course_rag.models.rag import SearchResult, SearchType
from course_rag.models.retrieval import RetrievalOptions, RetrievalResponse, RetrievalState
from course_rag.services.retrieval.filters import build_payload_filter
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.reranker import RerankService
from course_rag.services.retrieval.retrieval_cache import RetrievalCache
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from course_rag.services.retrieval.vector_index import VectorIndex
from course_rag.utils.errors import (
    CourseRAGError,
    InvalidContentError,
    NoDocumentsIngestedError,
    NoIndexAvailableError,
)
from course_rag.utils.fusion import reciprocal_rank_fusion

logger = structlog.get_logger(logger_name=__name__)


class HybridRetriever:
    """Answers retrieval requests against one collection."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        collection_name: str,
        sparse_encoder: SparseEncoder | None = None,
        reranker: RerankService | None = None,
        cache: RetrievalCache | None = None,
        rrf_k: int = 60,
    ) -> None:
        self._embedder = embedding_provider
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._collection = collection_name
        self._sparse = sparse_encoder or SparseEncoder()
        self._reranker = reranker or RerankService(None)
        self._cache = cache
        self._rrf_k = rrf_k

    async def retrieve(self, query: str, options: RetrievalOptions | None = None) -> RetrievalResponse:
        """Run one retrieval request.

        Raises
        ------
        InvalidContentError
            If *query* is blank.
        NoDocumentsIngestedError
            If neither index holds any content.
        NoIndexAvailableError
            If the index required by a ``semantic`` / ``keyword`` request
            is empty.
        ExternalServiceError
            If the query cannot be embedded.
        """
        opts = options or RetrievalOptions()
        if not query or not query.strip():
            raise InvalidContentError("Query is empty")

        states: list[RetrievalState] = []
        self._enter(states, RetrievalState.RECEIVED, mode=opts.search_mode.value)
        filters = opts.filters()

        cache_key = None
        if self._cache is not None:
            cache_key = RetrievalCache.key(
                query,
                filters,
                opts.search_mode,
                extra={
                    "top_k": opts.top_k,
                    "final_top_k": opts.final_top_k,
                    "rerank": opts.enable_reranking,
                },
            )
            cached = await self._cache.get(cache_key)
            if cached is not None:
                self._enter(states, RetrievalState.CACHED_AND_RETURNED, cached=True)
                return cached.model_copy(update={"cached": True, "states": states})

        vector_ready = await self._vector_populated()
        keyword_ready = self._keyword_index.is_populated
        if not vector_ready and not keyword_ready:
            raise NoDocumentsIngestedError()

        notes: list[str] = []
        mode = self._resolve_mode(opts.search_mode, vector_ready, keyword_ready, notes)

        if mode is SearchType.KEYWORD:
            self._enter(states, RetrievalState.RETRIEVING, branch="keyword")
            candidates = self._keyword_search(query, filters, opts.top_k)
        elif mode is SearchType.SEMANTIC:
            self._enter(states, RetrievalState.EMBEDDING_QUERY)
            dense = await self._embedder.embed_single(query, QUERY_OPTIONS)
            self._enter(states, RetrievalState.RETRIEVING, branch="semantic")
            candidates = await self._vector_index.search_similar(
                self._collection, dense, filters, opts.top_k
            )
        else:
            candidates, mode = await self._hybrid(query, filters, opts.top_k, states, notes)

        total_found = len(candidates)
        results = candidates
        reranked = False
        if opts.enable_reranking and self._reranker.enabled and len(candidates) > 1:
            self._enter(states, RetrievalState.RERANKING, candidates=len(candidates))
            results = await self._reranker.rerank(candidates, query, opts.final_top_k)
            reranked = any(r.relevance_score is not None for r in results)
            if not reranked:
                notes.append("Reranking unavailable; original ranking kept")
        results = results[: opts.final_top_k]

        self._enter(states, RetrievalState.CACHED_AND_RETURNED, results=len(results))
        response = RetrievalResponse(
            results=results,
            search_type=mode,
            filters=filters,
            total_found=total_found,
            cached=False,
            reranked=reranked,
            notes=notes,
            states=states,
        )
        if self._cache is not None and cache_key is not None:
            await self._cache.put(cache_key, response)
        return response

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def _hybrid(
        self,
        query: str,
        filters: dict[str, Any],
        top_k: int,
        states: list[RetrievalState],
        notes: list[str],
    ) -> tuple[list[SearchResult], SearchType]:
        self._enter(states, RetrievalState.EMBEDDING_QUERY)
        dense = await self._embedder.embed_single(query, QUERY_OPTIONS)
        self._enter(states, RetrievalState.RETRIEVING, branch="hybrid")

        vector_hits: list[SearchResult] | None = None
        vector_error: CourseRAGError | None = None
        try:
            vector_hits = await self._vector_index.hybrid_search(
                self._collection, dense, self._sparse.encode(query), top_k, filters
            )
        except CourseRAGError as exc:
            vector_error = exc
            logger.warning("vector_branch_failed", error=exc.message, kind=exc.kind)

        try:
            keyword_hits = self._keyword_search(query, filters, top_k)
        except Exception as exc:
            if vector_hits is None:
                raise
            logger.warning("keyword_branch_failed", error=str(exc))
            notes.append("Keyword branch failed; semantic results only")
            return vector_hits, SearchType.SEMANTIC

        if vector_hits is None:
            notes.append(f"Vector branch failed ({vector_error.kind}); keyword results only")
            return keyword_hits, SearchType.KEYWORD

        return self._fuse(vector_hits, keyword_hits, top_k), SearchType.HYBRID

    def _keyword_search(self, query: str, filters: dict[str, Any], top_k: int) -> list[SearchResult]:
        payload_filter, _ = build_payload_filter(filters)
        return self._keyword_index.search(
            query, top_k, None if payload_filter.is_empty else payload_filter
        )

    def _fuse(
        self,
        vector_hits: list[SearchResult],
        keyword_hits: list[SearchResult],
        top_k: int,
    ) -> list[SearchResult]:
        by_id: dict[str, SearchResult] = {}
        branches: dict[str, list[str]] = {}
        for name, hits in (("vector", vector_hits), ("keyword", keyword_hits)):
            for hit in hits:
                by_id.setdefault(hit.id, hit)
                branches.setdefault(hit.id, []).append(name)

        fused = reciprocal_rank_fusion(
            [[h.id for h in vector_hits], [h.id for h in keyword_hits]], k=self._rrf_k
        )
        results: list[SearchResult] = []
        for doc_id, score in fused[:top_k]:
            source = by_id[doc_id]
            metadata = dict(source.metadata)
            metadata["retrieval_branches"] = branches[doc_id]
            results.append(
                source.model_copy(
                    update={"score": score, "metadata": metadata, "search_type": SearchType.HYBRID}
                )
            )
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _vector_populated(self) -> bool:
        try:
            return await self._vector_index.count(self._collection) > 0
        except CourseRAGError:
            return False

    @staticmethod
    def _resolve_mode(
        requested: SearchType,
        vector_ready: bool,
        keyword_ready: bool,
        notes: list[str],
    ) -> SearchType:
        if requested is SearchType.SEMANTIC and not vector_ready:
            raise NoIndexAvailableError("Semantic search requested but the vector index is empty")
        if requested is SearchType.KEYWORD and not keyword_ready:
            raise NoIndexAvailableError("Keyword search requested but the keyword index is empty")
        if requested is SearchType.HYBRID:
            if not keyword_ready:
                notes.append("Keyword index is empty; using semantic search only")
                return SearchType.SEMANTIC
            if not vector_ready:
                notes.append("Vector index is empty; using keyword search only")
                return SearchType.KEYWORD
        return requested

    @staticmethod
    def _enter(states: list[RetrievalState], state: RetrievalState, **fields: Any) -> None:
        states.append(state)
        logger.debug("retrieval_state", state=state.value, **fields)
