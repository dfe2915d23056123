"""RAG pipeline facade: one object an orchestrator holds for ingest + retrieve.

:class:`RAGPipeline` wires the ingestion service and the hybrid retriever to
a single collection and adds the lifecycle around them:

* :meth:`RAGPipeline.initialize` creates the collection and the metadata
  table; calling it twice is a no-op.
* :meth:`RAGPipeline.reset` drops indexed content and caches so the next
  :meth:`initialize` starts from an empty collection.
* :meth:`RAGPipeline.delete_documents` removes matching chunks from the
  vector and keyword indexes together.
* :meth:`RAGPipeline.retrieve` never raises for expected failures; it
  returns a :class:`RetrievalOutcome` carrying either the response or a
  ``{kind, message}`` error.

Build instances with :func:`course_rag.main.build_pipeline`; there is no
module-level singleton.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

from course_rag.interfaces.embedding_provider import QUERY_OPTIONS, IEmbeddingProvider
from course_rag.interfaces.metadata_store import IMetadataStore
from course_rag.models.document import SourceDocument
from course_rag.models.ingestion import BatchIngestionResult, IngestOptions
from course_rag.models.rag import CollectionConfig, DeleteResult, SearchResult, SearchType
from course_rag.models.retrieval import RetrievalOptions, RetrievalOutcome
from course_rag.services.ingestion.ingestion_service import IngestionService
from course_rag.services.retrieval.filters import build_payload_filter
from course_rag.services.retrieval.hybrid_retriever import HybridRetriever
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.retrieval_cache import RetrievalCache
from course_rag.services.retrieval.vector_index import VectorIndex
from course_rag.utils.concurrency import CancellationToken
from course_rag.utils.errors import CourseRAGError
from course_rag.utils.logging import bind_request_context, clear_request_context

logger = structlog.get_logger(logger_name=__name__)


class RAGPipeline:
    """Ingestion and retrieval over one collection.

    Parameters
    ----------
    ingestion:
        Configured :class:`IngestionService` writing to *collection_name*.
    retriever:
        Configured :class:`HybridRetriever` reading from *collection_name*.
    vector_index, keyword_index:
        The two indexes shared by *ingestion* and *retriever*.
    embedding_provider:
        Used only for the health probe and stats; embedding itself happens
        inside the services.
    collection_name, collection_config:
        Target collection, created on :meth:`initialize`.
    metadata_store:
        Optional per-document report table.
    retrieval_cache:
        Optional response cache, cleared on :meth:`reset`.
    default_ingest_options, default_retrieval_options:
        Options used when :meth:`ingest_documents` / :meth:`retrieve` are
        called without any.
    stats_config:
        Static configuration echoed by :meth:`get_stats`.
    """

    def __init__(
        self,
        ingestion: IngestionService,
        retriever: HybridRetriever,
        vector_index: VectorIndex,
        keyword_index: KeywordIndex,
        embedding_provider: IEmbeddingProvider,
        collection_name: str,
        collection_config: CollectionConfig,
        metadata_store: IMetadataStore | None = None,
        retrieval_cache: RetrievalCache | None = None,
        default_ingest_options: IngestOptions | None = None,
        default_retrieval_options: RetrievalOptions | None = None,
        stats_config: dict[str, Any] | None = None,
    ) -> None:
        self._ingestion = ingestion
        self._retriever = retriever
        self._vector_index = vector_index
        self._keyword_index = keyword_index
        self._embedder = embedding_provider
        self._collection = collection_name
        self._collection_config = collection_config
        self._metadata_store = metadata_store
        self._retrieval_cache = retrieval_cache
        self._default_ingest_options = default_ingest_options or IngestOptions()
        self._default_retrieval_options = default_retrieval_options or RetrievalOptions()
        self._stats_config = dict(stats_config or {})
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def collection_name(self) -> str:
        return self._collection

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the collection and metadata table if needed."""
        if self._initialized:
            return
        result = await self._vector_index.create_collection(self._collection, self._collection_config)
        if self._metadata_store is not None:
            await self._metadata_store.initialize()
        self._initialized = True
        logger.info(
            "pipeline_initialized",
            collection=self._collection,
            existed=result.existed,
            vector_size=self._collection_config.vector_size,
            embedding_provider=self._embedder.get_provider_name(),
        )

    async def reset(self) -> None:
        """Drop every indexed chunk, cached response and metadata row."""
        if self._collection in await self._vector_index.list_collections():
            await self._vector_index.delete_collection(self._collection)
        self._keyword_index.clear()
        await self._vector_index.clear_cache()
        if self._retrieval_cache is not None:
            await self._retrieval_cache.clear()
        if self._metadata_store is not None:
            await self._metadata_store.clear()
        self._initialized = False
        logger.info("pipeline_reset", collection=self._collection)

    # ------------------------------------------------------------------
    # Ingest / retrieve
    # ------------------------------------------------------------------

    async def ingest_documents(
        self,
        documents: list[SourceDocument],
        course_id: str | None = None,
        options: IngestOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BatchIngestionResult:
        await self.initialize()
        bind_request_context(course_id)
        try:
            return await self._ingestion.ingest_documents(
                documents,
                course_id=course_id,
                options=options or self._default_ingest_options,
                cancel_token=cancel_token,
            )
        finally:
            clear_request_context()

    async def retrieve(self, query: str, options: RetrievalOptions | None = None) -> RetrievalOutcome:
        """Answer *query*; expected failures come back as structured errors."""
        opts = options or self._default_retrieval_options
        request_id = bind_request_context(opts.course_id)
        try:
            await self.initialize()
            response = await self._retriever.retrieve(query, opts)
        except CourseRAGError as exc:
            logger.warning("retrieval_failed", kind=exc.kind, error=exc.message)
            return RetrievalOutcome.failure(exc.kind, exc.message)
        except Exception as exc:
            logger.error(
                "retrieval_error",
                error=str(exc),
                error_type=type(exc).__name__,
                request_id=request_id,
            )
            return RetrievalOutcome.failure("internal", "Retrieval failed unexpectedly")
        finally:
            clear_request_context()

        logger.info(
            "retrieval_complete",
            results=len(response.results),
            search_type=response.search_type.value,
            cached=response.cached,
            reranked=response.reranked,
        )
        return RetrievalOutcome.success(response)

    async def search_similar(
        self,
        text: str,
        limit: int = 10,
        search_mode: SearchType | str = SearchType.HYBRID,
        course_id: str | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* hits for *text*, or ``[]`` on any expected failure."""
        limit = max(1, min(limit, 200))
        mode = SearchType(search_mode)
        if mode is not SearchType.SEMANTIC and mode is not SearchType.KEYWORD:
            mode = SearchType.HYBRID
        options = RetrievalOptions(
            course_id=course_id,
            search_mode=mode,
            top_k=min(max(limit * 2, limit), 200),
            final_top_k=limit,
        )
        outcome = await self.retrieve(text, options)
        if not outcome.ok or outcome.response is None:
            return []
        return outcome.response.results

    async def delete_documents(self, filters: dict[str, Any] | None) -> DeleteResult:
        """Remove every chunk matching *filters* from both indexes.

        Raises
        ------
        NoFilterProvidedError
            If *filters* holds no recognised key; nothing is deleted.
        """
        await self.initialize()
        result = await self._vector_index.delete_by_filter(self._collection, filters)
        payload_filter, _ = build_payload_filter(filters)
        keyword_deleted = self._keyword_index.delete_by_filter(payload_filter)
        if self._retrieval_cache is not None:
            await self._retrieval_cache.clear()
        logger.info(
            "documents_deleted",
            collection=self._collection,
            vector_deleted=result.deleted_count,
            keyword_deleted=keyword_deleted,
        )
        return result

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, Any]:
        """Probe the embedding provider and vector store.

        ``status`` is ``"healthy"`` when both answer, ``"degraded"``
        otherwise.
        """
        embedding_ok = True
        try:
            await self._embedder.embed_single("test", QUERY_OPTIONS)
        except Exception as exc:
            embedding_ok = False
            logger.warning("embedding_health_failed", error=str(exc))
        vector_store_ok = await self._vector_index.health_check()

        return {
            "status": "healthy" if embedding_ok and vector_store_ok else "degraded",
            "components": {
                "embedding": "healthy" if embedding_ok else "unhealthy",
                "vector_store": "healthy" if vector_store_ok else "unhealthy",
                "initialized": self._initialized,
                "keyword_index_populated": self._keyword_index.is_populated,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def get_stats(self) -> dict[str, Any]:
        vector_count = 0
        if self._initialized:
            try:
                vector_count = await self._vector_index.count(self._collection)
            except CourseRAGError as exc:
                logger.warning("stats_count_failed", error=exc.message)

        return {
            "initialized": self._initialized,
            "collection": self._collection,
            "vector_count": vector_count,
            "keyword_count": len(self._keyword_index),
            "embedding_provider": self._embedder.get_provider_name(),
            "embedding_dimension": self._embedder.get_dimension(),
            "search_capabilities": {
                "semantic": vector_count > 0,
                "keyword": self._keyword_index.is_populated,
                "hybrid": vector_count > 0 and self._keyword_index.is_populated,
            },
            "cached_responses": self._retrieval_cache.size() if self._retrieval_cache else 0,
            "config": dict(self._stats_config),
        }
