"""course_rag composition root.

Wires providers and services into a :class:`RAGPipeline` via dependency
injection.  Configuration comes from ``config/config.yaml`` overlaid with
``.env`` and environment variables (see :mod:`course_rag.config.loader`).

Typical use by an orchestrating worker::

    pipeline = build_pipeline()
    await pipeline.initialize()
    result = await pipeline.ingest_documents(docs, course_id="c-101")
    outcome = await pipeline.retrieve("what is entropy?", RetrievalOptions(course_id="c-101"))
"""

from __future__ import annotations

import structlog

from course_rag.config.loader import load_config, settings_from_config
from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import IEmbeddingProvider
from course_rag.interfaces.metadata_store import IMetadataStore
from course_rag.interfaces.reranker_provider import IRerankerProvider
from course_rag.interfaces.vector_store_provider import IVectorStoreClient
from course_rag.models.ingestion import IngestOptions
from course_rag.models.rag import ChunkStrategy, CollectionConfig
from course_rag.models.retrieval import RetrievalOptions
from course_rag.providers.cache.memory_cache import MemoryCacheProvider
from course_rag.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore
from course_rag.providers.vector_store.memory_store import InMemoryVectorStore
from course_rag.services.ingestion.chunker import ChunkingEngine
from course_rag.services.ingestion.ingestion_service import IngestionService
from course_rag.services.ingestion.quality_assessor import QualityAssessor, QualityConfig
from course_rag.services.ingestion.sanitizer import Sanitizer
from course_rag.services.pipeline import RAGPipeline
from course_rag.services.retrieval.hybrid_retriever import HybridRetriever
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.reranker import RerankService
from course_rag.services.retrieval.retrieval_cache import RetrievalCache
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from course_rag.services.retrieval.vector_index import VectorIndex
from course_rag.utils.errors import ConfigurationError
from course_rag.utils.logging import configure_logging, get_logger
from course_rag.utils.tokenization import build_token_counter

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the configured embedding provider.

    Raises :class:`ConfigurationError` when the provider is unknown or its
    API key is missing; ingestion cannot work without embeddings.
    """
    name = app_settings.embedding_provider.lower()
    if name == "openai":
        from course_rag.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
    elif name == "jina":
        from course_rag.providers.embedding.jina_embedding_provider import JinaEmbeddingProvider

        provider = JinaEmbeddingProvider(settings=app_settings)
    else:
        raise ConfigurationError(message=f"Unknown embedding provider: {name!r}")

    if not provider.is_available():
        raise ConfigurationError(
            message=f"Embedding provider {name!r} selected but its API key is not set"
        )
    return provider


def _build_reranker(app_settings: Settings) -> IRerankerProvider | None:
    """Return the Jina reranker, or ``None`` when disabled or unconfigured."""
    if not app_settings.reranker_enabled:
        return None
    from course_rag.providers.reranker.jina_reranker_provider import JinaRerankerProvider

    provider = JinaRerankerProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning("reranker_unavailable", msg="JINA_API_KEY not set; reranking disabled.")
        return None
    return provider


def _build_vector_store(app_settings: Settings) -> IVectorStoreClient:
    name = app_settings.vector_store.lower()
    if name == "memory":
        return InMemoryVectorStore()
    if name == "chromadb":
        # Imported lazily: chromadb pulls in a large dependency tree.
        from course_rag.providers.vector_store.chromadb_store import ChromaDBVectorStore

        return ChromaDBVectorStore(persist_directory=app_settings.chromadb_persist_dir)
    raise ConfigurationError(message=f"Unknown vector store: {name!r}")


def _build_metadata_store(app_settings: Settings) -> IMetadataStore | None:
    if not app_settings.metadata_db_path:
        return None
    return SQLiteMetadataStore(db_path=app_settings.metadata_db_path)


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    custom_settings: Settings | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_store: IVectorStoreClient | None = None,
    reranker: IRerankerProvider | None = None,
    metadata_store: IMetadataStore | None = None,
) -> RAGPipeline:
    """Construct a :class:`RAGPipeline` with every dependency injected.

    Parameters
    ----------
    custom_settings:
        Application settings.  Loaded from ``config/config.yaml`` plus the
        environment when not provided.
    embedding_provider, vector_store, reranker, metadata_store:
        Overrides for the providers otherwise selected from settings.

    Raises
    ------
    ConfigurationError
        If a selected provider is unknown or lacks credentials, or the
        chunking configuration is inconsistent.
    """
    s = custom_settings or settings_from_config(load_config())
    if not structlog.is_configured():
        configure_logging(log_level=s.log_level, json_output=(s.app_env == "production"))

    embedder = embedding_provider or _build_embedding_provider(s)
    driver = vector_store or _build_vector_store(s)
    rerank_provider = reranker if reranker is not None else _build_reranker(s)
    metadata = metadata_store if metadata_store is not None else _build_metadata_store(s)

    try:
        strategy = ChunkStrategy(s.chunk_strategy)
    except ValueError as exc:
        raise ConfigurationError(message=f"Unknown chunk strategy: {s.chunk_strategy!r}") from exc

    search_cache = MemoryCacheProvider(max_size=s.cache_max_entries, ttl=s.cache_ttl_seconds)
    response_cache = RetrievalCache(
        MemoryCacheProvider(max_size=s.cache_max_entries, ttl=s.cache_ttl_seconds)
    )
    vector_index = VectorIndex(driver, cache=search_cache)
    keyword_index = KeywordIndex()
    sparse_encoder = SparseEncoder()

    chunker = ChunkingEngine(
        min_chunk_size=s.min_chunk_size,
        max_chunk_size=s.max_chunk_size,
        overlap_size=s.chunk_overlap,
        token_counter=build_token_counter(s.token_counter),
    )
    assessor = QualityAssessor(
        QualityConfig(
            coherence_excellent=s.coherence_excellent,
            coherence_good=s.coherence_good,
            coherence_fair=s.coherence_fair,
        )
    )

    ingestion = IngestionService(
        sanitizer=Sanitizer(),
        chunker=chunker,
        assessor=assessor,
        embedding_provider=embedder,
        vector_index=vector_index,
        keyword_index=keyword_index,
        collection_name=s.collection_name,
        sparse_encoder=sparse_encoder,
        metadata_store=metadata,
        retrieval_cache=response_cache,
        embedding_batch_size=s.embedding_batch_size,
        embedding_concurrency=s.embedding_concurrency,
        inter_batch_delay=s.embedding_inter_batch_delay,
        upsert_batch_size=s.upsert_batch_size,
    )
    retriever = HybridRetriever(
        embedding_provider=embedder,
        vector_index=vector_index,
        keyword_index=keyword_index,
        collection_name=s.collection_name,
        sparse_encoder=sparse_encoder,
        reranker=RerankService(rerank_provider),
        cache=response_cache,
        rrf_k=s.rrf_k,
    )

    _logger.info(
        "pipeline_built",
        embedding_provider=embedder.get_provider_name(),
        vector_store=driver.get_provider_name(),
        reranker=rerank_provider.get_provider_name() if rerank_provider else None,
        collection=s.collection_name,
    )

    return RAGPipeline(
        ingestion=ingestion,
        retriever=retriever,
        vector_index=vector_index,
        keyword_index=keyword_index,
        embedding_provider=embedder,
        collection_name=s.collection_name,
        collection_config=CollectionConfig(vector_size=embedder.get_dimension()),
        metadata_store=metadata,
        retrieval_cache=response_cache,
        default_ingest_options=IngestOptions(
            quality_threshold=s.quality_threshold, chunk_strategy=strategy
        ),
        default_retrieval_options=RetrievalOptions(top_k=s.retrieval_top_k),
        stats_config={
            "chunk_strategy": strategy.value,
            "min_chunk_size": s.min_chunk_size,
            "max_chunk_size": s.max_chunk_size,
            "chunk_overlap": s.chunk_overlap,
            "quality_threshold": s.quality_threshold,
            "rrf_k": s.rrf_k,
            "reranker_enabled": rerank_provider is not None,
            "vector_store": driver.get_provider_name(),
        },
    )
