"""Abstract interfaces (ports) for every external collaborator.

- embedding_provider   -- IEmbeddingProvider, EmbedOptions
- reranker_provider    -- IRerankerProvider, RerankHit
- vector_store_provider -- IVectorStoreClient and the driver-neutral filter types
- cache_provider       -- ICacheProvider
- metadata_store       -- IMetadataStore and the MetadataQuery builder
"""

from course_rag.interfaces.cache_provider import ICacheProvider
from course_rag.interfaces.embedding_provider import EmbedOptions, IEmbeddingProvider
from course_rag.interfaces.metadata_store import IMetadataStore, MetadataQuery
from course_rag.interfaces.reranker_provider import IRerankerProvider, RerankHit
from course_rag.interfaces.vector_store_provider import (
    FieldCondition,
    IVectorStoreClient,
    PayloadFilter,
    Prefetch,
    ScoredPoint,
)

__all__ = [
    "EmbedOptions",
    "FieldCondition",
    "ICacheProvider",
    "IEmbeddingProvider",
    "IMetadataStore",
    "IRerankerProvider",
    "IVectorStoreClient",
    "MetadataQuery",
    "PayloadFilter",
    "Prefetch",
    "RerankHit",
    "ScoredPoint",
]
