"""Embedding provider implementations.

Embeddings convert chunk text into dense vectors stored in the vector index
and used for semantic search.

Two implementations of IEmbeddingProvider:
    1. JinaEmbeddingProvider   -- jina-embeddings-v3 (1024 dims by default)
       with separate passage / query tasks.  Default provider.
    2. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims, or any
       smaller size via ``dimensions``) and OpenAI-compatible endpoints.

main.py selects one based on ``EMBEDDING_PROVIDER``.
"""

from course_rag.providers.embedding.jina_embedding_provider import JinaEmbeddingProvider
from course_rag.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["JinaEmbeddingProvider", "OpenAIEmbeddingProvider"]
