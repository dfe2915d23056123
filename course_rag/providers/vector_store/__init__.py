"""Vector store driver implementations.

InMemoryVectorStore (numpy) is the default and needs no external service.
ChromaDBVectorStore persists to disk; it is imported lazily by
``course_rag.main`` so chromadb is only loaded when selected.

To add another backend (Qdrant, Weaviate ...), implement
IVectorStoreClient and register it in ``course_rag.main``.
"""

from course_rag.providers.vector_store.memory_store import InMemoryVectorStore

__all__ = ["InMemoryVectorStore"]
