"""Indexes and query-time retrieval.

- **VectorIndex** -- validated dense / sparse access to a vector-store driver.
- **KeywordIndex** -- in-process BM25 over chunk text.
- **HybridRetriever** -- runs the requested search mode, fuses branches with
  Reciprocal Rank Fusion, reranks, and caches final responses.
"""

from course_rag.services.retrieval.hybrid_retriever import HybridRetriever
from course_rag.services.retrieval.keyword_index import KeywordIndex
from course_rag.services.retrieval.reranker import RerankService
from course_rag.services.retrieval.retrieval_cache import RetrievalCache
from course_rag.services.retrieval.sparse_encoder import SparseEncoder
from course_rag.services.retrieval.vector_index import VectorIndex

__all__ = [
    "HybridRetriever",
    "KeywordIndex",
    "RerankService",
    "RetrievalCache",
    "SparseEncoder",
    "VectorIndex",
]
