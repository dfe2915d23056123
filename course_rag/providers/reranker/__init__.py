"""Reranker provider implementations.

JinaRerankerProvider is the only implementation of IRerankerProvider.  The
retrieval layer treats reranking as optional: when no reranker is
configured, or the call fails, results keep their fused ordering.
"""

from course_rag.providers.reranker.jina_reranker_provider import JinaRerankerProvider

__all__ = ["JinaRerankerProvider"]
