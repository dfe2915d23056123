"""Abstract base class for relevance reranking providers.

A reranker scores a small candidate set against the query (typically with a
cross-encoder) and returns the candidates in descending relevance order.
The retrieval layer treats it as optional: any failure falls back to the
pre-rerank ordering.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RerankHit:
    """Position of a document in the input list and its relevance score."""

    index: int
    relevance_score: float


class IRerankerProvider(ABC):
    """Contract for cross-encoder reranking services."""

    @abstractmethod
    async def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankHit]:
        """Score *documents* against *query*.

        Parameters
        ----------
        query:
            The user query.
        documents:
            Candidate texts; :attr:`RerankHit.index` refers to positions in
            this list.
        top_n:
            Maximum number of hits to return.

        Returns
        -------
        list[RerankHit]
            Ordered by descending ``relevance_score``.

        Raises
        ------
        course_rag.utils.errors.ExternalServiceError
            If the rerank call fails.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"jina-reranker-v2"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
