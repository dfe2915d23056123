"""Abstract base class for text-embedding service providers.

Defines the contract for generating dense embedding vectors from text.
Implementations may wrap the Jina embeddings API, an OpenAI-compatible
embeddings endpoint, or any other backend.  The ingestion service and the
retriever depend only on this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class EmbedOptions:
    """Per-call embedding parameters.

    ``task`` distinguishes document-side (``retrieval.passage``) from
    query-side (``retrieval.query``) embeddings for models that use
    asymmetric encoders; providers that do not support it ignore it.
    ``None`` fields fall back to the provider's configured defaults.
    """

    model: str | None = None
    task: str = "retrieval.passage"
    dimensions: int | None = None
    normalized: bool = True


QUERY_OPTIONS = EmbedOptions(task="retrieval.query")


# Concrete implementations live in course_rag/providers/embedding/:
#   JinaEmbeddingProvider   -- Jina /v1/embeddings over httpx
#   OpenAIEmbeddingProvider -- OpenAI-compatible embeddings via the openai SDK
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline."""

    @abstractmethod
    async def embed(
        self,
        texts: list[str],
        options: EmbedOptions | None = None,
    ) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.
        options:
            Model / task / dimension overrides for this call.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        course_rag.utils.errors.ExternalServiceError
            If the embedding API call fails or returns fewer vectors than
            inputs.  No partial vector list is ever returned.
        """

    @abstractmethod
    async def embed_single(self, text: str, options: EmbedOptions | None = None) -> list[float]:
        """Generate an embedding vector for a single text string.

        Convenience wrapper around :meth:`embed`, typically used for the
        query side with :data:`QUERY_OPTIONS`.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Must remain constant for the lifetime of the provider instance and
        must match the vector size of the collection it feeds.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"jina-embeddings-v3"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
