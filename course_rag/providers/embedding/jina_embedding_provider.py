"""Jina AI embedding provider adapter.

Calls ``POST /v1/embeddings`` with an explicit ``task`` so passages and
queries are encoded with the matching asymmetric adapter.  Inputs larger
than the per-call limit are split into sequential requests; the concurrency
across batches is owned by the ingestion service, not by this provider.
"""

from __future__ import annotations

import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import EmbedOptions, IEmbeddingProvider
from course_rag.providers.jina_api import JinaAPIClient, build_jina_client
from course_rag.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)

_JINA_BATCH_LIMIT = 512

# Default output dimensions; v3 supports Matryoshka truncation to any
# smaller size via the ``dimensions`` request field.
_MODEL_DIMENSIONS: dict[str, int] = {
    "jina-embeddings-v3": 1024,
    "jina-embeddings-v4": 2048,
    "jina-embeddings-v2-base-en": 768,
    "jina-clip-v2": 1024,
}


class JinaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Jina embeddings API."""

    def __init__(self, settings: Settings, api_client: JinaAPIClient | None = None) -> None:
        self._model = settings.jina_embedding_model
        self._dimension = settings.embedding_dimensions or _MODEL_DIMENSIONS.get(self._model, 1024)
        self._api = api_client or build_jina_client(settings)

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: list[str],
        options: EmbedOptions | None = None,
    ) -> list[list[float]]:
        if not texts:
            return []
        opts = options or EmbedOptions()

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _JINA_BATCH_LIMIT):
            batch = texts[start : start + _JINA_BATCH_LIMIT]
            payload = {
                "model": opts.model or self._model,
                "input": batch,
                "task": opts.task,
                "dimensions": opts.dimensions or self._dimension,
                "normalized": opts.normalized,
                "embedding_type": "float",
            }
            body = await self._api.post("/embeddings", payload, self.get_provider_name())
            all_embeddings.extend(self._parse_embeddings(body, expected=len(batch)))
            logger.info(
                "jina_embedding_batch",
                model=payload["model"],
                task=opts.task,
                batch_size=len(batch),
                tokens=(body.get("usage") or {}).get("total_tokens")
                if isinstance(body, dict)
                else None,
            )
        return all_embeddings

    async def embed_single(self, text: str, options: EmbedOptions | None = None) -> list[float]:
        result = await self.embed([text], options)
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return self._api.has_api_key

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_embeddings(self, body: object, expected: int) -> list[list[float]]:
        """Extract vectors from ``data[i].embedding`` in ``index`` order.

        Fails fast when the response carries fewer vectors than requested.
        """
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, list) or len(data) != expected:
            got = len(data) if isinstance(data, list) else 0
            raise ExternalServiceError(
                message=f"Embedding response contained {got} vectors for {expected} inputs",
                provider_name=self.get_provider_name(),
            )
        try:
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            return [[float(x) for x in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError(
                message=f"Malformed embedding response: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
