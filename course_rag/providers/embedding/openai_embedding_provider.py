"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports both real OpenAI and OpenAI-compatible providers (TogetherAI,
Fireworks) via custom ``base_url`` and model name settings.  ``task`` in
:class:`EmbedOptions` is ignored: these models use one symmetric encoder.
"""

from __future__ import annotations

import openai
import structlog

from course_rag.config.settings import Settings
from course_rag.interfaces.embedding_provider import EmbedOptions, IEmbeddingProvider
from course_rag.utils.errors import ExternalServiceError
from course_rag.utils.retry import RetryPolicy, retry_async

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

# text-embedding-3-* accept a ``dimensions`` parameter (Matryoshka truncation).
_SUPPORTS_DIMENSIONS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    The SDK's own retry loop is disabled (``max_retries=0``) so transient
    failures follow the same :func:`retry_async` policy as the Jina
    providers.
    """

    def __init__(self, settings: Settings, retry_policy: RetryPolicy | None = None) -> None:
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {
            "api_key": self._api_key,
            "max_retries": 0,
            "timeout": settings.http_timeout_seconds,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        native = _MODEL_DIMENSIONS.get(self._model, 768)
        self._dimension = (
            settings.embedding_dimensions
            if self._model in _SUPPORTS_DIMENSIONS and settings.embedding_dimensions
            else native
        )
        self._retry_policy = retry_policy or RetryPolicy(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
        )
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: list[str],
        options: EmbedOptions | None = None,
    ) -> list[list[float]]:
        """Generate embedding vectors, splitting into 2048-input requests."""
        if not texts:
            return []
        opts = options or EmbedOptions()
        model = opts.model or self._model

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
            batch = texts[start : start + _OPENAI_BATCH_LIMIT]
            response = await retry_async(
                lambda batch=batch: self._create(batch, model, opts),
                policy=self._retry_policy,
                operation_name="openai_embeddings",
            )
            if len(response.data) != len(batch):
                raise ExternalServiceError(
                    message=(
                        f"Embedding response contained {len(response.data)} vectors "
                        f"for {len(batch)} inputs"
                    ),
                    provider_name=self.get_provider_name(),
                )
            all_embeddings.extend(item.embedding for item in response.data)
            logger.info(
                "openai_embedding_batch",
                model=model,
                provider=self._provider_label,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
        return all_embeddings

    async def embed_single(self, text: str, options: EmbedOptions | None = None) -> list[float]:
        result = await self.embed([text], options)
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _create(self, batch: list[str], model: str, opts: EmbedOptions):  # noqa: ANN202
        kwargs: dict = {"input": batch, "model": model}
        if model in _SUPPORTS_DIMENSIONS:
            kwargs["dimensions"] = opts.dimensions or self._dimension
        try:
            return await self._client.embeddings.create(**kwargs)
        except openai.APIStatusError as exc:
            raise ExternalServiceError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
                status_code=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            # Connection / timeout errors carry no status code.
            raise ExternalServiceError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
