"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two sources, in priority order:

  1. Environment variables, e.g. ``JINA_API_KEY=jina_abc``
  2. The ``.env`` file in the working directory

Field ``jina_api_key`` maps to env var ``JINA_API_KEY``.  Defaults apply when
neither source sets a field.  ``config/config.yaml`` (see
:mod:`course_rag.config.loader`) provides the same knobs as static defaults
checked into the repo; environment values win where both are set.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """course_rag settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider ===
    # "jina" or "openai".  An empty API key for the selected provider means
    # build_pipeline() fails fast with ConfigurationError.
    embedding_provider: str = "jina"
    jina_api_key: str = ""
    jina_base_url: str = "https://api.jina.ai/v1"
    jina_embedding_model: str = "jina-embeddings-v3"
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = ""
    embedding_dimensions: int = 1024
    embedding_batch_size: int = Field(default=10, gt=0)
    embedding_concurrency: int = Field(default=3, gt=0)
    embedding_inter_batch_delay: float = Field(default=0.1, ge=0.0)
    http_timeout_seconds: float = 30.0

    # === Reranker ===
    reranker_enabled: bool = True
    jina_reranker_model: str = "jina-reranker-v2-base-multilingual"
    rerank_top_n: int = Field(default=10, gt=0)

    # === Retry policy for external calls ===
    retry_max_retries: int = Field(default=3, ge=0)
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0

    # === Vector store ===
    # "memory" (process-local) or "chromadb" (persistent on disk).
    vector_store: str = "memory"
    collection_name: str = "course_content"
    chromadb_persist_dir: str = "./data/chromadb"
    upsert_batch_size: int = Field(default=100, gt=0, le=1000)

    # === Chunking ===
    chunk_strategy: str = "semantic"
    min_chunk_size: int = Field(default=100, gt=0)
    max_chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    token_counter: str = "word"

    # === Quality gate ===
    quality_threshold: float = Field(default=50.0, ge=0.0, le=100.0)
    coherence_excellent: float = 0.8
    coherence_good: float = 0.6
    coherence_fair: float = 0.4

    # === Retrieval ===
    rrf_k: int = Field(default=60, gt=0)
    retrieval_top_k: int = Field(default=20, gt=0)
    cache_ttl_seconds: int = Field(default=300, gt=0)
    cache_max_entries: int = Field(default=1000, gt=0)

    # === Metadata store ===
    metadata_db_path: str = "data/ingestion_metadata.db"

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    def embedding_api_key(self) -> str:
        """Return the API key for the configured embedding provider."""
        if self.embedding_provider == "openai":
            return self.openai_api_key
        return self.jina_api_key
