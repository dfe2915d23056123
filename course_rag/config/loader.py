"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. ``config/config.yaml`` -- static defaults checked into the repo
  2. ``.env`` file          -- local developer overrides (not committed)
  3. Environment variables  -- set by the deploying orchestrator

:func:`load_config` reads the YAML file, then deep-merges the values that
were explicitly set through the environment on top.
:func:`settings_from_config` turns the merged dict back into a
:class:`Settings` object for :func:`course_rag.main.build_pipeline`.
"""

from pathlib import Path
from typing import Any

import yaml

from course_rag.config.settings import Settings
from course_rag.utils.errors import ConfigurationError

# Flat Settings fields grouped under YAML sections.
_SECTIONS: dict[str, tuple[str, ...]] = {
    "embedding": (
        "embedding_provider",
        "jina_base_url",
        "jina_embedding_model",
        "openai_base_url",
        "openai_embedding_model",
        "embedding_dimensions",
        "embedding_batch_size",
        "embedding_concurrency",
        "embedding_inter_batch_delay",
        "http_timeout_seconds",
    ),
    "reranker": ("reranker_enabled", "jina_reranker_model", "rerank_top_n"),
    "retry": ("retry_max_retries", "retry_initial_delay", "retry_max_delay"),
    "vector_store": (
        "vector_store",
        "collection_name",
        "chromadb_persist_dir",
        "upsert_batch_size",
    ),
    "chunking": (
        "chunk_strategy",
        "min_chunk_size",
        "max_chunk_size",
        "chunk_overlap",
        "token_counter",
    ),
    "quality": (
        "quality_threshold",
        "coherence_excellent",
        "coherence_good",
        "coherence_fair",
    ),
    "retrieval": ("rrf_k", "retrieval_top_k", "cache_ttl_seconds", "cache_max_entries"),
    "metadata": ("metadata_db_path",),
    "app": ("app_env", "log_level"),
}


def load_config(path: str = "config/config.yaml") -> dict[str, Any]:
    """Load YAML config and merge with environment-based Settings.

    Only Settings fields explicitly set via environment or ``.env`` override
    YAML values; Settings defaults never clobber the YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary, grouped by section.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(message=f"Invalid YAML in {path}: {exc}") from exc
    else:
        yaml_config = {}

    settings = Settings()
    explicit = settings.model_fields_set
    env_overrides: dict[str, dict[str, Any]] = {}
    for section, fields in _SECTIONS.items():
        values = {name: getattr(settings, name) for name in fields if name in explicit}
        if values:
            env_overrides[section] = values

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def settings_from_config(config: dict[str, Any]) -> Settings:
    """Flatten a sectioned config dict into a :class:`Settings` instance."""
    flat: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        values = config.get(section) or {}
        for name in fields:
            if name in values:
                flat[name] = values[name]
    try:
        return Settings(**flat)
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid configuration: {exc}") from exc


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
