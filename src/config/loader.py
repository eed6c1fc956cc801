"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
#   1. config/config.yaml -- static defaults (optional)
#   2. .env file -- local developer overrides
#   3. Environment vars -- deployment-time values
#
# The YAML file is grouped by concern:
#
#   chunking:  {chunk_size: 300, chunk_overlap: 30}
#   retrieval: {top_k: 3, mmr_lambda: 0.7}
#
# load_settings() flattens those groups into Settings field names
# (``chunking.chunk_size`` → ``chunk_size``, ``retrieval.top_k`` →
# ``retrieval_top_k``) and passes them as constructor values, which
# pydantic-settings ranks below .env and the environment.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings
from src.utils.errors import ConfigurationError

# YAML group name → prefix applied to its keys when the key does not
# already name a Settings field.
_GROUP_PREFIXES: dict[str, str] = {
    "chunking": "chunk_",
    "embedding": "embedding_",
    "retrieval": "retrieval_",
    "reranker": "rerank_",
    "llm": "llm_",
    "jobs": "job_",
    "cache": "cache_",
    "validation": "",
    "index": "chromadb_",
    "app": "",
}


def load_config(path: str = "config/config.yaml") -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys
    overlap.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Fully resolved configuration dictionary grouped by concern.
    """
    yaml_config = _read_yaml(path)
    settings = load_settings(path)
    env_overrides = {
        "chunking": {
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "max_chunks_per_document": settings.max_chunks_per_document,
            "min_chunk_tokens": settings.min_chunk_tokens,
        },
        "embedding": {
            "model": settings.openai_embedding_model,
            "batch_size": settings.embedding_batch_size,
            "parallel_batches": settings.embedding_parallel_batches,
            "max_retries": settings.embedding_max_retries,
            "dimension": settings.embedding_dimension,
            "fallback_mode": settings.embedding_fallback_mode,
        },
        "retrieval": {
            "top_k": settings.retrieval_top_k,
            "reranked_k": settings.retrieval_reranked_k,
            "mmr_lambda": settings.mmr_lambda,
            "similarity_threshold": settings.similarity_threshold,
        },
        "reranker": {"model": settings.rerank_model},
        "llm": {
            "model": settings.openai_text_model,
            "temperature": settings.llm_temperature,
            "max_tokens": settings.llm_max_tokens,
        },
        "jobs": {"max_concurrent_jobs": settings.max_concurrent_jobs},
        "logging": {"level": settings.log_level},
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_settings(path: str = "config/config.yaml") -> Settings:
    """Build :class:`Settings` with YAML values layered under the environment."""
    values = _flatten_groups(_read_yaml(path))
    try:
        return Settings(**values)
    except ValueError as exc:
        raise ConfigurationError(message=f"Invalid configuration in {path}: {exc}") from exc


def _read_yaml(path: str) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(message=f"{path} must contain a mapping at the top level")
    return loaded


def _flatten_groups(yaml_config: dict[str, Any]) -> dict[str, Any]:
    """Map grouped YAML keys onto flat Settings field names."""
    fields = Settings.model_fields
    flat: dict[str, Any] = {}
    for key, value in yaml_config.items():
        if key in _GROUP_PREFIXES and isinstance(value, dict):
            prefix = _GROUP_PREFIXES[key]
            for sub_key, sub_value in value.items():
                name = sub_key if sub_key in fields else f"{prefix}{sub_key}"
                if name in fields:
                    flat[name] = sub_value
        elif key in fields:
            flat[key] = value
    return flat


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
