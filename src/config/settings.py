"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads each field from, in priority order:
#
#   1. Environment variables, e.g. OPENAI_API_KEY=sk-abc123
#   2. The .env file in the working directory
#   3. Values passed to the constructor (the YAML layer, see loader.py)
#   4. The defaults declared below
#
# Field ``chunk_size`` maps to env var ``CHUNK_SIZE``; list fields accept
# JSON, e.g. ALLOWED_EXTENSIONS='[".txt", ".md"]'.
#
# Every tunable is static for the life of the process.  Callers can pass
# per-query ``top_k`` / ``reranked_k`` but cannot change anything else.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

DEFAULT_SEPARATORS: list[str] = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " ", ""]


class Settings(BaseSettings):
    """citebase application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Embeddings / Generation (OpenAI-compatible) ===
    # Empty key = "not configured"; main.py refuses to build the
    # network-backed providers without it.
    openai_api_key: str = ""
    openai_base_url: str = ""  # e.g. https://api.groq.com/openai/v1 for generation
    openai_embedding_model: str = "text-embedding-3-small"
    openai_embedding_base_url: str = ""  # Falls back to openai_base_url when empty
    openai_text_model: str = "gpt-4o-mini"

    # === Reranking (Cohere REST API) ===
    cohere_api_key: str = ""
    cohere_base_url: str = "https://api.cohere.com"
    rerank_model: str = "rerank-english-v3.0"
    rerank_max_documents: int = 50
    rerank_timeout_seconds: float = 15.0

    # === Vector Index (ChromaDB) ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "citebase_documents"
    index_upsert_batch_size: int = 150

    # === Chunking ===
    chunk_size: int = 300
    chunk_overlap: int = 30
    chunk_separators: list[str] = Field(default_factory=lambda: list(DEFAULT_SEPARATORS))
    max_chunks_per_document: int = 500
    min_chunk_tokens: int = 30
    tokenizer_model: str = "bert-base-uncased"

    # === Embedding batches ===
    embedding_batch_size: int = 30
    embedding_parallel_batches: int = 8
    embedding_max_retries: int = 1
    embedding_retry_delay_ms: int = 250
    embedding_batch_delay_ms: int = 5
    embedding_dimension: int = 768
    # skip: drop chunks that fail to embed.  zero_vector: when a whole job
    # fails in batch mode, retry one by one and index zero vectors for the rest.
    embedding_fallback_mode: Literal["skip", "zero_vector"] = "skip"

    # === Retrieval ===
    retrieval_top_k: int = 3
    retrieval_reranked_k: int = 1
    mmr_lambda: float = 0.7
    similarity_threshold: float = 0.7
    hybrid_vector_weight: float = 0.7

    # === Generation ===
    llm_temperature: float = 0.1
    llm_max_tokens: int = 1024
    llm_timeout_seconds: float = 30.0

    # === Jobs ===
    max_concurrent_jobs: int = 2
    max_jobs_history: int = 100
    job_retention_hours: float = 24.0
    job_cleanup_interval_seconds: float = 3600.0

    # === Deduplication cache ===
    cache_retention_hours: float = 168.0
    cache_chunk_hash_limit: int = 50_000
    # JSON file holding the document registry; empty = <chromadb_persist_dir>/document_registry.json
    cache_registry_path: str = ""

    # === Validation ===
    max_query_length: int = 1000
    max_file_size_bytes: int = 10 * 1024 * 1024
    allowed_extensions: list[str] = Field(
        default_factory=lambda: [".txt", ".pdf", ".docx", ".md"]
    )

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats .env beats constructor (YAML) values.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def has_generation(self) -> bool:
        """Return ``True`` when an OpenAI-compatible key is configured."""
        return bool(self.openai_api_key)

    def has_reranker(self) -> bool:
        """Return ``True`` when a Cohere key is configured."""
        return bool(self.cohere_api_key)

    def document_registry_path(self) -> str:
        """Return the dedup registry file, defaulting to the index directory."""
        if self.cache_registry_path:
            return self.cache_registry_path
        return str(Path(self.chromadb_persist_dir) / "document_registry.json")
