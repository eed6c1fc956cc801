"""Utility modules for citebase.

- **errors** -- Exception hierarchy rooted at CitebaseError; each failure
  kind (validation, extraction, embedding, indexing, reranking, generation,
  job) has its own subclass with a structured ``{kind, message}`` form.
- **concurrency** -- semaphore-throttled gather and an iterative
  exponential-backoff retry loop.
- **logging** -- structlog setup with console or JSON rendering and a
  per-job context binder.
"""

from src.utils.concurrency import retry_async, throttled_gather
from src.utils.errors import (
    CitebaseError,
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    GenerationError,
    IndexingError,
    JobError,
    ProviderUnavailableError,
    RateLimitError,
    RerankError,
    ValidationError,
    error_info,
)
from src.utils.logging import bind_job_context, configure_logging, get_logger

__all__ = [
    "CitebaseError",
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "GenerationError",
    "IndexingError",
    "JobError",
    "ProviderUnavailableError",
    "RateLimitError",
    "RerankError",
    "ValidationError",
    "bind_job_context",
    "configure_logging",
    "error_info",
    "get_logger",
    "retry_async",
    "throttled_gather",
]
