"""Custom exception hierarchy for citebase.

All application exceptions inherit from :class:`CitebaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "cohere", "chromadb") caused the failure.

The hierarchy follows the pipeline's failure taxonomy:

    CitebaseError  (base -- catch-all for any citebase error)
    +-- ValidationError          (bad query / file, rejected before processing)
    +-- ExtractionError          (unsupported or corrupt file, fails one file)
    +-- EmbeddingError           (embedding call failed after retries)
    +-- IndexingError            (vector index write failed, fatal to the job)
    +-- RerankError              (reranking call failed, adapter falls back)
    +-- GenerationError          (LLM call failed, query degrades to apology)
    +-- JobError                 (orchestration / invalid job operation)
    +-- ConfigurationError       (startup / missing config)
    +-- RateLimitError           (provider rate-limit exceeded)
    +-- ProviderUnavailableError (external service down / unreachable)

Each class declares a ``kind`` string.  :meth:`CitebaseError.to_dict`
returns the ``{kind, message}`` pair that is stored on failed jobs and
shown to users instead of a traceback.
"""


class CitebaseError(Exception):
    """Base exception for all citebase errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    kind: str = "internal"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def to_dict(self) -> dict[str, str]:
        """Return the structured ``{kind, message}`` form of this error."""
        return {"kind": self.kind, "message": self._message}

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class ValidationError(CitebaseError):
    """Raised when a query or uploaded file is rejected before processing."""

    kind = "validation"

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ExtractionError(CitebaseError):
    """Raised when text cannot be extracted from an uploaded file.

    The message names the file format so the caller can tell the user
    which kind of document could not be read.
    """

    kind = "extraction"

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class EmbeddingError(CitebaseError):
    """Raised when an embedding call still fails after all retries."""

    kind = "embedding"

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexingError(CitebaseError):
    """Raised when the vector index rejects a write or query."""

    kind = "indexing"

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Query-time errors (fail-soft)
# ---------------------------------------------------------------------------

class RerankError(CitebaseError):
    """Raised by reranking providers; the reranker adapter never lets it escape."""

    kind = "reranking"

    def __init__(
        self,
        message: str = "Reranking failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(CitebaseError):
    """Raised when an LLM call fails, times out, or returns nothing."""

    kind = "generation"

    def __init__(
        self,
        message: str = "Answer generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class ProviderUnavailableError(CitebaseError):
    """Raised when an external service or provider is unreachable."""

    kind = "provider_unavailable"

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(CitebaseError):
    """Raised when an API rate limit is exceeded.

    The embedding batch manager treats this as retry-worthy and backs off.
    """

    kind = "rate_limit"

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class JobError(CitebaseError):
    """Raised for job-level failures and invalid job operations."""

    kind = "job"

    def __init__(
        self,
        message: str = "Job processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(CitebaseError):
    """Raised when configuration is invalid or missing at startup."""

    kind = "configuration"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def error_info(exc: BaseException) -> dict[str, str]:
    """Return the structured ``{kind, message}`` form of any exception.

    Unknown exceptions are reported as ``internal`` with their string
    representation, never with a traceback.
    """
    if isinstance(exc, CitebaseError):
        return exc.to_dict()
    return {"kind": "internal", "message": str(exc) or exc.__class__.__name__}
