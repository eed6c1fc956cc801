"""Retrieval, answer and cache data models for the citebase knowledge base.

Query flow and the models it produces:

    question ─embed─▶ vector index ─▶ RetrievalResult[] (score-descending)
             ─MMR / rerank─▶ RetrievalResult[] (reranked_score set)
             ─synthesize─▶ SynthesizedAnswer (answer + Citation[] + SourceDocument[])
             ─────────────▶ QueryResult (adds timings in QueryMetrics)

Citations and source documents are projections built per query from the
final result list; nothing here is persisted except
:class:`DocumentCacheEntry`, which lives in the deduplication cache.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from src.models.documents import DocumentChunk, UploadedFile


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
class RetrievalResult(BaseModel):
    """A chunk returned by a retrieval stage with its relevance score.

    ``score`` is the similarity score from the vector index (or the blended
    hybrid score).  After reranking, ``reranked_score`` holds the
    reranker's relevance score and ``score`` is overwritten with it.
    """

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    score: float = Field(default=0.0, description="Relevance score; results sort descending.")
    reranked_score: float | None = Field(default=None, description="Score from the reranker.")


class RerankScore(BaseModel):
    """One entry returned by a reranking provider."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="Position of the document in the request.")
    relevance_score: float


class IndexMatch(BaseModel):
    """A raw match returned by the vector index."""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float = 0.0
    values: list[float] | None = None
    metadata: dict[str, object] = Field(default_factory=dict)


class IndexStats(BaseModel):
    """Summary returned by the vector index's ``describe_stats``."""

    model_config = ConfigDict(frozen=True)

    total_vectors: int = Field(default=0, ge=0)
    dimension: int | None = None
    index_name: str = ""


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------
class Citation(BaseModel):
    """A numbered reference tying ``[id]`` in the answer to one chunk."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1, description="Bracketed index used in the answer text.")
    text: str
    source: str
    section: str | None = None
    position: int = 0


class SourceDocument(BaseModel):
    """A document backing one or more citations of an answer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="The document_id shared by the cited chunks.")
    title: str
    source: str
    file_type: str = "unknown"
    citations: list[int] = Field(default_factory=list, description="Citation ids it backs.")


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: int = 0
    output: int = 0
    total: int = 0


class CostEstimate(BaseModel):
    """Approximate USD cost of one query, split by stage."""

    model_config = ConfigDict(frozen=True)

    embedding: float = 0.0
    llm: float = 0.0
    reranking: float = 0.0
    total: float = 0.0


class QueryMetrics(BaseModel):
    """Per-stage timings (milliseconds) and usage for one query."""

    model_config = ConfigDict(frozen=True)

    total_time: float = 0.0
    retrieval_time: float = 0.0
    reranking_time: float = 0.0
    llm_time: float = 0.0
    embedding_time: float = 0.0
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    cost_estimate: CostEstimate = Field(default_factory=CostEstimate)


class SynthesizedAnswer(BaseModel):
    """Output of the answer synthesizer for one query."""

    model_config = ConfigDict(frozen=True)

    answer: str
    citations: list[Citation] = Field(default_factory=list)
    sources: list[SourceDocument] = Field(default_factory=list)
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)


class QueryResult(BaseModel):
    """Citation-annotated answer returned to the caller of a query."""

    model_config = ConfigDict(frozen=True)

    query: str
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    sources: list[SourceDocument] = Field(default_factory=list)
    retrieval_results: list[RetrievalResult] = Field(default_factory=list)
    metrics: QueryMetrics = Field(default_factory=QueryMetrics)
    timestamp: datetime = Field(default_factory=_utcnow)


class LLMResponse(BaseModel):
    """Text and token usage returned by a generation provider."""

    model_config = ConfigDict(frozen=True)

    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


# ---------------------------------------------------------------------------
# Embedding batches
# ---------------------------------------------------------------------------
class EmbeddingOutcome(BaseModel):
    """Result of embedding a list of texts.

    ``vectors[i]`` belongs to ``texts[succeeded_indices[i]]``.  In the
    zero-vector fallback mode every index appears in ``succeeded_indices``
    and the ones that still failed are also listed in ``failed_indices``.
    """

    model_config = ConfigDict(frozen=True)

    vectors: list[list[float]] = Field(default_factory=list)
    succeeded_indices: list[int] = Field(default_factory=list)
    failed_indices: list[int] = Field(default_factory=list)
    zero_filled: bool = Field(default=False, description="True when the fallback mode ran.")


# ---------------------------------------------------------------------------
# Deduplication cache
# ---------------------------------------------------------------------------
class DocumentCacheEntry(BaseModel):
    """Registry record for one successfully indexed document."""

    model_config = ConfigDict(frozen=True)

    content_hash: str
    filename: str
    timestamp: float = Field(description="Registration time, seconds since the epoch.")
    chunk_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)


class BatchFilterResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    unique: list[UploadedFile] = Field(default_factory=list)
    duplicates: list[UploadedFile] = Field(default_factory=list)


class ChunkFilterResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    unique: list[DocumentChunk] = Field(default_factory=list)
    duplicate_count: int = 0


class CacheStats(BaseModel):
    """Snapshot of the deduplication cache."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = 0
    total_chunk_hashes: int = 0
    total_chunks: int = 0
    total_tokens: int = 0
    oldest_entry: float | None = None
    newest_entry: float | None = None
