"""citebase domain models -- re-exports the public model classes.

The models are organized across four submodules by concern:
    - documents.py -- uploaded files and the chunks cut from them
    - rag.py -- retrieval results, answers, citations, cache entries
    - jobs.py -- background ingestion jobs and their progress events
    - evaluation.py -- gold question/answer pairs and scored reports
"""

from __future__ import annotations

from src.models.documents import ChunkMetadata, DocumentChunk, UploadedFile, content_hash
from src.models.evaluation import (
    CategoryScore,
    EvaluationPair,
    EvaluationReport,
    EvaluationResult,
    EvaluationScores,
    QuestionCategory,
)
from src.models.jobs import (
    JobErrorInfo,
    JobMetadata,
    JobResult,
    JobStatus,
    JobStatusView,
    OrchestratorStats,
    ProcessingJob,
    ProgressEvent,
)
from src.models.rag import (
    BatchFilterResult,
    CacheStats,
    ChunkFilterResult,
    Citation,
    CostEstimate,
    DocumentCacheEntry,
    EmbeddingOutcome,
    IndexMatch,
    IndexStats,
    LLMResponse,
    QueryMetrics,
    QueryResult,
    RerankScore,
    RetrievalResult,
    SourceDocument,
    SynthesizedAnswer,
    TokenUsage,
)

__all__ = [
    "BatchFilterResult",
    "CacheStats",
    "CategoryScore",
    "ChunkFilterResult",
    "ChunkMetadata",
    "Citation",
    "CostEstimate",
    "DocumentCacheEntry",
    "DocumentChunk",
    "EmbeddingOutcome",
    "EvaluationPair",
    "EvaluationReport",
    "EvaluationResult",
    "EvaluationScores",
    "IndexMatch",
    "IndexStats",
    "JobErrorInfo",
    "JobMetadata",
    "JobResult",
    "JobStatus",
    "JobStatusView",
    "LLMResponse",
    "OrchestratorStats",
    "ProcessingJob",
    "ProgressEvent",
    "QueryMetrics",
    "QueryResult",
    "QuestionCategory",
    "RerankScore",
    "RetrievalResult",
    "SourceDocument",
    "SynthesizedAnswer",
    "TokenUsage",
    "UploadedFile",
    "content_hash",
]
