"""Background ingestion job models.

A :class:`ProcessingJob` is the one mutable record in the system.  It is
owned by :class:`~src.pipeline.job_orchestrator.JobOrchestrator`, mutated
only by the stage currently running for it, and exposed to outside
readers through the read-only :class:`JobStatusView` projection.

Status machine::

    PENDING → UPLOADING → EXTRACTING → CHUNKING → EMBEDDING → INDEXING → COMPLETE
        any non-terminal state ─▶ FAILED | CANCELLED
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.documents import UploadedFile


class JobStatus(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Lifecycle states of an ingestion job."""

    PENDING = "pending"          # Queued, no stage has run
    UPLOADING = "uploading"      # Files accepted, job picked up by a worker
    EXTRACTING = "extracting"    # Text extraction + duplicate filtering
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"        # Vector index upsert + cache registration
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({JobStatus.COMPLETE, JobStatus.FAILED, JobStatus.CANCELLED})


class JobMetadata(BaseModel):
    """Counters accumulated while a job runs."""

    total_files: int = 0
    files_processed: int = 0
    chunks_created: int = 0
    chunks_embedded: int = 0
    chunks_indexed: int = 0
    tokens_processed: int = 0
    duplicates_skipped: int = 0
    embedding_failures: int = 0


class JobErrorInfo(BaseModel):
    """Structured terminal error: a failure kind plus a message, never a traceback."""

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str


class JobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_ids: list[str] = Field(default_factory=list)
    chunks_indexed: int = 0
    duplicate_files: list[str] = Field(default_factory=list)
    failed_files: list[str] = Field(default_factory=list)
    embedding_failures: int = 0


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ProcessingJob(BaseModel):
    """One asynchronous unit of ingestion work for a batch of files."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    files: list[UploadedFile] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    message: str = "Queued"
    created_at: datetime = Field(default_factory=_utcnow)
    start_time: datetime | None = None
    end_time: datetime | None = None
    metadata: JobMetadata = Field(default_factory=JobMetadata)
    error: JobErrorInfo | None = None
    result: JobResult | None = None

    def to_status(self) -> JobStatusView:
        """Return the read-only projection consumed by status readers."""
        return JobStatusView(
            id=self.id,
            status=self.status,
            progress=self.progress,
            message=self.message,
            file_names=[f.name for f in self.files],
            created_at=self.created_at,
            start_time=self.start_time,
            end_time=self.end_time,
            metadata=self.metadata.model_copy(),
            error=self.error,
            result=self.result,
        )


class JobStatusView(BaseModel):
    """Frozen snapshot of a job for external readers."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus
    progress: int
    message: str
    file_names: list[str] = Field(default_factory=list)
    created_at: datetime
    start_time: datetime | None = None
    end_time: datetime | None = None
    metadata: JobMetadata
    error: JobErrorInfo | None = None
    result: JobResult | None = None


class ProgressEvent(BaseModel):
    """A progress notification published on the progress bus."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    progress: int
    message: str
    metadata: JobMetadata = Field(default_factory=JobMetadata)
    timestamp: datetime = Field(default_factory=_utcnow)


class OrchestratorStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_jobs: int = 0
    queued_jobs: int = 0
    running_jobs: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    max_concurrent_jobs: int = 0
