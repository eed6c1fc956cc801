"""Background ingestion jobs: dedup → chunk → embed → index, with progress.

Jobs enter a FIFO queue; at most ``max_concurrent_jobs`` of them run at a
time, each as its own ``asyncio`` task.  When a job finishes, the next
queued job is started.

Progress per stage::

    UPLOADING   5     files accepted
    EXTRACTING  10    duplicate filtering
    CHUNKING    20
    EMBEDDING   20-70 (scaled by embedded chunks)
    INDEXING    70-95 (scaled by upserted records)
                95    registering documents in the dedup cache
    COMPLETE    100

Cancelling a queued job removes it from the queue, so none of its stages
ever run.  Cancelling a running job flips its status only: the stage in
progress finishes, and the job stops at the next stage boundary without
its status being overwritten.

Any exception raised by a stage is stored on the job as ``{kind, message}``
and the job becomes FAILED; the worker keeps draining the queue.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from src.interfaces.store_provider import IJobStore
from src.interfaces.vector_index_provider import IVectorIndexProvider
from src.models.documents import DocumentChunk, UploadedFile
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
from src.pipeline.progress_bus import ProgressBus
from src.services.dedup_cache import DocumentCache
from src.services.embedding_batch import EmbeddingBatchManager
from src.services.index_records import chunk_to_record
from src.services.ingestion.chunker import TextChunker, new_document_id
from src.utils.errors import CitebaseError, IndexingError, JobError, error_info
from src.utils.logging import bind_job_context, get_logger

_EMBED_START, _EMBED_END = 20, 70
_INDEX_START, _INDEX_END = 70, 95
_INDEX_PROGRESS_BATCH = 100


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class _JobCancelled(Exception):
    """Internal signal: the job was cancelled while a stage was running."""


class JobOrchestrator:
    """Runs ingestion jobs under a concurrency cap and a retention policy.

    Parameters
    ----------
    document_cache:
        Dedup registry; documents are registered only after indexing.
    chunker:
        Splits each file's text.
    embedding_manager:
        Embeds chunk text with retries and bounded parallelism.
    vector_index:
        Destination of the embedded chunks.
    job_store:
        Registry of job records.
    progress_bus:
        Receives a :class:`ProgressEvent` on every job update.
    max_concurrent_jobs:
        Jobs allowed past PENDING at once.
    max_jobs_history:
        Jobs retained; the oldest finished jobs are evicted beyond this.
        Queued and running jobs are never evicted, so the registry may
        exceed the cap while they are active.
    retention_hours:
        Age after which finished jobs are swept.
    cleanup_interval_seconds:
        Period of the sweep started by :meth:`start`.
    clock:
        Returns the current UTC time; injectable for tests.
    embedding_fallback_mode:
        ``"skip"`` drops chunks that fail to embed.  ``"zero_vector"``
        retries a wholly failed batch one text at a time and indexes zero
        vectors for the chunks that still fail.  Neither mode fails the job.
    """

    def __init__(
        self,
        document_cache: DocumentCache,
        chunker: TextChunker,
        embedding_manager: EmbeddingBatchManager,
        vector_index: IVectorIndexProvider,
        job_store: IJobStore,
        progress_bus: ProgressBus,
        max_concurrent_jobs: int = 2,
        max_jobs_history: int = 100,
        retention_hours: float = 24,
        cleanup_interval_seconds: float = 3600,
        clock: Callable[[], datetime] = _utcnow,
        embedding_fallback_mode: str = "skip",
    ) -> None:
        if max_concurrent_jobs <= 0:
            raise ValueError("max_concurrent_jobs must be positive")
        if embedding_fallback_mode not in ("skip", "zero_vector"):
            raise ValueError(f"Unknown embedding fallback mode: {embedding_fallback_mode!r}")
        self._cache = document_cache
        self._chunker = chunker
        self._embedder = embedding_manager
        self._index = vector_index
        self._store = job_store
        self._bus = progress_bus
        self._max_concurrent = max_concurrent_jobs
        self._max_history = max_jobs_history
        self._retention = timedelta(hours=retention_hours)
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._zero_fill = embedding_fallback_mode == "zero_vector"

        self._queue: deque[str] = deque()
        self._running: dict[str, asyncio.Task[None]] = {}
        self._finished: dict[str, asyncio.Event] = {}
        self._cleanup_task: asyncio.Task[None] | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Job submission and control
    # ------------------------------------------------------------------

    async def create_job(self, files: list[UploadedFile]) -> str:
        """Queue a job for *files* and start it if a worker slot is free."""
        if not files:
            raise JobError(message="A job needs at least one file.")

        job = ProcessingJob(
            id=f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}",
            files=files,
            created_at=self._clock(),
            metadata=JobMetadata(total_files=len(files)),
        )
        self._store.put(job)
        self._finished[job.id] = asyncio.Event()
        self._queue.append(job.id)
        self._enforce_history_cap()

        self._logger.info("job_created", job_id=job.id, files=len(files))
        await self._publish(job)
        self._start_queued()
        return job.id

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued or running job.

        Returns ``False`` for unknown jobs and jobs already in a terminal
        state.  Progress is reset to 0.
        """
        job = self._store.get(job_id)
        if job is None or job.status.is_terminal:
            return False

        was_queued = job.status is JobStatus.PENDING
        job.status = JobStatus.CANCELLED
        job.progress = 0
        job.message = "Cancelled"
        job.end_time = self._clock()
        if job_id in self._queue:
            self._queue.remove(job_id)
        if was_queued:
            self._mark_finished(job_id)

        self._logger.info("job_cancelled", job_id=job_id, was_queued=was_queued)
        await self._publish(job)
        return True

    def get_job(self, job_id: str) -> JobStatusView | None:
        job = self._store.get(job_id)
        return job.to_status() if job is not None else None

    def list_jobs(self) -> list[JobStatusView]:
        """All retained jobs, newest first."""
        return [job.to_status() for job in reversed(list(self._store.values()))]

    def active_jobs(self) -> list[JobStatusView]:
        return [job.to_status() for job in self._store.values() if not job.status.is_terminal]

    def stats(self) -> OrchestratorStats:
        by_status: dict[str, int] = {}
        for job in self._store.values():
            by_status[job.status.value] = by_status.get(job.status.value, 0) + 1
        return OrchestratorStats(
            total_jobs=len(self._store),
            queued_jobs=len(self._queue),
            running_jobs=len(self._running),
            by_status=by_status,
            max_concurrent_jobs=self._max_concurrent,
        )

    async def wait_for_job(self, job_id: str, timeout: float | None = None) -> JobStatusView:
        """Wait until *job_id* stops running and return its final status."""
        event = self._finished.get(job_id)
        if event is None:
            raise JobError(message=f"Unknown job '{job_id}'.")
        await asyncio.wait_for(event.wait(), timeout)
        job = self._store.get(job_id)
        if job is None:
            raise JobError(message=f"Job '{job_id}' was evicted before it could be read.")
        return job.to_status()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup_old_jobs(self) -> int:
        """Evict finished jobs older than the retention window."""
        cutoff = self._clock() - self._retention
        expired = [
            job.id
            for job in self._store.values()
            if job.status.is_terminal and (job.end_time or job.created_at) < cutoff
        ]
        for job_id in expired:
            self._evict(job_id)
        if expired:
            self._logger.info("jobs_swept", removed=len(expired))
        return len(expired)

    def start(self) -> None:
        """Start the periodic retention sweep."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def shutdown(self) -> None:
        """Stop the sweep and wait for running jobs to finish."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._queue.clear()
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)
        self._logger.info("orchestrator_shutdown")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            self.cleanup_old_jobs()

    def _enforce_history_cap(self) -> None:
        excess = len(self._store) - self._max_history
        if excess <= 0:
            return
        # Oldest finished jobs first; queued and running jobs stay.
        victims = [j.id for j in self._store.values() if j.status.is_terminal][:excess]
        for job_id in victims:
            self._evict(job_id)
        if len(victims) < excess:
            self._logger.debug("job_history_over_cap", active=excess - len(victims))

    def _evict(self, job_id: str) -> None:
        self._store.evict(job_id)
        self._bus.forget(job_id)
        if job_id not in self._running:
            self._finished.pop(job_id, None)
        if job_id in self._queue:
            self._queue.remove(job_id)

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _start_queued(self) -> None:
        while self._queue and len(self._running) < self._max_concurrent:
            job_id = self._queue.popleft()
            job = self._store.get(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                continue
            # Leave PENDING before yielding so the slot count and states agree.
            job.status = JobStatus.UPLOADING
            job.start_time = self._clock()
            self._running[job_id] = asyncio.create_task(self._run(job))

    async def _run(self, job: ProcessingJob) -> None:
        with bind_job_context(job.id):
            try:
                await self._process(job)
            except _JobCancelled:
                self._logger.info("job_stopped_after_cancel", status=job.status.value)
            except Exception as exc:
                await self._fail(job, exc)
            finally:
                self._running.pop(job.id, None)
                self._mark_finished(job.id)
                self._start_queued()

    def _mark_finished(self, job_id: str) -> None:
        event = self._finished.get(job_id)
        if event is not None:
            event.set()

    async def _fail(self, job: ProcessingJob, exc: Exception) -> None:
        if job.status is JobStatus.CANCELLED:
            return
        info = error_info(exc)
        job.error = JobErrorInfo(**info)
        job.status = JobStatus.FAILED
        job.message = f"Failed: {info['message']}"
        job.end_time = self._clock()
        log = self._logger.warning if isinstance(exc, CitebaseError) else self._logger.exception
        log("job_failed", kind=info["kind"], error=info["message"])
        await self._publish(job)

    async def _advance(self, job: ProcessingJob, status: JobStatus, progress: int, message: str) -> None:
        """Move *job* forward, or stop it if it was cancelled meanwhile."""
        if job.status is JobStatus.CANCELLED:
            raise _JobCancelled
        job.status = status
        job.progress = max(job.progress, min(progress, 100))
        job.message = message
        await self._publish(job)

    async def _publish(self, job: ProcessingJob) -> None:
        await self._bus.publish(
            ProgressEvent(
                job_id=job.id,
                status=job.status,
                progress=job.progress,
                message=job.message,
                metadata=job.metadata.model_copy(),
            )
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _process(self, job: ProcessingJob) -> None:
        meta = job.metadata
        self._logger.info("job_started", files=len(job.files))
        await self._advance(job, JobStatus.UPLOADING, 5, f"Processing {len(job.files)} file(s)")

        # Dedup
        await self._advance(job, JobStatus.EXTRACTING, 10, "Checking for duplicate documents")
        batch = self._cache.filter_batch(job.files)
        meta.duplicates_skipped = len(batch.duplicates)
        duplicate_names = [f.name for f in batch.duplicates]
        if not batch.unique:
            meta.files_processed = len(job.files)
            job.result = JobResult(duplicate_files=duplicate_names)
            await self._complete(job, "All files were already indexed")
            return

        # Chunk
        await self._advance(job, JobStatus.CHUNKING, 20, f"Chunking {len(batch.unique)} document(s)")
        per_file: list[tuple[UploadedFile, list[DocumentChunk]]] = []
        failed_files: list[str] = []
        for file in batch.unique:
            chunks = await asyncio.to_thread(self._chunker.process_file, file, new_document_id())
            meta.files_processed += 1
            if not chunks:
                self._logger.warning("document_produced_no_chunks", filename=file.name)
                failed_files.append(file.name)
                continue
            per_file.append((file, chunks))
            meta.chunks_created += len(chunks)
            meta.tokens_processed += sum(c.metadata.tokens for c in chunks)
        meta.files_processed += len(batch.duplicates)

        all_chunks = [c for _, chunks in per_file for c in chunks]
        filtered = self._cache.filter_duplicate_chunks(all_chunks)
        if filtered.duplicate_count:
            self._logger.info("duplicate_chunks_skipped", count=filtered.duplicate_count)
        to_embed = filtered.unique
        if not to_embed:
            job.result = JobResult(duplicate_files=duplicate_names, failed_files=failed_files)
            await self._complete(job, "No new content to index")
            return

        # Embed
        await self._advance(job, JobStatus.EMBEDDING, _EMBED_START, f"Embedding {len(to_embed)} chunks")

        async def _on_embed_progress(completed: int, total: int, failed: int) -> None:
            meta.chunks_embedded = completed - failed
            meta.embedding_failures = failed
            span = _EMBED_END - _EMBED_START
            await self._advance(
                job,
                JobStatus.EMBEDDING,
                _EMBED_START + span * completed // total,
                f"Embedded {completed}/{total} chunks",
            )

        embedded, failed_indices = await self._embedder.embed_chunks(
            to_embed, _on_embed_progress, zero_fill=self._zero_fill
        )
        failed_ids = {to_embed[i].id for i in failed_indices}
        meta.chunks_embedded = sum(1 for c in embedded if c.id not in failed_ids)
        meta.embedding_failures = len(failed_ids)
        if failed_ids:
            self._logger.warning(
                "chunks_failed_to_embed",
                count=len(failed_ids),
                zero_filled=sum(1 for c in embedded if c.id in failed_ids),
            )
        if not embedded:
            failed_files.extend(
                file.name for file, chunks in per_file if any(c.id in failed_ids for c in chunks)
            )
            job.result = JobResult(
                duplicate_files=duplicate_names,
                failed_files=failed_files,
                embedding_failures=len(failed_ids),
            )
            await self._complete(job, f"No chunks could be embedded ({len(failed_ids)} failed)")
            return

        # Index
        await self._advance(job, JobStatus.INDEXING, _INDEX_START, f"Indexing {len(embedded)} chunks")
        await self._index_chunks(job, embedded)

        # Register in the dedup cache; zero-vector chunks do not count as indexed.
        await self._advance(job, JobStatus.INDEXING, 95, "Updating document cache")
        indexed_ids = {c.id for c in embedded if c.id not in failed_ids}
        document_ids: list[str] = []
        for file, chunks in per_file:
            indexed = [c for c in chunks if c.id in indexed_ids]
            if indexed:
                self._cache.register(file, indexed)
                document_ids.append(chunks[0].metadata.document_id)
            elif any(c.id in failed_ids for c in chunks):
                failed_files.append(file.name)

        job.result = JobResult(
            document_ids=document_ids,
            chunks_indexed=meta.chunks_indexed,
            duplicate_files=duplicate_names,
            failed_files=failed_files,
            embedding_failures=len(failed_ids),
        )
        await self._complete(job, f"Indexed {meta.chunks_indexed} chunks from {len(document_ids)} document(s)")

    async def _index_chunks(self, job: ProcessingJob, chunks: list[DocumentChunk]) -> None:
        records = [chunk_to_record(c) for c in chunks]
        total = len(records)
        span = _INDEX_END - _INDEX_START
        for start in range(0, total, _INDEX_PROGRESS_BATCH):
            batch = records[start : start + _INDEX_PROGRESS_BATCH]
            try:
                written = await self._index.upsert(batch)
            except IndexingError:
                raise
            except Exception as exc:
                raise IndexingError(
                    message=f"Vector index upsert failed: {exc}",
                    provider_name=self._index.get_provider_name(),
                ) from exc
            job.metadata.chunks_indexed += written
            done = start + len(batch)
            await self._advance(
                job,
                JobStatus.INDEXING,
                _INDEX_START + span * done // total,
                f"Indexed {done}/{total} chunks",
            )

    async def _complete(self, job: ProcessingJob, message: str) -> None:
        await self._advance(job, JobStatus.COMPLETE, 100, message)
        job.end_time = self._clock()
        self._logger.info(
            "job_complete",
            chunks_indexed=job.metadata.chunks_indexed,
            duplicates=job.metadata.duplicates_skipped,
        )
