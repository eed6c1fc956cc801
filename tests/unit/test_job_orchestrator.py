"""Unit tests for JobOrchestrator: queueing, stages, cancellation and retention."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from src.models.jobs import JobStatus, ProgressEvent
from src.pipeline.job_orchestrator import JobOrchestrator
from src.pipeline.progress_bus import ALL_JOBS, ProgressBus
from src.providers.store.memory_store import InMemoryJobStore, InMemoryKeyValueStore
from src.services.dedup_cache import DocumentCache
from src.services.embedding_batch import EmbeddingBatchManager
from src.services.ingestion.chunker import TextChunker
from src.utils.errors import JobError
from tests.conftest import FAKE_DIMENSION, FakeEmbeddingProvider, FakeVectorIndex, build_document, make_file


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _orchestrator(
    chunker: TextChunker,
    index: FakeVectorIndex | None = None,
    embedding: FakeEmbeddingProvider | None = None,
    bus: ProgressBus | None = None,
    **kwargs,
) -> JobOrchestrator:
    return JobOrchestrator(
        document_cache=DocumentCache(InMemoryKeyValueStore()),
        chunker=chunker,
        embedding_manager=EmbeddingBatchManager(
            embedding or FakeEmbeddingProvider(),
            retry_delay_ms=0,
            batch_delay_ms=0,
            dimension=FAKE_DIMENSION,
        ),
        vector_index=index or FakeVectorIndex(),
        job_store=InMemoryJobStore(),
        progress_bus=bus or ProgressBus(),
        **kwargs,
    )


def _doc(n: int, tokens: int = 400) -> str:
    """Distinct text per *n*, so no chunk of one document repeats in another."""
    return build_document(tokens).replace("(note ", f"(document {n} note ")


# ======================================================================
# Happy path
# ======================================================================


class TestJobLifecycle:
    @pytest.mark.asyncio
    async def test_job_completes_and_indexes(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex()
        orchestrator = _orchestrator(chunker, index=index)

        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1)), make_file("b.md", _doc(2))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETE
        assert job.progress == 100
        assert job.metadata.chunks_indexed == len(index.records)
        assert job.metadata.chunks_indexed == job.metadata.chunks_created
        assert job.metadata.files_processed == 2
        assert len(job.result.document_ids) == 2
        assert job.start_time is not None and job.end_time is not None

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, chunker: TextChunker) -> None:
        bus = ProgressBus()
        events: list[ProgressEvent] = []
        bus.subscribe(ALL_JOBS, events.append)
        orchestrator = _orchestrator(chunker, bus=bus)

        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(job_id, timeout=5)

        progress = [e.progress for e in events if e.job_id == job_id]
        assert progress == sorted(progress)
        statuses = [e.status for e in events]
        assert statuses[0] is JobStatus.PENDING
        assert statuses[-1] is JobStatus.COMPLETE
        assert JobStatus.EMBEDDING in statuses and JobStatus.INDEXING in statuses

    @pytest.mark.asyncio
    async def test_create_job_requires_files(self, chunker: TextChunker) -> None:
        with pytest.raises(JobError):
            await _orchestrator(chunker).create_job([])

    @pytest.mark.asyncio
    async def test_job_id_format(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker)
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        assert job_id.startswith("job_")
        await orchestrator.wait_for_job(job_id, timeout=5)


# ======================================================================
# Concurrency
# ======================================================================


class TestConcurrencyCap:
    @pytest.mark.asyncio
    async def test_at_most_two_jobs_run(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, max_concurrent_jobs=2)
        job_ids = [await orchestrator.create_job([make_file(f"{n}.txt", _doc(n))]) for n in range(5)]

        stats = orchestrator.stats()
        assert stats.running_jobs == 2
        assert stats.queued_jobs == 3
        pending = [j for j in orchestrator.list_jobs() if j.status is JobStatus.PENDING]
        assert len(pending) == 3

        jobs = [await orchestrator.wait_for_job(j, timeout=10) for j in job_ids]
        assert all(j.status is JobStatus.COMPLETE for j in jobs)
        assert orchestrator.stats().running_jobs == 0

    @pytest.mark.asyncio
    async def test_running_count_never_exceeds_cap(self, chunker: TextChunker) -> None:
        bus = ProgressBus()
        orchestrator = _orchestrator(chunker, bus=bus, max_concurrent_jobs=2)
        peak = 0

        def _track(event: ProgressEvent) -> None:
            nonlocal peak
            peak = max(peak, orchestrator.stats().running_jobs)

        bus.subscribe(ALL_JOBS, _track)
        job_ids = [await orchestrator.create_job([make_file(f"{n}.txt", _doc(n))]) for n in range(5)]
        for job_id in job_ids:
            await orchestrator.wait_for_job(job_id, timeout=10)
        assert peak == 2


# ======================================================================
# Cancellation
# ======================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_pending_job_runs_no_stage(self, chunker: TextChunker) -> None:
        bus = ProgressBus()
        events: list[ProgressEvent] = []
        bus.subscribe(ALL_JOBS, events.append)
        orchestrator = _orchestrator(chunker, bus=bus, max_concurrent_jobs=1)

        first = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        queued = await orchestrator.create_job([make_file("b.txt", _doc(2))])
        assert await orchestrator.cancel_job(queued) is True

        cancelled = await orchestrator.wait_for_job(queued, timeout=5)
        await orchestrator.wait_for_job(first, timeout=5)

        assert cancelled.status is JobStatus.CANCELLED
        assert cancelled.progress == 0
        assert {e.status for e in events if e.job_id == queued} == {JobStatus.PENDING, JobStatus.CANCELLED}
        assert orchestrator.get_job(queued).status is JobStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_running_job_stops_at_next_stage(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex()
        orchestrator = _orchestrator(chunker, index=index)
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        # The job task has been created but has not run yet.
        assert await orchestrator.cancel_job(job_id) is True

        job = await orchestrator.wait_for_job(job_id, timeout=5)
        assert job.status is JobStatus.CANCELLED
        assert index.records == {}

    @pytest.mark.asyncio
    async def test_cancel_unknown_or_finished(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker)
        assert await orchestrator.cancel_job("job_missing") is False

        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(job_id, timeout=5)
        assert await orchestrator.cancel_job(job_id) is False


# ======================================================================
# Failures and duplicates
# ======================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_index_failure_is_captured(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, index=FakeVectorIndex(fail_upsert=True))
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.FAILED
        assert job.error is not None
        assert job.error.kind == "indexing"
        assert "index unavailable" in job.error.message

    @pytest.mark.asyncio
    async def test_total_embedding_failure_completes_in_skip_mode(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex()
        orchestrator = _orchestrator(chunker, index=index, embedding=FakeEmbeddingProvider(fail_all=True))
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETE
        assert job.error is None
        assert job.progress == 100
        assert job.metadata.chunks_indexed == 0
        assert job.metadata.embedding_failures == job.metadata.chunks_created > 0
        assert job.result.embedding_failures == job.metadata.chunks_created
        assert job.result.failed_files == ["a.txt"]
        assert index.records == {}
        assert orchestrator._cache.is_duplicate(_doc(1))[0] is False

    @pytest.mark.asyncio
    async def test_total_embedding_failure_indexes_zero_vectors(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex()
        orchestrator = _orchestrator(
            chunker,
            index=index,
            embedding=FakeEmbeddingProvider(fail_all=True),
            embedding_fallback_mode="zero_vector",
        )
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETE
        assert job.metadata.chunks_indexed == job.metadata.chunks_created == len(index.records)
        assert job.metadata.chunks_embedded == 0
        assert job.result.embedding_failures == job.metadata.chunks_created
        assert all(r["values"] == [0.0] * FAKE_DIMENSION for r in index.records.values())
        # Zero vectors are not a real embedding, so the file can be ingested again.
        assert job.result.failed_files == ["a.txt"]
        assert orchestrator._cache.is_duplicate(_doc(1))[0] is False

    def test_unknown_fallback_mode_rejected(self, chunker: TextChunker) -> None:
        with pytest.raises(ValueError, match="fallback mode"):
            _orchestrator(chunker, embedding_fallback_mode="retry")

    @pytest.mark.asyncio
    async def test_failed_job_does_not_register_documents(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, index=FakeVectorIndex(fail_upsert=True))
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(job_id, timeout=5)
        assert orchestrator._cache.is_duplicate(_doc(1))[0] is False

    @pytest.mark.asyncio
    async def test_worker_survives_failed_job(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex(fail_upsert=True)
        orchestrator = _orchestrator(chunker, index=index, max_concurrent_jobs=1)
        failing = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        following = await orchestrator.create_job([make_file("b.txt", _doc(2))])

        assert (await orchestrator.wait_for_job(failing, timeout=5)).status is JobStatus.FAILED
        index.fail_upsert = False
        assert (await orchestrator.wait_for_job(following, timeout=5)).status is JobStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_empty_document_listed_as_failed_file(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker)
        job_id = await orchestrator.create_job([make_file("blank.txt", "   "), make_file("a.txt", _doc(1))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETE
        assert job.result.failed_files == ["blank.txt"]
        assert len(job.result.document_ids) == 1


class TestDuplicates:
    @pytest.mark.asyncio
    async def test_all_duplicate_batch_completes_immediately(self, chunker: TextChunker) -> None:
        index = FakeVectorIndex()
        orchestrator = _orchestrator(chunker, index=index)
        first = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(first, timeout=5)
        upserts_after_first = index.upsert_calls

        again = await orchestrator.create_job([make_file("copy-of-a.txt", _doc(1))])
        job = await orchestrator.wait_for_job(again, timeout=5)

        assert job.status is JobStatus.COMPLETE
        assert job.progress == 100
        assert job.metadata.duplicates_skipped == 1
        assert job.metadata.chunks_indexed == 0
        assert job.result.duplicate_files == ["copy-of-a.txt"]
        assert index.upsert_calls == upserts_after_first

    @pytest.mark.asyncio
    async def test_duplicate_within_batch_indexed_once(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker)
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1)), make_file("b.txt", _doc(1))])
        job = await orchestrator.wait_for_job(job_id, timeout=5)

        assert job.metadata.duplicates_skipped == 1
        assert job.result.duplicate_files == ["b.txt"]
        assert len(job.result.document_ids) == 1


# ======================================================================
# Retention
# ======================================================================


class TestRetention:
    @pytest.mark.asyncio
    async def test_cleanup_removes_old_finished_jobs(self, chunker: TextChunker) -> None:
        clock = _Clock()
        orchestrator = _orchestrator(chunker, clock=clock, retention_hours=24)
        job_id = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(job_id, timeout=5)

        clock.now += timedelta(hours=23)
        assert orchestrator.cleanup_old_jobs() == 0

        clock.now += timedelta(hours=2)
        assert orchestrator.cleanup_old_jobs() == 1
        assert orchestrator.get_job(job_id) is None

    @pytest.mark.asyncio
    async def test_history_cap_evicts_oldest_finished(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, max_jobs_history=2)
        first = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        await orchestrator.wait_for_job(first, timeout=5)
        second = await orchestrator.create_job([make_file("b.txt", _doc(2))])
        await orchestrator.wait_for_job(second, timeout=5)

        third = await orchestrator.create_job([make_file("c.txt", _doc(3))])
        await orchestrator.wait_for_job(third, timeout=5)

        assert orchestrator.get_job(first) is None
        assert [j.id for j in orchestrator.list_jobs()] == [third, second]

    @pytest.mark.asyncio
    async def test_history_cap_never_evicts_active_jobs(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, max_jobs_history=1, max_concurrent_jobs=1)
        running = await orchestrator.create_job([make_file("a.txt", _doc(1))])
        queued = await orchestrator.create_job([make_file("b.txt", _doc(2))])

        # Over the cap, but neither job has finished yet.
        assert orchestrator.get_job(running) is not None
        assert orchestrator.get_job(queued) is not None
        assert (await orchestrator.wait_for_job(running, timeout=5)).status is JobStatus.COMPLETE
        assert (await orchestrator.wait_for_job(queued, timeout=5)).status is JobStatus.COMPLETE

        latest = await orchestrator.create_job([make_file("c.txt", _doc(3))])
        assert orchestrator.get_job(running) is None
        assert orchestrator.get_job(queued) is None
        await orchestrator.wait_for_job(latest, timeout=5)

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, chunker: TextChunker) -> None:
        orchestrator = _orchestrator(chunker, cleanup_interval_seconds=0.01)
        orchestrator.start()
        await asyncio.sleep(0.03)
        await orchestrator.shutdown()
        assert orchestrator.stats().running_jobs == 0
