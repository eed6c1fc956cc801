"""Batched, retrying embedding generation with isolated per-item failures.

Texts are cut into batches of ``batch_size``.  Up to ``parallel_batches``
batches form a *group*; the batches of a group run concurrently, groups
run one after another with a short pause between them.  Inside a batch
every text is embedded by its own call, so one bad item only costs that
item: it comes back as a failure, never as an exception.

Results are reassembled by original index, whatever order the calls
finish in.
"""

from __future__ import annotations

import asyncio
import inspect
import math
from typing import Awaitable, Callable

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.documents import DocumentChunk
from src.models.rag import EmbeddingOutcome
from src.utils.concurrency import retry_async, throttled_gather
from src.utils.errors import EmbeddingError

ProgressCallback = Callable[[int, int, int], "Awaitable[None] | None"]
"""``(completed, total, failed)``; may be a coroutine function."""


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


class EmbeddingBatchManager:
    """Turns chunk text into vectors under bounded concurrency.

    Parameters
    ----------
    provider:
        The embedding service.
    batch_size:
        Texts per batch.
    parallel_batches:
        Batches in flight at once.
    max_retries:
        Retries per text after the first attempt.
    retry_delay_ms:
        Base backoff; retry ``n`` waits ``retry_delay_ms * 2**n``.
    batch_delay_ms:
        Pause between batch groups.
    dimension:
        Length of the zero vector used by the fallback mode.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        batch_size: int = 30,
        parallel_batches: int = 8,
        max_retries: int = 1,
        retry_delay_ms: int = 250,
        batch_delay_ms: int = 5,
        dimension: int = 768,
    ) -> None:
        if batch_size <= 0 or parallel_batches <= 0:
            raise ValueError("batch_size and parallel_batches must be positive")
        self._provider = provider
        self._batch_size = batch_size
        self._parallel_batches = parallel_batches
        self._max_retries = max_retries
        self._retry_delay = retry_delay_ms / 1000
        self._batch_delay = batch_delay_ms / 1000
        self._dimension = dimension
        self._logger: structlog.BoundLogger = structlog.get_logger(logger_name=__name__)

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_one(self, text: str) -> list[float]:
        """Embed *text*, retrying with exponential backoff.

        Raises
        ------
        EmbeddingError
            After ``max_retries + 1`` failed attempts.
        """
        try:
            return await retry_async(
                lambda: self._provider.embed_single(text),
                max_retries=self._max_retries,
                base_delay=self._retry_delay,
                logger=self._logger,
                operation="embed_one",
            )
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                message=f"Embedding failed after {self._max_retries + 1} attempts: {exc}",
                provider_name=self._provider.get_provider_name(),
            ) from exc

    async def embed_many(
        self,
        texts: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> EmbeddingOutcome:
        """Embed every text, isolating failures per item.

        Parameters
        ----------
        texts:
            Texts to embed.
        on_progress:
            Called with ``(completed, total, failed)`` roughly every 2% of
            items, when the last item finishes, and after each group.

        Returns
        -------
        EmbeddingOutcome
            Successful vectors in original order plus the failed indices.
        """
        total = len(texts)
        if total == 0:
            return EmbeddingOutcome()

        results: list[list[float] | None] = [None] * total
        interval = max(1, total // 50)
        counters = {"completed": 0, "failed": 0}

        async def _report() -> None:
            if on_progress is not None:
                result = on_progress(counters["completed"], total, counters["failed"])
                if inspect.isawaitable(result):
                    await result

        async def _embed_item(index: int) -> None:
            try:
                results[index] = await self.embed_one(texts[index])
            except EmbeddingError as exc:
                counters["failed"] += 1
                self._logger.warning("embedding_item_failed", index=index, error=exc.message)
            counters["completed"] += 1
            done = counters["completed"]
            if done % interval == 0 or done == total:
                await _report()

        async def _embed_batch(indices: range) -> None:
            await asyncio.gather(*(_embed_item(i) for i in indices))

        batches = [
            range(start, min(start + self._batch_size, total))
            for start in range(0, total, self._batch_size)
        ]
        semaphore = asyncio.Semaphore(self._parallel_batches)
        for group_start in range(0, len(batches), self._parallel_batches):
            group = batches[group_start : group_start + self._parallel_batches]
            await throttled_gather([_embed_batch(b) for b in group], semaphore, return_exceptions=False)
            await _report()
            if group_start + self._parallel_batches < len(batches) and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        succeeded = [i for i, v in enumerate(results) if v is not None]
        failed = [i for i, v in enumerate(results) if v is None]
        self._logger.info(
            "embedding_batch_complete",
            total=total,
            succeeded=len(succeeded),
            failed=len(failed),
            batches=len(batches),
        )
        return EmbeddingOutcome(
            vectors=[results[i] for i in succeeded],
            succeeded_indices=succeeded,
            failed_indices=failed,
        )

    async def embed_many_with_fallback(
        self,
        texts: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> EmbeddingOutcome:
        """Like :meth:`embed_many`, degrading to sequential calls on total failure.

        When no text at all could be embedded in batch mode, every text is
        retried one at a time; texts that still fail get a zero vector.
        The outcome then has a vector for every text and lists the
        zero-filled ones in ``failed_indices``.
        """
        outcome = await self.embed_many(texts, on_progress)
        if not texts or outcome.succeeded_indices:
            return outcome

        self._logger.warning("embedding_fallback_sequential", total=len(texts))
        vectors: list[list[float]] = []
        failed: list[int] = []
        for index, text in enumerate(texts):
            try:
                vectors.append(await self.embed_one(text))
            except EmbeddingError:
                vectors.append([0.0] * self._dimension)
                failed.append(index)
        return EmbeddingOutcome(
            vectors=vectors,
            succeeded_indices=list(range(len(texts))),
            failed_indices=failed,
            zero_filled=True,
        )

    async def embed_chunks(
        self,
        chunks: list[DocumentChunk],
        on_progress: ProgressCallback | None = None,
        zero_fill: bool = False,
    ) -> tuple[list[DocumentChunk], list[int]]:
        """Attach vectors to *chunks* and report the failed ones by index.

        By default failed chunks are dropped.  With *zero_fill* the call goes
        through :meth:`embed_many_with_fallback`; when that falls back, every
        chunk comes back and the failed indices name the zero-vector ones.
        """
        texts = [c.content for c in chunks]
        if zero_fill:
            outcome = await self.embed_many_with_fallback(texts, on_progress)
        else:
            outcome = await self.embed_many(texts, on_progress)
        embedded = [
            chunks[index].with_embedding(vector)
            for index, vector in zip(outcome.succeeded_indices, outcome.vectors)
        ]
        return embedded, outcome.failed_indices
