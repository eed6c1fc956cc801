"""In-memory store providers for single-process deployments.

:class:`InMemoryKeyValueStore` backs the deduplication cache with a
``cachetools.LRUCache``: the retention policy is applied by the cache
owner, and the LRU bound only caps memory if a process ingests far more
documents than the configured size (best-effort sizing).

:class:`InMemoryJobStore` keeps jobs in creation order so the orchestrator
can evict the oldest first when the history cap is exceeded.  Neither
store survives a restart; ``file_store.JsonFileKeyValueStore`` is the
persistent registry used by the application.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import structlog
from cachetools import LRUCache

from src.interfaces.store_provider import IJobStore, IKeyValueStore
from src.models.jobs import ProcessingJob

logger = structlog.get_logger(logger_name=__name__)


class InMemoryKeyValueStore(IKeyValueStore):
    """Bounded key-value store backed by ``cachetools.LRUCache``.

    Parameters
    ----------
    max_size:
        Maximum number of entries before the least-recently-used entry
        is dropped.
    """

    def __init__(self, max_size: int = 10_000) -> None:
        self._cache: LRUCache[str, Any] = LRUCache(maxsize=max_size)

    def get(self, key: str) -> Any | None:
        return self._cache.get(key)

    def put(self, key: str, value: Any) -> None:
        self._cache[key] = value

    def evict(self, key: str) -> None:
        self._cache.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._cache.keys())

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)


class InMemoryJobStore(IJobStore):
    """Job registry held in a dict, iterated in creation order."""

    def __init__(self) -> None:
        self._jobs: dict[str, ProcessingJob] = {}

    def get(self, job_id: str) -> ProcessingJob | None:
        return self._jobs.get(job_id)

    def put(self, job: ProcessingJob) -> None:
        self._jobs[job.id] = job

    def evict(self, job_id: str) -> None:
        if self._jobs.pop(job_id, None) is not None:
            logger.debug("job_evicted", job_id=job_id)

    def values(self) -> Iterator[ProcessingJob]:
        return iter(list(self._jobs.values()))

    def __len__(self) -> int:
        return len(self._jobs)
