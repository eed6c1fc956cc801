"""Abstract base classes for the bounded in-process stores.

The deduplication cache and the job orchestrator keep their state behind
these interfaces rather than in module-level dictionaries.  Eviction
policies (the 7-day document retention, the 24-hour / 100-job history)
are implemented by the owners on top of ``get``/``put``/``evict``; a
persistent store can satisfy the same contract without changing callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from src.models.jobs import ProcessingJob


class IKeyValueStore(ABC):
    """Contract for a string-keyed store."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the value under *key*, or ``None`` if absent."""

    @abstractmethod
    def put(self, key: str, value: Any) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def evict(self, key: str) -> None:
        """Remove *key* (no-op if absent)."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return all keys currently held."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    def __len__(self) -> int:
        return len(self.keys())


class IJobStore(ABC):
    """Contract for the job registry owned by the orchestrator."""

    @abstractmethod
    def get(self, job_id: str) -> ProcessingJob | None:
        """Return the job with *job_id*, or ``None``."""

    @abstractmethod
    def put(self, job: ProcessingJob) -> None:
        """Insert or replace *job*."""

    @abstractmethod
    def evict(self, job_id: str) -> None:
        """Remove the job (no-op if absent)."""

    @abstractmethod
    def values(self) -> Iterator[ProcessingJob]:
        """Iterate over jobs in insertion (creation) order."""

    def __len__(self) -> int:
        return sum(1 for _ in self.values())
