"""Publish/subscribe channel for ingestion job progress.

The orchestrator publishes a :class:`ProgressEvent` whenever a job changes
stage or progress; consumers subscribe independently, either to one job
or to every job with the ``"*"`` wildcard.

    JobOrchestrator ──publish()──→ ProgressBus ──callback(event)──→ CLI printer
                                               ──callback(event)──→ (any other listener)

Callbacks may be plain functions or coroutine functions.  A callback that
raises is logged and skipped; it never reaches the publisher, so a broken
consumer cannot stall a job.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.models.jobs import ProgressEvent
from src.utils.logging import get_logger

ALL_JOBS = "*"

ProgressListener = Callable[[ProgressEvent], object]


class ProgressBus:
    """Routes progress events from the orchestrator to subscribers."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[ProgressListener]] = {}
        self._latest: dict[str, ProgressEvent] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, job_id: str, callback: ProgressListener) -> None:
        """Receive events for *job_id*, or for every job when it is ``"*"``."""
        listeners = self._listeners.setdefault(job_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug("listener_subscribed", job_id=job_id, total_listeners=len(listeners))

    def unsubscribe(self, job_id: str, callback: ProgressListener) -> None:
        listeners = self._listeners.get(job_id, [])
        if callback in listeners:
            listeners.remove(callback)
            if not listeners:
                del self._listeners[job_id]

    async def publish(self, event: ProgressEvent) -> None:
        """Record *event* as the job's latest and deliver it to subscribers."""
        self._latest[event.job_id] = event
        self._logger.debug(
            "progress_update",
            job_id=event.job_id,
            status=event.status.value,
            progress=event.progress,
            message=event.message,
        )

        targets = [*self._listeners.get(event.job_id, []), *self._listeners.get(ALL_JOBS, [])]
        for callback in targets:
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    job_id=event.job_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )

    def latest(self, job_id: str) -> ProgressEvent | None:
        """Return the most recent event published for *job_id*."""
        return self._latest.get(job_id)

    def forget(self, job_id: str) -> None:
        """Drop the stored event and subscribers of an evicted job."""
        self._latest.pop(job_id, None)
        self._listeners.pop(job_id, None)
