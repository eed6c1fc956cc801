"""Background ingestion: the job orchestrator and its progress bus."""

from src.pipeline.job_orchestrator import JobOrchestrator
from src.pipeline.progress_bus import ALL_JOBS, ProgressBus

__all__ = ["ALL_JOBS", "JobOrchestrator", "ProgressBus"]
