from draft_lifecycle.domains.cleanup.scheduler import CleanupScheduler
from draft_lifecycle.domains.cleanup.worker import (
    CleanupConfig, CleanupSummary, CleanupTrigger, CleanupWorker, WorkerState
)

__all__ = [
    "CleanupConfig",
    "CleanupScheduler",
    "CleanupSummary",
    "CleanupTrigger",
    "CleanupWorker",
    "WorkerState",
]
