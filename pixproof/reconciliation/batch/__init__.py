"""Asynchronous batch reconciliation jobs."""

from .manager import BatchJobManager, get_batch_manager
from .models import BatchJob, BatchReconciliationStats, JobProgress, RuleUsage

__all__ = [
    "BatchJob",
    "BatchJobManager",
    "BatchReconciliationStats",
    "JobProgress",
    "RuleUsage",
    "get_batch_manager",
]
