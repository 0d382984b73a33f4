"""Batch job records and statistics."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ...exceptions import JobExecutionError
from ..domain.enums import JobStatus
from ..domain.models import BankTransactionRecord, ReceiptRecord, ReconciliationSummary
from ..domain.settings import ReconciliationSettings

# A receipt is either a record or the extraction payload it will be built from
ReceiptInput = ReceiptRecord | Mapping[str, Any]
# A transaction input is either one record or a whole statement payload
TransactionInput = BankTransactionRecord | Mapping[str, Any]

STAGE_QUEUED = "Queued"
STAGE_RECEIPTS = "Processing receipts"
STAGE_TRANSACTIONS = "Processing transactions"
STAGE_RECONCILIATION = "Running reconciliation"
STAGE_COMPLETED = "Reconciliation completed"
STAGE_FAILED = "Reconciliation failed"

_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class JobProgress:
    """Progress of one job: ``current`` out of ``total`` steps."""

    current: int = 0
    total: int = 0
    stage: str = STAGE_QUEUED

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0 if self.stage == STAGE_COMPLETED else 0.0
        return self.current / self.total * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "total": self.total,
            "stage": self.stage,
            "percent": round(self.percent, 1),
        }


@dataclass
class BatchJob:
    """One asynchronous reconciliation request.

    Lifecycle:
        PENDING → PROCESSING → COMPLETED
        PENDING → PROCESSING → FAILED

    ``result`` is only set on completed jobs; ``settings`` is the snapshot the
    job runs with, unaffected by later engine-wide updates.
    """

    id: str
    user_id: str
    receipts: list[ReceiptInput]
    transactions: list[TransactionInput]
    settings: ReconciliationSettings
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    progress: JobProgress = field(default_factory=JobProgress)
    result: ReconciliationSummary | None = None
    error_message: str | None = None

    def __post_init__(self) -> None:
        # Receipts are visited twice: once to normalize, once to match
        self.progress.total = 2 * len(self.receipts) + len(self.transactions)

    @property
    def processing_time_ms(self) -> float | None:
        """Time from submission to completion, in milliseconds."""
        if self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds() * 1000

    def _transition(self, status: JobStatus) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise JobExecutionError(
                f"Invalid job transition {self.status} → {status}",
                job_id=self.id,
                stage=self.progress.stage,
            )
        self.status = status

    def mark_processing(self) -> None:
        self._transition(JobStatus.PROCESSING)
        self.started_at = datetime.now(UTC)

    def mark_completed(self, result: ReconciliationSummary) -> None:
        self._transition(JobStatus.COMPLETED)
        self.result = result
        self.completed_at = datetime.now(UTC)
        self.progress.current = self.progress.total
        self.progress.stage = STAGE_COMPLETED

    def mark_failed(self, message: str) -> None:
        self._transition(JobStatus.FAILED)
        self.result = None
        self.error_message = message
        self.completed_at = datetime.now(UTC)
        self.progress.stage = STAGE_FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "receipt_count": len(self.receipts),
            "transaction_count": len(self.transactions),
            "progress": self.progress.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "error_message": self.error_message,
            "settings": self.settings.to_dict(),
        }


@dataclass(frozen=True)
class RuleUsage:
    """How often a rule label appeared in the reasons of completed matches."""

    rule_name: str
    usage: int

    def to_dict(self) -> dict[str, Any]:
        return {"rule_name": self.rule_name, "usage": self.usage}


@dataclass(frozen=True)
class BatchReconciliationStats:
    """Aggregate statistics over one user's jobs."""

    total_jobs: int = 0
    completed_jobs: int = 0
    average_processing_time_ms: float = 0.0
    total_receipts: int = 0
    total_transactions: int = 0
    total_matches: int = 0
    average_match_rate: float = 0.0
    top_matching_rules: tuple[RuleUsage, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_jobs": self.total_jobs,
            "completed_jobs": self.completed_jobs,
            "average_processing_time_ms": round(self.average_processing_time_ms, 2),
            "total_receipts": self.total_receipts,
            "total_transactions": self.total_transactions,
            "total_matches": self.total_matches,
            "average_match_rate": round(self.average_match_rate, 2),
            "top_matching_rules": [usage.to_dict() for usage in self.top_matching_rules],
        }
