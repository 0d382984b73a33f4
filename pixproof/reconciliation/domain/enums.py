"""Domain enums for the reconciliation engine."""

from enum import Enum


class MatchStatus(str, Enum):
    """Classification of a proposed receipt/transaction pair.

    Lifecycle:
        AUTO_MATCHED → MANUAL_REVIEW (a reviewer flagged the match as incorrect)
    """

    AUTO_MATCHED = "auto_matched"  # Score at or above the auto-match threshold
    MANUAL_REVIEW = "manual_review"  # Plausible, needs human confirmation
    NO_MATCH = "no_match"  # Reserved for consumers; the matcher never emits it

    def __str__(self) -> str:
        return self.value


class RuleType(str, Enum):
    """Field family a reconciliation rule compares."""

    AMOUNT = "amount"
    DATE = "date"
    NAME = "name"
    DOCUMENT = "document"
    CUSTOM = "custom"

    def __str__(self) -> str:
        return self.value


class AssignmentStrategy(str, Enum):
    """How receipts are assigned to transactions within one run."""

    GREEDY = "greedy"  # Receipt order, best still-available transaction
    OPTIMAL = "optimal"  # Maximum-weight bipartite assignment

    def __str__(self) -> str:
        return self.value


class JobStatus(str, Enum):
    """Batch job status.

    Lifecycle:
        PENDING → PROCESSING → COMPLETED
        PENDING → PROCESSING → FAILED
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Whether the job has finished, successfully or not."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)
