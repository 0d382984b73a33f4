"""PIX receipt / bank statement reconciliation.

This module implements:
- Record normalization (amounts, documents, names, timestamps)
- Weighted rule scoring with strict mode and learned offsets
- Greedy or optimal one-to-one assignment
- Asynchronous batch jobs with progress reporting
- Prometheus metrics monitoring
"""

__all__ = [
    # Domain
    "AssignmentStrategy",
    "BankTransactionRecord",
    "DEFAULT_RULES",
    "JobStatus",
    "Match",
    "MatchStatus",
    "ReceiptRecord",
    "ReconciliationRule",
    "ReconciliationSettings",
    "ReconciliationSummary",
    "RuleTolerance",
    "RuleType",
    "ScoreResult",
    # Services
    "BatchJobManager",
    "LearningStore",
    "Matcher",
    "ReconciliationEngine",
    "ScoreAggregator",
    "learning_signature",
]

from .batch import BatchJobManager
from .domain import (
    DEFAULT_RULES,
    AssignmentStrategy,
    BankTransactionRecord,
    JobStatus,
    Match,
    MatchStatus,
    ReceiptRecord,
    ReconciliationRule,
    ReconciliationSettings,
    ReconciliationSummary,
    RuleTolerance,
    RuleType,
    ScoreResult,
)
from .engine import ReconciliationEngine
from .learning import LearningStore, learning_signature
from .matcher import Matcher
from .scoring import ScoreAggregator
