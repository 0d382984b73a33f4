"""Reconciliation domain: records, results, enums and settings."""

from .enums import AssignmentStrategy, JobStatus, MatchStatus, RuleType
from .models import (
    BankTransactionRecord,
    Match,
    ReceiptRecord,
    ReconciliationSummary,
    ScoreResult,
)
from .settings import DEFAULT_RULES, ReconciliationRule, ReconciliationSettings, RuleTolerance

__all__ = [
    "AssignmentStrategy",
    "JobStatus",
    "MatchStatus",
    "RuleType",
    "BankTransactionRecord",
    "Match",
    "ReceiptRecord",
    "ReconciliationSummary",
    "ScoreResult",
    "DEFAULT_RULES",
    "ReconciliationRule",
    "ReconciliationSettings",
    "RuleTolerance",
]
