"""Receipt-to-transaction assignment.

Two strategies produce the same kind of summary:

- greedy (default): receipts in input order each take the best-scoring
  transaction still available; accepted transactions leave the pool.
- optimal: maximum-weight bipartite assignment over the pairs that clear the
  manual-review threshold (scipy ``linear_sum_assignment``).

Either way every transaction is used at most once and every receipt gets at
most one match.
"""

from collections.abc import Callable, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from ..utils.logging import LogPerformance, get_logger
from . import metrics
from .domain.enums import AssignmentStrategy, MatchStatus
from .domain.models import (
    BankTransactionRecord,
    Match,
    ReceiptRecord,
    ReconciliationSummary,
    ScoreResult,
)
from .domain.settings import ReconciliationSettings
from .scoring import ScoreAggregator

logger = get_logger(__name__)

# (receipts processed so far, total receipts)
ProgressCallback = Callable[[int, int], None]

# (receipt index, transaction index, score)
Assignment = tuple[int, int, ScoreResult]


def classify(score: float, settings: ReconciliationSettings) -> MatchStatus:
    """Status of an accepted match."""
    if score >= settings.auto_match_threshold:
        return MatchStatus.AUTO_MATCHED
    return MatchStatus.MANUAL_REVIEW


def is_acceptable(score: float, settings: ReconciliationSettings) -> bool:
    """Whether a pair may be matched at all."""
    return score > 0 and score >= settings.manual_review_threshold


class Matcher:
    """Assign receipts to bank transactions and classify the pairs.

    Args:
        aggregator: Scores individual pairs

    Example:
        >>> matcher = Matcher(ScoreAggregator())
        >>> summary = matcher.reconcile(receipts, transactions, ReconciliationSettings())
        >>> summary.auto_matched
        3
    """

    def __init__(self, aggregator: ScoreAggregator) -> None:
        self.aggregator = aggregator

    def reconcile(
        self,
        receipts: Sequence[ReceiptRecord],
        transactions: Sequence[BankTransactionRecord],
        settings: ReconciliationSettings,
        on_progress: ProgressCallback | None = None,
    ) -> ReconciliationSummary:
        """Run one matching pass.

        Args:
            receipts: Receipts, processed in this order
            transactions: Candidate pool
            settings: Thresholds and rules for this run
            on_progress: Called after each receipt with (processed, total)

        Returns:
            ReconciliationSummary with matches in receipt order
        """
        strategy = settings.assignment.value

        with (
            LogPerformance(
                "reconciliation",
                logger,
                receipts=len(receipts),
                transactions=len(transactions),
                assignment=strategy,
            ),
            metrics.track_reconciliation_duration(strategy),
        ):
            if settings.assignment is AssignmentStrategy.OPTIMAL:
                assignments = self._assign_optimal(receipts, transactions, settings, on_progress)
            else:
                assignments = self._assign_greedy(receipts, transactions, settings, on_progress)

            matches: list[Match] = []
            for receipt_index, transaction_index, result in assignments:
                matches.append(
                    Match(
                        id=f"match_{len(matches) + 1}",
                        receipt=receipts[receipt_index],
                        transaction=transactions[transaction_index],
                        confidence=result.score,
                        status=classify(result.score, settings),
                        reasons=list(result.reasons),
                    )
                )

        summary = ReconciliationSummary(
            total_receipts=len(receipts),
            total_transactions=len(transactions),
            auto_matched=0,
            manual_review=0,
            unmatched=0,
            matches=matches,
        )
        summary.refresh_counts()

        for match in matches:
            metrics.record_match(match.status.value, match.confidence, strategy)
        metrics.record_unmatched(summary.unmatched)

        logger.info(
            "reconciliation_summary",
            assignment=strategy,
            receipts=summary.total_receipts,
            transactions=summary.total_transactions,
            auto_matched=summary.auto_matched,
            manual_review=summary.manual_review,
            unmatched=summary.unmatched,
        )
        return summary

    def _assign_greedy(
        self,
        receipts: Sequence[ReceiptRecord],
        transactions: Sequence[BankTransactionRecord],
        settings: ReconciliationSettings,
        on_progress: ProgressCallback | None,
    ) -> list[Assignment]:
        available = list(range(len(transactions)))
        assignments: list[Assignment] = []

        for receipt_index, receipt in enumerate(receipts):
            best_position: int | None = None
            best_result: ScoreResult | None = None
            best_score = 0.0

            for position, transaction_index in enumerate(available):
                result = self.aggregator.score(receipt, transactions[transaction_index], settings)
                # Strictly greater: the earliest candidate wins ties
                if result.score > best_score:
                    best_score = result.score
                    best_position = position
                    best_result = result

            if (
                best_position is not None
                and best_result is not None
                and is_acceptable(best_score, settings)
            ):
                assignments.append((receipt_index, available.pop(best_position), best_result))

            if on_progress is not None:
                on_progress(receipt_index + 1, len(receipts))

        return assignments

    def _assign_optimal(
        self,
        receipts: Sequence[ReceiptRecord],
        transactions: Sequence[BankTransactionRecord],
        settings: ReconciliationSettings,
        on_progress: ProgressCallback | None,
    ) -> list[Assignment]:
        weights = np.zeros((len(receipts), len(transactions)))
        results: dict[tuple[int, int], ScoreResult] = {}

        for i, receipt in enumerate(receipts):
            for j, transaction in enumerate(transactions):
                result = self.aggregator.score(receipt, transaction, settings)
                if is_acceptable(result.score, settings):
                    weights[i, j] = result.score
                    results[(i, j)] = result
            if on_progress is not None:
                on_progress(i + 1, len(receipts))

        if not results:
            return []

        rows, cols = linear_sum_assignment(weights, maximize=True)
        # Zero-weight cells are padding, not real candidates
        return sorted(
            (int(i), int(j), results[(int(i), int(j))])
            for i, j in zip(rows, cols, strict=True)
            if (int(i), int(j)) in results
        )
