"""Score aggregation.

Combines the sub-scores of all enabled rules into one 0-100 confidence:

    score = sum(subscore_i * weight_i) / sum(weight_i)

then applies strict mode and the learned offset for the pair.
"""

from .domain.enums import RuleType
from .domain.models import BankTransactionRecord, ReceiptRecord, ScoreResult
from .domain.settings import ReconciliationSettings
from .learning import LearningStore, learning_signature
from .rules import evaluate_rule

STRICT_MODE_REASON = "Strict mode: amount mismatch"


class ScoreAggregator:
    """Weighted mean of rule sub-scores, adjusted by the learning store.

    Scoring is a pure function of (receipt, transaction, settings, learning
    state): the same inputs always produce the same score and reasons.

    Args:
        learning: Store providing learned offsets; None disables adjustments
    """

    def __init__(self, learning: LearningStore | None = None) -> None:
        self.learning = learning

    def score(
        self,
        receipt: ReceiptRecord,
        transaction: BankTransactionRecord,
        settings: ReconciliationSettings,
    ) -> ScoreResult:
        """Score one receipt/transaction pair.

        Reasons are ``"<rule name>: <reason>"`` for every rule with a nonzero
        sub-score, in rule order, followed by the learning adjustment if any.
        """
        rules = settings.enabled_rules
        total_weight = sum(rule.weight for rule in rules)
        if total_weight <= 0:
            return ScoreResult(score=0.0)

        weighted = 0.0
        reasons: list[str] = []
        amount_scores: list[float] = []

        for rule in rules:
            outcome = evaluate_rule(rule, receipt, transaction)
            weighted += outcome.score * rule.weight
            if outcome.score > 0:
                reasons.append(f"{rule.name}: {outcome.reason}")
            if rule.type is RuleType.AMOUNT:
                amount_scores.append(outcome.score)

        if settings.strict_mode and amount_scores and not any(amount_scores):
            return ScoreResult(score=0.0, reasons=(STRICT_MODE_REASON,))

        score = weighted / total_weight

        adjustment = 0
        if settings.enable_learning and self.learning is not None:
            adjustment = self.learning.adjustment(learning_signature(receipt, transaction))
            if adjustment:
                score += adjustment
                reasons.append(f"Learning adjustment: {adjustment:+.1f}%")

        return ScoreResult(
            score=min(100.0, max(0.0, score)),
            reasons=tuple(reasons),
            learning_adjustment=adjustment,
        )
