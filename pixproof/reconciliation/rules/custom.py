"""Custom rule strategy: delegates to the callable attached to the rule."""

from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from .base import IRuleStrategy, RuleOutcome

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule


class CustomRule(IRuleStrategy):
    """Run ``rule.custom_logic(receipt, transaction) -> (score, reason)``.

    The returned score is clamped to 0-100. A rule without logic scores 0.
    """

    rule_type = RuleType.CUSTOM

    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        if rule.custom_logic is None:
            return RuleOutcome(0.0, "no custom logic")

        score, reason = rule.custom_logic(receipt, transaction)
        return RuleOutcome(min(100.0, max(0.0, float(score))), reason)
