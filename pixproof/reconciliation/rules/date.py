"""Date rule strategy."""

from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from ..normalizer import hours_between
from .base import IRuleStrategy, RuleOutcome

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule

# Receipts and statements rarely agree to the second; tolerance 0 means the same hour
EXACT_WINDOW_HOURS = 1.0


class DateRule(IRuleStrategy):
    """Compare transfer timestamps by their absolute difference in hours."""

    rule_type = RuleType.DATE

    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        if receipt.transaction_date is None or transaction.transaction_date is None:
            return RuleOutcome.unavailable("date")

        hours = hours_between(receipt.transaction_date, transaction.transaction_date)
        tolerance = rule.date_tolerance

        if tolerance == 0:
            if hours < EXACT_WINDOW_HOURS:
                return RuleOutcome(100.0, "Same date and time")
            return RuleOutcome(0.0, f"{hours:.1f}h apart")

        if hours <= tolerance:
            return RuleOutcome(
                self._tolerance_score(hours, tolerance),
                f"{hours:.1f}h apart (tolerance {tolerance:g}h)",
            )
        return RuleOutcome(0.0, f"{hours:.1f}h apart exceeds {tolerance:g}h")
