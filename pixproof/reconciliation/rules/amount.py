"""Amount rule strategy."""

from decimal import Decimal
from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from ..normalizer import CENTS, parse_amount
from .base import IRuleStrategy, RuleOutcome

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule


class AmountRule(IRuleStrategy):
    """Compare parsed amounts.

    With tolerance 0 the amounts must agree to the cent. Otherwise the
    percentage difference (relative to the receipt amount) is scored with a
    linear decay inside the tolerance and 0 outside it.
    """

    rule_type = RuleType.AMOUNT

    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        receipt_amount = parse_amount(receipt.amount)
        transaction_amount = parse_amount(transaction.amount)
        if not receipt_amount or not transaction_amount:
            return RuleOutcome.unavailable("amount")

        difference = abs(receipt_amount - transaction_amount)
        tolerance = rule.amount_tolerance

        if tolerance == 0:
            if difference < CENTS:
                return RuleOutcome(100.0, f"Exact amount (R$ {receipt_amount})")
            return RuleOutcome(0.0, f"Amounts differ by R$ {difference}")

        percent = float(difference / receipt_amount * Decimal(100))
        if percent <= tolerance:
            return RuleOutcome(
                self._tolerance_score(percent, tolerance),
                f"{percent:.2f}% difference (tolerance {tolerance:g}%)",
            )
        return RuleOutcome(0.0, f"{percent:.2f}% difference exceeds {tolerance:g}%")
