"""Rule strategies, one per rule type."""

from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from .amount import AmountRule
from .base import IRuleStrategy, RuleOutcome
from .custom import CustomRule
from .date import DateRule
from .document import DocumentRule
from .name import NameRule, token_similarity

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule

RULE_STRATEGIES: dict[RuleType, IRuleStrategy] = {
    strategy.rule_type: strategy
    for strategy in (AmountRule(), DateRule(), NameRule(), DocumentRule(), CustomRule())
}


def evaluate_rule(
    rule: "ReconciliationRule",
    receipt: "ReceiptRecord",
    transaction: "BankTransactionRecord",
) -> RuleOutcome:
    """Score one pair with the strategy registered for ``rule.type``."""
    return RULE_STRATEGIES[rule.type].evaluate(rule, receipt, transaction)


__all__ = [
    "RULE_STRATEGIES",
    "AmountRule",
    "CustomRule",
    "DateRule",
    "DocumentRule",
    "IRuleStrategy",
    "NameRule",
    "RuleOutcome",
    "evaluate_rule",
    "token_similarity",
]
