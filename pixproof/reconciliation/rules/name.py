"""Name rule strategy.

Two variants share the name rule type: the rule with id ``name_exact``
requires normalized equality, every other name rule scores token overlap.
"""

from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from ..normalizer import counterparty_name, normalize_name
from .base import IRuleStrategy, RuleOutcome

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule

EXACT_NAME_RULE_ID = "name_exact"
MIN_TOKEN_LENGTH = 3


def token_similarity(first: str, second: str) -> float:
    """Share of tokens that appear on both sides (0.0-1.0).

    Only tokens of at least three characters can match, and a token matches
    when it contains or is contained in a token on the other side. The
    denominator counts every token of the longer name, so short particles
    ("DA", "DE") dilute the similarity.

    Example:
        >>> token_similarity("JOAO SILVA", "JOAO DA SILVA")
        0.6666666666666666
    """
    first_tokens = first.split()
    second_tokens = second.split()
    total = max(len(first_tokens), len(second_tokens))
    if total == 0:
        return 0.0

    candidates = [token for token in second_tokens if len(token) >= MIN_TOKEN_LENGTH]
    matches = sum(
        1
        for token in first_tokens
        if len(token) >= MIN_TOKEN_LENGTH
        and any(token in other or other in token for other in candidates)
    )
    return matches / total


class NameRule(IRuleStrategy):
    """Compare the receipt payer with the statement counterparty."""

    rule_type = RuleType.NAME

    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        payer = normalize_name(receipt.payer_name)
        counterparty = counterparty_name(transaction)
        if not payer or not counterparty:
            return RuleOutcome.unavailable("name")

        if rule.id == EXACT_NAME_RULE_ID:
            if payer == counterparty:
                return RuleOutcome(100.0, "Identical name")
            return RuleOutcome(0.0, "Names differ")

        similarity = token_similarity(payer, counterparty)
        return RuleOutcome(similarity * 100, f"{similarity:.0%} name similarity")
