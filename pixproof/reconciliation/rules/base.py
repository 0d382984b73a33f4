"""Base interface for rule strategies.

Implements the Strategy pattern: every rule type has one strategy that turns a
(receipt, transaction) pair into a 0-100 sub-score plus a short reason.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

from ..domain.enums import RuleType

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule


@dataclass(frozen=True)
class RuleOutcome:
    """Sub-score produced by one rule.

    Attributes:
        score: Sub-score between 0 and 100
        reason: Explanation shown to reviewers when the score is nonzero
    """

    score: float
    reason: str = ""

    @classmethod
    def unavailable(cls, what: str) -> "RuleOutcome":
        """Zero outcome for a pair missing the compared field."""
        return cls(0.0, f"{what} unavailable")


class IRuleStrategy(ABC):
    """Abstract base class for rule strategies.

    Implementations never raise on missing or garbled fields: they return a
    zero outcome instead, so one bad record cannot abort a run.

    Example:
        >>> class AlwaysMatch(IRuleStrategy):
        ...     rule_type = RuleType.CUSTOM
        ...     def evaluate(self, rule, receipt, transaction):
        ...         return RuleOutcome(100.0, "always")
    """

    rule_type: ClassVar[RuleType]

    @abstractmethod
    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        """Score one pair under ``rule``.

        Returns:
            RuleOutcome with a score between 0 and 100
        """
        pass

    @staticmethod
    def _tolerance_score(deviation: float, tolerance: float) -> float:
        """Linear decay from 100 (no deviation) to 50 (at the tolerance edge)."""
        return max(0.0, 100.0 - (deviation / tolerance) * 50.0)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
