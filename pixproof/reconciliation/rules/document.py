"""CPF/CNPJ rule strategy."""

from typing import TYPE_CHECKING

from ..domain.enums import RuleType
from ..normalizer import parse_document
from .base import IRuleStrategy, RuleOutcome

if TYPE_CHECKING:
    from ..domain.models import BankTransactionRecord, ReceiptRecord
    from ..domain.settings import ReconciliationRule


class DocumentRule(IRuleStrategy):
    """Digit-only equality of payer tax ids."""

    rule_type = RuleType.DOCUMENT

    def evaluate(
        self,
        rule: "ReconciliationRule",
        receipt: "ReceiptRecord",
        transaction: "BankTransactionRecord",
    ) -> RuleOutcome:
        receipt_document = parse_document(receipt.payer_document)
        transaction_document = parse_document(transaction.payer_document)
        if not receipt_document or not transaction_document:
            return RuleOutcome.unavailable("document")

        if receipt_document == transaction_document:
            return RuleOutcome(100.0, "Same CPF/CNPJ")
        return RuleOutcome(0.0, "CPF/CNPJ differs")
