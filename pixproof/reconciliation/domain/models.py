"""Domain records for the reconciliation engine.

Receipts and bank transactions arrive from the extraction layer and are
read-only to the engine (frozen dataclasses). Optional fields are explicit
``None`` values: every rule has a defined zero-score branch for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from .enums import MatchStatus

RawAmount = str | int | float | Decimal | None


@dataclass(frozen=True)
class ReceiptRecord:
    """One extracted PIX receipt.

    Attributes:
        id: Opaque record id assigned by the upstream store
        amount: Amount as extracted (e.g. "R$ 1.234,56"); parsed by the normalizer
        payer_name: Payer display name, free text
        payer_document: Payer CPF/CNPJ, any formatting
        transaction_date: When the transfer happened, if extracted
        transaction_id: End-to-end id printed on the receipt, if any
        confidence: Extraction confidence reported by OCR (0-100)
        file_id: Source file reference in the upstream store
    """

    id: str
    amount: RawAmount = None
    payer_name: str | None = None
    payer_document: str | None = None
    transaction_date: datetime | None = None
    transaction_id: str | None = None
    confidence: float = 0.0
    file_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": None if self.amount is None else str(self.amount),
            "payer_name": self.payer_name,
            "payer_document": self.payer_document,
            "transaction_date": (
                self.transaction_date.isoformat() if self.transaction_date else None
            ),
            "transaction_id": self.transaction_id,
            "confidence": self.confidence,
            "file_id": self.file_id,
        }


@dataclass(frozen=True)
class BankTransactionRecord:
    """One extracted bank statement line.

    Attributes:
        id: Opaque record id
        amount: Amount as extracted
        description: Statement line text, usually embedding the counterparty name
        transaction_date: Booking timestamp, if extracted
        payer_document: Counterparty CPF/CNPJ when the statement shows it
        payer_name: Counterparty name when the extractor isolated it
        statement_id: Parent statement file
        transaction_id: Bank reference, if any
        confidence: Extraction confidence (0-100)
    """

    id: str
    amount: RawAmount = None
    description: str | None = None
    transaction_date: datetime | None = None
    payer_document: str | None = None
    payer_name: str | None = None
    statement_id: str | None = None
    transaction_id: str | None = None
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": None if self.amount is None else str(self.amount),
            "description": self.description,
            "transaction_date": (
                self.transaction_date.isoformat() if self.transaction_date else None
            ),
            "payer_document": self.payer_document,
            "payer_name": self.payer_name,
            "statement_id": self.statement_id,
            "transaction_id": self.transaction_id,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ScoreResult:
    """Aggregate confidence for one receipt/transaction pair."""

    score: float
    reasons: tuple[str, ...] = ()
    learning_adjustment: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "reasons": list(self.reasons),
            "learning_adjustment": self.learning_adjustment,
        }


@dataclass
class Match:
    """A proposed pairing of one receipt with one bank transaction.

    Only ``status`` changes after creation, through reviewer feedback.
    """

    id: str
    receipt: ReceiptRecord
    transaction: BankTransactionRecord
    confidence: float
    status: MatchStatus
    matched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "receipt": self.receipt.to_dict(),
            "transaction": self.transaction.to_dict(),
            "confidence": round(self.confidence, 2),
            "status": self.status.value,
            "matched_at": self.matched_at.isoformat(),
            "reasons": list(self.reasons),
        }


@dataclass
class ReconciliationSummary:
    """Outcome of one matching run."""

    total_receipts: int
    total_transactions: int
    auto_matched: int
    manual_review: int
    unmatched: int
    matches: list[Match] = field(default_factory=list)

    @property
    def match_rate(self) -> float:
        """Share of receipts that received a match, as a percentage."""
        if self.total_receipts == 0:
            return 0.0
        return len(self.matches) / self.total_receipts * 100

    def get_match(self, match_id: str) -> Match | None:
        return next((m for m in self.matches if m.id == match_id), None)

    def refresh_counts(self) -> None:
        """Recount statuses after reviewer feedback changed some of them."""
        self.auto_matched = sum(1 for m in self.matches if m.status is MatchStatus.AUTO_MATCHED)
        self.manual_review = sum(1 for m in self.matches if m.status is MatchStatus.MANUAL_REVIEW)
        self.unmatched = self.total_receipts - len(self.matches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_receipts": self.total_receipts,
            "total_transactions": self.total_transactions,
            "auto_matched": self.auto_matched,
            "manual_review": self.manual_review,
            "unmatched": self.unmatched,
            "matches": [m.to_dict() for m in self.matches],
        }
