"""Record normalization.

Turns the loosely formatted fields produced by OCR/CSV extraction into
comparable canonical forms. Nothing in here raises on bad input: garbled or
missing values degrade to ``Decimal("0")``, ``""`` or ``None`` and the rules
treat those as "not comparable".
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .domain.models import BankTransactionRecord, RawAmount, ReceiptRecord

CENTS = Decimal("0.01")
ZERO = Decimal("0")

_AMOUNT_CHARS = re.compile(r"[^0-9.,]")
_NON_DIGITS = re.compile(r"\D")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_COUNTERPARTY_CODE = re.compile(r"^CP\d*$")

# Leading words of statement lines that describe the rail, not the payer
_RAIL_WORDS = frozenset(
    {
        "PIX",
        "TED",
        "DOC",
        "TRANSF",
        "TRANSFERENCIA",
        "RECEBIDO",
        "RECEBIDA",
        "ENVIADO",
        "ENVIADA",
        "CREDITO",
        "DE",
    }
)

_DATE_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


def _to_cents(value: Decimal) -> Decimal:
    try:
        return abs(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More integer digits than the context precision holds
        return ZERO


def parse_amount(raw: RawAmount) -> Decimal:
    """Parse an extracted amount into a non-negative Decimal rounded to cents.

    Handles Brazilian ("R$ 1.234,56") and dotted ("1,234.56") notations. When
    both separators appear the right-most one is the decimal separator; a
    single separator followed by exactly three digits is a thousands separator.

    Returns:
        The absolute amount, or ``Decimal("0")`` when the input is absent or
        unparsable
    """
    if raw is None or isinstance(raw, bool):
        return ZERO

    if isinstance(raw, Decimal | int | float):
        try:
            value = Decimal(str(raw))
        except (InvalidOperation, ValueError):
            return ZERO
        if not value.is_finite():
            return ZERO
        return _to_cents(value)

    text = _AMOUNT_CHARS.sub("", str(raw))
    if not any(ch.isdigit() for ch in text):
        return ZERO

    if "," in text and "." in text:
        decimal_sep = "," if text.rfind(",") > text.rfind(".") else "."
        thousands_sep = "." if decimal_sep == "," else ","
        text = text.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif "," in text or "." in text:
        sep = "," if "," in text else "."
        head, _, tail = text.rpartition(sep)
        if text.count(sep) > 1 or len(tail) == 3:
            text = text.replace(sep, "")
        else:
            text = f"{head}.{tail}"

    try:
        value = Decimal(text)
    except InvalidOperation:
        return ZERO
    return _to_cents(value)


def parse_document(raw: str | None) -> str:
    """Keep only the digits of a CPF/CNPJ. Empty input yields ``""``."""
    if not raw:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def normalize_name(raw: str | None) -> str:
    """Upper-case, strip diacritics and punctuation, collapse whitespace."""
    if not raw:
        return ""
    decomposed = unicodedata.normalize("NFD", str(raw))
    text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    text = _PUNCTUATION.sub("", text.upper())
    return _WHITESPACE.sub(" ", text).strip()


def extract_counterparty(description: str | None) -> str:
    """Isolate the payer name embedded in a statement line.

    Example:
        >>> extract_counterparty("PIX RECEBIDO - João Silva")
        'JOAO SILVA'
        >>> extract_counterparty("PIX RECEBIDO CP:42037900 LUCIMAR WACHHOLZ")
        'LUCIMAR WACHHOLZ'
    """
    tokens = normalize_name(description).split()
    while tokens and (tokens[0] in _RAIL_WORDS or _COUNTERPARTY_CODE.match(tokens[0])):
        tokens.pop(0)
    return " ".join(token for token in tokens if not _COUNTERPARTY_CODE.match(token))


def counterparty_name(transaction: BankTransactionRecord) -> str:
    """Normalized counterparty of a transaction.

    Prefers the name isolated by the extractor and falls back to the one
    embedded in the description.
    """
    explicit = normalize_name(transaction.payer_name)
    if explicit:
        return explicit
    return extract_counterparty(transaction.description)


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an extracted timestamp. Unrecognized input yields ``None``."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)

    text = str(raw).strip()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def hours_between(first: datetime, second: datetime) -> float:
    """Absolute difference in hours; naive timestamps are taken as UTC."""
    if (first.tzinfo is None) != (second.tzinfo is None):
        first = first if first.tzinfo else first.replace(tzinfo=UTC)
        second = second if second.tzinfo else second.replace(tzinfo=UTC)
    return abs((first - second).total_seconds()) / 3600


# ============================================================================
# Extraction payload adapters
# ============================================================================


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _confidence(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _text(value: Any) -> str | None:
    return None if value is None else str(value)


def receipt_from_extracted(
    payload: Mapping[str, Any], default_id: str = ""
) -> ReceiptRecord:
    """Build a receipt from an extraction payload (snake_case or camelCase keys).

    The record id is the payload ``id``, else the receipt's transaction id,
    else ``default_id``.
    """
    data = payload.get("extractedData") or payload.get("extracted_data") or payload
    return ReceiptRecord(
        id=str(
            _pick(payload, "id")
            or _pick(data, "transaction_id", "transactionId")
            or default_id
        ),
        amount=_pick(data, "amount"),
        payer_name=_text(_pick(data, "payer_name", "payerName")),
        payer_document=_text(_pick(data, "payer_document", "payerDocument")),
        transaction_date=parse_timestamp(_pick(data, "transaction_date", "transactionDate")),
        transaction_id=_text(_pick(data, "transaction_id", "transactionId")),
        confidence=_confidence(_pick(data, "confidence")),
        file_id=_text(_pick(payload, "file_id", "fileId")),
    )


def transactions_from_statement(
    statement_id: str, payload: Mapping[str, Any]
) -> list[BankTransactionRecord]:
    """Expand one extracted bank statement into its transaction records.

    A statement payload normally carries a ``transactions`` list; a payload
    holding a single line's fields directly yields one record. Entries that
    are not mappings are skipped.
    """
    data = payload.get("extractedData") or payload.get("extracted_data") or payload
    lines = data.get("transactions")

    if not isinstance(lines, list):
        if _pick(data, "amount", "payer_name", "payerName") is None:
            return []
        lines = [data]

    records: list[BankTransactionRecord] = []
    for index, line in enumerate(lines):
        if not isinstance(line, Mapping):
            continue
        reference = _text(_pick(line, "transaction_id", "transactionId"))
        records.append(
            BankTransactionRecord(
                id=str(_pick(line, "id") or f"{statement_id}:{reference or index}"),
                amount=_pick(line, "amount"),
                description=_text(_pick(line, "description")),
                transaction_date=parse_timestamp(_pick(line, "transaction_date", "transactionDate")),
                payer_document=_text(_pick(line, "payer_document", "payerDocument")),
                payer_name=_text(_pick(line, "payer_name", "payerName")),
                statement_id=statement_id,
                transaction_id=reference,
                confidence=_confidence(_pick(line, "confidence")),
            )
        )
    return records


def flatten_statements(
    statements: Iterable[tuple[str, Mapping[str, Any]]],
) -> list[BankTransactionRecord]:
    """Expand several ``(statement_id, payload)`` pairs into one transaction pool."""
    pool: list[BankTransactionRecord] = []
    for statement_id, payload in statements:
        pool.extend(transactions_from_statement(statement_id, payload))
    return pool
