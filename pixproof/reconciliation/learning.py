"""Learning store: score offsets learned from reviewer verdicts.

Each verdict on a match moves the offset of its learning signature by 5
points, bounded to [-20, +20]. Later runs add the offset to the aggregate
score of any pair with the same signature.
"""

import threading
from collections.abc import Mapping
from typing import Any

from ..exceptions import ValidationError
from ..utils.logging import get_logger
from .domain.models import BankTransactionRecord, ReceiptRecord
from .normalizer import counterparty_name, normalize_name, parse_amount

logger = get_logger(__name__)

LEARNING_STEP = 5
MAX_ADJUSTMENT = 20


def learning_signature(receipt: ReceiptRecord, transaction: BankTransactionRecord) -> str:
    """Key identifying "the same kind of pair" across runs.

    Example:
        >>> learning_signature(receipt, transaction)
        '150.00_150.00_JOAO SILVA_JOAO SILVA'
    """
    return "_".join(
        (
            str(parse_amount(receipt.amount)),
            str(parse_amount(transaction.amount)),
            normalize_name(receipt.payer_name),
            counterparty_name(transaction),
        )
    )


def _clamp(value: int) -> int:
    return max(-MAX_ADJUSTMENT, min(MAX_ADJUSTMENT, value))


class LearningStore:
    """Thread-safe mapping of learning signature to score offset.

    Entries never expire. All access goes through one lock, so verdicts
    arriving from several jobs are applied one at a time.

    Example:
        >>> store = LearningStore()
        >>> store.confirm("150.00_150.00_JOAO_JOAO", is_correct=True)
        5
        >>> store.adjustment("150.00_150.00_JOAO_JOAO")
        5
    """

    def __init__(self, entries: Mapping[str, Any] | None = None) -> None:
        self._entries: dict[str, int] = {}
        self._lock = threading.Lock()
        if entries:
            self.load(entries)

    def confirm(self, signature: str, is_correct: bool) -> int:
        """Record one verdict and return the new offset for ``signature``."""
        step = LEARNING_STEP if is_correct else -LEARNING_STEP
        with self._lock:
            value = _clamp(self._entries.get(signature, 0) + step)
            self._entries[signature] = value

        logger.debug("learning_offset_updated", signature=signature, adjustment=value)
        return value

    def adjustment(self, signature: str) -> int:
        with self._lock:
            return self._entries.get(signature, 0)

    def export(self) -> dict[str, int]:
        """Snapshot of all entries."""
        with self._lock:
            return dict(self._entries)

    def load(self, entries: Mapping[str, Any]) -> None:
        """Merge previously exported entries, clamping offsets into range.

        Raises:
            ValidationError: If an offset is not an integer
        """
        parsed: dict[str, int] = {}
        for signature, value in entries.items():
            try:
                parsed[str(signature)] = _clamp(int(value))
            except (TypeError, ValueError) as e:
                raise ValidationError(
                    f"Invalid learning offset for {signature!r}",
                    field="learning_data",
                    value=value,
                    constraint="integer",
                    original_error=e,
                ) from e

        with self._lock:
            self._entries.update(parsed)

        logger.info("learning_data_loaded", entries=len(parsed))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, signature: object) -> bool:
        with self._lock:
            return signature in self._entries
