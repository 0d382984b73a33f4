"""Reconciliation engine facade.

Owns the engine-wide settings and the learning store, and exposes the scoring
and matching operations used by the batch manager and the CLI.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from ..utils.config import get_settings
from ..utils.logging import get_logger
from . import metrics
from .domain.models import (
    BankTransactionRecord,
    ReceiptRecord,
    ReconciliationSummary,
    ScoreResult,
)
from .domain.settings import ReconciliationSettings
from .learning import LearningStore, learning_signature
from .matcher import Matcher, ProgressCallback
from .scoring import ScoreAggregator

logger = get_logger(__name__)


class ReconciliationEngine:
    """Score and match receipts against bank transactions.

    Settings are an immutable snapshot: ``update_settings`` builds a new one and
    swaps the reference, so a run in progress keeps the snapshot it started
    with. Any call may also pass its own settings without touching the
    engine-wide ones.

    Args:
        settings: Engine-wide settings (default: built from ``PIXPROOF_*`` env)
        learning: Learning store to share (default: a new empty store)

    Example:
        >>> engine = ReconciliationEngine()
        >>> summary = engine.reconcile(receipts, transactions)
        >>> engine.confirm_match(summary.matches[0].receipt, summary.matches[0].transaction, True)
        5
    """

    def __init__(
        self,
        settings: ReconciliationSettings | None = None,
        learning: LearningStore | None = None,
    ) -> None:
        self._settings = settings or ReconciliationSettings.from_app_settings(get_settings())
        self._learning = learning if learning is not None else LearningStore()
        self._matcher = Matcher(ScoreAggregator(self._learning))

    @property
    def settings(self) -> ReconciliationSettings:
        return self._settings

    @property
    def learning(self) -> LearningStore:
        return self._learning

    def compute_score(
        self,
        receipt: ReceiptRecord,
        transaction: BankTransactionRecord,
        settings: ReconciliationSettings | None = None,
    ) -> ScoreResult:
        """Score one pair without matching anything."""
        return self._matcher.aggregator.score(receipt, transaction, settings or self._settings)

    def reconcile(
        self,
        receipts: Sequence[ReceiptRecord],
        transactions: Sequence[BankTransactionRecord],
        settings: ReconciliationSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ReconciliationSummary:
        """Match receipts to transactions.

        Args:
            receipts: Receipts, processed in order
            transactions: Candidate transactions, each used at most once
            settings: Settings for this run only (default: engine-wide settings)
            on_progress: Called after each receipt with (processed, total)
        """
        return self._matcher.reconcile(
            receipts, transactions, settings or self._settings, on_progress
        )

    def confirm_match(
        self,
        receipt: ReceiptRecord,
        transaction: BankTransactionRecord,
        is_correct: bool,
        settings: ReconciliationSettings | None = None,
    ) -> int | None:
        """Feed a reviewer verdict to the learning store.

        Args:
            settings: Settings the match was produced with (default: engine-wide)

        Returns:
            The new offset for the pair, or None when learning is disabled
        """
        if not (settings or self._settings).enable_learning:
            logger.debug("learning_disabled_feedback_ignored", receipt_id=receipt.id)
            return None

        signature = learning_signature(receipt, transaction)
        adjustment = self._learning.confirm(signature, is_correct)
        metrics.record_learning_feedback(is_correct)

        logger.info(
            "learning_feedback_recorded",
            receipt_id=receipt.id,
            transaction_id=transaction.id,
            is_correct=is_correct,
            adjustment=adjustment,
        )
        return adjustment

    def update_settings(
        self, partial: Mapping[str, Any] | None = None, **changes: Any
    ) -> ReconciliationSettings:
        """Replace engine-wide settings fields (snake_case or camelCase keys).

        Raises:
            ValidationError: If the resulting settings are invalid
        """
        self._settings = self._settings.merged(partial, **changes)
        logger.info(
            "settings_updated",
            fields=sorted({*(partial or {}), *changes}),
            auto_match_threshold=self._settings.auto_match_threshold,
            manual_review_threshold=self._settings.manual_review_threshold,
        )
        return self._settings

    def export_learning_data(self) -> dict[str, int]:
        return self._learning.export()

    def import_learning_data(self, entries: Mapping[str, Any]) -> None:
        self._learning.load(entries)
