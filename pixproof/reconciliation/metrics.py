"""Prometheus metrics instrumentation for the reconciliation engine.

Provides metrics collection for monitoring match quality, batch job
throughput and reviewer feedback.
"""

from typing import Any

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from ..utils.config import get_settings
from ..utils.logging import get_logger

logger = get_logger(__name__)

# ============================================================================
# Metric Definitions
# ============================================================================

# Counter: Matches produced by reconciliation runs
matches_total = Counter(
    "pixproof_matches_total",
    "Total number of receipt/transaction matches produced",
    ["status"],  # labels: auto_matched/manual_review
)

# Counter: Receipts left without a match
unmatched_receipts_total = Counter(
    "pixproof_unmatched_receipts_total",
    "Total number of receipts that received no match",
)

# Histogram: Confidence of accepted matches
match_confidence_scores = Histogram(
    "pixproof_match_confidence_scores",
    "Distribution of accepted match confidence scores",
    ["assignment"],  # label: greedy/optimal
    buckets=(15, 30, 50, 60, 70, 80, 90, 95, 100),
)

# Histogram: Reconciliation run duration
reconciliation_duration_seconds = Histogram(
    "pixproof_reconciliation_duration_seconds",
    "Time taken to reconcile one set of receipts and transactions",
    ["assignment"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0),
)

# Counter: Batch jobs by terminal status
batch_jobs_total = Counter(
    "pixproof_batch_jobs_total",
    "Total number of batch reconciliation jobs",
    ["status"],  # labels: submitted/completed/failed
)

# Gauge: Jobs waiting in the queue
batch_queue_size = Gauge(
    "pixproof_batch_queue_size",
    "Number of batch jobs waiting for a worker",
)

# Counter: Reviewer feedback
learning_feedback_total = Counter(
    "pixproof_learning_feedback_total",
    "Total number of match verdicts fed to the learning store",
    ["verdict"],  # labels: correct/incorrect
)


# ============================================================================
# Metrics Server
# ============================================================================


def start_metrics_server(port: int | None = None) -> bool:
    """Start the Prometheus HTTP endpoint when metrics are enabled.

    Args:
        port: Port to expose metrics on (default: ``PIXPROOF_METRICS_PORT``)

    Returns:
        True if the server was started
    """
    settings = get_settings()
    if not settings.metrics_enabled:
        return False

    port = port or settings.metrics_port
    try:
        start_http_server(port)
    except OSError as e:
        # Port already in use, skip
        logger.warning("metrics_server_unavailable", port=port, error=str(e))
        return False

    logger.info("metrics_server_started", port=port)
    return True


# ============================================================================
# Convenience Functions
# ============================================================================


def record_match(status: str, confidence: float, assignment: str) -> None:
    """Record one accepted match.

    Args:
        status: Match status (auto_matched, manual_review)
        confidence: Match confidence (0-100)
        assignment: Assignment strategy that produced it (greedy, optimal)
    """
    matches_total.labels(status=status).inc()
    match_confidence_scores.labels(assignment=assignment).observe(confidence)


def record_unmatched(count: int) -> None:
    if count > 0:
        unmatched_receipts_total.inc(count)


def record_batch_job(status: str) -> None:
    batch_jobs_total.labels(status=status).inc()


def update_queue_size(size: int) -> None:
    batch_queue_size.set(size)


def record_learning_feedback(is_correct: bool) -> None:
    learning_feedback_total.labels(verdict="correct" if is_correct else "incorrect").inc()


# ============================================================================
# Context Managers for Duration Tracking
# ============================================================================


class track_reconciliation_duration:
    """Context manager to track reconciliation run duration."""

    def __init__(self, assignment: str):
        self.assignment = assignment
        self.timer: Any = None

    def __enter__(self) -> "track_reconciliation_duration":
        self.timer = reconciliation_duration_seconds.labels(assignment=self.assignment).time()
        self.timer.__enter__()
        return self

    def __exit__(self, *args: Any) -> None:
        if self.timer:
            self.timer.__exit__(*args)
