"""Async batch job manager.

Runs reconciliation jobs in the background with a pool of asyncio worker
tasks reading job ids from a queue. Each job runs exactly once: no retries,
no cancellation. Job state lives in memory only.

Example:
    >>> manager = BatchJobManager()
    >>> job_id = await manager.submit_batch_job("user-1", receipts, transactions)
    >>> job = await manager.wait_for_job(job_id)
    >>> job.result.auto_matched
    3
    >>> await manager.stop()
"""

import asyncio
import time
import uuid
from collections import Counter
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from ...exceptions import ReconciliationError
from ...utils.config import get_settings
from ...utils.logging import clear_correlation_id, get_logger, set_correlation_id
from .. import metrics
from ..domain.enums import JobStatus, MatchStatus
from ..domain.models import BankTransactionRecord, ReceiptRecord
from ..domain.settings import ReconciliationSettings
from ..engine import ReconciliationEngine
from ..normalizer import receipt_from_extracted, transactions_from_statement
from .models import (
    STAGE_RECEIPTS,
    STAGE_RECONCILIATION,
    STAGE_TRANSACTIONS,
    BatchJob,
    BatchReconciliationStats,
    ReceiptInput,
    RuleUsage,
    TransactionInput,
)

logger = get_logger(__name__)

TOP_RULES_LIMIT = 5


def _new_job_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class BatchJobManager:
    """In-memory registry and worker pool for batch reconciliation jobs.

    Features:
    - Per-job settings snapshot: overrides never touch engine-wide settings
    - Progress reporting by stage
    - Reviewer feedback on finished jobs, fed to the shared learning store
    - Optional periodic sweep of old jobs

    Args:
        engine: Engine shared by all jobs (default: a new engine)
        workers: Number of worker tasks (default: ``PIXPROOF_BATCH_WORKERS``)
        cleanup_interval: Seconds between sweeps, 0 disables the sweeper
        job_max_age_hours: Age after which the sweeper evicts jobs
    """

    def __init__(
        self,
        engine: ReconciliationEngine | None = None,
        *,
        workers: int | None = None,
        cleanup_interval: float | None = None,
        job_max_age_hours: float | None = None,
    ):
        config = get_settings()
        self.engine = engine or ReconciliationEngine()
        self.workers = workers or config.batch_workers
        self.cleanup_interval = (
            config.cleanup_interval_seconds if cleanup_interval is None else cleanup_interval
        )
        self.job_max_age_hours = job_max_age_hours or config.job_max_age_hours

        self._jobs: dict[str, BatchJob] = {}
        self._finished: dict[str, asyncio.Event] = {}

        # Processing state
        self._running = False
        self._stopping = False
        self._queue: asyncio.Queue[str | None] | None = None
        self._worker_tasks: list[asyncio.Task] = []
        self._sweeper_task: asyncio.Task | None = None

        # Metrics
        self._total_processed = 0
        self._total_failed = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def start(self) -> None:
        """Start the worker tasks (and the sweeper, if enabled)."""
        if self._running:
            logger.warning("batch_manager_already_running")
            return

        self._running = True
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._queue = queue
        self._worker_tasks = [
            asyncio.create_task(
                self._worker_loop(index, queue), name=f"pixproof-batch-worker-{index}"
            )
            for index in range(self.workers)
        ]
        if self.cleanup_interval > 0:
            self._sweeper_task = asyncio.create_task(self._sweeper_loop())

        logger.info(
            "batch_manager_started",
            workers=self.workers,
            cleanup_interval=self.cleanup_interval,
        )

    async def stop(self) -> None:
        """Finish every queued job, then shut the workers down.

        Submissions are rejected until the shutdown completes.
        """
        queue = self._queue
        if not self._running or self._stopping or queue is None:
            logger.warning("batch_manager_not_running")
            return

        self._stopping = True
        workers = self._worker_tasks
        try:
            await queue.join()
            for _ in workers:
                queue.put_nowait(None)
            await asyncio.gather(*workers)

            if self._sweeper_task:
                self._sweeper_task.cancel()
                await asyncio.gather(self._sweeper_task, return_exceptions=True)
                self._sweeper_task = None
        finally:
            self._worker_tasks = []
            self._running = False
            self._stopping = False

        logger.info(
            "batch_manager_stopped",
            total_processed=self._total_processed,
            total_failed=self._total_failed,
        )

    async def _worker_loop(self, index: int, queue: asyncio.Queue[str | None]) -> None:
        logger.debug("batch_worker_started", worker=index)

        while True:
            job_id = await queue.get()
            try:
                if job_id is None:
                    break
                self._process_job(job_id)
            finally:
                queue.task_done()
                metrics.update_queue_size(queue.qsize())
            # Let other workers and callers run between jobs
            await asyncio.sleep(0)

        logger.debug("batch_worker_stopped", worker=index)

    async def _sweeper_loop(self) -> None:
        while self._running and not self._stopping:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.cleanup_old_jobs(self.job_max_age_hours)
            except Exception as e:
                logger.error("job_cleanup_failed", error=str(e), exc_info=True)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def submit_batch_job(
        self,
        user_id: str,
        receipts: Sequence[ReceiptInput],
        transactions: Sequence[TransactionInput],
        settings_override: Mapping[str, Any] | None = None,
    ) -> str:
        """Register a job and queue it; returns as soon as it is queued.

        Args:
            user_id: Owner of the job
            receipts: Receipt records or extraction payloads
            transactions: Transaction records or whole statement payloads
            settings_override: Partial settings applied to this job only

        Returns:
            The new job id

        Raises:
            ValidationError: If the override produces invalid settings
            ReconciliationError: If the manager is shutting down
        """
        if self._stopping:
            raise ReconciliationError(
                "Batch manager is stopping, job not accepted", context={"user_id": user_id}
            )

        settings = self.engine.settings
        if settings_override:
            settings = settings.merged(settings_override)

        job = BatchJob(
            id=_new_job_id(),
            user_id=user_id,
            receipts=list(receipts),
            transactions=list(transactions),
            settings=settings,
        )
        self._jobs[job.id] = job
        self._finished[job.id] = asyncio.Event()

        if not self._running:
            await self.start()
        queue = self._queue
        if queue is None:
            raise ReconciliationError("Batch queue is not available", context={"job_id": job.id})
        await queue.put(job.id)

        metrics.record_batch_job("submitted")
        metrics.update_queue_size(queue.qsize())
        logger.info(
            "batch_job_submitted",
            job_id=job.id,
            user_id=user_id,
            receipts=len(job.receipts),
            transactions=len(job.transactions),
            overridden=sorted(settings_override) if settings_override else [],
        )
        return job.id

    def _process_job(self, job_id: str) -> None:
        """Run one job to a terminal state. Never raises."""
        job = self._jobs.get(job_id)
        if job is None:
            # Evicted while still queued
            return

        set_correlation_id(job.id)
        try:
            job.mark_processing()
            receipts = self._collect_receipts(job)
            transactions = self._collect_transactions(job)

            job.progress.stage = STAGE_RECONCILIATION
            offset = job.progress.current

            def on_progress(done: int, total: int) -> None:
                job.progress.current = offset + done

            summary = self.engine.reconcile(receipts, transactions, job.settings, on_progress)
            job.mark_completed(summary)

            self._total_processed += 1
            metrics.record_batch_job("completed")
            logger.info(
                "batch_job_completed",
                job_id=job.id,
                user_id=job.user_id,
                auto_matched=summary.auto_matched,
                manual_review=summary.manual_review,
                unmatched=summary.unmatched,
                duration_ms=job.processing_time_ms,
            )
        except Exception as e:
            stage = job.progress.stage
            if not job.status.is_terminal:
                job.mark_failed(str(e) or type(e).__name__)

            self._total_failed += 1
            metrics.record_batch_job("failed")
            logger.error(
                "batch_job_failed",
                job_id=job.id,
                user_id=job.user_id,
                stage=stage,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        finally:
            self._finished[job_id].set()
            clear_correlation_id()

    def _collect_receipts(self, job: BatchJob) -> list[ReceiptRecord]:
        job.progress.stage = STAGE_RECEIPTS
        records: list[ReceiptRecord] = []
        for index, item in enumerate(job.receipts):
            if isinstance(item, ReceiptRecord):
                records.append(item)
            else:
                records.append(receipt_from_extracted(item, default_id=f"receipt_{index}"))
            job.progress.current += 1
        return records

    def _collect_transactions(self, job: BatchJob) -> list[BankTransactionRecord]:
        job.progress.stage = STAGE_TRANSACTIONS
        records: list[BankTransactionRecord] = []
        for index, item in enumerate(job.transactions):
            if isinstance(item, BankTransactionRecord):
                records.append(item)
            else:
                statement_id = str(item.get("id") or f"statement_{index}")
                records.extend(transactions_from_statement(statement_id, item))
            job.progress.current += 1
        return records

    async def wait_for_job(self, job_id: str, timeout: float | None = None) -> BatchJob | None:
        """Wait until a job is completed or failed.

        Returns:
            The job, or None if the id is unknown

        Raises:
            TimeoutError: If the job is still running after ``timeout`` seconds
        """
        event = self._finished.get(job_id)
        if event is not None:
            await asyncio.wait_for(event.wait(), timeout)
        return self._jobs.get(job_id)

    def get_job_status(self, job_id: str) -> BatchJob | None:
        return self._jobs.get(job_id)

    def get_user_jobs(self, user_id: str) -> list[BatchJob]:
        """Jobs of one user, in submission order."""
        return [job for job in self._jobs.values() if job.user_id == user_id]

    # ------------------------------------------------------------------
    # Feedback & settings
    # ------------------------------------------------------------------

    def confirm_match(self, job_id: str, match_id: str, is_correct: bool) -> bool:
        """Apply a reviewer verdict to a match of a completed job.

        Unknown job or match ids are ignored.

        Returns:
            True if the match was found
        """
        job = self._jobs.get(job_id)
        if job is None or job.result is None:
            return False

        match = job.result.get_match(match_id)
        if match is None:
            return False

        self.engine.confirm_match(match.receipt, match.transaction, is_correct, job.settings)

        if not is_correct and match.status is MatchStatus.AUTO_MATCHED:
            match.status = MatchStatus.MANUAL_REVIEW
            job.result.refresh_counts()
            logger.info("match_downgraded", job_id=job_id, match_id=match_id)

        return True

    def update_settings(
        self, partial: Mapping[str, Any] | None = None, **changes: Any
    ) -> ReconciliationSettings:
        """Replace engine-wide settings; jobs already submitted keep their snapshot."""
        return self.engine.update_settings(partial, **changes)

    # ------------------------------------------------------------------
    # Housekeeping & statistics
    # ------------------------------------------------------------------

    def cleanup_old_jobs(self, max_age_hours: float = 24) -> int:
        """Evict jobs created more than ``max_age_hours`` ago unless processing.

        Returns:
            Number of evicted jobs
        """
        cutoff = datetime.now(UTC) - timedelta(hours=max_age_hours)
        stale = [
            job_id
            for job_id, job in self._jobs.items()
            if job.created_at < cutoff and job.status is not JobStatus.PROCESSING
        ]
        for job_id in stale:
            del self._jobs[job_id]
            event = self._finished.pop(job_id, None)
            if event is not None:
                event.set()

        if stale:
            logger.info("old_jobs_cleaned", count=len(stale), max_age_hours=max_age_hours)
        return len(stale)

    def get_batch_stats(self, user_id: str) -> BatchReconciliationStats:
        """Aggregate statistics over a user's completed jobs."""
        jobs = self.get_user_jobs(user_id)
        completed = [job for job in jobs if job.status is JobStatus.COMPLETED]
        results = [job.result for job in completed if job.result is not None]
        if not results:
            return BatchReconciliationStats(total_jobs=len(jobs))

        total_receipts = sum(summary.total_receipts for summary in results)
        total_transactions = sum(summary.total_transactions for summary in results)
        total_matches = sum(summary.auto_matched + summary.manual_review for summary in results)
        average_time = sum(job.processing_time_ms or 0.0 for job in completed) / len(completed)

        usage: Counter[str] = Counter()
        for summary in results:
            for match in summary.matches:
                usage.update(reason.split(":")[0] for reason in match.reasons)

        return BatchReconciliationStats(
            total_jobs=len(jobs),
            completed_jobs=len(completed),
            average_processing_time_ms=average_time,
            total_receipts=total_receipts,
            total_transactions=total_transactions,
            total_matches=total_matches,
            average_match_rate=(
                total_matches / total_receipts * 100 if total_receipts else 0.0
            ),
            top_matching_rules=tuple(
                RuleUsage(rule_name=name, usage=count)
                for name, count in usage.most_common(TOP_RULES_LIMIT)
            ),
        )

    def get_stats(self) -> dict[str, Any]:
        """Get manager statistics.

        Returns:
            Dictionary with queue and job statistics
        """
        by_status = Counter(job.status.value for job in self._jobs.values())
        return {
            "running": self._running,
            "workers": self.workers,
            "queued": self._queue.qsize() if self._queue else 0,
            "jobs": dict(by_status),
            "total_processed": self._total_processed,
            "total_failed": self._total_failed,
        }


# Global manager instance (singleton pattern)
_manager: BatchJobManager | None = None


def get_batch_manager() -> BatchJobManager:
    """Get or create the global batch manager."""
    global _manager

    if _manager is None:
        _manager = BatchJobManager()

    return _manager
