"""Tests for the async batch job manager."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from pixproof.exceptions import ReconciliationError, ValidationError
from pixproof.reconciliation.batch import BatchJob, BatchJobManager
from pixproof.reconciliation.batch.models import (
    STAGE_COMPLETED,
    STAGE_FAILED,
    STAGE_RECONCILIATION,
)
from pixproof.reconciliation.domain import JobStatus, MatchStatus, ReconciliationRule, RuleType

pytestmark = pytest.mark.unit


@pytest_asyncio.fixture
async def manager(engine):
    """Single-worker manager without the periodic sweeper."""
    manager = BatchJobManager(engine, workers=1, cleanup_interval=0)
    yield manager
    if manager.running:
        await manager.stop()


class TestJobLifecycle:
    @pytest.mark.asyncio
    async def test_submit_returns_queued_job(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        assert job_id.startswith("batch_")
        job = manager.get_job_status(job_id)
        assert job.status is JobStatus.PENDING
        assert job.progress.total == 3
        assert manager.running

    @pytest.mark.asyncio
    async def test_job_completes_with_summary(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        job = await manager.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETED
        assert job.result.auto_matched == 1
        assert job.progress.stage == STAGE_COMPLETED
        assert job.progress.current == job.progress.total
        assert job.progress.percent == 100.0
        assert job.started_at is not None
        assert job.processing_time_ms >= 0
        assert job.error_message is None

    @pytest.mark.asyncio
    async def test_progress_stages(self, manager, mocker, make_receipt, make_transaction):
        observed = []
        reconcile = manager.engine.reconcile

        def spy(receipts, transactions, settings, on_progress):
            job = manager.get_user_jobs("u1")[0]
            observed.append((job.progress.stage, job.progress.current))
            return reconcile(receipts, transactions, settings, on_progress)

        mocker.patch.object(manager.engine, "reconcile", side_effect=spy)

        job_id = await manager.submit_batch_job(
            "u1", [make_receipt(), make_receipt()], [make_transaction()]
        )
        await manager.wait_for_job(job_id, timeout=5)

        # Two receipts and one statement normalized before matching starts
        assert observed == [(STAGE_RECONCILIATION, 3)]

    @pytest.mark.asyncio
    async def test_failed_job_records_error(self, manager, mocker, make_receipt, make_transaction):
        mocker.patch.object(manager.engine, "reconcile", side_effect=RuntimeError("boom"))

        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        job = await manager.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.FAILED
        assert job.error_message == "boom"
        assert job.result is None
        assert job.progress.stage == STAGE_FAILED
        assert manager.get_stats()["total_failed"] == 1

    @pytest.mark.asyncio
    async def test_failure_log_names_the_failing_stage(
        self, manager, mocker, make_receipt, make_transaction
    ):
        mocker.patch.object(manager.engine, "reconcile", side_effect=RuntimeError("boom"))
        logger = mocker.patch("pixproof.reconciliation.batch.manager.logger")

        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        job = await manager.wait_for_job(job_id, timeout=5)

        assert job.progress.stage == STAGE_FAILED
        logger.error.assert_called_once()
        assert logger.error.call_args.args == ("batch_job_failed",)
        assert logger.error.call_args.kwargs["stage"] == STAGE_RECONCILIATION
        assert logger.error.call_args.kwargs["error"] == "boom"

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_the_worker(
        self, manager, settings, make_receipt, make_transaction
    ):
        def explode(receipt, transaction):
            raise ZeroDivisionError("division by zero")

        broken_rule = ReconciliationRule(
            id="broken", name="Broken", weight=5, type=RuleType.CUSTOM, custom_logic=explode
        )

        failed = await manager.submit_batch_job(
            "u1",
            [make_receipt()],
            [make_transaction()],
            settings_override={"rules": settings.rules + (broken_rule,)},
        )
        succeeded = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        failed_job = await manager.wait_for_job(failed, timeout=5)
        assert failed_job.status is JobStatus.FAILED
        assert failed_job.error_message == "division by zero"
        assert (await manager.wait_for_job(succeeded, timeout=5)).status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_accepts_extraction_payloads(self, manager):
        receipts = [
            {
                "fileId": "file-1",
                "extractedData": {
                    "amount": "R$ 100,00",
                    "payerName": "João Silva",
                    "transactionDate": "2025-07-15T14:30:00",
                },
            }
        ]
        statements = [
            {
                "id": "st1",
                "transactions": [
                    {
                        "amount": "100.00",
                        "description": "PIX RECEBIDO - JOAO SILVA",
                        "transactionDate": "2025-07-15T14:45:00",
                    },
                    {"amount": "35.90", "description": "TARIFA"},
                ],
            }
        ]

        job_id = await manager.submit_batch_job("u1", receipts, statements)
        job = await manager.wait_for_job(job_id, timeout=5)

        assert job.status is JobStatus.COMPLETED
        assert job.result.total_transactions == 2
        match = job.result.matches[0]
        assert match.receipt.id == "receipt_0"
        assert match.receipt.file_id == "file-1"
        assert match.transaction.id == "st1:0"
        assert match.status is MatchStatus.AUTO_MATCHED

    @pytest.mark.asyncio
    async def test_stop_drains_the_queue(self, manager, make_receipt, make_transaction):
        job_ids = [
            await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
            for _ in range(3)
        ]

        await manager.stop()

        assert not manager.running
        assert all(manager.get_job_status(j).status is JobStatus.COMPLETED for j in job_ids)

    @pytest.mark.asyncio
    async def test_submit_during_stop_is_rejected(self, manager, make_receipt, make_transaction):
        first = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        stopper = asyncio.create_task(manager.stop())
        await asyncio.sleep(0)

        assert manager.stopping
        with pytest.raises(ReconciliationError):
            await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        await asyncio.wait_for(stopper, timeout=5)

        assert not manager.running
        assert not manager.stopping
        assert manager.get_job_status(first).status is JobStatus.COMPLETED
        assert [job.id for job in manager.get_user_jobs("u1")] == [first]

    @pytest.mark.asyncio
    async def test_submit_after_stop_restarts(self, manager, make_receipt, make_transaction):
        first = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.stop()

        second = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        job = await manager.wait_for_job(second, timeout=5)

        assert manager.running
        assert job.status is JobStatus.COMPLETED
        assert manager.get_job_status(first).status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_wait_for_unknown_job(self, manager):
        assert await manager.wait_for_job("missing") is None

    @pytest.mark.asyncio
    async def test_wait_for_job_times_out(self, manager, settings):
        job = BatchJob(id="stuck", user_id="u1", receipts=[], transactions=[], settings=settings)
        manager._jobs[job.id] = job
        manager._finished[job.id] = asyncio.Event()

        with pytest.raises(TimeoutError):
            await manager.wait_for_job(job.id, timeout=0.01)

    @pytest.mark.asyncio
    async def test_user_jobs_in_submission_order(self, manager, make_receipt, make_transaction):
        first = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.submit_batch_job("u2", [make_receipt()], [make_transaction()])
        second = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        assert [job.id for job in manager.get_user_jobs("u1")] == [first, second]
        assert manager.get_user_jobs("nobody") == []


class TestSettingsIsolation:
    @pytest.mark.asyncio
    async def test_override_applies_to_the_job_only(
        self, manager, make_receipt, make_transaction
    ):
        job_id = await manager.submit_batch_job(
            "u1",
            [make_receipt()],
            [make_transaction()],
            settings_override={"autoMatchThreshold": 99, "manualReviewThreshold": 10},
        )
        job = await manager.wait_for_job(job_id, timeout=5)

        assert job.settings.auto_match_threshold == 99
        assert job.result.matches[0].status is MatchStatus.MANUAL_REVIEW
        assert manager.engine.settings.auto_match_threshold == 70

    @pytest.mark.asyncio
    async def test_invalid_override_is_rejected(self, manager, make_receipt, make_transaction):
        with pytest.raises(ValidationError):
            await manager.submit_batch_job(
                "u1",
                [make_receipt()],
                [make_transaction()],
                settings_override={"auto_match_threshold": 10, "manual_review_threshold": 50},
            )

        assert manager.get_user_jobs("u1") == []

    @pytest.mark.asyncio
    async def test_queued_job_keeps_its_snapshot(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])

        manager.update_settings(auto_match_threshold=99)
        job = await manager.wait_for_job(job_id, timeout=5)

        assert manager.engine.settings.auto_match_threshold == 99
        assert job.result.matches[0].status is MatchStatus.AUTO_MATCHED


class TestFeedback:
    @pytest.mark.asyncio
    async def test_rejecting_auto_match_downgrades_it(
        self, manager, make_receipt, make_transaction
    ):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        job = await manager.wait_for_job(job_id, timeout=5)

        assert manager.confirm_match(job_id, "match_1", is_correct=False) is True

        assert job.result.matches[0].status is MatchStatus.MANUAL_REVIEW
        assert job.result.auto_matched == 0
        assert job.result.manual_review == 1
        assert list(manager.engine.export_learning_data().values()) == [-5]

    @pytest.mark.asyncio
    async def test_confirming_keeps_status(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        job = await manager.wait_for_job(job_id, timeout=5)

        manager.confirm_match(job_id, "match_1", is_correct=True)

        assert job.result.matches[0].status is MatchStatus.AUTO_MATCHED
        assert list(manager.engine.export_learning_data().values()) == [5]

    @pytest.mark.asyncio
    async def test_job_with_learning_disabled(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job(
            "u1", [make_receipt()], [make_transaction()], {"enableLearning": False}
        )
        await manager.wait_for_job(job_id, timeout=5)

        assert manager.confirm_match(job_id, "match_1", is_correct=True) is True
        assert manager.engine.export_learning_data() == {}

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.wait_for_job(job_id, timeout=5)

        assert manager.confirm_match("missing", "match_1", True) is False
        assert manager.confirm_match(job_id, "match_9", True) is False
        assert len(manager.engine.learning) == 0


class TestHousekeeping:
    @pytest.mark.asyncio
    async def test_cleanup_evicts_old_finished_jobs(
        self, manager, make_receipt, make_transaction
    ):
        old = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        fresh = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.wait_for_job(fresh, timeout=5)
        manager.get_job_status(old).created_at = datetime.now(UTC) - timedelta(hours=25)

        assert manager.cleanup_old_jobs(max_age_hours=24) == 1
        assert manager.get_job_status(old) is None
        assert manager.get_job_status(fresh) is not None

    def test_cleanup_skips_processing_jobs(self, engine, settings):
        manager = BatchJobManager(engine, workers=1, cleanup_interval=0)
        job = BatchJob(id="busy", user_id="u1", receipts=[], transactions=[], settings=settings)
        job.mark_processing()
        job.created_at = datetime.now(UTC) - timedelta(days=3)
        manager._jobs[job.id] = job

        assert manager.cleanup_old_jobs(max_age_hours=24) == 0
        assert manager.get_job_status("busy") is job

    @pytest.mark.asyncio
    async def test_batch_stats(self, manager, mocker, make_receipt, make_transaction):
        for _ in range(2):
            job_id = await manager.submit_batch_job(
                "u1", [make_receipt(), make_receipt(amount="999.00")], [make_transaction()]
            )
            await manager.wait_for_job(job_id, timeout=5)

        mocker.patch.object(manager.engine, "reconcile", side_effect=RuntimeError("boom"))
        failed = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.wait_for_job(failed, timeout=5)

        stats = manager.get_batch_stats("u1")

        assert stats.total_jobs == 3
        assert stats.completed_jobs == 2
        assert stats.total_receipts == 4
        assert stats.total_transactions == 2
        assert stats.total_matches == 2
        assert stats.average_match_rate == pytest.approx(50.0)
        assert [usage.rule_name for usage in stats.top_matching_rules] == [
            "Exact Amount",
            "Amount Within Tolerance",
            "Exact Date/Time",
            "Date Within Tolerance",
            "Exact Name",
        ]
        assert all(usage.usage == 2 for usage in stats.top_matching_rules)

    def test_stats_for_unknown_user(self, engine):
        stats = BatchJobManager(engine, cleanup_interval=0).get_batch_stats("nobody")

        assert stats.total_jobs == 0
        assert stats.to_dict()["top_matching_rules"] == []

    @pytest.mark.asyncio
    async def test_manager_stats(self, manager, make_receipt, make_transaction):
        job_id = await manager.submit_batch_job("u1", [make_receipt()], [make_transaction()])
        await manager.wait_for_job(job_id, timeout=5)

        stats = manager.get_stats()

        assert stats["running"] is True
        assert stats["jobs"] == {"completed": 1}
        assert stats["total_processed"] == 1
