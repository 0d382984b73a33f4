"""Tests for the pixproof command line interface."""

import json

import pytest
from typer.testing import CliRunner

from pixproof import __version__
from pixproof.cli.main import app, load_receipts, load_transactions

pytestmark = pytest.mark.unit

RECEIPTS = [
    {
        "id": "r1",
        "extractedData": {
            "amount": "R$ 100,00",
            "payerName": "João Silva",
            "transactionDate": "2025-07-15T14:30:00",
        },
    },
    {"id": "r2", "extractedData": {"amount": "999,00", "payerName": "Ana"}},
]

STATEMENTS = {
    "statements": [
        {
            "id": "st1",
            "transactions": [
                {
                    "amount": "100.00",
                    "description": "PIX RECEBIDO - JOAO SILVA",
                    "transactionDate": "2025-07-15T14:45:00",
                }
            ],
        }
    ]
}


@pytest.fixture
def runner():
    """Create a CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def input_files(tmp_path):
    receipts = tmp_path / "receipts.json"
    statements = tmp_path / "statements.json"
    receipts.write_text(json.dumps(RECEIPTS), encoding="utf-8")
    statements.write_text(json.dumps(STATEMENTS), encoding="utf-8")
    return str(receipts), str(statements)


class TestLoaders:
    def test_receipts_from_wrapped_list(self, tmp_path):
        path = tmp_path / "r.json"
        path.write_text(json.dumps({"receipts": RECEIPTS}), encoding="utf-8")

        assert [r.id for r in load_receipts(path)] == ["r1", "r2"]

    def test_single_receipt_without_id(self, tmp_path):
        path = tmp_path / "r.json"
        path.write_text(json.dumps({"amount": "10,00"}), encoding="utf-8")

        receipts = load_receipts(path)

        assert [r.id for r in receipts] == ["receipt_0"]

    def test_statement_list(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps(STATEMENTS["statements"] * 2), encoding="utf-8")

        transactions = load_transactions(path)

        assert [t.id for t in transactions] == ["st1:0", "st1:0"]
        assert transactions[0].statement_id == "st1"


class TestReconcileCommand:
    def test_json_output(self, runner, input_files):
        result = runner.invoke(app, ["reconcile", *input_files, "--json"])

        assert result.exit_code == 0, result.output
        summary = json.loads(result.stdout)
        assert summary["auto_matched"] == 1
        assert summary["unmatched"] == 1
        assert summary["matches"][0]["receipt"]["id"] == "r1"
        assert summary["matches"][0]["transaction"]["id"] == "st1:0"

    def test_table_output(self, runner, input_files):
        result = runner.invoke(app, ["reconcile", *input_files])

        assert result.exit_code == 0, result.output
        assert "match_1" in result.stdout
        assert "Auto-matched: 1" in result.stdout

    def test_threshold_override(self, runner, input_files):
        result = runner.invoke(app, ["reconcile", *input_files, "-a", "99", "-r", "10", "--json"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["manual_review"] == 1

    def test_inverted_thresholds_fail(self, runner, input_files):
        result = runner.invoke(app, ["reconcile", *input_files, "-a", "10", "-r", "50"])

        assert result.exit_code == 1

    def test_unreadable_input_fails(self, runner, tmp_path, input_files):
        broken = tmp_path / "broken.json"
        broken.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["reconcile", str(broken), input_files[1]])

        assert result.exit_code == 1
        assert "Cannot read" in result.stdout


class TestScoreCommand:
    def test_score_json(self, runner, input_files):
        result = runner.invoke(
            app, ["score", *input_files, "--receipt", "r1", "--transaction", "st1:0", "--json"]
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["score"] == pytest.approx(94.25, abs=0.01)
        assert payload["reasons"][0].startswith("Exact Amount:")

    def test_unknown_receipt(self, runner, input_files):
        result = runner.invoke(
            app, ["score", *input_files, "--receipt", "nope", "--transaction", "st1:0"]
        )

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_unknown_transaction(self, runner, input_files):
        result = runner.invoke(
            app, ["score", *input_files, "--receipt", "r1", "--transaction", "st9:0"]
        )

        assert result.exit_code == 1


class TestOtherCommands:
    def test_batch(self, runner, input_files):
        result = runner.invoke(app, ["batch", *input_files, "--user", "tester"])

        assert result.exit_code == 0, result.output
        assert "completed" in result.stdout
        assert "Auto-matched: 1" in result.stdout
        assert "Match rate:" in result.stdout

    def test_batch_failed_job(self, runner, mocker, input_files):
        mocker.patch(
            "pixproof.reconciliation.engine.ReconciliationEngine.reconcile",
            side_effect=RuntimeError("boom"),
        )

        result = runner.invoke(app, ["batch", *input_files])

        assert result.exit_code == 1
        assert "failed: boom" in result.stdout

    def test_batch_unregistered_job(self, runner, mocker, input_files):
        mocker.patch("pixproof.cli.main.BatchJobManager.get_job_status", return_value=None)

        result = runner.invoke(app, ["batch", *input_files])

        assert result.exit_code == 1
        assert "not registered" in result.stdout

    def test_rules(self, runner):
        result = runner.invoke(app, ["rules"])

        assert result.exit_code == 0, result.output
        assert "amount_exact" in result.stdout
        assert "Auto-match ≥ 70" in result.stdout

    def test_rules_reflect_environment(self, runner, monkeypatch):
        monkeypatch.setenv("PIXPROOF_AUTO_MATCH_THRESHOLD", "85")

        result = runner.invoke(app, ["rules"])

        assert "Auto-match ≥ 85" in result.stdout

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_invalid_environment(self, runner, monkeypatch):
        monkeypatch.setenv("PIXPROOF_ASSIGNMENT_STRATEGY", "random")

        result = runner.invoke(app, ["rules"])

        assert result.exit_code == 1
        assert "Invalid PIXPROOF_ settings" in result.stdout
