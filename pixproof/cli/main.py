"""PixProof command line interface.

Reads receipts and bank statements as produced by the extraction layer (JSON)
and reconciles them.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from pixproof import __version__
from pixproof.exceptions import ConfigurationError, PixProofError, ReconciliationError
from pixproof.reconciliation import metrics
from pixproof.reconciliation.batch import BatchJob, BatchJobManager
from pixproof.reconciliation.domain import (
    AssignmentStrategy,
    BankTransactionRecord,
    MatchStatus,
    ReceiptRecord,
    ReconciliationSettings,
    ReconciliationSummary,
)
from pixproof.reconciliation.engine import ReconciliationEngine
from pixproof.reconciliation.normalizer import flatten_statements, receipt_from_extracted
from pixproof.utils.config import get_settings
from pixproof.utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="pixproof",
    help="🧾 Reconcile PIX receipts against bank statements",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)
console = Console()
logger = get_logger(__name__)

STATUS_STYLES = {
    MatchStatus.AUTO_MATCHED: "[green]✅ auto[/]",
    MatchStatus.MANUAL_REVIEW: "[yellow]⏳ review[/]",
}


# ============================================================================
# Input loading
# ============================================================================


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]✗ Cannot read {path}: {escape(str(e))}[/]")
        raise typer.Exit(1) from e


def _as_list(data: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(data, dict) and isinstance(data.get(key), list):
        data = data[key]
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def load_receipts(path: Path) -> list[ReceiptRecord]:
    """Receipts from a list of extraction payloads (or ``{"receipts": [...]}``)."""
    return [
        receipt_from_extracted(item, default_id=f"receipt_{index}")
        for index, item in enumerate(_as_list(_read_json(path), "receipts"))
    ]


def load_transactions(path: Path) -> list[BankTransactionRecord]:
    """Transactions from one statement payload or a list of them."""
    statements = _as_list(_read_json(path), "statements")
    return flatten_statements(
        (str(item.get("id") or f"statement_{index}"), item) for index, item in enumerate(statements)
    )


def _build_settings(
    auto_threshold: float | None,
    review_threshold: float | None,
    strict: bool,
    optimal: bool,
) -> ReconciliationSettings:
    changes: dict[str, Any] = {}
    if auto_threshold is not None:
        changes["auto_match_threshold"] = auto_threshold
    if review_threshold is not None:
        changes["manual_review_threshold"] = review_threshold
    if strict:
        changes["strict_mode"] = True
    if optimal:
        changes["assignment"] = AssignmentStrategy.OPTIMAL

    base = ReconciliationSettings.from_app_settings(get_settings())
    try:
        return base.merged(changes)
    except PixProofError as e:
        console.print(f"[red]✗ {escape(e.message)}[/]")
        raise typer.Exit(1) from e


# ============================================================================
# Output
# ============================================================================


def _print_summary(summary: ReconciliationSummary) -> None:
    table = Table(title="🔍 Matches", show_header=True)
    table.add_column("Match", style="cyan")
    table.add_column("Receipt")
    table.add_column("Transaction")
    table.add_column("Confidence", justify="right", style="bold")
    table.add_column("Status")

    for match in summary.matches:
        table.add_row(
            match.id,
            match.receipt.id,
            match.transaction.id,
            f"{match.confidence:.1f}%",
            STATUS_STYLES.get(match.status, match.status.value),
        )

    console.print(table)
    console.print(f"\n[bold]Receipts:[/] {summary.total_receipts}")
    console.print(f"[bold]Transactions:[/] {summary.total_transactions}")
    console.print(f"  [green]✅ Auto-matched: {summary.auto_matched}[/]")
    console.print(f"  [yellow]⏳ Review needed: {summary.manual_review}[/]")
    console.print(f"  [dim]❔ Unmatched: {summary.unmatched}[/]")


# ============================================================================
# Commands
# ============================================================================


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]PixProof[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
) -> None:
    """PixProof - PIX receipt reconciliation."""
    try:
        settings = get_settings()
    except ConfigurationError as e:
        console.print(f"[red]✗ {escape(str(e))}[/]")
        raise typer.Exit(1) from e

    configure_logging(
        log_level="DEBUG" if verbose else settings.log_level,
        json_logs=settings.json_logs,
        dev_mode=settings.debug,
    )


@app.command()
def reconcile(
    receipts_file: Path = typer.Argument(..., help="Receipts JSON", exists=True, dir_okay=False),
    statements_file: Path = typer.Argument(
        ..., help="Bank statements JSON", exists=True, dir_okay=False
    ),
    auto_threshold: Optional[float] = typer.Option(
        None, "--auto-threshold", "-a", min=0, max=100, help="Auto-match threshold"
    ),
    review_threshold: Optional[float] = typer.Option(
        None, "--review-threshold", "-r", min=0, max=100, help="Manual review threshold"
    ),
    strict: bool = typer.Option(False, "--strict", help="Require amount agreement"),
    optimal: bool = typer.Option(False, "--optimal", help="Use optimal assignment"),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
):
    """🔍 Reconcile receipts against bank statements.

    Examples:
        pixproof reconcile receipts.json statements.json

        pixproof reconcile receipts.json statements.json --auto-threshold 80 --strict
    """
    settings = _build_settings(auto_threshold, review_threshold, strict, optimal)
    receipts = load_receipts(receipts_file)
    transactions = load_transactions(statements_file)

    summary = ReconciliationEngine(settings).reconcile(receipts, transactions)

    if as_json:
        typer.echo(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
        return
    _print_summary(summary)


@app.command()
def score(
    receipts_file: Path = typer.Argument(..., help="Receipts JSON", exists=True, dir_okay=False),
    statements_file: Path = typer.Argument(
        ..., help="Bank statements JSON", exists=True, dir_okay=False
    ),
    receipt_id: str = typer.Option(..., "--receipt", help="Receipt id"),
    transaction_id: str = typer.Option(..., "--transaction", help="Transaction id"),
    as_json: bool = typer.Option(False, "--json", help="Print the score as JSON"),
):
    """🎯 Explain the score of one receipt/transaction pair."""
    receipt = next((r for r in load_receipts(receipts_file) if r.id == receipt_id), None)
    if receipt is None:
        console.print(f"[red]✗ Receipt {receipt_id} not found[/]")
        raise typer.Exit(1)

    transaction = next(
        (t for t in load_transactions(statements_file) if t.id == transaction_id), None
    )
    if transaction is None:
        console.print(f"[red]✗ Transaction {transaction_id} not found[/]")
        raise typer.Exit(1)

    engine = ReconciliationEngine()
    result = engine.compute_score(receipt, transaction)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    console.print(f"[bold]Score:[/] {result.score:.2f}")
    for reason in result.reasons:
        console.print(f"  • {reason}")


async def _run_batch(
    user_id: str,
    receipts: list[ReceiptRecord],
    transactions: list[BankTransactionRecord],
) -> tuple[BatchJobManager, BatchJob]:
    manager = BatchJobManager(cleanup_interval=0)
    job_id = await manager.submit_batch_job(user_id, receipts, transactions)
    job = manager.get_job_status(job_id)
    if job is None:
        await manager.stop()
        raise ReconciliationError("Submitted job is not registered", context={"job_id": job_id})

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task(job.progress.stage, total=job.progress.total)
        while not job.status.is_terminal:
            progress.update(task, description=job.progress.stage, completed=job.progress.current)
            await asyncio.sleep(0.05)
        progress.update(task, description=job.progress.stage, completed=job.progress.current)

    await manager.stop()
    return manager, job


@app.command()
def batch(
    receipts_file: Path = typer.Argument(..., help="Receipts JSON", exists=True, dir_okay=False),
    statements_file: Path = typer.Argument(
        ..., help="Bank statements JSON", exists=True, dir_okay=False
    ),
    user_id: str = typer.Option("cli", "--user", "-u", help="Job owner"),
):
    """📦 Run a reconciliation as a batch job with progress."""
    metrics.start_metrics_server()
    receipts = load_receipts(receipts_file)
    transactions = load_transactions(statements_file)

    try:
        manager, job = asyncio.run(_run_batch(user_id, receipts, transactions))
    except PixProofError as e:
        console.print(f"[red]✗ {escape(str(e))}[/]")
        raise typer.Exit(1) from e

    if job.result is None:
        console.print(f"[red]✗ Job {job.id} failed: {escape(job.error_message or '')}[/]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Job {job.id} {job.status}[/]")
    _print_summary(job.result)

    stats = manager.get_batch_stats(user_id)
    console.print(f"\n[bold]Match rate:[/] {stats.average_match_rate:.1f}%")
    console.print(f"[bold]Processing time:[/] {stats.average_processing_time_ms:.1f} ms")
    if stats.top_matching_rules:
        console.print("[bold]Top rules:[/]")
        for usage in stats.top_matching_rules:
            console.print(f"  • {usage.rule_name}: {usage.usage}")


@app.command()
def rules():
    """📋 List the reconciliation rules in effect."""
    settings = ReconciliationSettings.from_app_settings(get_settings())

    table = Table(title="📋 Reconciliation Rules", show_header=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Weight", justify="right")
    table.add_column("Tolerance", justify="right")
    table.add_column("Enabled", justify="center")

    for rule in settings.rules:
        if rule.tolerance.amount is not None:
            tolerance = f"{rule.tolerance.amount:g}%"
        elif rule.tolerance.date is not None:
            tolerance = f"{rule.tolerance.date:g}h"
        else:
            tolerance = "-"
        table.add_row(
            rule.id,
            rule.name,
            rule.type.value,
            f"{rule.weight:g}",
            tolerance,
            "✓" if rule.enabled else "✗",
        )

    console.print(table)
    console.print(
        f"\nAuto-match ≥ {settings.auto_match_threshold:g} · "
        f"review ≥ {settings.manual_review_threshold:g}"
    )


if __name__ == "__main__":
    app()
