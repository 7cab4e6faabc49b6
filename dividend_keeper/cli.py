"""
Command line interface for the dividend keeper.
"""

import asyncio
import json
from datetime import datetime, timezone

import typer
from rich.console import Console
from rich.table import Table

from dividend_keeper.core.config import settings
from dividend_keeper.core.exceptions import DividendKeeperException
from dividend_keeper.core.logging import setup_logging
from dividend_keeper.models import Checkpoint
from dividend_keeper.scheduler import main as keeper_main
from dividend_keeper.services.checkpoint_codec import WRITE_ORDER, decode_checkpoint
from dividend_keeper.services.checkpoint_store import RedisCheckpointStore
from dividend_keeper.services.income_ledger import readable_income

console = Console()
app = typer.Typer(help="Dividend keeper commands")


@app.command()
def run(
    dry_run: bool = typer.Option(False, "--dry-run", help="Use an in-memory checkpoint store"),
):
    """Run a single keeper invocation and print its result."""
    setup_logging()
    try:
        result = asyncio.run(keeper_main.invoke_once(settings, dry_run=dry_run))
    except DividendKeeperException as e:
        console.print(f"[red]❌ {e.code}: {e.message}[/red]")
        raise typer.Exit(code=1)

    console.print_json(json.dumps(result.to_dict()))


@app.command()
def watch(
    dry_run: bool = typer.Option(False, "--dry-run", help="Use an in-memory checkpoint store"),
):
    """Invoke the keeper every POLL_INTERVAL seconds until interrupted."""
    asyncio.run(keeper_main.main(dry_run=dry_run))


def _render_checkpoint(checkpoint: Checkpoint) -> None:
    config = settings.to_keeper_config()

    summary = Table(title="Checkpoint")
    summary.add_column("Field", style="cyan")
    summary.add_column("Value")
    summary.add_row("Last scanned block", str(checkpoint.last_scanned_block))
    summary.add_row(
        "Last settlement",
        datetime.fromtimestamp(checkpoint.last_settlement_timestamp, tz=timezone.utc).isoformat()
    )
    pending = checkpoint.pending
    summary.add_row("Pending batch", str(pending.batch_id) if pending else "-")
    if pending:
        summary.add_row("Pending up balances", ", ".join(map(str, pending.up_balances)))
        summary.add_row("Pending common balances", ", ".join(map(str, pending.common_balances)))
    console.print(summary)

    income = Table(title="Accrued income")
    income.add_column("Role", style="cyan", justify="right")
    income.add_column("USDC", justify="right")
    income.add_column("MATIC", justify="right")
    report = readable_income(checkpoint.up_income, checkpoint.common_income, config)
    for role_id, entry in report.items():
        income.add_row(role_id, entry["usdc"], entry["matic"])
    console.print(income)


@app.command()
def status():
    """Show the persisted checkpoint."""
    async def _status():
        async with RedisCheckpointStore(url=settings.redis_url, prefix=settings.redis_prefix) as store:
            raw = await store.get_many(WRITE_ORDER)
        return decode_checkpoint(raw, settings.to_keeper_config())

    setup_logging(log_level="WARNING")
    try:
        checkpoint = asyncio.run(_status())
    except DividendKeeperException as e:
        console.print(f"[red]❌ {e.code}: {e.message}[/red]")
        raise typer.Exit(code=1)

    _render_checkpoint(checkpoint)


if __name__ == "__main__":
    app()
