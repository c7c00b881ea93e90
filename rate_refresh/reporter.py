from __future__ import annotations

from typing import Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from rate_refresh.domain.models import RateRequest, RateStatus

_STATUS_STYLES = {
    RateStatus.PENDING: "yellow",
    RateStatus.PROCESSING: "blue",
    RateStatus.COMPLETED: "bold green",
    RateStatus.FAILED: "red",
}


def _fmt_ts(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S %Z") if value else "-"


def build_table(records: Iterable[RateRequest], title: str = "Rate Requests") -> Table:
    """Render rate requests as a rich table, one row per record."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Pair", style="magenta")
    table.add_column("Status")
    table.add_column("Rate", justify="right", style="bold green")
    table.add_column("Completed At", style="dim")
    table.add_column("Idempotency Key", style="dim")

    for record in records:
        style = _STATUS_STYLES.get(record.status, "white")
        table.add_row(
            record.id,
            f"{record.base_currency.value}/{record.result_currency.value}",
            f"[{style}]{record.status.value}[/{style}]",
            f"{record.rate:,.6f}" if record.rate is not None else "-",
            _fmt_ts(record.completed_at),
            record.idempotency_key,
        )
    return table


def print_records(
    records: Iterable[RateRequest],
    title: str = "Rate Requests",
    console: Optional[Console] = None,
) -> None:
    """Print rate requests; prints a notice instead of an empty table."""
    console = console or Console()
    records = list(records)
    if not records:
        console.print("[yellow]No rate requests to display.[/yellow]")
        return
    console.print(build_table(records, title=title))
