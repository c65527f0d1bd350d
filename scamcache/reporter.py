from __future__ import annotations

from typing import Sequence

from rich import box
from rich.console import Console
from rich.table import Table

from scamcache.domain.models import STATUS_ACTIVE, STATUS_INACTIVE, Entry
from scamcache.scheduler import CycleReport

_STATUS_STYLES = {STATUS_ACTIVE: "bold red", STATUS_INACTIVE: "yellow"}


def print_entries(entries: Sequence[Entry], console: Console | None = None) -> None:
    """
    Render the cached entries as a rich table.

    Active listings are highlighted; entries never probed show as "-".
    """
    console = console or Console()

    if not entries:
        console.print("[yellow]No entries cached.[/yellow]")
        return

    table = Table(title="Cached Listings", box=box.ROUNDED, caption=f"{len(entries)} entries")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("URL", style="magenta")
    table.add_column("Category", style="blue")
    table.add_column("IP", style="green")
    table.add_column("Status")
    table.add_column("Code", justify="right")
    table.add_column("Updated", style="dim")

    for entry in entries:
        status = entry.status or "-"
        style = _STATUS_STYLES.get(status, "dim")
        table.add_row(
            entry.id,
            entry.name or "",
            entry.url or "",
            entry.category or "",
            entry.ip or "-",
            f"[{style}]{status}[/{style}]",
            str(entry.status_code) if entry.status_code is not None else "-",
            entry.updated.isoformat(timespec="seconds") if entry.updated else "-",
        )

    console.print(table)


def print_cycle_report(report: CycleReport, console: Console | None = None) -> None:
    console = console or Console()

    table = Table(title=f"Refresh Cycle #{report.cycle}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    table.add_row("Snapshot delivered", "yes" if report.delivered else "[yellow]no[/yellow]")
    table.add_row("Producer exit code", "-" if report.exit_code is None else str(report.exit_code))
    if report.result is not None:
        table.add_row("Entries reconciled", f"{report.result.entries:,}")
        table.add_row("Nameservers added", f"{report.result.nameservers_added:,}")
        table.add_row("Nameservers removed", f"{report.result.nameservers_removed:,}")
    table.add_row("Duration (s)", f"{report.duration_seconds:.1f}")
    mem_mb = (report.peak_rss_bytes or 0) / (1024 * 1024)
    table.add_row("Peak Memory (MB)", f"{mem_mb:.2f}")
    if report.error:
        table.add_row("Error", f"[red]{report.error}[/red]")

    console.print(table)


__all__ = ["print_cycle_report", "print_entries"]
