from __future__ import annotations

from datetime import UTC, datetime

from rich.console import Console
from typer.testing import CliRunner

from scamcache.domain.models import Entry
from scamcache.main import app
from scamcache.reconciler import ReconcileResult
from scamcache.reporter import print_cycle_report, print_entries
from scamcache.scheduler import CycleReport


def _console() -> Console:
    return Console(record=True, width=200)


def test_print_entries_renders_probe_fields() -> None:
    console = _console()
    print_entries(
        [
            Entry(
                id="1",
                name="Fake Wallet",
                url="http://fake-wallet.example",
                ip="198.51.100.4",
                status="Active",
                status_code=200,
                updated=datetime(2026, 1, 1, tzinfo=UTC),
            ),
            Entry(id="2", url="http://never-probed.example"),
        ],
        console=console,
    )

    text = console.export_text()
    assert "Fake Wallet" in text
    assert "198.51.100.4" in text
    assert "2026-01-01T00:00:00+00:00" in text
    assert "2 entries" in text


def test_print_entries_handles_empty_cache() -> None:
    console = _console()
    print_entries([], console=console)

    assert "No entries cached." in console.export_text()


def test_print_cycle_report_shows_result_and_error() -> None:
    console = _console()
    report = CycleReport(
        cycle=4,
        started_at=0.0,
        delivered=True,
        exit_code=0,
        result=ReconcileResult(entries=12, nameservers_added=3, nameservers_removed=1),
        error=None,
        duration_seconds=1.5,
        peak_rss_bytes=50 * 1024 * 1024,
    )
    print_cycle_report(report, console=console)
    print_cycle_report(CycleReport(cycle=5, started_at=0.0, error="launch failed"), console=console)

    text = console.export_text()
    assert "Refresh Cycle #4" in text
    assert "Entries reconciled" in text
    assert "50.00" in text
    assert "launch failed" in text


def test_info_command_prints_configuration() -> None:
    result = CliRunner().invoke(app, ["info"])

    assert result.exit_code == 0
    assert "refresh=" in result.output
    assert "upstream=" in result.output
