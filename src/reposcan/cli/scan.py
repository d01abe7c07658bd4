"""Scan CLI command -- batch history scans across repositories."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..scheduler import BatchReport, RefreshPolicy, ScanOutcome, ScanScheduler
from . import app
from ._common import console, print_json, resolve_config


@app.command()
def scan(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Working copies to scan"),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Rescan even when the cached snapshot is fresh",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency",
        "-j",
        help="Repositories scanned at once",
        min=1,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Scan several repositories, isolating failures per repository.

    Fresh snapshots in the persistent cache are skipped unless --force is
    given. Exits 1 only when every repository failed.

    [bold cyan]Examples:[/bold cyan]

      reposcan scan ~/src/*

      reposcan scan repo-a repo-b --force --concurrency 2
    """
    config = resolve_config(ctx, concurrency=concurrency)
    policy = RefreshPolicy.FORCE_REFRESH if force else RefreshPolicy.RESPECT_FRESHNESS

    scheduler = ScanScheduler(config)
    try:
        report = asyncio.run(scheduler.scan_batch(paths, policy=policy))
    finally:
        scheduler.close()

    if json_output:
        print_json(report.to_dict())
    else:
        _output_rich(report)

    if report.attempted and report.failed == report.attempted:
        raise typer.Exit(1)


def _output_rich(report: BatchReport) -> None:
    table = Table(title="Scan Results", show_lines=False, pad_edge=True)
    table.add_column("Repository", style="bold")
    table.add_column("Status")
    table.add_column("Commits", justify="right")
    table.add_column("Changed", justify="center")
    table.add_column("Detail", style="dim")

    for result in report.results:
        if result.ok:
            status = "[green]ok[/green]"
            if result.outcome is ScanOutcome.SKIPPED_FRESH:
                status = "[blue]cached[/blue]"
            commits = str(result.snapshot.summary.total_commits) if result.snapshot else "-"
            detail = f"{result.duration_seconds:.2f}s"
        else:
            status = "[red]failed[/red]"
            commits = "-"
            detail = f"[{result.error.code}] {result.error.message}" if result.error else ""
            if result.error and result.error.offline:
                status = "[yellow]offline[/yellow]"
            if result.fallback is not None:
                detail += " (using cached data)"
        table.add_row(
            escape(result.target.identity),
            status,
            commits,
            "yes" if result.changed else "",
            escape(detail),
        )

    console.print(table)
    console.print(
        f"Attempted: {report.attempted}  "
        f"[green]Succeeded: {report.succeeded}[/green]  "
        f"[blue]Skipped: {report.skipped}[/blue]  "
        f"[red]Failed: {report.failed}[/red]"
    )
