"""History CLI commands -- read a repository snapshot or its canonical hash."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..cache import ChangeDetector
from ..exceptions import RepoScanError
from ..git import GitExecutor, HistoryReader, RepositorySnapshot
from . import app
from ._common import console, print_json, report_error, resolve_config, short_sha

# Commits shown in the rich table; --json always has the full list
DISPLAY_LIMIT = 20


@app.command()
def history(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Working copy to read"),
    max_commits: Optional[int] = typer.Option(
        None,
        "--max-commits",
        "-n",
        help="Maximum number of commits to read",
        min=1,
    ),
    no_stats: bool = typer.Option(False, "--no-stats", help="Skip per-commit diff statistics"),
    no_branches: bool = typer.Option(False, "--no-branches", help="Skip branches and commit attribution"),
    no_remotes: bool = typer.Option(False, "--no-remotes", help="Skip remotes"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Read the commit history of a git working copy.

    [bold cyan]Examples:[/bold cyan]

      reposcan history .

      reposcan history ~/src/project --max-commits 50 --no-stats

      reposcan history . --json
    """
    config = resolve_config(
        ctx,
        max_commits=max_commits,
        include_stats=False if no_stats else None,
        include_branches=False if no_branches else None,
        include_remotes=False if no_remotes else None,
    )
    snapshot = _read_snapshot(path, config)

    if json_output:
        print_json(snapshot.to_dict())
    else:
        _output_rich(snapshot)


@app.command("hash")
def hash_snapshot(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Working copy to read"),
    ignore_dates: bool = typer.Option(
        False,
        "--ignore-dates",
        help="Exclude commit and tag dates from the hash",
    ),
):
    """
    Print the canonical content hash of a fresh snapshot.

    The hash ignores read timestamps, so it only moves when the
    repository's content does.
    """
    config = resolve_config(ctx)
    snapshot = _read_snapshot(path, config)
    print(ChangeDetector(ignore_commit_dates=ignore_dates).canonical_hash(snapshot))


def _read_snapshot(path: Path, config) -> RepositorySnapshot:
    executor = GitExecutor(
        git_binary=config.git_binary,
        timeout=config.process_timeout_seconds,
        max_output_bytes=config.max_output_bytes,
    )
    reader = HistoryReader(
        executor,
        branch_walk_depth=config.branch_walk_depth,
        stat_concurrency=config.stat_concurrency,
    )
    try:
        return asyncio.run(reader.read(path, config.history_options()))
    except RepoScanError as e:
        report_error(e)
        raise typer.Exit(1)


def _output_rich(snapshot: RepositorySnapshot) -> None:
    """Human-readable Rich output."""
    summary = snapshot.summary

    console.print(f"[bold cyan]{escape(snapshot.repo_path)}[/bold cyan]")
    if snapshot.is_empty:
        console.print("[yellow]No commits yet.[/yellow]")
        return

    console.print(
        f"Branch: [green]{escape(snapshot.current_branch or '-')}[/green]  "
        f"Commits: [yellow]{summary.total_commits}[/yellow]  "
        f"Branches: {summary.total_branches}  "
        f"Contributors: {summary.total_contributors}  "
        f"Tags: {summary.total_tags}  "
        f"Remotes: {summary.total_remotes}"
    )
    console.print(
        f"[dim]{summary.first_commit_date} .. {summary.last_commit_date}  "
        f"+{summary.total_additions} -{summary.total_deletions}[/dim]"
    )

    table = Table(show_lines=False, pad_edge=True)
    table.add_column("Commit", style="cyan")
    table.add_column("Date", style="green")
    table.add_column("Author")
    table.add_column("Message")
    table.add_column("+/-", justify="right", style="yellow")

    for commit in snapshot.commits[:DISPLAY_LIMIT]:
        table.add_row(
            short_sha(commit.sha),
            commit.date[:19].replace("T", " "),
            escape(commit.author.name),
            escape(commit.message),
            f"+{commit.stats.additions} -{commit.stats.deletions}",
        )
    console.print(table)

    hidden = len(snapshot.commits) - DISPLAY_LIMIT
    if hidden > 0:
        console.print(f"[dim]... {hidden} more (use --json for the full list)[/dim]")

    for field_name, reason in snapshot.read_errors:
        console.print(f"[yellow]Partial data:[/yellow] {field_name}: {escape(reason)}")
