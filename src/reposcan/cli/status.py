"""Status CLI command -- current working-tree state."""

import asyncio
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from ..exceptions import RepoScanError
from ..git import GitExecutor, WorkingTreeReader, WorkingTreeState
from . import app
from ._common import console, print_json, report_error, resolve_config

CHANGE_COLORS = {
    "ADDED": "green",
    "MODIFIED": "yellow",
    "DELETED": "red",
    "RENAMED": "cyan",
}


@app.command()
def status(
    ctx: typer.Context,
    path: Path = typer.Argument(Path("."), help="Working copy to inspect"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Show branch, HEAD, ahead/behind and changed files of a working copy.
    """
    config = resolve_config(ctx)
    reader = WorkingTreeReader(
        GitExecutor(
            git_binary=config.git_binary,
            timeout=config.process_timeout_seconds,
            max_output_bytes=config.max_output_bytes,
        )
    )

    try:
        state = asyncio.run(reader.read(path))
    except RepoScanError as e:
        report_error(e)
        raise typer.Exit(1)

    if json_output:
        print_json(state.to_dict())
    else:
        _output_rich(state)


def _output_rich(state: WorkingTreeState) -> None:
    console.print(f"[bold cyan]{escape(state.repo_path)}[/bold cyan]")
    tracking = ""
    if state.ahead or state.behind:
        tracking = f"  [yellow]ahead {state.ahead}, behind {state.behind}[/yellow]"
    console.print(
        f"Branch: [green]{escape(state.branch or '-')}[/green]  HEAD: {state.head or '-'}{tracking}"
    )

    if not state.dirty:
        console.print("[green]Working tree clean[/green]")
        return

    table = Table(show_lines=False, pad_edge=True)
    table.add_column("Change")
    table.add_column("File")
    table.add_column("+", justify="right", style="green")
    table.add_column("-", justify="right", style="red")

    for change in state.file_changes:
        kind = change.change_type.value
        color = CHANGE_COLORS.get(kind, "white")
        table.add_row(
            f"[{color}]{kind}[/{color}]",
            escape(change.file_path),
            str(change.lines_added),
            str(change.lines_removed),
        )
    console.print(table)
