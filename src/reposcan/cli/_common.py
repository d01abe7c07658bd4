"""Shared CLI helpers."""

import json
from typing import Any, Optional

import typer
from rich.console import Console
from rich.markup import escape

from ..config import ScanConfig, load_config
from ..exceptions import ConfigurationError, RepoScanError

console = Console()


def resolve_config(ctx: typer.Context, **overrides: Any) -> ScanConfig:
    """Build configuration from the global options plus command flags."""
    obj = ctx.obj or {}
    try:
        return load_config(
            config_file=obj.get("config"),
            verbose=obj.get("verbose", False),
            quiet=obj.get("quiet", False),
            **overrides,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(1)


def report_error(error: RepoScanError) -> None:
    """Print a reposcan error with its code and recovery hint."""
    console.print(f"[red]Error {escape('[' + error.code.value + ']')}:[/red] {escape(error.message)}")
    if error.recovery_hint:
        console.print(f"[dim]{error.recovery_hint}[/dim]")


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def short_sha(sha: Optional[str]) -> str:
    return sha[:8] if sha else "-"
