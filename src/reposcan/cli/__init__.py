"""CLI entry point: registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ..logging_config import setup_logging
from ._common import console

app = typer.Typer(
    name="reposcan",
    help="reposcan - Git repository snapshots, working-tree status and batch scans",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"reposcan {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    ctx: typer.Context,
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also append debug-level logs to this file",
        dir_okay=False,
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """
    Read git repositories into snapshots and keep them cached.

    [bold cyan]Examples:[/bold cyan]

      reposcan history ~/src/project --max-commits 200

      reposcan status .

      reposcan scan ~/src/a ~/src/b --concurrency 4
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=str(log_file) if log_file else None)
    ctx.obj = {"config": config, "verbose": verbose, "quiet": quiet}


def main() -> None:
    app()


# Import subcommands to register them
from .history import history as _history, hash_snapshot as _hash  # noqa: F401, E402
from .status import status as _status  # noqa: F401, E402
from .scan import scan as _scan  # noqa: F401, E402
from .cache import cache_info as _cache_info, cache_clear as _cache_clear  # noqa: F401, E402
