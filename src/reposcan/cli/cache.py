"""Cache management commands."""

from datetime import datetime

import typer

from ..cache import SnapshotCache
from ..exceptions import CacheError
from . import app
from ._common import console, report_error, resolve_config


def _open_cache(ctx: typer.Context) -> tuple[SnapshotCache, float]:
    config = resolve_config(ctx)
    if config.cache_dir is None:
        console.print(
            "Status: [red]Disabled[/red] "
            "(set cache_dir in reposcan.toml or REPOSCAN_CACHE_DIR)"
        )
        raise typer.Exit(0)
    try:
        cache = SnapshotCache(
            max_entries=config.cache_max_entries,
            cache_dir=config.cache_dir,
            name="history",
        )
    except CacheError as e:
        report_error(e)
        raise typer.Exit(1)
    return cache, config.history_max_age_seconds


@app.command()
def cache_info(ctx: typer.Context):
    """Show persistent cache information and statistics."""
    cache, max_age = _open_cache(ctx)
    with cache:
        cache.warm()
        stats = cache.stats()
        health = cache.health(max_age)

    console.print("[bold cyan]reposcan Cache Info[/bold cyan]")
    console.print()
    console.print("Status: [green]Enabled[/green]")
    console.print(f"Directory: [blue]{stats.get('directory', 'N/A')}[/blue]")
    console.print(f"Entries: [yellow]{stats.get('disk_entries', 0)}[/yellow]")
    console.print(f"Size: [yellow]{stats.get('volume', 0)} bytes[/yellow]")

    if health.total:
        newest = datetime.fromtimestamp(health.newest_update).isoformat(timespec="seconds")
        console.print(
            f"Fresh: [green]{health.fresh}[/green]  Stale: [red]{health.stale}[/red]  "
            f"Newest: {newest}"
        )


@app.command()
def cache_clear(ctx: typer.Context):
    """Clear the persistent snapshot cache."""
    cache, _ = _open_cache(ctx)
    with cache:
        cache.clear()
    console.print("[green]Cache cleared successfully[/green]")
