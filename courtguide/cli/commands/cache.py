"""Cache commands - inspect or wipe the calibration cache."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from courtguide.cli.utils import handle_errors, load_config
from courtguide.core.cache import CacheKind, CalibrationCache, FileStore

console = Console()

app = typer.Typer(help="Inspect or clear the calibration cache", no_args_is_help=True)


def _open_cache(config_path: Path | None) -> tuple[CalibrationCache, Path]:
    config = load_config(config_path)
    store = FileStore(config.cache.directory)
    return CalibrationCache(store, config.cache), store.directory


@app.command(name="stats")
@handle_errors
def stats(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Show cached entries, their size and how many have expired."""
    cache, directory = _open_cache(config_path)
    cache_stats = cache.stats()

    console.print(f"[bold]Cache directory:[/bold] {directory}")
    console.print(
        f"{cache_stats.total_items} entries, {cache_stats.total_bytes / 1024:.1f} KB, "
        f"{cache_stats.expired_items} expired"
    )

    if not cache_stats.keys:
        return

    table = Table(title="Entries")
    table.add_column("Key", style="cyan")
    table.add_column("Kind")
    for key in sorted(cache_stats.keys):
        kind = key.split(":", 1)[0]
        table.add_row(key, kind)
    console.print(table)


@app.command(name="clear")
@handle_errors
def clear(
    kind: Optional[CacheKind] = typer.Option(
        None,
        "--kind",
        "-k",
        help="Only clear entries of this kind",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Delete cached calibration data, parameters and history."""
    cache, _ = _open_cache(config_path)
    target = kind.value if kind else "all"
    if not yes and not typer.confirm(f"Clear {target} cache entries?"):
        console.print("[yellow]Aborted[/yellow]")
        raise typer.Exit(1)

    removed = cache.clear(kind) if kind else cache.clear_all()
    console.print(f"[green]Removed {removed} entries[/green]")
