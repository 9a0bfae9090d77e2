"""Profile command - per-stage timing breakdown."""

import json
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from courtguide.cli.utils import build_pipeline, handle_errors, load_image

console = Console()

STAGE_ORDER = ("preprocess", "edges", "hough", "classify")


@handle_errors
def profile(
    image: Path = typer.Argument(
        ...,
        help="Image file to profile detection on",
    ),
    runs: int = typer.Option(
        10,
        "--runs",
        "-n",
        min=1,
        help="Number of detection runs",
    ),
    output_json: Optional[Path] = typer.Option(
        None,
        "--output-json",
        "-o",
        help="Save profile results to JSON file",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Profile detection to find which stage dominates processing time."""
    frame = load_image(image)
    pipeline = build_pipeline(config_path, profile_stages=True)

    console.print(f"[bold]Profiling:[/bold] {image.name} ({frame.width}x{frame.height})")
    console.print(f"[dim]Runs: {runs}[/dim]")

    found = 0
    start = time.perf_counter()
    for _ in range(runs):
        found = len(pipeline.detect(frame))
    wall_ms = (time.perf_counter() - start) * 1000.0

    report = pipeline.profiler.report()
    report["runs"] = runs
    report["wall_ms"] = round(wall_ms, 3)
    report["lines_found"] = found

    console.print(f"\n[green]Profiling complete![/green]")
    console.print(f"Found {found} court lines, {wall_ms / runs:.1f} ms per frame\n")

    _print_profile_table(report)

    if output_json:
        output_json.parent.mkdir(parents=True, exist_ok=True)
        with open(output_json, "w") as f:
            json.dump(report, f, indent=2)
        console.print(f"\n[dim]Profile saved to: {output_json}[/dim]")


def _print_profile_table(report: dict) -> None:
    """Print a formatted profile table."""
    console.print(f"[bold]Total stage time:[/bold] {report['total_ms']:.1f} ms")
    console.print(f"[dim]Entries: {report['entries_count']}[/dim]\n")

    if not report["stages"]:
        console.print("[yellow]No profiling data collected[/yellow]")
        return

    table = Table(title="Time Breakdown by Stage")
    table.add_column("Stage", style="cyan")
    table.add_column("Total (ms)", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Count", justify="right")
    table.add_column("Avg (ms)", justify="right")
    table.add_column("Max (ms)", justify="right")

    ordered = [s for s in STAGE_ORDER if s in report["stages"]]
    ordered += sorted(s for s in report["stages"] if s not in STAGE_ORDER)
    for stage in ordered:
        data = report["stages"][stage]
        table.add_row(
            stage,
            f"{data['total_ms']:.1f}",
            f"{data['percentage']:.1f}%",
            str(data["count"]),
            f"{data['avg_ms']:.2f}",
            f"{data['max_ms']:.2f}",
        )

    console.print(table)
