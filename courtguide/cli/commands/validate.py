"""Validate command - check camera placement against detected court lines."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from courtguide.cli.commands.detect import print_court_lines
from courtguide.cli.utils import build_pipeline, confidence_color, handle_errors, load_image

console = Console()


@handle_errors
def validate(
    image: Path = typer.Argument(
        ...,
        help="Image file containing a padel court",
    ),
    save: bool = typer.Option(
        False,
        "--save",
        help="Store the detection as calibration when it validates",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output the validation report as JSON",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Run detection and report whether the camera is positioned correctly.

    Exits with status 2 when the detection does not validate.
    """
    frame = load_image(image)
    pipeline = build_pipeline(config_path)
    court_lines = pipeline.detect(frame)
    report = pipeline.validate_detection(court_lines, frame.width, frame.height)

    saved = False
    if save and report.is_valid:
        saved = pipeline.save_calibration(frame, court_lines)

    if output_json:
        output = report.to_dict()
        output["saved"] = saved
        print(json.dumps(output, indent=2))
    else:
        print_court_lines(court_lines, report.confidence)

        if report.is_valid:
            console.print("\n[green]Camera placement looks good[/green]")
        else:
            console.print(f"\n[yellow]{report.feedback}[/yellow]")
            for issue in report.issues:
                console.print(f"  [red]x[/red] {issue}")

        if report.suggestions:
            console.print("\n[bold]Suggestions:[/bold]")
            for suggestion in report.suggestions:
                console.print(f"  - {suggestion}")

        color = confidence_color(report.confidence)
        console.print(f"\nConfidence: [{color}]{report.confidence:.0%}[/{color}]")
        if saved:
            console.print("[dim]Calibration saved[/dim]")

    if not report.is_valid:
        raise typer.Exit(2)
