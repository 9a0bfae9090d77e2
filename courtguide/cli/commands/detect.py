"""Detect command - find court guide lines in an image."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from courtguide.cli.utils import (
    build_pipeline,
    confidence_color,
    handle_errors,
    load_image,
    save_overlay,
)
from courtguide.core.models import CourtLine
from courtguide.runtime.pipeline import DetectionOptions
from courtguide.vision.classifier import ValidationReport, detection_confidence

console = Console()


@handle_errors
def detect(
    image: Path = typer.Argument(
        ...,
        help="Image file containing a padel court",
    ),
    fast: bool = typer.Option(
        False,
        "--fast",
        help="Use the fast path (simple edges, coarse transform)",
    ),
    optimized: bool = typer.Option(
        False,
        "--optimized",
        help="Use the device-adaptive path with caching and recovery",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output results as JSON",
    ),
    overlay: Optional[Path] = typer.Option(
        None,
        "--overlay",
        "-o",
        help="Save the image with detected lines drawn on it",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Detect the top back wall, baseline and vertical centre line in an image.

    Prints each detected line with its alignment score and confidence,
    followed by validation feedback for camera positioning.
    """
    frame = load_image(image)
    pipeline = build_pipeline(config_path)

    error_info = None
    if optimized or fast:
        result = pipeline.detect_with_performance_optimization(
            frame, DetectionOptions(force_fast_mode=fast)
        )
        court_lines = result.court_lines
        confidence = result.confidence
        error_info = result.error_info
    else:
        court_lines = pipeline.detect(frame)
        confidence = detection_confidence(court_lines, pipeline.config.classifier)

    report = pipeline.validate_detection(court_lines, frame.width, frame.height)

    if overlay is not None:
        save_overlay(overlay, image, court_lines)

    if output_json:
        output = {
            "image": str(image),
            "width": frame.width,
            "height": frame.height,
            "court_lines": [c.to_dict() for c in court_lines],
            "confidence": round(confidence, 3),
            "validation": report.to_dict(),
            "error": error_info.to_dict() if error_info else None,
        }
        print(json.dumps(output, indent=2))
        return

    console.print(f"[bold]Image:[/bold] {image.name} ({frame.width}x{frame.height})")
    if error_info is not None:
        console.print(f"[yellow]{error_info.user_message}[/yellow]")

    print_court_lines(court_lines, confidence)
    print_validation(report)

    if overlay is not None:
        console.print(f"\n[dim]Overlay saved to: {overlay}[/dim]")


def print_court_lines(court_lines: list[CourtLine], confidence: float) -> None:
    if not court_lines:
        console.print("\n[red]No court lines detected[/red]")
        return

    table = Table(title="Court Lines")
    table.add_column("Role", style="cyan")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("Angle", justify="right")
    table.add_column("Alignment", justify="right")
    table.add_column("Confidence", justify="right")

    for court_line in court_lines:
        line = court_line.line
        color = confidence_color(court_line.confidence)
        table.add_row(
            court_line.role.value,
            f"({line.x1:.0f}, {line.y1:.0f})",
            f"({line.x2:.0f}, {line.y2:.0f})",
            f"{line.angle:.1f}",
            f"{court_line.alignment_score:.2f}",
            f"[{color}]{court_line.confidence:.2f}[/{color}]",
        )

    console.print()
    console.print(table)
    color = confidence_color(confidence)
    console.print(f"Overall confidence: [{color}]{confidence:.0%}[/{color}]")


def print_validation(report: ValidationReport) -> None:
    status = "[green]valid[/green]" if report.is_valid else "[yellow]needs attention[/yellow]"
    console.print(f"\n[bold]Validation:[/bold] {status}")
    console.print(f"  {report.feedback}")
    for suggestion in report.suggestions:
        console.print(f"  [dim]- {suggestion}[/dim]")
