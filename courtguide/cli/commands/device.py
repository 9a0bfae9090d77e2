"""Device command - show how this machine is tiered."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from courtguide.cli.utils import handle_errors, load_config
from courtguide.runtime.adaptive import (
    AdaptiveController,
    assess_device,
    performance_recommendations,
)
from courtguide.runtime.hardware import probe_device_hints, process_memory_bytes

console = Console()

TIER_COLORS = {"high": "green", "medium": "yellow", "low": "red"}


@handle_errors
def device(
    gpu: Optional[str] = typer.Option(
        None,
        "--gpu",
        help="GPU name to assess with (e.g. 'Apple M2', 'Adreno 740')",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML configuration file",
    ),
) -> None:
    """Probe hardware and show the tier, pacing and parameters it maps to."""
    config = load_config(config_path)
    if gpu is not None:
        config.device.gpu_name = gpu

    hints = probe_device_hints(config.device)
    profile = assess_device(hints)
    controller = AdaptiveController(
        profile,
        config.adaptive,
        battery_level=hints.battery_level,
        is_charging=hints.is_charging,
    )
    strategy = controller.strategy()
    battery = controller.battery

    if output_json:
        output = {
            "hints": asdict(hints),
            "profile": profile.model_dump(mode="json"),
            "effective_tier": controller.tier.value,
            "strategy": {
                "frame_rate": strategy.frame_rate,
                "skip_frames": strategy.skip_frames,
                "use_fast_mode": strategy.use_fast_mode,
                "max_processing_time_ms": round(strategy.max_processing_time_ms, 1),
            },
            "battery": {
                "frame_rate": battery.frame_rate,
                "quality_tier": battery.quality_tier.value,
                "processing_mode": battery.processing_mode.value,
            },
            "parameters": controller.parameters.model_dump(mode="json"),
            "process_memory_bytes": process_memory_bytes(),
        }
        print(json.dumps(output, indent=2))
        return

    table = Table(title="Device")
    table.add_column("Property", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("CPU cores", str(hints.cpu_cores) if hints.cpu_cores else "unknown")
    table.add_row("Memory", f"{hints.memory_gb:.1f} GB" if hints.memory_gb else "unknown")
    table.add_row("GPU", hints.gpu_name or "none")
    if hints.battery_level is not None:
        charging = " (charging)" if hints.is_charging else ""
        table.add_row("Battery", f"{hints.battery_level:.0f}%{charging}")
    else:
        table.add_row("Battery", "n/a")
    table.add_row("Process memory", f"{process_memory_bytes() / (1024 * 1024):.1f} MB")
    table.add_row("Score", f"{profile.score:.0f} / 100")

    color = TIER_COLORS.get(profile.tier.value, "white")
    table.add_row("Device tier", f"[{color}]{profile.tier.value}[/{color}]")
    tier = controller.tier
    color = TIER_COLORS.get(tier.value, "white")
    table.add_row("Effective tier", f"[{color}]{tier.value}[/{color}]")

    table.add_row("Frame rate", f"{strategy.frame_rate:.0f} fps")
    table.add_row("Process every", f"{strategy.skip_frames} frame(s)")
    table.add_row("Fast mode", "yes" if strategy.use_fast_mode else "no")
    table.add_row("Frame budget", f"{strategy.max_processing_time_ms:.0f} ms")
    table.add_row("Battery mode", battery.processing_mode.value)

    console.print(table)

    params = controller.parameters
    console.print(
        f"\n[bold]Parameters:[/bold] canny {params.canny_low_threshold:.0f}/"
        f"{params.canny_high_threshold:.0f}, rho {params.hough_rho_resolution:g}, "
        f"votes {params.hough_threshold}, min length {params.min_line_length:g}"
    )

    console.print("\n[bold]Recommendations:[/bold]")
    for recommendation in performance_recommendations(tier):
        console.print(f"  - {recommendation}")
