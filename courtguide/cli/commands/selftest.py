"""Selftest command - run the pipeline on synthetic frames."""

import time
from collections.abc import Callable

import typer
from rich.console import Console
from rich.table import Table

from courtguide.cli.utils import handle_errors
from courtguide.core.cache import MemoryStore
from courtguide.core.errors import CameraError
from courtguide.core.models import CourtLineRole, DeviceHints
from courtguide.runtime.pipeline import DetectionOptions, DetectionPipeline
from courtguide.runtime.worker import pipeline_worker
from courtguide.vision.synthetic import court_frame, synthetic_frame

console = Console()

SELFTEST_HINTS = DeviceHints(cpu_cores=8, memory_gb=8.0, gpu_name="Apple M2")


def _new_pipeline() -> DetectionPipeline:
    return DetectionPipeline(store=MemoryStore(), hints=SELFTEST_HINTS)


def check_all_roles() -> str | None:
    frame = court_frame()
    court_lines = _new_pipeline().detect(frame)
    roles = {c.role for c in court_lines}
    missing = [r.value for r in CourtLineRole if r not in roles]
    return f"missing {', '.join(missing)}" if missing else None


def check_validation() -> str | None:
    pipeline = _new_pipeline()
    frame = court_frame()
    report = pipeline.validate_detection(pipeline.detect(frame), frame.width, frame.height)
    return None if report.is_valid else report.feedback


def check_quality_gate() -> str | None:
    flat = synthetic_frame(background=128)
    court_lines = _new_pipeline().detect(flat)
    return f"{len(court_lines)} lines on a flat frame" if court_lines else None


def check_fast_path() -> str | None:
    result = _new_pipeline().detect_with_performance_optimization(
        court_frame(), DetectionOptions(force_fast_mode=True)
    )
    return None if result.court_lines else "no lines on the fast path"


def check_calibration_cache() -> str | None:
    pipeline = _new_pipeline()
    frame = court_frame()
    court_lines = pipeline.detect(frame)
    if not pipeline.save_calibration(frame, court_lines):
        return "calibration not saved"
    record = pipeline.load_calibration(frame)
    if record is None:
        return "calibration not found"
    if pipeline.load_calibration(court_frame(800, 600)) is not None:
        return "calibration matched a different frame size"
    return None


def check_camera_error() -> str | None:
    info = _new_pipeline().report_error(CameraError("Camera permission denied"))
    return None if info.terminal else f"camera error not terminal ({info.action.value})"


def check_worker() -> str | None:
    with pipeline_worker(_new_pipeline()) as worker:
        if not worker.submit(court_frame()):
            return "frame dropped by an idle worker"
        result = worker.get_result(timeout=10.0)
    if result is None:
        return "no result from worker"
    if result.error is not None:
        return f"worker error: {result.error}"
    return None


CHECKS: list[tuple[str, Callable[[], str | None]]] = [
    ("Detects all three guide lines", check_all_roles),
    ("Validates a well-placed camera", check_validation),
    ("Rejects a low-contrast frame", check_quality_gate),
    ("Fast path finds lines", check_fast_path),
    ("Calibration cache round trip", check_calibration_cache),
    ("Camera errors are terminal", check_camera_error),
    ("Background worker delivers results", check_worker),
]


@handle_errors
def selftest() -> None:
    """Run detection on synthetic court frames and report PASS/FAIL per check."""
    table = Table(title="Self Test")
    table.add_column("Check", style="cyan")
    table.add_column("Result", justify="center")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Detail", style="dim")

    failures = 0
    for name, check in CHECKS:
        start = time.perf_counter()
        try:
            problem = check()
        except Exception as e:
            problem = f"{type(e).__name__}: {e}"
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        if problem is None:
            table.add_row(name, "[green]PASS[/green]", f"{elapsed_ms:.0f}", "")
        else:
            failures += 1
            table.add_row(name, "[red]FAIL[/red]", f"{elapsed_ms:.0f}", problem)

    console.print(table)

    if failures:
        console.print(f"\n[red]{failures} of {len(CHECKS)} checks failed[/red]")
        raise typer.Exit(1)
    console.print(f"\n[green]All {len(CHECKS)} checks passed[/green]")
