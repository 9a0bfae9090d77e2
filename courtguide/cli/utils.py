"""CLI utilities for courtguide."""

import functools
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import cv2
import typer
from rich.console import Console

from courtguide.core.cache import FileStore
from courtguide.core.config import CourtGuideConfig
from courtguide.core.errors import CourtGuideError, FrameError
from courtguide.core.models import CourtLine, Frame
from courtguide.runtime.pipeline import DetectionPipeline

console = Console()

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff", ".webp"}

ROLE_COLORS_BGR = {
    "top_back_wall": (0, 200, 255),
    "baseline": (0, 255, 0),
    "vertical_center": (255, 128, 0),
}

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """Decorator to handle common errors in CLI commands."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CourtGuideError as e:
            console.print(f"\n[red]Error:[/red] {e.message}")
            if e.hint:
                console.print(f"[dim]Hint: {e.hint}[/dim]")
            raise typer.Exit(1)
        except FileNotFoundError as e:
            console.print(f"\n[red]Error:[/red] File not found: {e.filename}")
            raise typer.Exit(1)
        except PermissionError as e:
            console.print(f"\n[red]Error:[/red] Permission denied: {e.filename}")
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            raise typer.Exit(130)
        except MemoryError:
            console.print("\n[red]Error:[/red] Out of memory")
            console.print("[dim]Hint: Try a smaller image[/dim]")
            raise typer.Exit(1)

    return wrapper  # type: ignore[return-value]


def load_config(config_path: Path | None) -> CourtGuideConfig:
    if config_path is not None:
        return CourtGuideConfig.from_yaml(config_path)
    return CourtGuideConfig.find_and_load()


def build_pipeline(
    config_path: Path | None = None, profile_stages: bool = False
) -> DetectionPipeline:
    """Pipeline backed by the on-disk calibration cache."""
    config = load_config(config_path)
    return DetectionPipeline(
        config, store=FileStore(config.cache.directory), profile_stages=profile_stages
    )


def validate_image_file(path: Path) -> None:
    """Validate that an image file exists and has a supported extension."""
    if not path.exists():
        raise FrameError(f"Image file not found: {path}", hint="Check the file path and try again")

    if not path.is_file():
        raise FrameError(f"Not a file: {path}", hint="Provide a path to an image file")

    if path.suffix.lower() not in IMAGE_EXTENSIONS:
        raise FrameError(
            f"Unsupported image format: {path.suffix}",
            hint=f"Supported formats: {', '.join(sorted(IMAGE_EXTENSIONS))}",
        )


def load_image(path: Path) -> Frame:
    """Read an image file as an RGB frame."""
    validate_image_file(path)
    bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if bgr is None:
        raise FrameError(f"Could not decode image: {path}", hint="The file may be corrupt")
    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    return Frame.from_array(rgb)


def save_overlay(path: Path, source: Path, court_lines: list[CourtLine]) -> Path:
    """Draw detected court lines over the source image."""
    image = cv2.imread(str(source), cv2.IMREAD_COLOR)
    if image is None:
        raise FrameError(f"Could not decode image: {source}")

    for court_line in court_lines:
        line = court_line.line
        color = ROLE_COLORS_BGR.get(court_line.role.value, (255, 255, 255))
        p1 = (int(round(line.x1)), int(round(line.y1)))
        p2 = (int(round(line.x2)), int(round(line.y2)))
        cv2.line(image, p1, p2, color, 2)
        cv2.putText(
            image,
            f"{court_line.role.value} {court_line.confidence:.2f}",
            (p1[0] + 5, max(15, p1[1] - 5)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            color,
            1,
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise FrameError(f"Could not write overlay image: {path}")
    return path


def confidence_color(confidence: float) -> str:
    if confidence >= 0.7:
        return "green"
    if confidence >= 0.4:
        return "yellow"
    return "red"
