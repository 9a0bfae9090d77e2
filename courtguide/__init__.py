"""courtguide - padel court line detection for camera framing guides."""

from courtguide.core.config import CourtGuideConfig
from courtguide.core.models import (
    ColorFormat,
    CourtLine,
    CourtLineRole,
    DeviceHints,
    Frame,
    Line,
    LineOrientation,
    PerformanceTier,
    ProcessingParameters,
)
from courtguide.runtime.pipeline import DetectionOptions, DetectionPipeline, DetectionResult

__version__ = "0.1.0"

__all__ = [
    "ColorFormat",
    "CourtGuideConfig",
    "CourtLine",
    "CourtLineRole",
    "DetectionOptions",
    "DetectionPipeline",
    "DetectionResult",
    "DeviceHints",
    "Frame",
    "Line",
    "LineOrientation",
    "PerformanceTier",
    "ProcessingParameters",
]
