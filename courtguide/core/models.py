"""Core domain models for courtguide."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from courtguide.core.errors import FrameError


class ColorFormat(str, Enum):
    """Pixel layout of a raw frame buffer."""

    RGB = "rgb"
    RGBA = "rgba"
    GRAYSCALE = "grayscale"

    @property
    def channels(self) -> int:
        return {"rgb": 3, "rgba": 4, "grayscale": 1}[self.value]


class LightingCondition(str, Enum):
    """Coarse lighting bucket, ordered dim < normal < bright."""

    DIM = "dim"
    NORMAL = "normal"
    BRIGHT = "bright"

    @property
    def level(self) -> int:
        return {"dim": 0, "normal": 1, "bright": 2}[self.value]

    @classmethod
    def from_brightness(cls, brightness: float) -> LightingCondition:
        if brightness < 80:
            return cls.DIM
        if brightness > 170:
            return cls.BRIGHT
        return cls.NORMAL


class Orientation(str, Enum):
    """Camera orientation derived from frame dimensions."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"

    @classmethod
    def of(cls, width: int, height: int) -> Orientation:
        return cls.LANDSCAPE if width >= height else cls.PORTRAIT


@dataclass(frozen=True, eq=False)
class Frame:
    """A raw camera frame.

    ``data`` is stored as a read-only uint8 array shaped (height, width) for
    grayscale frames and (height, width, channels) otherwise. Flat buffers are
    accepted as long as their size matches the declared dimensions.
    """

    width: int
    height: int
    data: np.ndarray
    color_format: ColorFormat = ColorFormat.RGB
    timestamp: float = 0.0

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise FrameError(
                f"Invalid frame dimensions: {self.width}x{self.height}",
                hint="Width and height must be positive",
            )

        channels = self.color_format.channels
        expected = self.width * self.height * channels
        array = np.asarray(self.data)
        if array.size != expected:
            raise FrameError(
                f"Frame buffer has {array.size} values, expected {expected} "
                f"for {self.width}x{self.height} {self.color_format.value}",
                hint="Check the declared color format and dimensions",
            )

        shape: tuple[int, ...] = (self.height, self.width)
        if channels > 1:
            shape = (self.height, self.width, channels)
        pixels = np.ascontiguousarray(array, dtype=np.uint8).reshape(shape).view()
        pixels.flags.writeable = False
        object.__setattr__(self, "data", pixels)

    @classmethod
    def from_bytes(
        cls,
        buffer: bytes | bytearray | memoryview,
        width: int,
        height: int,
        color_format: ColorFormat = ColorFormat.RGB,
        timestamp: float = 0.0,
    ) -> Frame:
        """Wrap a byte-per-channel buffer."""
        data = np.frombuffer(buffer, dtype=np.uint8)
        return cls(width, height, data, color_format, timestamp)

    @classmethod
    def from_array(cls, array: np.ndarray, timestamp: float = 0.0) -> Frame:
        """Wrap an (H, W), (H, W, 3) or (H, W, 4) uint8 array, inferring the format."""
        if array.ndim == 2:
            color_format = ColorFormat.GRAYSCALE
        elif array.ndim == 3 and array.shape[2] == 3:
            color_format = ColorFormat.RGB
        elif array.ndim == 3 and array.shape[2] == 4:
            color_format = ColorFormat.RGBA
        else:
            raise FrameError(
                f"Unsupported array shape: {array.shape}",
                hint="Expected (H, W), (H, W, 3) or (H, W, 4)",
            )
        return cls(array.shape[1], array.shape[0], array, color_format, timestamp)

    @property
    def orientation(self) -> Orientation:
        return Orientation.of(self.width, self.height)

    @property
    def size_bytes(self) -> int:
        return int(self.data.nbytes)


@dataclass(frozen=True, eq=False)
class GrayFrame:
    """Single-channel 8-bit image, (height, width)."""

    width: int
    height: int
    data: np.ndarray
    timestamp: float = 0.0


@dataclass(frozen=True)
class ImageStats:
    """Global intensity statistics of a grayscale image."""

    mean: float
    std_dev: float

    @property
    def brightness(self) -> float:
        return self.mean

    @property
    def contrast(self) -> float:
        return self.std_dev

    @property
    def lighting(self) -> LightingCondition:
        return LightingCondition.from_brightness(self.mean)


@dataclass(frozen=True, eq=False)
class EdgeMap:
    """Binary edge image: every value is 0 or 255."""

    width: int
    height: int
    data: np.ndarray
    low_threshold: float
    high_threshold: float
    timestamp: float = 0.0

    @property
    def edge_count(self) -> int:
        return int(np.count_nonzero(self.data))

    @property
    def density(self) -> float:
        total = self.width * self.height
        return self.edge_count / total if total else 0.0


class LineOrientation(str, Enum):
    """Orientation band of a detected line."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


def orientation_for_angle(angle_deg: float, tolerance_deg: float = 15.0) -> LineOrientation:
    """Band a direction angle in [0, 180) into horizontal or vertical.

    Angles outside both tolerance bands go to the nearer band; exact ties go
    to horizontal.
    """
    angle = angle_deg % 180.0
    from_horizontal = min(angle, 180.0 - angle)
    from_vertical = abs(angle - 90.0)
    if from_horizontal <= tolerance_deg:
        return LineOrientation.HORIZONTAL
    if from_vertical <= tolerance_deg:
        return LineOrientation.VERTICAL
    if from_vertical < from_horizontal:
        return LineOrientation.VERTICAL
    return LineOrientation.HORIZONTAL


@dataclass(frozen=True)
class Line:
    """A straight line segment in image coordinates.

    ``angle`` is the direction of the segment in degrees, normalised to
    [0, 180): 0 is horizontal, 90 is vertical.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    angle: float
    orientation: LineOrientation
    length: float
    confidence: float

    @classmethod
    def from_points(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        confidence: float,
        orientation: LineOrientation | None = None,
    ) -> Line:
        """Build a line, deriving angle, length and (optionally) orientation."""
        angle = math.degrees(math.atan2(y2 - y1, x2 - x1)) % 180.0
        length = math.hypot(x2 - x1, y2 - y1)
        if orientation is None:
            orientation = orientation_for_angle(angle)
        return cls(
            x1=float(x1),
            y1=float(y1),
            x2=float(x2),
            y2=float(y2),
            angle=angle,
            orientation=orientation,
            length=length,
            confidence=float(confidence),
        )

    @property
    def midpoint(self) -> tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def position(self) -> float:
        """Perpendicular position: mid y for horizontal lines, mid x for vertical."""
        mx, my = self.midpoint
        return my if self.orientation == LineOrientation.HORIZONTAL else mx

    def to_dict(self) -> dict[str, Any]:
        return {
            "x1": round(self.x1, 2),
            "y1": round(self.y1, 2),
            "x2": round(self.x2, 2),
            "y2": round(self.y2, 2),
            "angle": round(self.angle, 2),
            "orientation": self.orientation.value,
            "length": round(self.length, 2),
            "confidence": round(self.confidence, 3),
        }


class CourtLineRole(str, Enum):
    """Semantic guide lines expected in a correctly framed padel court."""

    TOP_BACK_WALL = "top_back_wall"
    BASELINE = "baseline"
    VERTICAL_CENTER = "vertical_center"

    @property
    def orientation(self) -> LineOrientation:
        if self is CourtLineRole.VERTICAL_CENTER:
            return LineOrientation.VERTICAL
        return LineOrientation.HORIZONTAL


@dataclass(frozen=True)
class CourtLine:
    """A line bound to a court role.

    ``alignment_score`` is the positional closeness to the role's expected
    position; ``confidence`` is the weighted role score that also accounts for
    line confidence and length.
    """

    role: CourtLineRole
    line: Line
    alignment_score: float
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "alignment_score": round(self.alignment_score, 3),
            "confidence": round(self.confidence, 3),
            "line": self.line.to_dict(),
        }


class ProcessingParameters(BaseModel):
    """Tunable detection parameters. Replaced wholesale, never mutated."""

    model_config = ConfigDict(frozen=True)

    canny_low_threshold: float = Field(default=50.0, ge=0)
    canny_high_threshold: float = Field(default=150.0, ge=0)
    hough_rho_resolution: float = Field(default=1.0, gt=0)
    hough_theta_resolution: float = Field(default=math.pi / 180, gt=0)
    hough_threshold: int = Field(default=50, ge=1)
    min_line_length: float = Field(default=30.0, ge=0)
    max_line_gap: float = Field(default=10.0, ge=0)


class PerformanceTier(str, Enum):
    """Coarse device performance bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]

    @classmethod
    def lowest(cls, *tiers: PerformanceTier) -> PerformanceTier:
        return min(tiers, key=lambda t: t.rank)


@dataclass
class DeviceHints:
    """Hardware hints supplied by the host or probed locally."""

    cpu_cores: int | None = None
    memory_gb: float | None = None
    gpu_name: str | None = None
    battery_level: float | None = None  # percent, 0-100
    is_charging: bool | None = None


class DeviceProfile(BaseModel):
    """Assessed device capability. Computed once and cached."""

    tier: PerformanceTier
    score: float
    cpu_cores: int | None = None
    memory_gb: float | None = None
    gpu_name: str | None = None
    assessed_at: float = 0.0


class QualityLevel(str, Enum):
    """How a frame was handled by the optimized detection path."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    SKIPPED = "skipped"
    FALLBACK = "fallback"
    ERROR = "error"

    @classmethod
    def for_tier(cls, tier: PerformanceTier) -> QualityLevel:
        return cls(tier.value)


@dataclass
class PerformanceMetrics:
    """Per-frame metrics reported by the optimized detection path."""

    processing_time_ms: float
    frame_rate: float
    memory_usage_bytes: int
    error_rate: float
    quality_level: QualityLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "processing_time_ms": round(self.processing_time_ms, 2),
            "frame_rate": round(self.frame_rate, 2),
            "memory_usage_bytes": self.memory_usage_bytes,
            "error_rate": round(self.error_rate, 3),
            "quality_level": self.quality_level.value,
        }
