"""Frame preprocessing: grayscale conversion, denoising and the quality gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from courtguide.core.config import QualityConfig
from courtguide.core.errors import FrameError
from courtguide.core.models import ColorFormat, Frame, GrayFrame, ImageStats

logger = logging.getLogger(__name__)

# 3x3 binomial approximation of a Gaussian, normalised by the weights that
# fall inside the image so borders are not darkened.
_BLUR_KERNEL = np.array(
    [[1, 2, 1], [2, 4, 2], [1, 2, 1]],
    dtype=np.float32,
)


@dataclass(frozen=True)
class PreprocessedFrame:
    """Output of the preprocessor for a frame that passed the quality gate."""

    gray: GrayFrame
    blurred: GrayFrame
    stats: ImageStats


@dataclass(frozen=True)
class QualityRejection:
    """A frame that must not be run through detection."""

    stats: ImageStats
    reason: str


def to_grayscale(frame: Frame) -> GrayFrame:
    """Convert a frame to luminance (0.299R + 0.587G + 0.114B). Alpha is ignored."""
    if frame.color_format == ColorFormat.GRAYSCALE:
        data = frame.data
    elif frame.color_format == ColorFormat.RGB:
        data = cv2.cvtColor(frame.data.copy(), cv2.COLOR_RGB2GRAY)
    elif frame.color_format == ColorFormat.RGBA:
        data = cv2.cvtColor(frame.data.copy(), cv2.COLOR_RGBA2GRAY)
    else:
        raise FrameError(f"Unsupported color format: {frame.color_format}")

    return GrayFrame(frame.width, frame.height, data, frame.timestamp)


def gaussian_blur(gray: GrayFrame) -> GrayFrame:
    """Apply the fixed 3x3 blur kernel."""
    src = gray.data.astype(np.float32)
    total = cv2.filter2D(src, -1, _BLUR_KERNEL, borderType=cv2.BORDER_CONSTANT)
    weights = cv2.filter2D(
        np.ones_like(src), -1, _BLUR_KERNEL, borderType=cv2.BORDER_CONSTANT
    )
    blurred = np.clip(np.rint(total / weights), 0, 255).astype(np.uint8)
    return GrayFrame(gray.width, gray.height, blurred, gray.timestamp)


def image_stats(gray: GrayFrame) -> ImageStats:
    """Mean and population standard deviation of the intensities."""
    data = gray.data.astype(np.float64)
    return ImageStats(mean=float(data.mean()), std_dev=float(data.std()))


def normalize_contrast(gray: GrayFrame) -> GrayFrame:
    """Linearly stretch intensities so min maps to 0 and max to 255."""
    low = int(gray.data.min())
    high = int(gray.data.max())
    if high == low:
        return gray

    scaled = (gray.data.astype(np.float32) - low) * (255.0 / (high - low))
    stretched = np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
    return GrayFrame(gray.width, gray.height, stretched, gray.timestamp)


def quality_issue(stats: ImageStats, config: QualityConfig | None = None) -> str | None:
    """Return why an image is unusable for detection, or None if it is usable."""
    config = config or QualityConfig()

    if stats.contrast < config.min_contrast:
        return f"insufficient contrast ({stats.contrast:.1f} < {config.min_contrast:.1f})"
    if stats.brightness < config.min_brightness:
        return f"too dark ({stats.brightness:.1f} < {config.min_brightness:.1f})"
    if stats.brightness > config.max_brightness:
        return f"too bright ({stats.brightness:.1f} > {config.max_brightness:.1f})"
    return None


def preprocess(
    frame: Frame, config: QualityConfig | None = None
) -> PreprocessedFrame | QualityRejection:
    """Grayscale, gate on quality, then blur.

    Rejected frames are returned as ``QualityRejection`` before any blur or
    edge work is done.
    """
    gray = to_grayscale(frame)
    stats = image_stats(gray)

    reason = quality_issue(stats, config)
    if reason is not None:
        logger.debug(f"Frame rejected by quality gate: {reason}")
        return QualityRejection(stats=stats, reason=reason)

    return PreprocessedFrame(gray=gray, blurred=gaussian_blur(gray), stats=stats)
