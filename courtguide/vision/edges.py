"""Edge detection: Canny-style detector plus a cheap Sobel fallback.

The Canny detector runs the four classic stages on a blurred grayscale frame:

1. Sobel gradient magnitude and direction (interior pixels only).
2. Non-maximum suppression along the gradient direction, bucketed into four
   orientation classes.
3. Double thresholding into strong and weak pixels.
4. Hysteresis in a single pass: a weak pixel survives iff one of its eight
   neighbours is strong.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from courtguide.core.config import EdgeConfig
from courtguide.core.models import EdgeMap, GrayFrame, ImageStats

logger = logging.getLogger(__name__)

EDGE = 255
_NEIGHBOURHOOD = np.ones((3, 3), dtype=np.uint8)


def sobel_gradients(gray: GrayFrame) -> tuple[np.ndarray, np.ndarray]:
    """3x3 Sobel derivatives. Border pixels are zero."""
    src = gray.data.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3)
    for g in (gx, gy):
        g[0, :] = 0
        g[-1, :] = 0
        g[:, 0] = 0
        g[:, -1] = 0
    return gx, gy


def non_maximum_suppression(gx: np.ndarray, gy: np.ndarray) -> np.ndarray:
    """Thin gradient ridges to one pixel.

    Each pixel is compared against its two neighbours along the gradient
    direction and kept when it is not smaller than either. Kept magnitudes are
    saturated at 255.
    """
    h, w = gx.shape
    magnitude = np.hypot(gx, gy)
    direction = np.degrees(np.arctan2(gy, gx)) % 180.0

    padded = np.pad(magnitude, 1)

    def shifted(dy: int, dx: int) -> np.ndarray:
        return padded[1 + dy : 1 + dy + h, 1 + dx : 1 + dx + w]

    horizontal = (direction < 22.5) | (direction >= 157.5)
    diagonal_down = (direction >= 22.5) & (direction < 67.5)
    vertical = (direction >= 67.5) & (direction < 112.5)

    before = np.where(
        horizontal,
        shifted(0, -1),
        np.where(diagonal_down, shifted(-1, -1), np.where(vertical, shifted(-1, 0), shifted(-1, 1))),
    )
    after = np.where(
        horizontal,
        shifted(0, 1),
        np.where(diagonal_down, shifted(1, 1), np.where(vertical, shifted(1, 0), shifted(1, -1))),
    )

    keep = (magnitude > 0) & (magnitude >= before) & (magnitude >= after)
    return np.where(keep, np.minimum(magnitude, 255.0), 0.0).astype(np.float32)


def hysteresis(suppressed: np.ndarray, low: float, high: float) -> np.ndarray:
    """Double threshold plus single-pass hysteresis. Returns a 0/255 uint8 map."""
    strong = suppressed >= high
    weak = (suppressed > 0) & (suppressed >= low) & ~strong
    near_strong = cv2.dilate(strong.astype(np.uint8), _NEIGHBOURHOOD) > 0
    edges = strong | (weak & near_strong)
    return edges.astype(np.uint8) * EDGE


def canny(
    blurred: GrayFrame,
    low_threshold: float | None = None,
    high_threshold: float | None = None,
    config: EdgeConfig | None = None,
) -> EdgeMap:
    """Run the four-stage detector on an already blurred frame.

    Thresholds left unset fall back to the configured defaults.
    """
    config = config or EdgeConfig()
    if low_threshold is None:
        low_threshold = config.default_low_threshold
    if high_threshold is None:
        high_threshold = config.default_high_threshold
    if low_threshold > high_threshold:
        low_threshold, high_threshold = high_threshold, low_threshold

    gx, gy = sobel_gradients(blurred)
    suppressed = non_maximum_suppression(gx, gy)
    data = hysteresis(suppressed, low_threshold, high_threshold)

    return EdgeMap(
        width=blurred.width,
        height=blurred.height,
        data=data,
        low_threshold=float(low_threshold),
        high_threshold=float(high_threshold),
        timestamp=blurred.timestamp,
    )


def simple_edges(
    blurred: GrayFrame, threshold: float | None = None, config: EdgeConfig | None = None
) -> EdgeMap:
    """Single-threshold central-difference gradient edges for constrained devices."""
    if threshold is None:
        threshold = (config or EdgeConfig()).simple_threshold
    d = blurred.data.astype(np.int32)
    gx = np.zeros_like(d)
    gy = np.zeros_like(d)
    gx[1:-1, 1:-1] = d[1:-1, 2:] - d[1:-1, :-2]
    gy[1:-1, 1:-1] = d[2:, 1:-1] - d[:-2, 1:-1]

    magnitude = np.sqrt((gx * gx + gy * gy).astype(np.float64))
    data = (magnitude > threshold).astype(np.uint8) * EDGE

    return EdgeMap(
        width=blurred.width,
        height=blurred.height,
        data=data,
        low_threshold=float(threshold),
        high_threshold=float(threshold),
        timestamp=blurred.timestamp,
    )


def edge_density(edges: EdgeMap) -> float:
    """Fraction of pixels marked as edges."""
    return edges.density


def optimize_thresholds(
    stats: ImageStats, config: EdgeConfig | None = None
) -> tuple[float, float]:
    """Derive (low, high) Canny thresholds from image contrast."""
    config = config or EdgeConfig()
    base = min(max(stats.std_dev, config.auto_base_min), config.auto_base_max)
    low = float(round(base * config.auto_low_factor))
    high = float(round(base * config.auto_high_factor))
    logger.debug(f"Auto thresholds from stddev {stats.std_dev:.1f}: low={low}, high={high}")
    return low, high
