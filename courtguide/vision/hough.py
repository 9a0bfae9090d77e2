"""Hough line transform over binary edge maps.

Every edge pixel votes for all discretised normal angles theta in [0, pi)
using rho = x*cos(theta) + y*sin(theta). The rho axis is symmetric around
zero and spans the full image diagonal, so lines whose normal points away
from the origin are representable. Peaks are 8-neighbourhood local maxima;
the theta axis is treated as circular (theta = pi wraps to theta = 0 with
rho negated), so vertical lines at theta = 0 are found like any other.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import cv2
import numpy as np
from scipy import ndimage

from courtguide.core.config import HoughConfig
from courtguide.core.models import EdgeMap, Line, orientation_for_angle
from courtguide.vision.geometry import normal_to_direction_deg, rho_theta_to_segment

logger = logging.getLogger(__name__)

# Upper bound on (pixels x angles) materialised per voting chunk
_VOTE_CHUNK = 1 << 20
_NEIGHBOURHOOD = np.ones((3, 3), dtype=np.uint8)


@dataclass(frozen=True)
class HoughPeak:
    """A local maximum of the accumulator."""

    rho: float
    theta: float
    votes: int


@dataclass(frozen=True)
class Accumulator:
    """Vote counts indexed by (rho bin, theta bin)."""

    votes: np.ndarray
    rho_resolution: float
    theta_resolution: float
    rho_offset: int

    def rho_of(self, rho_index: int) -> float:
        return (rho_index - self.rho_offset) * self.rho_resolution

    def theta_of(self, theta_index: int) -> float:
        return theta_index * self.theta_resolution


def theta_bins(theta_resolution: float) -> int:
    """Number of theta buckets covering [0, pi)."""
    return max(1, math.ceil(math.pi / theta_resolution - 1e-9))


def accumulate(
    edges: EdgeMap, rho_resolution: float, theta_resolution: float
) -> Accumulator:
    """Vote every edge pixel into the (rho, theta) accumulator."""
    if rho_resolution <= 0 or theta_resolution <= 0:
        raise ValueError("Hough resolutions must be positive")

    theta_count = theta_bins(theta_resolution)
    thetas = np.arange(theta_count) * theta_resolution
    cos_t = np.cos(thetas)
    sin_t = np.sin(thetas)

    diagonal = math.hypot(edges.width, edges.height)
    offset = math.ceil(diagonal / rho_resolution)
    rho_count = 2 * offset + 1

    ys, xs = np.nonzero(edges.data)
    flat = np.zeros(rho_count * theta_count, dtype=np.int64)
    columns = np.arange(theta_count)
    chunk = max(1, _VOTE_CHUNK // theta_count)

    for start in range(0, xs.size, chunk):
        x = xs[start : start + chunk, None].astype(np.float64)
        y = ys[start : start + chunk, None].astype(np.float64)
        rho = x * cos_t + y * sin_t
        rho_index = np.rint(rho / rho_resolution).astype(np.int64) + offset
        flat += np.bincount(
            (rho_index * theta_count + columns).ravel(), minlength=flat.size
        )

    return Accumulator(
        votes=flat.reshape(rho_count, theta_count),
        rho_resolution=rho_resolution,
        theta_resolution=theta_resolution,
        rho_offset=offset,
    )


def find_peaks(
    accumulator: Accumulator, threshold: int, max_peaks: int | None = None
) -> list[HoughPeak]:
    """Local maxima at or above ``threshold``, sorted by votes descending.

    A cell is a peak when no cell in its 8-neighbourhood has more votes.
    """
    votes = accumulator.votes
    # Column -1 is theta = pi - step, i.e. the same lines as theta = -step
    # with rho negated; the rho axis is symmetric so negation is a row flip.
    wrapped = np.concatenate([votes[::-1, -1:], votes, votes[::-1, :1]], axis=1)
    local_max = ndimage.maximum_filter(wrapped, size=3, mode="constant", cval=0)[:, 1:-1]

    mask = (votes >= threshold) & (votes > 0) & (votes == local_max)
    rho_idx, theta_idx = np.nonzero(mask)
    counts = votes[rho_idx, theta_idx]
    order = np.argsort(-counts, kind="stable")
    if max_peaks is not None:
        order = order[:max_peaks]

    return [
        HoughPeak(
            rho=accumulator.rho_of(int(rho_idx[i])),
            theta=accumulator.theta_of(int(theta_idx[i])),
            votes=int(counts[i]),
        )
        for i in order
    ]


def peak_to_line(
    peak: HoughPeak, width: int, height: int, config: HoughConfig
) -> Line | None:
    """Reconstruct the segment where the peak's line crosses the image."""
    segment = rho_theta_to_segment(peak.rho, peak.theta, width, height)
    if segment is None:
        return None

    x1, y1, x2, y2 = segment
    orientation = orientation_for_angle(
        normal_to_direction_deg(peak.theta), config.orientation_tolerance_deg
    )
    confidence = min(1.0, peak.votes / config.votes_for_full_confidence)
    return Line.from_points(x1, y1, x2, y2, confidence, orientation)


def supported_length(support: np.ndarray, line: Line, max_gap: float) -> float:
    """Longest run along ``line`` covered by ``support``, bridging short gaps.

    ``support`` is a boolean or 0/255 mask of the image. Gaps of up to
    ``max_gap`` pixels between covered samples do not break a run.
    """
    samples = int(math.ceil(line.length)) + 1
    if samples < 2:
        return 0.0

    h, w = support.shape
    xs = np.clip(np.rint(np.linspace(line.x1, line.x2, samples)).astype(np.int64), 0, w - 1)
    ys = np.clip(np.rint(np.linspace(line.y1, line.y2, samples)).astype(np.int64), 0, h - 1)
    hits = np.flatnonzero(support[ys, xs])
    if hits.size == 0:
        return 0.0

    step = line.length / (samples - 1)
    max_step_gap = int(math.floor(max_gap / step)) + 1 if step > 0 else 1
    breaks = np.flatnonzero(np.diff(hits) > max_step_gap)
    starts = np.concatenate(([hits[0]], hits[breaks + 1]))
    ends = np.concatenate((hits[breaks], [hits[-1]]))
    return float((ends - starts).max() * step)


def filter_lines(
    lines: list[Line],
    width: int,
    height: int,
    config: HoughConfig,
    min_line_length: float = 0.0,
) -> list[Line]:
    """Drop implausibly short or long lines and weak lines."""
    min_length = max(
        config.min_length_fraction * min(width, height),
        config.min_length_px,
        min_line_length,
    )
    max_length = config.max_length_fraction * max(width, height)
    return [
        line
        for line in lines
        if min_length <= line.length <= max_length
        and line.confidence >= config.min_confidence
    ]


def detect_lines(
    edges: EdgeMap,
    rho_resolution: float | None = None,
    theta_resolution: float | None = None,
    threshold: int | None = None,
    *,
    min_line_length: float = 0.0,
    max_line_gap: float | None = None,
    config: HoughConfig | None = None,
) -> list[Line]:
    """Detect straight lines in an edge map.

    Args:
        edges: Binary edge map.
        rho_resolution: Distance step of the accumulator in pixels.
        theta_resolution: Angle step of the accumulator in radians.
        threshold: Minimum votes for a peak.
        min_line_length: Extra minimum length on top of the configured floor.
        max_line_gap: When given (with a positive ``min_line_length``), lines
            must be backed by a run of edge pixels at least
            ``min_line_length`` long, allowing gaps up to this size.
        config: Transform configuration. Also supplies the resolution and
            threshold when those are not given.

    Returns:
        Lines ordered by vote count, strongest first.
    """
    config = config or HoughConfig()
    rho_resolution = rho_resolution or config.rho_resolution
    theta_resolution = theta_resolution or config.theta_resolution
    threshold = config.vote_threshold if threshold is None else threshold
    if edges.edge_count == 0:
        return []

    accumulator = accumulate(edges, rho_resolution, theta_resolution)
    peaks = find_peaks(accumulator, threshold, config.max_peaks)

    lines = []
    for peak in peaks:
        line = peak_to_line(peak, edges.width, edges.height, config)
        if line is not None:
            lines.append(line)

    lines = filter_lines(lines, edges.width, edges.height, config, min_line_length)

    if max_line_gap is not None and min_line_length > 0 and lines:
        support = cv2.dilate(edges.data, _NEIGHBOURHOOD) > 0
        lines = [
            line
            for line in lines
            if supported_length(support, line, max_line_gap) >= min_line_length
        ]

    logger.debug(
        f"Hough: {edges.edge_count} edge px, {len(peaks)} peaks, {len(lines)} lines "
        f"(rho={rho_resolution:.2f}, theta={math.degrees(theta_resolution):.2f}deg, "
        f"threshold={threshold})"
    )
    return lines


def detect_lines_fast(
    edges: EdgeMap,
    max_lines: int | None = None,
    config: HoughConfig | None = None,
) -> list[Line]:
    """Coarse, low-threshold detection returning only the most confident lines."""
    config = config or HoughConfig()
    max_lines = config.fast_max_lines if max_lines is None else max_lines

    lines = detect_lines(
        edges,
        config.fast_rho_resolution,
        config.fast_theta_resolution,
        config.fast_vote_threshold,
        config=config,
    )
    return sorted(lines, key=lambda line: line.confidence, reverse=True)[:max_lines]


def optimize_hough_parameters(edges: EdgeMap) -> tuple[float, float, int]:
    """Pick (rho step, theta step, vote threshold) from frame size and edge density."""
    rho = min(max(math.sqrt(edges.width * edges.height) / 100.0, 1.0), 3.0)
    theta = min(max(math.pi / (edges.width + edges.height), math.pi / 180), math.pi / 90)
    threshold = int(min(max(round(edges.density * 1000), 20), 100))
    return rho, theta, threshold
