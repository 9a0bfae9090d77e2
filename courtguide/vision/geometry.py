"""Geometric helpers for line reconstruction and comparison.

Lines in (rho, theta) form follow the Hough convention used throughout the
package: theta is the angle of the line normal in radians, in [0, pi), and
rho = x*cos(theta) + y*sin(theta) is the signed distance from the origin.
"""

from __future__ import annotations

import math

_EPS = 1e-9


def point_line_distance(
    point: tuple[float, float],
    line_p1: tuple[float, float],
    line_p2: tuple[float, float],
) -> float:
    """Perpendicular distance from point to line defined by two points.

    Returns:
        Unsigned perpendicular distance. Falls back to point distance when the
        two line points coincide.
    """
    x0, y0 = point
    x1, y1 = line_p1
    x2, y2 = line_p2

    dx = x2 - x1
    dy = y2 - y1
    length = math.sqrt(dx * dx + dy * dy)

    if length < 1e-10:
        return math.sqrt((x0 - x1) ** 2 + (y0 - y1) ** 2)

    return abs(dy * x0 - dx * y0 + x2 * y1 - y2 * x1) / length


def segment_length(x1: float, y1: float, x2: float, y2: float) -> float:
    """Euclidean length of a segment."""
    return math.sqrt((x2 - x1) ** 2 + (y2 - y1) ** 2)


def normal_to_direction_deg(theta: float) -> float:
    """Convert a normal angle (radians) to a segment direction in [0, 180)."""
    return (math.degrees(theta) + 90.0) % 180.0


def rho_theta_to_segment(
    rho: float, theta: float, width: int, height: int,
) -> tuple[float, float, float, float] | None:
    """Clip the infinite line (rho, theta) to the image rectangle.

    Intersects the line with x=0, x=width-1, y=0 and y=height-1, keeps the
    intersections that fall on the rectangle border and returns the two
    farthest apart. Endpoints are ordered so that x1 + y1 <= x2 + y2.

    Returns:
        (x1, y1, x2, y2), or None when the line misses the rectangle or only
        touches it at a single point.
    """
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    max_x = width - 1
    max_y = height - 1
    tol = 1e-6

    points: list[tuple[float, float]] = []
    if abs(sin_t) > _EPS:
        for x in (0.0, float(max_x)):
            y = (rho - x * cos_t) / sin_t
            if -tol <= y <= max_y + tol:
                points.append((x, min(max(y, 0.0), float(max_y))))
    if abs(cos_t) > _EPS:
        for y in (0.0, float(max_y)):
            x = (rho - y * sin_t) / cos_t
            if -tol <= x <= max_x + tol:
                points.append((min(max(x, 0.0), float(max_x)), y))

    if len(points) < 2:
        return None

    best: tuple[tuple[float, float], tuple[float, float]] | None = None
    best_dist = 0.0
    for i in range(len(points)):
        for j in range(i + 1, len(points)):
            (ax, ay), (bx, by) = points[i], points[j]
            dist = segment_length(ax, ay, bx, by)
            if dist > best_dist:
                best_dist = dist
                best = (points[i], points[j])

    if best is None or best_dist < 1.0:
        return None

    p1, p2 = best
    if p1[0] + p1[1] > p2[0] + p2[1]:
        p1, p2 = p2, p1
    return (p1[0], p1[1], p2[0], p2[1])
