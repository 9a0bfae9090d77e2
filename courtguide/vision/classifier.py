"""Court line classification.

Turns raw Hough lines into at most one line per court role:

    filter_court_lines -> merge_similar_lines -> filter_by_quality
        -> identify_court_lines

Roles are found by expected position (a fraction of the frame height for the
two horizontal roles, of the width for the vertical one) within a tolerance
window. Among candidates the line with the best weighted score of positional
closeness, line confidence and length adequacy wins.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from courtguide.core.config import ClassifierConfig, RoleTarget
from courtguide.core.models import CourtLine, CourtLineRole, Line, LineOrientation
from courtguide.vision.geometry import point_line_distance

logger = logging.getLogger(__name__)

ISSUE_INSUFFICIENT = "Insufficient court lines detected"
ISSUE_DUPLICATE_ROLES = "Duplicate line types detected"
ISSUE_SPACING = "Horizontal line spacing appears incorrect"
ISSUE_OFF_CENTER = "Center line appears off-center"


def split_by_orientation(lines: list[Line]) -> tuple[list[Line], list[Line]]:
    """Split into (horizontal, vertical), each sorted by confidence descending."""
    horizontal = [line for line in lines if line.orientation == LineOrientation.HORIZONTAL]
    vertical = [line for line in lines if line.orientation == LineOrientation.VERTICAL]
    horizontal.sort(key=lambda line: line.confidence, reverse=True)
    vertical.sort(key=lambda line: line.confidence, reverse=True)
    return horizontal, vertical


def axis_deviation(line: Line) -> float:
    """Angle in degrees between the line and its orientation's axis."""
    if line.orientation == LineOrientation.HORIZONTAL:
        return min(line.angle, 180.0 - line.angle)
    return abs(line.angle - 90.0)


def filter_court_lines(
    lines: list[Line], width: int, height: int, config: ClassifierConfig | None = None
) -> list[Line]:
    """Keep lines inside the padel length/confidence/angle envelope."""
    config = config or ClassifierConfig()
    min_length = max(config.min_length_fraction * min(width, height), config.min_length_px)
    max_length = config.max_length_fraction * max(width, height)

    return [
        line
        for line in lines
        if min_length <= line.length <= max_length
        and line.confidence >= config.min_confidence
        and axis_deviation(line) <= config.angle_tolerance_deg
    ]


def _perpendicular_distance(anchor: Line, other: Line) -> float:
    return point_line_distance(other.midpoint, (anchor.x1, anchor.y1), (anchor.x2, anchor.y2))


def _merge_group(group: list[Line]) -> Line:
    anchor = group[0]
    ax = anchor.x2 - anchor.x1
    ay = anchor.y2 - anchor.y1

    weights = [max(line.confidence, 1e-6) for line in group]
    total = sum(weights)
    x1 = y1 = x2 = y2 = confidence = 0.0
    for line, weight in zip(group, weights):
        lx1, ly1, lx2, ly2 = line.x1, line.y1, line.x2, line.y2
        # Align endpoint order with the anchor before averaging
        if (lx2 - lx1) * ax + (ly2 - ly1) * ay < 0:
            lx1, ly1, lx2, ly2 = lx2, ly2, lx1, ly1
        x1 += lx1 * weight
        y1 += ly1 * weight
        x2 += lx2 * weight
        y2 += ly2 * weight
        confidence += line.confidence * weight

    return Line.from_points(
        x1 / total,
        y1 / total,
        x2 / total,
        y2 / total,
        min(1.0, confidence / total),
        orientation=anchor.orientation,
    )


def _merge_pass(lines: list[Line], threshold: float) -> tuple[list[Line], bool]:
    used = [False] * len(lines)
    merged: list[Line] = []
    changed = False

    for i, anchor in enumerate(lines):
        if used[i]:
            continue
        used[i] = True
        group = [anchor]
        for j in range(i + 1, len(lines)):
            other = lines[j]
            if used[j] or other.orientation != anchor.orientation:
                continue
            if _perpendicular_distance(anchor, other) < threshold:
                group.append(other)
                used[j] = True

        if len(group) == 1:
            merged.append(anchor)
        else:
            merged.append(_merge_group(group))
            changed = True

    return merged, changed


def merge_similar_lines(lines: list[Line], threshold: float = 15.0) -> list[Line]:
    """Merge same-orientation lines closer than ``threshold`` pixels.

    Groups are formed greedily around the first unmerged line and replaced
    by their confidence-weighted average. Passes repeat until no pair is
    within the threshold, so merging the output again returns it unchanged.
    """
    result = list(lines)
    while True:
        result, changed = _merge_pass(result, threshold)
        if not changed:
            return result


def filter_by_quality(
    lines: list[Line], max_lines: int = 30, length_reference: float = 100.0
) -> list[Line]:
    """Keep the ``max_lines`` best lines by confidence x length adequacy."""

    def quality(line: Line) -> float:
        return line.confidence * min(1.0, line.length / length_reference)

    return sorted(lines, key=quality, reverse=True)[:max_lines]


def role_target(role: CourtLineRole, config: ClassifierConfig) -> RoleTarget:
    return {
        CourtLineRole.TOP_BACK_WALL: config.top_back_wall,
        CourtLineRole.BASELINE: config.baseline,
        CourtLineRole.VERTICAL_CENTER: config.vertical_center,
    }[role]


def _best_for_role(
    role: CourtLineRole,
    lines: list[Line],
    width: int,
    height: int,
    config: ClassifierConfig,
) -> CourtLine | None:
    target = role_target(role, config)
    dimension = height if role.orientation == LineOrientation.HORIZONTAL else width
    expected = target.fraction * dimension
    tolerance = target.tolerance * dimension
    weights = config.weights

    best: CourtLine | None = None
    for line in lines:
        if line.orientation != role.orientation:
            continue
        distance = abs(line.position - expected)
        if distance > tolerance:
            continue

        closeness = 1.0 - distance / tolerance if tolerance > 0 else 1.0
        length_score = min(1.0, line.length / config.length_reference_px)
        score = (
            weights.position * closeness
            + weights.confidence * line.confidence
            + weights.length * length_score
        )
        score = min(1.0, max(0.0, score))
        if best is None or score > best.confidence:
            best = CourtLine(role=role, line=line, alignment_score=closeness, confidence=score)

    return best


def identify_court_lines(
    lines: list[Line], width: int, height: int, config: ClassifierConfig | None = None
) -> list[CourtLine]:
    """Assign at most one line to each court role, best score first."""
    config = config or ClassifierConfig()
    found = []
    for role in CourtLineRole:
        court_line = _best_for_role(role, lines, width, height, config)
        if court_line is not None:
            found.append(court_line)

    found.sort(key=lambda c: c.confidence, reverse=True)
    return found


def classify_lines(
    lines: list[Line], width: int, height: int, config: ClassifierConfig | None = None
) -> list[CourtLine]:
    """Full classifier chain from raw lines to court lines."""
    config = config or ClassifierConfig()
    candidates = filter_court_lines(lines, width, height, config)
    merged = merge_similar_lines(candidates, config.merge_threshold)
    best = filter_by_quality(merged, config.max_lines, config.length_reference_px)
    court_lines = identify_court_lines(best, width, height, config)
    logger.debug(
        f"Classifier: {len(lines)} lines -> {len(candidates)} candidates -> "
        f"{len(merged)} merged -> roles {[c.role.value for c in court_lines]}"
    )
    return court_lines


def detection_confidence(
    court_lines: list[CourtLine], config: ClassifierConfig | None = None
) -> float:
    """Overall confidence: mean role score with a completeness bonus/penalty."""
    config = config or ClassifierConfig()
    if not court_lines:
        return 0.0

    average = sum(c.confidence for c in court_lines) / len(court_lines)
    roles = {c.role for c in court_lines}
    missing = len(CourtLineRole) - len(roles)
    if missing == 0:
        average += config.all_roles_bonus
    average -= config.missing_role_penalty * missing
    return min(1.0, max(0.0, average))


@dataclass
class ValidationReport:
    """Geometric sanity check of a detection."""

    is_valid: bool
    feedback: str
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "feedback": self.feedback,
            "issues": list(self.issues),
            "suggestions": list(self.suggestions),
            "confidence": round(self.confidence, 3),
        }


def validate_court_lines(
    court_lines: list[CourtLine],
    width: int,
    height: int,
    config: ClassifierConfig | None = None,
) -> ValidationReport:
    """Cross-check role geometry. Never discards lines, only reports."""
    config = config or ClassifierConfig()
    issues: list[str] = []

    if len(court_lines) < 2:
        issues.append(ISSUE_INSUFFICIENT)

    role_counts = Counter(c.role for c in court_lines)
    if any(count > 1 for count in role_counts.values()):
        issues.append(ISSUE_DUPLICATE_ROLES)

    by_role = {c.role: c for c in court_lines}
    top = by_role.get(CourtLineRole.TOP_BACK_WALL)
    baseline = by_role.get(CourtLineRole.BASELINE)
    center = by_role.get(CourtLineRole.VERTICAL_CENTER)

    if top is not None and baseline is not None:
        spacing = abs(baseline.line.position - top.line.position)
        expected = config.expected_spacing_fraction * height
        if abs(spacing - expected) > config.spacing_tolerance_fraction * height:
            issues.append(ISSUE_SPACING)

    if center is not None:
        if abs(center.line.position - width / 2) > config.center_tolerance_fraction * width:
            issues.append(ISSUE_OFF_CENTER)

    if not issues:
        feedback = "Court lines detected successfully"
    elif len(issues) == 1:
        feedback = f"Minor issue: {issues[0]}"
    else:
        feedback = f"Multiple issues detected: {', '.join(issues)}"

    suggestions: list[str] = []
    if not court_lines:
        suggestions += [
            "Try adjusting camera position for better line visibility",
            "Ensure adequate lighting conditions",
            "Check if court lines are clearly visible in frame",
        ]
    elif len(court_lines) < len(CourtLineRole):
        suggestions += [
            "Move camera to capture more court lines",
            "Adjust angle to see horizontal and vertical lines",
            "Ensure camera is parallel to court surface",
        ]
    if ISSUE_SPACING in issues:
        suggestions += [
            "Verify camera is positioned at correct height",
            "Check if camera is tilted or rotated",
        ]
    if ISSUE_OFF_CENTER in issues:
        suggestions += [
            "Center the camera horizontally on the court",
            "Ensure camera is not rotated",
        ]

    return ValidationReport(
        is_valid=not issues,
        feedback=feedback,
        issues=issues,
        suggestions=suggestions,
        confidence=detection_confidence(court_lines, config),
    )
