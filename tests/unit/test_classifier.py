"""Tests for court line classification and validation."""

from __future__ import annotations

import pytest

from courtguide.core.config import ClassifierConfig
from courtguide.core.models import CourtLine, CourtLineRole, Line, LineOrientation
from courtguide.vision.classifier import (
    ISSUE_DUPLICATE_ROLES,
    ISSUE_INSUFFICIENT,
    ISSUE_OFF_CENTER,
    ISSUE_SPACING,
    classify_lines,
    detection_confidence,
    filter_by_quality,
    filter_court_lines,
    identify_court_lines,
    merge_similar_lines,
    split_by_orientation,
    validate_court_lines,
)

W, H = 640, 480


def hline(y: float, confidence: float = 0.9, x1: float = 0, x2: float = W - 1) -> Line:
    return Line.from_points(x1, y, x2, y, confidence)


def vline(x: float, confidence: float = 0.9, y1: float = 0, y2: float = H - 1) -> Line:
    return Line.from_points(x, y1, x, y2, confidence)


def court(role: CourtLineRole, line: Line, score: float = 0.9) -> CourtLine:
    return CourtLine(role=role, line=line, alignment_score=1.0, confidence=score)


class TestFilterCourtLines:
    def test_keeps_axis_aligned_lines(self) -> None:
        lines = [hline(72), vline(320)]
        assert filter_court_lines(lines, W, H) == lines

    def test_drops_short_lines(self) -> None:
        # Floor is max(0.15 * 480, 30) = 72
        assert filter_court_lines([hline(72, x2=60)], W, H) == []

    def test_drops_low_confidence(self) -> None:
        assert filter_court_lines([hline(72, confidence=0.3)], W, H) == []

    def test_drops_tilted_lines(self) -> None:
        tilted = Line.from_points(0, 0, 300, 120, 0.9, LineOrientation.HORIZONTAL)
        assert filter_court_lines([tilted], W, H) == []

    def test_split_by_orientation(self) -> None:
        weak = hline(10, confidence=0.5)
        strong = hline(20, confidence=0.9)
        horizontal, vertical = split_by_orientation([weak, vline(5), strong])
        assert horizontal == [strong, weak]
        assert len(vertical) == 1


class TestMergeSimilarLines:
    def test_merges_close_parallel_lines(self) -> None:
        merged = merge_similar_lines([hline(70, 0.8), hline(74, 0.8)])
        assert len(merged) == 1
        assert merged[0].position == pytest.approx(72.0)

    def test_weighted_by_confidence(self) -> None:
        merged = merge_similar_lines([hline(70, 0.9), hline(80, 0.3)])
        assert len(merged) == 1
        assert merged[0].position == pytest.approx((70 * 0.9 + 80 * 0.3) / 1.2)

    def test_keeps_distant_lines(self) -> None:
        assert len(merge_similar_lines([hline(72), hline(360)])) == 2

    def test_never_merges_across_orientation(self) -> None:
        # The vertical line's midpoint is 0 px from the horizontal line
        assert len(merge_similar_lines([hline(240), vline(320)])) == 2

    def test_reversed_endpoints_are_aligned(self) -> None:
        merged = merge_similar_lines([hline(70), Line.from_points(W - 1, 74, 0, 74, 0.9)])
        assert len(merged) == 1
        assert merged[0].length == pytest.approx(W - 1)

    def test_idempotent(self) -> None:
        lines = [hline(y, 0.5 + y / 1000) for y in (60, 70, 78, 90, 104, 300)]
        once = merge_similar_lines(lines)
        assert merge_similar_lines(once) == once

    def test_merge_chain_reaches_fixed_point(self) -> None:
        # 100 and 112 merge to 106, which is then within reach of 120
        merged = merge_similar_lines([hline(100), hline(112), hline(120)], threshold=15)
        assert len(merged) == 1


class TestFilterByQuality:
    def test_ranks_by_confidence_and_length(self) -> None:
        short_confident = hline(10, confidence=1.0, x2=50)  # quality 0.5
        long_weaker = hline(20, confidence=0.7)  # quality 0.7
        assert filter_by_quality([short_confident, long_weaker]) == [long_weaker, short_confident]

    def test_truncates(self) -> None:
        lines = [hline(y) for y in range(0, 400, 10)]
        assert len(filter_by_quality(lines, max_lines=30)) == 30


class TestIdentifyCourtLines:
    def test_all_roles(self) -> None:
        court_lines = identify_court_lines([hline(72), hline(360), vline(320)], W, H)
        roles = {c.role for c in court_lines}
        assert roles == set(CourtLineRole)
        by_role = {c.role: c for c in court_lines}
        assert by_role[CourtLineRole.TOP_BACK_WALL].line.position == pytest.approx(72)
        assert by_role[CourtLineRole.BASELINE].line.position == pytest.approx(360)
        assert by_role[CourtLineRole.VERTICAL_CENTER].alignment_score == pytest.approx(1.0)

    def test_sorted_by_confidence(self) -> None:
        court_lines = identify_court_lines(
            [hline(72, 0.5), hline(360, 0.9), vline(320, 0.7)], W, H
        )
        scores = [c.confidence for c in court_lines]
        assert scores == sorted(scores, reverse=True)

    def test_out_of_tolerance_line_unassigned(self) -> None:
        # Top target 72 +- 48, baseline target 360 +- 48
        court_lines = identify_court_lines([hline(192), hline(240), vline(320)], W, H)
        assert [c.role for c in court_lines] == [CourtLineRole.VERTICAL_CENTER]

    def test_best_candidate_wins(self) -> None:
        court_lines = identify_court_lines([hline(100, 0.9), hline(74, 0.9)], W, H)
        assert len(court_lines) == 1
        assert court_lines[0].line.position == pytest.approx(74)

    def test_score_weights(self) -> None:
        (court_line,) = identify_court_lines([hline(72, confidence=0.5)], W, H)
        # 0.4 * 1.0 (on target) + 0.4 * 0.5 + 0.2 * 1.0 (long)
        assert court_line.confidence == pytest.approx(0.8)

    def test_one_line_per_role(self) -> None:
        court_lines = identify_court_lines([hline(70), hline(75), hline(80)], W, H)
        assert len(court_lines) == 1

    def test_empty(self) -> None:
        assert identify_court_lines([], W, H) == []


class TestClassifyLines:
    def test_full_chain(self) -> None:
        lines = [hline(70), hline(74), hline(360), vline(318), vline(322), hline(240, x2=20)]
        court_lines = classify_lines(lines, W, H)
        assert {c.role for c in court_lines} == set(CourtLineRole)

    def test_config_thresholds_apply(self) -> None:
        config = ClassifierConfig(min_confidence=0.95)
        assert classify_lines([hline(72), hline(360), vline(320)], W, H, config) == []


class TestDetectionConfidence:
    def test_complete_detection_bonus(self) -> None:
        court_lines = [
            court(CourtLineRole.TOP_BACK_WALL, hline(72), 0.7),
            court(CourtLineRole.BASELINE, hline(360), 0.7),
            court(CourtLineRole.VERTICAL_CENTER, vline(320), 0.7),
        ]
        assert detection_confidence(court_lines) == pytest.approx(0.9)

    def test_missing_role_penalty(self) -> None:
        court_lines = [court(CourtLineRole.BASELINE, hline(360), 0.8)]
        assert detection_confidence(court_lines) == pytest.approx(0.6)

    def test_clamped(self) -> None:
        court_lines = [
            court(CourtLineRole.TOP_BACK_WALL, hline(72), 1.0),
            court(CourtLineRole.BASELINE, hline(360), 1.0),
            court(CourtLineRole.VERTICAL_CENTER, vline(320), 1.0),
        ]
        assert detection_confidence(court_lines) == 1.0
        assert detection_confidence([]) == 0.0


class TestValidateCourtLines:
    def test_valid(self) -> None:
        court_lines = [
            court(CourtLineRole.TOP_BACK_WALL, hline(72)),
            court(CourtLineRole.BASELINE, hline(360)),
            court(CourtLineRole.VERTICAL_CENTER, vline(320)),
        ]
        report = validate_court_lines(court_lines, W, H)
        assert report.is_valid
        assert report.issues == []
        assert report.feedback == "Court lines detected successfully"
        assert report.suggestions == []

    def test_empty(self) -> None:
        report = validate_court_lines([], W, H)
        assert not report.is_valid
        assert report.issues == [ISSUE_INSUFFICIENT]
        assert "Ensure adequate lighting conditions" in report.suggestions

    def test_spacing(self) -> None:
        # Expected spacing 288 +- 96
        court_lines = [
            court(CourtLineRole.TOP_BACK_WALL, hline(100)),
            court(CourtLineRole.BASELINE, hline(150)),
            court(CourtLineRole.VERTICAL_CENTER, vline(320)),
        ]
        report = validate_court_lines(court_lines, W, H)
        assert report.issues == [ISSUE_SPACING]
        assert report.feedback == f"Minor issue: {ISSUE_SPACING}"
        assert "Check if camera is tilted or rotated" in report.suggestions

    def test_off_center_and_duplicates(self) -> None:
        court_lines = [
            court(CourtLineRole.VERTICAL_CENTER, vline(100)),
            court(CourtLineRole.VERTICAL_CENTER, vline(110)),
        ]
        report = validate_court_lines(court_lines, W, H)
        assert ISSUE_DUPLICATE_ROLES in report.issues
        assert ISSUE_OFF_CENTER in report.issues
        assert report.feedback.startswith("Multiple issues detected: ")

    def test_partial_detection_suggestions(self) -> None:
        court_lines = [
            court(CourtLineRole.TOP_BACK_WALL, hline(72)),
            court(CourtLineRole.BASELINE, hline(360)),
        ]
        report = validate_court_lines(court_lines, W, H)
        assert report.is_valid
        assert "Move camera to capture more court lines" in report.suggestions

    def test_to_dict(self) -> None:
        data = validate_court_lines([], W, H).to_dict()
        assert data["is_valid"] is False
        assert data["confidence"] == 0.0
