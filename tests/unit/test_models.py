"""Tests for core domain models."""

from __future__ import annotations

import numpy as np
import pytest

from courtguide.core.errors import FrameError
from courtguide.core.models import (
    ColorFormat,
    CourtLineRole,
    EdgeMap,
    Frame,
    LightingCondition,
    Line,
    LineOrientation,
    Orientation,
    PerformanceTier,
    ProcessingParameters,
    QualityLevel,
    orientation_for_angle,
)


class TestFrame:
    def test_from_bytes_reshapes_rgb(self) -> None:
        buffer = bytes(range(24))
        frame = Frame.from_bytes(buffer, width=4, height=2)
        assert frame.data.shape == (2, 4, 3)
        assert frame.data[1, 3, 2] == 23

    def test_grayscale_shape(self) -> None:
        frame = Frame(3, 2, np.zeros(6, dtype=np.uint8), ColorFormat.GRAYSCALE)
        assert frame.data.shape == (2, 3)

    def test_buffer_size_mismatch(self) -> None:
        with pytest.raises(FrameError):
            Frame.from_bytes(bytes(10), width=4, height=2)

    def test_rgba_buffer_declared_as_rgb(self) -> None:
        with pytest.raises(FrameError):
            Frame(4, 2, np.zeros(32, dtype=np.uint8), ColorFormat.RGB)

    def test_non_positive_dimensions(self) -> None:
        with pytest.raises(FrameError):
            Frame(0, 10, np.zeros(0, dtype=np.uint8))

    def test_data_is_read_only(self) -> None:
        frame = Frame.from_array(np.zeros((2, 2, 3), dtype=np.uint8))
        with pytest.raises(ValueError):
            frame.data[0, 0, 0] = 1

    def test_from_array_infers_format(self) -> None:
        assert Frame.from_array(np.zeros((2, 2), np.uint8)).color_format == ColorFormat.GRAYSCALE
        assert Frame.from_array(np.zeros((2, 2, 3), np.uint8)).color_format == ColorFormat.RGB
        assert Frame.from_array(np.zeros((2, 2, 4), np.uint8)).color_format == ColorFormat.RGBA

    def test_from_array_rejects_odd_channels(self) -> None:
        with pytest.raises(FrameError):
            Frame.from_array(np.zeros((2, 2, 2), np.uint8))

    def test_orientation(self) -> None:
        landscape = Frame.from_array(np.zeros((4, 8), np.uint8))
        portrait = Frame.from_array(np.zeros((8, 4), np.uint8))
        assert landscape.orientation == Orientation.LANDSCAPE
        assert portrait.orientation == Orientation.PORTRAIT


class TestLightingCondition:
    def test_buckets(self) -> None:
        assert LightingCondition.from_brightness(40) == LightingCondition.DIM
        assert LightingCondition.from_brightness(80) == LightingCondition.NORMAL
        assert LightingCondition.from_brightness(170) == LightingCondition.NORMAL
        assert LightingCondition.from_brightness(171) == LightingCondition.BRIGHT


class TestOrientationForAngle:
    def test_axis_bands(self) -> None:
        assert orientation_for_angle(0) == LineOrientation.HORIZONTAL
        assert orientation_for_angle(170) == LineOrientation.HORIZONTAL
        assert orientation_for_angle(90) == LineOrientation.VERTICAL
        assert orientation_for_angle(100) == LineOrientation.VERTICAL

    def test_ambiguous_goes_to_nearer_band(self) -> None:
        assert orientation_for_angle(30) == LineOrientation.HORIZONTAL
        assert orientation_for_angle(60) == LineOrientation.VERTICAL
        assert orientation_for_angle(120) == LineOrientation.VERTICAL

    def test_exact_tie_is_horizontal(self) -> None:
        assert orientation_for_angle(45) == LineOrientation.HORIZONTAL
        assert orientation_for_angle(135) == LineOrientation.HORIZONTAL


class TestLine:
    def test_from_points_derives_geometry(self) -> None:
        line = Line.from_points(0, 10, 100, 10, confidence=0.8)
        assert line.angle == pytest.approx(0.0)
        assert line.length == pytest.approx(100.0)
        assert line.orientation == LineOrientation.HORIZONTAL
        assert line.position == pytest.approx(10.0)

    def test_vertical_position_is_mid_x(self) -> None:
        line = Line.from_points(50, 0, 50, 200, confidence=1.0)
        assert line.angle == pytest.approx(90.0)
        assert line.orientation == LineOrientation.VERTICAL
        assert line.position == pytest.approx(50.0)

    def test_angle_normalised_for_reversed_points(self) -> None:
        forward = Line.from_points(0, 0, 100, 10, confidence=1.0)
        backward = Line.from_points(100, 10, 0, 0, confidence=1.0)
        assert forward.angle == pytest.approx(backward.angle)
        assert 0.0 <= backward.angle < 180.0

    def test_to_dict(self) -> None:
        data = Line.from_points(0, 0, 10, 0, confidence=0.5).to_dict()
        assert data["orientation"] == "horizontal"
        assert data["length"] == 10.0


class TestEdgeMap:
    def test_density(self) -> None:
        data = np.zeros((10, 10), dtype=np.uint8)
        data[0, :5] = 255
        edges = EdgeMap(10, 10, data, 50, 150)
        assert edges.edge_count == 5
        assert edges.density == pytest.approx(0.05)


class TestEnums:
    def test_role_orientation(self) -> None:
        assert CourtLineRole.TOP_BACK_WALL.orientation == LineOrientation.HORIZONTAL
        assert CourtLineRole.BASELINE.orientation == LineOrientation.HORIZONTAL
        assert CourtLineRole.VERTICAL_CENTER.orientation == LineOrientation.VERTICAL

    def test_lowest_tier(self) -> None:
        assert PerformanceTier.lowest(PerformanceTier.HIGH, PerformanceTier.MEDIUM) == (
            PerformanceTier.MEDIUM
        )
        assert PerformanceTier.lowest(PerformanceTier.LOW, PerformanceTier.HIGH) == (
            PerformanceTier.LOW
        )

    def test_quality_level_for_tier(self) -> None:
        assert QualityLevel.for_tier(PerformanceTier.HIGH) == QualityLevel.HIGH


class TestProcessingParameters:
    def test_defaults(self) -> None:
        params = ProcessingParameters()
        assert params.canny_low_threshold == 50
        assert params.canny_high_threshold == 150
        assert params.hough_threshold == 50

    def test_frozen(self) -> None:
        params = ProcessingParameters()
        with pytest.raises(Exception):
            params.hough_threshold = 10  # type: ignore[misc]

    def test_rejects_non_positive_resolution(self) -> None:
        with pytest.raises(ValueError):
            ProcessingParameters(hough_rho_resolution=0)
