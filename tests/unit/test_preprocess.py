"""Tests for frame preprocessing and the quality gate."""

from __future__ import annotations

import numpy as np
import pytest

from courtguide.core.config import QualityConfig
from courtguide.core.models import ColorFormat, Frame, GrayFrame, ImageStats
from courtguide.vision.preprocess import (
    PreprocessedFrame,
    QualityRejection,
    gaussian_blur,
    image_stats,
    normalize_contrast,
    preprocess,
    quality_issue,
    to_grayscale,
)
from courtguide.vision.synthetic import court_frame, synthetic_frame


def _gray(values: np.ndarray) -> GrayFrame:
    h, w = values.shape
    return GrayFrame(w, h, values.astype(np.uint8))


class TestToGrayscale:
    def test_luminance_weights(self) -> None:
        pixels = np.array([[[255, 0, 0], [0, 255, 0], [0, 0, 255]]], dtype=np.uint8)
        gray = to_grayscale(Frame.from_array(pixels))
        # 0.299, 0.587, 0.114 of 255
        assert gray.data[0].tolist() == pytest.approx([76, 150, 29], abs=1)

    def test_rgba_ignores_alpha(self) -> None:
        opaque = np.full((2, 2, 4), 100, dtype=np.uint8)
        clear = opaque.copy()
        clear[..., 3] = 0
        a = to_grayscale(Frame.from_array(opaque))
        b = to_grayscale(Frame.from_array(clear))
        assert np.array_equal(a.data, b.data)

    def test_grayscale_passes_through(self) -> None:
        frame = synthetic_frame(64, 48, rows=(10,), color_format=ColorFormat.GRAYSCALE)
        gray = to_grayscale(frame)
        assert np.array_equal(gray.data, frame.data)


class TestGaussianBlur:
    def test_flat_image_unchanged(self) -> None:
        gray = _gray(np.full((5, 7), 90))
        assert np.all(gaussian_blur(gray).data == 90)

    def test_spreads_a_point(self) -> None:
        values = np.zeros((5, 5))
        values[2, 2] = 160
        blurred = gaussian_blur(_gray(values)).data
        assert blurred[2, 2] == 40  # 160 * 4/16
        assert blurred[2, 1] == 20
        assert blurred[1, 1] == 10
        assert blurred[0, 0] == 0


class TestStats:
    def test_mean_and_std(self) -> None:
        values = np.array([[0, 100], [100, 200]])
        stats = image_stats(_gray(values))
        assert stats.mean == pytest.approx(100.0)
        assert stats.std_dev == pytest.approx(np.std([0, 100, 100, 200]))

    def test_normalize_contrast_stretches(self) -> None:
        stretched = normalize_contrast(_gray(np.array([[50, 100], [150, 150]])))
        assert stretched.data.min() == 0
        assert stretched.data.max() == 255

    def test_normalize_contrast_flat_is_noop(self) -> None:
        gray = _gray(np.full((3, 3), 77))
        assert normalize_contrast(gray) is gray


class TestQualityGate:
    def test_low_contrast(self) -> None:
        issue = quality_issue(ImageStats(mean=120, std_dev=5))
        assert issue is not None and "contrast" in issue

    def test_too_dark(self) -> None:
        issue = quality_issue(ImageStats(mean=10, std_dev=25))
        assert issue is not None and "dark" in issue

    def test_too_bright(self) -> None:
        issue = quality_issue(ImageStats(mean=240, std_dev=25))
        assert issue is not None and "bright" in issue

    def test_usable(self) -> None:
        assert quality_issue(ImageStats(mean=120, std_dev=40)) is None

    def test_thresholds_come_from_config(self) -> None:
        config = QualityConfig(min_contrast=1.0)
        assert quality_issue(ImageStats(mean=120, std_dev=5), config) is None


class TestPreprocess:
    def test_court_frame_passes(self) -> None:
        result = preprocess(court_frame())
        assert isinstance(result, PreprocessedFrame)
        assert result.blurred.data.shape == (480, 640)
        assert result.stats.contrast >= 20

    def test_flat_frame_rejected(self) -> None:
        result = preprocess(synthetic_frame(background=128))
        assert isinstance(result, QualityRejection)
        assert "contrast" in result.reason

    def test_single_pixel_lines_on_black_rejected(self) -> None:
        frame = synthetic_frame(rows=(72, 360), columns=(320,), thickness=1, background=0)
        assert isinstance(preprocess(frame), QualityRejection)

    def test_single_pixel_lines_lack_contrast(self) -> None:
        frame = synthetic_frame(rows=(72, 360), columns=(320,), thickness=1)
        result = preprocess(frame)
        assert isinstance(result, QualityRejection)
        assert "contrast" in result.reason

    def test_three_pixel_lines_on_black_are_too_dark(self) -> None:
        frame = synthetic_frame(rows=(72, 360), columns=(320,), background=0)
        result = preprocess(frame)
        assert isinstance(result, QualityRejection)
        assert "too dark" in result.reason

    def test_three_pixel_lines_on_grey_pass(self) -> None:
        frame = synthetic_frame(rows=(72, 360), columns=(320,))
        assert isinstance(preprocess(frame), PreprocessedFrame)
