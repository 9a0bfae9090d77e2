"""Tests for the adaptive performance controller."""

from __future__ import annotations

import math

import pytest

from courtguide.core.config import AdaptiveConfig
from courtguide.core.models import DeviceHints, PerformanceTier, ProcessingParameters
from courtguide.runtime.adaptive import (
    TIER_PROFILES,
    AdaptiveController,
    PerformanceMonitor,
    ProcessingMode,
    adjust_parameters,
    assess_device,
    battery_settings,
    default_parameters,
    device_score,
    memory_advice,
    performance_recommendations,
    tier_for_score,
)


def _profile(hints: DeviceHints):
    return assess_device(hints, clock=lambda: 1000.0)


class TestDeviceAssessment:
    def test_high_tier(self, high_tier_hints) -> None:
        profile = _profile(high_tier_hints)
        assert profile.score == 100
        assert profile.tier == PerformanceTier.HIGH
        assert profile.assessed_at == 1000.0

    def test_medium_tier(self, medium_tier_hints) -> None:
        assert _profile(medium_tier_hints).tier == PerformanceTier.MEDIUM

    def test_low_tier_is_reachable(self, low_tier_hints) -> None:
        assert device_score(low_tier_hints) == 20
        assert _profile(low_tier_hints).tier == PerformanceTier.LOW

    def test_unknown_hardware(self) -> None:
        assert device_score(DeviceHints()) == 0
        assert _profile(DeviceHints()).tier == PerformanceTier.LOW

    @pytest.mark.parametrize(
        ("gpu", "points"),
        [("Apple A17", 20), ("Adreno 740", 16), ("Mali-G78", 12), ("Intel Iris", 10), (None, 0)],
    )
    def test_gpu_points(self, gpu, points) -> None:
        assert device_score(DeviceHints(gpu_name=gpu)) == points

    def test_score_boundaries(self) -> None:
        assert tier_for_score(80) == PerformanceTier.HIGH
        assert tier_for_score(79.9) == PerformanceTier.MEDIUM
        assert tier_for_score(50) == PerformanceTier.MEDIUM
        assert tier_for_score(49.9) == PerformanceTier.LOW

    def test_tier_defaults(self) -> None:
        low = default_parameters(PerformanceTier.LOW)
        assert low.canny_low_threshold == 80
        assert low.hough_theta_resolution == pytest.approx(math.pi / 90)
        assert TIER_PROFILES[PerformanceTier.LOW].use_fast_mode
        assert TIER_PROFILES[PerformanceTier.MEDIUM].skip_frames == 2
        assert default_parameters(PerformanceTier.HIGH) == ProcessingParameters()


class TestBatteryAndMemory:
    def test_battery_bands(self) -> None:
        charging = battery_settings(10, True)
        assert (charging.frame_rate, charging.quality_tier) == (15, PerformanceTier.HIGH)
        assert charging.processing_mode == ProcessingMode.AGGRESSIVE

        critical = battery_settings(15, False)
        assert (critical.frame_rate, critical.quality_tier) == (5, PerformanceTier.LOW)
        assert critical.processing_mode == ProcessingMode.CONSERVATIVE

        assert battery_settings(40, False).frame_rate == 8
        assert battery_settings(80, False).frame_rate == 12
        assert battery_settings(None, None).frame_rate == 10

    def test_memory_advice_escalates(self) -> None:
        mb = 1024 * 1024
        moderate = memory_advice(75 * mb, 100 * mb)
        assert moderate.reduce_quality and not moderate.skip_frames
        high = memory_advice(88 * mb, 100 * mb)
        assert high.skip_frames and not high.clear_cache
        critical = memory_advice(95 * mb, 100 * mb)
        assert critical.clear_cache
        assert not memory_advice(10 * mb, 100 * mb).reduce_quality

    def test_recommendations(self) -> None:
        assert performance_recommendations(PerformanceTier.LOW)
        assert performance_recommendations(PerformanceTier.MEDIUM) == []


class TestAdjustParameters:
    def test_slow_frames_relax(self) -> None:
        params = ProcessingParameters()
        relaxed = adjust_parameters(params, 100.0, 0.0, target_frame_rate=15)
        assert relaxed.canny_low_threshold == 60
        assert relaxed.canny_high_threshold == 165
        assert relaxed.hough_threshold == 45
        assert relaxed.hough_rho_resolution == 1.5
        assert relaxed.hough_theta_resolution == pytest.approx(math.pi / 180 * 1.25)

    def test_fast_frames_tighten(self) -> None:
        params = ProcessingParameters()
        tightened = adjust_parameters(params, 10.0, 0.0, target_frame_rate=15)
        assert tightened.canny_low_threshold == 45
        assert tightened.canny_high_threshold == 140
        assert tightened.hough_threshold == 55
        # Already at the finest resolution
        assert tightened.hough_rho_resolution == 1.0
        assert tightened.hough_theta_resolution == pytest.approx(math.pi / 180)

    def test_on_target_unchanged(self) -> None:
        params = ProcessingParameters()
        assert adjust_parameters(params, 50.0, 0.0, target_frame_rate=15) == params

    def test_error_rate_relaxes_votes_and_length(self) -> None:
        params = ProcessingParameters()
        relaxed = adjust_parameters(params, 50.0, 0.2, target_frame_rate=15)
        assert relaxed.hough_threshold == 40
        assert relaxed.min_line_length == 20
        again = adjust_parameters(relaxed, 50.0, 0.2, target_frame_rate=15)
        assert again.min_line_length == 20

    def test_relaxation_is_monotonic_and_bounded(self) -> None:
        config = AdaptiveConfig()
        params = ProcessingParameters()
        for _ in range(100):
            updated = adjust_parameters(params, 500.0, 0.0, 15, config)
            assert updated.canny_low_threshold >= params.canny_low_threshold
            assert updated.canny_high_threshold >= params.canny_high_threshold
            assert updated.hough_threshold <= params.hough_threshold
            assert updated.hough_rho_resolution >= params.hough_rho_resolution
            assert updated.hough_theta_resolution >= params.hough_theta_resolution
            params = updated

        assert params.canny_low_threshold == config.max_canny_low
        assert params.canny_high_threshold == config.max_canny_high
        assert params.hough_threshold == config.min_hough_threshold
        assert params.hough_rho_resolution == config.max_rho_resolution
        assert params.hough_theta_resolution == pytest.approx(config.max_theta_resolution)

    def test_out_of_range_values_are_not_pulled_back(self) -> None:
        params = ProcessingParameters(hough_threshold=10)
        relaxed = adjust_parameters(params, 500.0, 0.0, target_frame_rate=15)
        assert relaxed.hough_threshold == 10


class TestPerformanceMonitor:
    def test_snapshot(self) -> None:
        monitor = PerformanceMonitor(window=4, report_interval=0)
        for ms, failed in [(10, False), (20, True), (30, False), (40, False)]:
            monitor.record(ms, failed)
        snap = monitor.snapshot()
        assert snap.frames == 4
        assert snap.average_processing_ms == pytest.approx(25.0)
        assert snap.frame_rate == pytest.approx(40.0)
        assert snap.error_rate == pytest.approx(0.25)

    def test_window_rolls(self) -> None:
        monitor = PerformanceMonitor(window=2, report_interval=0)
        for ms in (100, 10, 10):
            monitor.record(ms)
        assert monitor.snapshot().average_processing_ms == pytest.approx(10.0)
        assert monitor.total_frames == 3

    def test_empty(self) -> None:
        snap = PerformanceMonitor().snapshot()
        assert snap.frames == 0
        assert snap.error_rate == 0.0


class TestAdaptiveController:
    def test_no_battery_info_keeps_device_tier(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints))
        strategy = controller.strategy()
        assert controller.tier == PerformanceTier.HIGH
        assert strategy.frame_rate == 15
        assert strategy.skip_frames == 1
        assert strategy.max_processing_time_ms == pytest.approx(1000 / 15)

    def test_low_battery_lowers_tier(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints), battery_level=15, is_charging=False)
        strategy = controller.strategy()
        assert controller.tier == PerformanceTier.LOW
        assert strategy.use_fast_mode
        assert strategy.skip_frames == 3
        assert strategy.frame_rate == 5

    def test_battery_caps_frame_rate(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints), battery_level=80, is_charging=False)
        assert controller.tier == PerformanceTier.MEDIUM
        assert controller.strategy().frame_rate == 10

    def test_charging_keeps_high_tier(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints), battery_level=5, is_charging=True)
        assert controller.tier == PerformanceTier.HIGH

    def test_battery_never_raises_tier(self, low_tier_hints) -> None:
        controller = AdaptiveController(_profile(low_tier_hints), battery_level=100, is_charging=True)
        assert controller.tier == PerformanceTier.LOW

    def test_frame_skipping(self, medium_tier_hints) -> None:
        controller = AdaptiveController(_profile(medium_tier_hints))
        assert [controller.should_process_frame(i) for i in range(5)] == [
            True, False, True, False, True,
        ]

    def test_update_battery_resets_parameters(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints))
        controller.update_battery(10, False)
        assert controller.tier == PerformanceTier.LOW
        assert controller.parameters == default_parameters(PerformanceTier.LOW)

    def test_adapt_without_frames_is_noop(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints))
        assert controller.adapt() == ProcessingParameters()

    def test_adapt_relaxes_after_slow_frames(self, high_tier_hints) -> None:
        controller = AdaptiveController(_profile(high_tier_hints))
        for _ in range(3):
            controller.record_frame(200.0)
        relaxed = controller.adapt()
        assert relaxed.hough_threshold < ProcessingParameters().hough_threshold
        assert controller.parameters == relaxed
