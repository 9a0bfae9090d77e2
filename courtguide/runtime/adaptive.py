"""Adaptive performance control.

Devices are bucketed into three tiers. Each tier binds a target frame rate,
a frame-skip factor and a default parameter profile. Between frames the
controller nudges parameters using recent processing time against the target
period: slow frames relax the detector (fewer edges, fewer required votes,
coarser accumulator), comfortably fast frames tighten it back. A high error
rate relaxes vote and length requirements regardless of timing.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from courtguide.core.config import AdaptiveConfig
from courtguide.core.models import (
    DeviceHints,
    DeviceProfile,
    PerformanceTier,
    ProcessingParameters,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierProfile:
    """Defaults bound to a performance tier."""

    tier: PerformanceTier
    frame_rate: float
    skip_frames: int
    use_fast_mode: bool
    parameters: ProcessingParameters


TIER_PROFILES: dict[PerformanceTier, TierProfile] = {
    PerformanceTier.LOW: TierProfile(
        tier=PerformanceTier.LOW,
        frame_rate=5,
        skip_frames=3,
        use_fast_mode=True,
        parameters=ProcessingParameters(
            canny_low_threshold=80,
            canny_high_threshold=200,
            hough_rho_resolution=3,
            hough_theta_resolution=math.pi / 90,
            hough_threshold=30,
            min_line_length=50,
            max_line_gap=20,
        ),
    ),
    PerformanceTier.MEDIUM: TierProfile(
        tier=PerformanceTier.MEDIUM,
        frame_rate=10,
        skip_frames=2,
        use_fast_mode=False,
        parameters=ProcessingParameters(
            canny_low_threshold=60,
            canny_high_threshold=180,
            hough_rho_resolution=2,
            hough_theta_resolution=math.pi / 120,
            hough_threshold=40,
            min_line_length=40,
            max_line_gap=15,
        ),
    ),
    PerformanceTier.HIGH: TierProfile(
        tier=PerformanceTier.HIGH,
        frame_rate=15,
        skip_frames=1,
        use_fast_mode=False,
        parameters=ProcessingParameters(
            canny_low_threshold=50,
            canny_high_threshold=150,
            hough_rho_resolution=1,
            hough_theta_resolution=math.pi / 180,
            hough_threshold=50,
            min_line_length=30,
            max_line_gap=10,
        ),
    ),
}


def default_parameters(tier: PerformanceTier) -> ProcessingParameters:
    return TIER_PROFILES[tier].parameters


# =============================================================================
# Device assessment
# =============================================================================


def _step_points(value: float | None) -> float:
    if value is None:
        return 0.0
    if value >= 8:
        return 40.0
    if value >= 6:
        return 30.0
    if value >= 4:
        return 20.0
    if value >= 2:
        return 10.0
    return 0.0


def _gpu_points(gpu_name: str | None) -> float:
    if not gpu_name:
        return 0.0
    name = gpu_name.lower()
    if "apple" in name:
        return 20.0
    if "adreno" in name:
        return 16.0
    if "mali" in name:
        return 12.0
    return 10.0


def device_score(hints: DeviceHints) -> float:
    """Weighted 0-100 score: cores and memory up to 40 each, GPU family up to 20."""
    score = _step_points(hints.cpu_cores) + _step_points(hints.memory_gb) + _gpu_points(
        hints.gpu_name
    )
    return min(100.0, max(0.0, score))


def tier_for_score(score: float) -> PerformanceTier:
    if score >= 80:
        return PerformanceTier.HIGH
    if score >= 50:
        return PerformanceTier.MEDIUM
    return PerformanceTier.LOW


def assess_device(
    hints: DeviceHints, clock: Callable[[], float] = time.time
) -> DeviceProfile:
    """Score hardware hints into a device profile."""
    score = device_score(hints)
    tier = tier_for_score(score)
    logger.info(
        f"Device assessed: {tier.value} tier (score {score:.0f}, "
        f"cores={hints.cpu_cores}, memory={hints.memory_gb}, gpu={hints.gpu_name})"
    )
    return DeviceProfile(
        tier=tier,
        score=score,
        cpu_cores=hints.cpu_cores,
        memory_gb=hints.memory_gb,
        gpu_name=hints.gpu_name,
        assessed_at=clock(),
    )


# =============================================================================
# Battery and memory gating
# =============================================================================


class ProcessingMode(str, Enum):
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class BatterySettings:
    frame_rate: float
    quality_tier: PerformanceTier
    processing_mode: ProcessingMode


def battery_settings(level: float | None, charging: bool | None) -> BatterySettings:
    """Frame rate and quality allowed by the battery state."""
    if charging:
        return BatterySettings(15, PerformanceTier.HIGH, ProcessingMode.AGGRESSIVE)
    if level is None:
        return BatterySettings(10, PerformanceTier.MEDIUM, ProcessingMode.BALANCED)
    if level < 20:
        return BatterySettings(5, PerformanceTier.LOW, ProcessingMode.CONSERVATIVE)
    if level < 50:
        return BatterySettings(8, PerformanceTier.MEDIUM, ProcessingMode.BALANCED)
    return BatterySettings(12, PerformanceTier.MEDIUM, ProcessingMode.BALANCED)


@dataclass(frozen=True)
class MemoryAdvice:
    usage_ratio: float
    reduce_quality: bool
    skip_frames: bool
    clear_cache: bool


def memory_advice(used_bytes: float, budget_bytes: float) -> MemoryAdvice:
    """Escalating actions at 70%, 85% and 90% of the memory budget."""
    ratio = used_bytes / budget_bytes if budget_bytes > 0 else 1.0
    return MemoryAdvice(
        usage_ratio=ratio,
        reduce_quality=ratio > 0.7,
        skip_frames=ratio > 0.85,
        clear_cache=ratio > 0.9,
    )


def performance_recommendations(tier: PerformanceTier) -> list[str]:
    if tier == PerformanceTier.LOW:
        return [
            "Consider using performance mode for better battery life",
            "Close other apps to free up memory",
            "Ensure good lighting conditions for faster processing",
        ]
    if tier == PerformanceTier.HIGH:
        return [
            "Device can handle high-quality processing",
            "Consider enabling aggressive mode for best results",
            "Monitor battery usage during extended use",
        ]
    return []


# =============================================================================
# Rolling performance counters
# =============================================================================


@dataclass(frozen=True)
class MonitorSnapshot:
    frames: int
    average_processing_ms: float
    frame_rate: float
    error_rate: float


class PerformanceMonitor:
    """Rolling window of per-frame processing time and failures."""

    def __init__(self, window: int = 30, report_interval: int = 30) -> None:
        self._samples: deque[tuple[float, bool]] = deque(maxlen=window)
        self._lock = threading.Lock()
        self._total_frames = 0
        self._report_interval = report_interval

    @property
    def total_frames(self) -> int:
        return self._total_frames

    def record(self, processing_ms: float, failed: bool = False) -> None:
        with self._lock:
            self._samples.append((processing_ms, failed))
            self._total_frames += 1
            total = self._total_frames

        if self._report_interval and total % self._report_interval == 0:
            snap = self.snapshot()
            logger.info(
                f"Performance: {snap.average_processing_ms:.1f}ms avg, "
                f"{snap.frame_rate:.1f} fps, {snap.error_rate:.0%} errors "
                f"over last {snap.frames} frames"
            )

    def snapshot(self) -> MonitorSnapshot:
        with self._lock:
            samples = list(self._samples)

        if not samples:
            return MonitorSnapshot(0, 0.0, 0.0, 0.0)

        average = sum(ms for ms, _ in samples) / len(samples)
        errors = sum(1 for _, failed in samples if failed)
        return MonitorSnapshot(
            frames=len(samples),
            average_processing_ms=average,
            frame_rate=1000.0 / average if average > 0 else 0.0,
            error_rate=errors / len(samples),
        )

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self._total_frames = 0


# =============================================================================
# Parameter feedback loop
# =============================================================================


def _step_up(value: float, step: float, ceiling: float) -> float:
    return value if value >= ceiling else min(ceiling, value + step)


def _step_down(value: float, step: float, floor: float) -> float:
    return value if value <= floor else max(floor, value - step)


def _scale_up(value: float, factor: float, ceiling: float) -> float:
    return value if value >= ceiling else min(ceiling, value * factor)


def _scale_down(value: float, factor: float, floor: float) -> float:
    return value if value <= floor else max(floor, value / factor)


def adjust_parameters(
    params: ProcessingParameters,
    processing_time_ms: float,
    error_rate: float,
    target_frame_rate: float,
    config: AdaptiveConfig | None = None,
) -> ProcessingParameters:
    """Return new parameters moved toward speed or quality.

    Every field only moves toward its bound and stops there, so repeated
    slow metrics relax monotonically until all relaxed fields are bounded.
    """
    config = config or AdaptiveConfig()
    period_ms = 1000.0 / target_frame_rate if target_frame_rate > 0 else math.inf

    low = params.canny_low_threshold
    high = params.canny_high_threshold
    votes = params.hough_threshold
    rho = params.hough_rho_resolution
    theta = params.hough_theta_resolution
    min_length = params.min_line_length

    if processing_time_ms > period_ms:
        low = _step_up(low, config.relax_canny_low_step, config.max_canny_low)
        high = _step_up(high, config.relax_canny_high_step, config.max_canny_high)
        votes = int(_step_down(votes, config.relax_hough_threshold_step, config.min_hough_threshold))
        rho = _step_up(rho, config.relax_rho_step, config.max_rho_resolution)
        theta = _scale_up(theta, config.relax_theta_factor, config.max_theta_resolution)
    elif processing_time_ms < config.fast_ratio * period_ms:
        low = _step_down(low, config.tighten_canny_low_step, config.min_canny_low)
        high = _step_down(high, config.tighten_canny_high_step, config.min_canny_high)
        votes = int(_step_up(votes, config.tighten_hough_threshold_step, config.max_hough_threshold))
        rho = _step_down(rho, config.tighten_rho_step, config.min_rho_resolution)
        theta = _scale_down(theta, config.relax_theta_factor, config.min_theta_resolution)

    if error_rate > config.error_rate_limit:
        votes = int(_step_down(votes, config.error_hough_threshold_step, config.min_hough_threshold))
        min_length = _step_down(min_length, config.error_min_length_step, config.min_line_length_floor)

    return ProcessingParameters(
        canny_low_threshold=low,
        canny_high_threshold=max(high, low),
        hough_rho_resolution=rho,
        hough_theta_resolution=theta,
        hough_threshold=votes,
        min_line_length=min_length,
        max_line_gap=params.max_line_gap,
    )


@dataclass(frozen=True)
class FrameStrategy:
    """How the current device should pace detection."""

    tier: PerformanceTier
    frame_rate: float
    skip_frames: int
    use_fast_mode: bool
    max_processing_time_ms: float


class AdaptiveController:
    """Owns the live processing parameters and frame pacing of one pipeline.

    Rolling counters are written only by the pipeline thread that runs
    detection.
    """

    def __init__(
        self,
        profile: DeviceProfile,
        config: AdaptiveConfig | None = None,
        battery_level: float | None = None,
        is_charging: bool | None = None,
    ) -> None:
        self.config = config or AdaptiveConfig()
        self.profile = profile
        self.monitor = PerformanceMonitor(self.config.monitor_window, self.config.report_interval)
        self._battery_level = battery_level
        self._is_charging = is_charging
        self._parameters = default_parameters(self.tier)

    @property
    def battery(self) -> BatterySettings:
        return battery_settings(self._battery_level, self._is_charging)

    @property
    def tier(self) -> PerformanceTier:
        """Device tier, lowered by the battery state when one is known."""
        if self._battery_level is None and not self._is_charging:
            return self.profile.tier
        return PerformanceTier.lowest(self.profile.tier, self.battery.quality_tier)

    @property
    def parameters(self) -> ProcessingParameters:
        return self._parameters

    def set_parameters(self, params: ProcessingParameters) -> None:
        self._parameters = params

    def reset_parameters(self) -> None:
        self._parameters = default_parameters(self.tier)

    def update_battery(self, level: float | None, charging: bool | None) -> None:
        previous = self.tier
        self._battery_level = level
        self._is_charging = charging
        if self.tier != previous:
            logger.info(f"Battery state moved tier {previous.value} -> {self.tier.value}")
            self._parameters = default_parameters(self.tier)

    def strategy(self) -> FrameStrategy:
        profile = TIER_PROFILES[self.tier]
        frame_rate = profile.frame_rate
        if self._battery_level is not None or self._is_charging:
            frame_rate = min(frame_rate, self.battery.frame_rate)
        return FrameStrategy(
            tier=self.tier,
            frame_rate=frame_rate,
            skip_frames=profile.skip_frames,
            use_fast_mode=profile.use_fast_mode,
            max_processing_time_ms=1000.0 / frame_rate,
        )

    def should_process_frame(self, frame_index: int) -> bool:
        """Frame-skip policy: process every Nth frame."""
        return frame_index % max(1, self.strategy().skip_frames) == 0

    def record_frame(self, processing_ms: float, failed: bool = False) -> None:
        self.monitor.record(processing_ms, failed)

    def adapt(self) -> ProcessingParameters:
        """Feed the rolling counters back into the parameters."""
        snapshot = self.monitor.snapshot()
        if snapshot.frames == 0:
            return self._parameters

        updated = adjust_parameters(
            self._parameters,
            snapshot.average_processing_ms,
            snapshot.error_rate,
            self.strategy().frame_rate,
            self.config,
        )
        if updated != self._parameters:
            logger.info(
                f"Parameters adapted ({snapshot.average_processing_ms:.1f}ms avg, "
                f"{snapshot.error_rate:.0%} errors): canny "
                f"{updated.canny_low_threshold:.0f}/{updated.canny_high_threshold:.0f}, "
                f"votes {updated.hough_threshold}, rho {updated.hough_rho_resolution:.1f}"
            )
        self._parameters = updated
        return updated
