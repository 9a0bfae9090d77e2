"""Detection pipeline.

A ``DetectionPipeline`` owns everything one camera feed needs: its device
profile, live processing parameters, calibration cache handle, recovery
controller and stage profiler. Frames run through the stages strictly in
order:

    preprocess -> edges -> hough -> classify

``detect`` is the plain call. ``detect_with_performance_optimization`` adds
frame skipping, cached parameters, feedback-driven parameter adaptation and
error recovery. Neither raises for a failed frame.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from courtguide.core.cache import (
    CacheKind,
    CalibrationCache,
    CalibrationContext,
    CalibrationMetadata,
    CalibrationRecord,
    KeyValueStore,
    UserPreferences,
)
from courtguide.core.config import CourtGuideConfig
from courtguide.core.errors import CacheError
from courtguide.core.models import (
    CourtLine,
    DeviceHints,
    DeviceProfile,
    Frame,
    PerformanceMetrics,
    ProcessingParameters,
    QualityLevel,
)
from courtguide.core.profiler import StageProfiler
from courtguide.runtime.adaptive import (
    AdaptiveController,
    assess_device,
    memory_advice,
    performance_recommendations,
)
from courtguide.runtime.hardware import probe_device_hints
from courtguide.runtime.recovery import ErrorInfo, ErrorRecoveryController
from courtguide.vision.classifier import (
    ValidationReport,
    classify_lines,
    detection_confidence,
    filter_court_lines,
    identify_court_lines,
    validate_court_lines,
)
from courtguide.vision.edges import canny, optimize_thresholds, simple_edges
from courtguide.vision.hough import detect_lines, detect_lines_fast, optimize_hough_parameters
from courtguide.vision.preprocess import (
    QualityRejection,
    gaussian_blur,
    image_stats,
    preprocess,
    to_grayscale,
)

logger = logging.getLogger(__name__)


@dataclass
class DetectionOptions:
    """Switches for the optimized detection path."""

    enable_caching: bool = True
    enable_adaptive_quality: bool = True
    enable_error_recovery: bool = True
    force_fast_mode: bool = False


@dataclass
class DetectionResult:
    """Outcome of one frame on the optimized path."""

    court_lines: list[CourtLine]
    performance_metrics: PerformanceMetrics
    cache_hit: bool = False
    error_info: ErrorInfo | None = None
    confidence: float = 0.0
    parameters: ProcessingParameters | None = None

    @property
    def skipped(self) -> bool:
        return self.performance_metrics.quality_level == QualityLevel.SKIPPED

    def to_dict(self) -> dict[str, Any]:
        return {
            "court_lines": [c.to_dict() for c in self.court_lines],
            "performance_metrics": self.performance_metrics.to_dict(),
            "cache_hit": self.cache_hit,
            "error_info": self.error_info.to_dict() if self.error_info else None,
            "confidence": round(self.confidence, 3),
        }


@dataclass
class _StageOutput:
    court_lines: list[CourtLine] = field(default_factory=list)
    rejected: str | None = None


class DetectionPipeline:
    """Court line detection for a single camera feed.

    Args:
        config: Settings; defaults plus environment when omitted.
        store: Key-value store backing the calibration cache; in-memory
            when omitted.
        hints: Device hints. When omitted the cached device profile is used,
            or the local hardware is probed and the result cached.
        clock: Wall clock used for TTLs and backoff.
        profile_stages: Record per-stage timings in ``self.profiler``.
    """

    def __init__(
        self,
        config: CourtGuideConfig | None = None,
        store: KeyValueStore | None = None,
        hints: DeviceHints | None = None,
        clock: Callable[[], float] = time.time,
        profile_stages: bool = False,
    ):
        self.config = config or CourtGuideConfig()
        self.cache = CalibrationCache(store, self.config.cache, clock)
        self.recovery = ErrorRecoveryController(self.config.recovery, clock)
        self.profiler = StageProfiler(enabled=profile_stages)
        self._hints = hints
        self._clock = clock
        self._controller: AdaptiveController | None = None
        self._frame_index = 0
        self._parameters_seeded = False
        self._last_frame_bytes = 0

    # -------------------------------------------------------------------------
    # Device state
    # -------------------------------------------------------------------------

    @property
    def controller(self) -> AdaptiveController:
        if self._controller is None:
            self._controller = self._build_controller()
        return self._controller

    def _build_controller(self) -> AdaptiveController:
        hints = self._hints
        profile: DeviceProfile | None = None
        if hints is None:
            profile = self.cache.load_device_profile()
            hints = probe_device_hints(self.config.device)
        if profile is None:
            profile = assess_device(hints, self._clock)
            self.cache.save_device_profile(profile)

        return AdaptiveController(
            profile,
            self.config.adaptive,
            battery_level=hints.battery_level,
            is_charging=hints.is_charging,
        )

    @property
    def device_profile(self) -> DeviceProfile:
        return self.controller.profile

    @property
    def parameters(self) -> ProcessingParameters:
        return self.controller.parameters

    def update_battery(self, level: float | None, charging: bool | None) -> None:
        """Apply a new battery reading. A tier change reseeds parameters from the cache."""
        controller = self.controller
        previous = controller.tier
        controller.update_battery(level, charging)
        if controller.tier != previous:
            self._parameters_seeded = False

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _run_stages(
        self, frame: Frame, params: ProcessingParameters | None, fast: bool
    ) -> _StageOutput:
        cfg = self.config
        index = self._frame_index

        with self.profiler.time("preprocess", index):
            prepared = preprocess(frame, cfg.quality)
        if isinstance(prepared, QualityRejection):
            return _StageOutput(rejected=prepared.reason)

        if fast:
            with self.profiler.time("edges", index):
                edges = simple_edges(prepared.blurred, cfg.edges.fast_threshold)
            with self.profiler.time("hough", index):
                lines = detect_lines_fast(edges, config=cfg.hough)
            with self.profiler.time("classify", index):
                candidates = filter_court_lines(lines, frame.width, frame.height, cfg.classifier)
                court_lines = identify_court_lines(
                    candidates, frame.width, frame.height, cfg.classifier
                )
            return _StageOutput(court_lines=court_lines)

        with self.profiler.time("edges", index):
            if params is not None:
                low, high = params.canny_low_threshold, params.canny_high_threshold
            else:
                low, high = optimize_thresholds(prepared.stats, cfg.edges)
            edges = canny(prepared.blurred, low, high)

        with self.profiler.time("hough", index):
            if params is not None:
                lines = detect_lines(
                    edges,
                    params.hough_rho_resolution,
                    params.hough_theta_resolution,
                    params.hough_threshold,
                    min_line_length=params.min_line_length,
                    max_line_gap=params.max_line_gap,
                    config=cfg.hough,
                )
            else:
                rho, theta, votes = optimize_hough_parameters(edges)
                lines = detect_lines(edges, rho, theta, votes, config=cfg.hough)

        with self.profiler.time("classify", index):
            court_lines = classify_lines(lines, frame.width, frame.height, cfg.classifier)

        return _StageOutput(court_lines=court_lines)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def detect(
        self, frame: Frame, params: ProcessingParameters | None = None
    ) -> list[CourtLine]:
        """Detect court lines in one frame.

        Explicit ``params`` are used as given; otherwise thresholds are tuned
        from the frame itself. Frames rejected by the quality gate and frames
        that fail return an empty list.
        """
        try:
            output = self._run_stages(frame, params, fast=False)
        except Exception as e:
            logger.warning(f"Detection failed for frame: {type(e).__name__}: {e}")
            return []
        finally:
            self._frame_index += 1

        return output.court_lines

    def detect_with_performance_optimization(
        self, frame: Frame, options: DetectionOptions | None = None
    ) -> DetectionResult:
        """Detect with frame skipping, cached parameters, adaptation and recovery."""
        options = options or DetectionOptions()
        controller = self.controller
        index = self._frame_index
        self._frame_index += 1
        strategy = controller.strategy()
        memory_estimate = frame.width * frame.height * 4
        self._last_frame_bytes = memory_estimate

        if not controller.should_process_frame(index):
            logger.debug(f"Frame {index} skipped (every {strategy.skip_frames})")
            return DetectionResult(
                court_lines=[],
                performance_metrics=PerformanceMetrics(
                    0.0, 0.0, 0, controller.monitor.snapshot().error_rate, QualityLevel.SKIPPED
                ),
            )

        cache_hit = False
        if options.enable_caching and not self._parameters_seeded:
            self._parameters_seeded = True
            cached = self.cache.load_parameters(strategy.tier)
            if cached is not None:
                controller.set_parameters(cached)
                cache_hit = True
                logger.debug(f"Using cached parameters for {strategy.tier.value} tier")

        params = controller.parameters
        fast = strategy.use_fast_mode or options.force_fast_mode
        start = time.perf_counter()

        try:
            output = self._run_stages(frame, params, fast)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            controller.record_frame(elapsed_ms, failed=True)
            return self._recover(frame, e, params, elapsed_ms, fast, cache_hit, options)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        controller.record_frame(elapsed_ms, failed=False)
        snapshot = controller.monitor.snapshot()

        if options.enable_adaptive_quality:
            controller.adapt()

        metrics = PerformanceMetrics(
            processing_time_ms=elapsed_ms,
            frame_rate=1000.0 / elapsed_ms if elapsed_ms > 0 else 0.0,
            memory_usage_bytes=memory_estimate,
            error_rate=snapshot.error_rate,
            quality_level=QualityLevel.for_tier(strategy.tier),
        )

        if options.enable_caching:
            self.cache.save_device_performance(metrics, strategy.tier)
            if output.court_lines:
                self.cache.save_parameters(controller.parameters, strategy.tier)

        if output.rejected:
            logger.debug(f"Frame {index} rejected: {output.rejected}")

        return DetectionResult(
            court_lines=output.court_lines,
            performance_metrics=metrics,
            cache_hit=cache_hit,
            confidence=detection_confidence(output.court_lines, self.config.classifier),
            parameters=params,
        )

    def _recover(
        self,
        frame: Frame,
        error: Exception,
        params: ProcessingParameters,
        elapsed_ms: float,
        fast: bool,
        cache_hit: bool,
        options: DetectionOptions,
    ) -> DetectionResult:
        controller = self.controller
        snapshot = controller.monitor.snapshot()
        tier = controller.tier

        def failed(info: ErrorInfo | None) -> DetectionResult:
            return DetectionResult(
                court_lines=[],
                performance_metrics=PerformanceMetrics(
                    elapsed_ms, 0.0, 0, snapshot.error_rate, QualityLevel.ERROR
                ),
                cache_hit=cache_hit,
                error_info=info,
                parameters=params,
            )

        if not options.enable_error_recovery:
            logger.warning(f"Detection failed: {type(error).__name__}: {error}")
            return failed(None)

        decision = self.recovery.handle(error, params, elapsed_ms, snapshot.error_rate)
        self.cache.append_error(decision.info.category.value, decision.info.message)

        if decision.clear_cache:
            try:
                self.cache.clear(CacheKind.PARAMETERS)
                self.cache.clear(CacheKind.CALIBRATION)
            except CacheError as e:
                logger.warning(f"Cache not cleared during recovery: {e.message}")

        if decision.parameters is None:
            return failed(decision.info)

        controller.set_parameters(decision.parameters)
        start = time.perf_counter()
        try:
            output = self._run_stages(frame, decision.parameters, fast)
        except Exception as retry_error:
            logger.warning(f"Retry with recovered parameters failed: {retry_error}")
            return failed(decision.info)

        retry_ms = (time.perf_counter() - start) * 1000.0
        return DetectionResult(
            court_lines=output.court_lines,
            performance_metrics=PerformanceMetrics(
                processing_time_ms=elapsed_ms + retry_ms,
                frame_rate=1000.0 / retry_ms if retry_ms > 0 else 0.0,
                memory_usage_bytes=frame.width * frame.height * 4,
                error_rate=snapshot.error_rate,
                quality_level=QualityLevel.FALLBACK,
            ),
            cache_hit=cache_hit,
            error_info=decision.info,
            confidence=detection_confidence(output.court_lines, self.config.classifier),
            parameters=decision.parameters,
        )

    def report_error(self, error: BaseException | str) -> ErrorInfo:
        """Feed a failure from outside the stages (e.g. the frame source)."""
        decision = self.recovery.handle(error, self.parameters)
        self.cache.append_error(decision.info.category.value, decision.info.message)
        if decision.parameters is not None:
            self.controller.set_parameters(decision.parameters)
        return decision.info

    def get_optimized_parameters(self, frame: Frame) -> ProcessingParameters:
        """Parameters tuned to this frame's contrast, size and edge density."""
        gray = to_grayscale(frame)
        low, high = optimize_thresholds(image_stats(gray), self.config.edges)
        edges = canny(gaussian_blur(gray), low, high)
        rho, theta, votes = optimize_hough_parameters(edges)
        smaller = min(frame.width, frame.height)
        return ProcessingParameters(
            canny_low_threshold=low,
            canny_high_threshold=high,
            hough_rho_resolution=rho,
            hough_theta_resolution=theta,
            hough_threshold=votes,
            min_line_length=0.1 * smaller,
            max_line_gap=0.05 * smaller,
        )

    def validate_detection(
        self, court_lines: list[CourtLine], width: int, height: int
    ) -> ValidationReport:
        return validate_court_lines(court_lines, width, height, self.config.classifier)

    # -------------------------------------------------------------------------
    # Calibration and cache management
    # -------------------------------------------------------------------------

    def calibration_context(self, frame: Frame) -> CalibrationContext:
        stats = image_stats(to_grayscale(frame))
        return CalibrationContext(
            frame_width=frame.width,
            frame_height=frame.height,
            lighting=stats.lighting,
            orientation=frame.orientation,
        )

    def save_calibration(
        self,
        frame: Frame,
        court_lines: list[CourtLine],
        metadata: CalibrationMetadata | None = None,
    ) -> bool:
        """Cache a successful detection for frames taken under similar conditions."""
        if not court_lines:
            return False
        if metadata is None:
            context = self.calibration_context(frame)
            metadata = CalibrationMetadata(
                lighting=context.lighting, orientation=context.resolved_orientation
            )
        record = CalibrationRecord(
            court_lines=court_lines,
            frame_width=frame.width,
            frame_height=frame.height,
            parameters=self.parameters,
            confidence=detection_confidence(court_lines, self.config.classifier),
            metadata=metadata,
            timestamp=self._clock(),
        )
        return self.cache.save_calibration(record)

    def load_calibration(self, frame: Frame) -> CalibrationRecord | None:
        return self.cache.load_calibration(self.calibration_context(frame))

    def clear_cache(self) -> int:
        """Drop every cached entry and fall back to the tier default parameters."""
        self._parameters_seeded = False
        if self._controller is not None:
            self._controller.reset_parameters()
        return self.cache.clear_all()

    def load_user_preferences(self) -> UserPreferences:
        return self.cache.load_user_preferences()

    def save_user_preferences(self, preferences: UserPreferences) -> bool:
        return self.cache.save_user_preferences(preferences)

    def performance_report(self) -> dict[str, Any]:
        """Device, parameter, pacing and cache summary with recommendations."""
        controller = self.controller
        strategy = controller.strategy()
        snapshot = controller.monitor.snapshot()
        cache_stats = self.cache.stats()
        budget = self.config.adaptive.memory_budget_mb * 1024 * 1024
        advice = memory_advice(cache_stats.total_bytes + self._last_frame_bytes, budget)

        recommendations = performance_recommendations(controller.tier)
        if cache_stats.expired_items > 0:
            recommendations.append("Clear expired cache items to free up storage")
        if advice.reduce_quality:
            recommendations.append("Memory usage is high, consider a lower quality tier")

        return {
            "device": self.device_profile.model_dump(mode="json"),
            "tier": controller.tier.value,
            "parameters": self.parameters.model_dump(mode="json"),
            "strategy": {
                "frame_rate": strategy.frame_rate,
                "skip_frames": strategy.skip_frames,
                "use_fast_mode": strategy.use_fast_mode,
                "max_processing_time_ms": round(strategy.max_processing_time_ms, 1),
            },
            "battery": {
                "frame_rate": controller.battery.frame_rate,
                "quality_tier": controller.battery.quality_tier.value,
                "processing_mode": controller.battery.processing_mode.value,
            },
            "monitor": {
                "frames": snapshot.frames,
                "average_processing_ms": round(snapshot.average_processing_ms, 2),
                "frame_rate": round(snapshot.frame_rate, 2),
                "error_rate": round(snapshot.error_rate, 3),
            },
            "errors": self.recovery.monitor.summary(),
            "cache": {
                "total_items": cache_stats.total_items,
                "total_bytes": cache_stats.total_bytes,
                "expired_items": cache_stats.expired_items,
                "keys": cache_stats.keys,
            },
            "recommendations": recommendations,
        }
