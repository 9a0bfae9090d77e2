"""Error classification and recovery.

Failures are classified by exception type and message keywords into a small
set of categories, each mapped to a fixed recovery strategy. Auto-recovery is
suppressed when the previous error happened within the backoff window, and
camera errors are never auto-recovered.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from courtguide.core.config import RecoveryConfig
from courtguide.core.errors import CameraError
from courtguide.core.models import ProcessingParameters

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    PROCESSING_TIMEOUT = "processing_timeout"
    MEMORY_OVERFLOW = "memory_overflow"
    DETECTION_FAILURE = "detection_failure"
    QUALITY_DEGRADATION = "quality_degradation"
    CAMERA_ERROR = "camera_error"
    UNKNOWN = "unknown_error"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecoveryAction(str, Enum):
    REDUCE_QUALITY = "reduce_quality"
    CLEAR_CACHE = "clear_cache"
    ADJUST_PARAMETERS = "adjust_parameters"
    RESTART_CAMERA = "restart_camera"
    RESET = "reset"
    MONITOR = "monitor"


@dataclass(frozen=True)
class RecoveryStrategy:
    severity: Severity
    action: RecoveryAction
    fallback: str
    auto_recover: bool
    status_message: str


STRATEGIES: dict[ErrorCategory, RecoveryStrategy] = {
    ErrorCategory.PROCESSING_TIMEOUT: RecoveryStrategy(
        Severity.MEDIUM,
        RecoveryAction.REDUCE_QUALITY,
        "fast_mode",
        True,
        "Processing is taking longer than expected. Reducing quality for better performance.",
    ),
    ErrorCategory.MEMORY_OVERFLOW: RecoveryStrategy(
        Severity.HIGH,
        RecoveryAction.CLEAR_CACHE,
        "low_quality",
        True,
        "Memory usage is high. Clearing cache and reducing quality.",
    ),
    ErrorCategory.DETECTION_FAILURE: RecoveryStrategy(
        Severity.MEDIUM,
        RecoveryAction.ADJUST_PARAMETERS,
        "retry",
        True,
        "Line detection failed. Adjusting parameters and retrying.",
    ),
    ErrorCategory.QUALITY_DEGRADATION: RecoveryStrategy(
        Severity.LOW,
        RecoveryAction.MONITOR,
        "none",
        False,
        "Image quality is low. Consider adjusting camera position or lighting.",
    ),
    ErrorCategory.CAMERA_ERROR: RecoveryStrategy(
        Severity.CRITICAL,
        RecoveryAction.RESTART_CAMERA,
        "manual_mode",
        False,
        "Camera error detected. Please restart the camera or use manual mode.",
    ),
    ErrorCategory.UNKNOWN: RecoveryStrategy(
        Severity.MEDIUM,
        RecoveryAction.RESET,
        "safe_mode",
        True,
        "An unexpected error occurred. Resetting to safe mode.",
    ),
}

USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.PROCESSING_TIMEOUT: (
        "Processing is taking longer than expected. Please wait or try adjusting your position."
    ),
    ErrorCategory.MEMORY_OVERFLOW: (
        "System is using a lot of memory. The app will automatically optimize performance."
    ),
    ErrorCategory.DETECTION_FAILURE: (
        "Having trouble detecting court lines. Try moving the camera or improving lighting."
    ),
    ErrorCategory.QUALITY_DEGRADATION: (
        "Image quality is low. Try holding the camera steady and ensuring good lighting."
    ),
    ErrorCategory.CAMERA_ERROR: (
        "Camera issue detected. Please check camera permissions and try again."
    ),
    ErrorCategory.UNKNOWN: (
        "Something unexpected happened. The app will try to recover automatically."
    ),
}

SUGGESTIONS: dict[ErrorCategory, list[str]] = {
    ErrorCategory.PROCESSING_TIMEOUT: [
        "Hold the camera steady",
        "Reduce camera movement",
        "Wait a few seconds for processing",
    ],
    ErrorCategory.MEMORY_OVERFLOW: [
        "Close other apps to free memory",
        "Restart the app if issues persist",
    ],
    ErrorCategory.DETECTION_FAILURE: [
        "Ensure court lines are clearly visible",
        "Improve lighting conditions",
        "Hold camera parallel to court surface",
        "Try different camera angles",
    ],
    ErrorCategory.QUALITY_DEGRADATION: [
        "Clean camera lens",
        "Improve lighting",
        "Hold camera steady",
        "Reduce camera shake",
    ],
    ErrorCategory.CAMERA_ERROR: [
        "Check camera permissions in settings",
        "Restart the app",
        "Ensure camera is not used by other apps",
    ],
    ErrorCategory.UNKNOWN: [
        "Try restarting the app",
        "Check for app updates",
        "Contact support if issues persist",
    ],
}

# Checked in order; first match wins
_MESSAGE_PATTERNS: list[tuple[ErrorCategory, tuple[str, ...]]] = [
    (ErrorCategory.PROCESSING_TIMEOUT, ("timeout", "slow")),
    (ErrorCategory.MEMORY_OVERFLOW, ("memory", "overflow")),
    (ErrorCategory.DETECTION_FAILURE, ("detection", "no lines")),
    (ErrorCategory.QUALITY_DEGRADATION, ("quality", "blur")),
    (ErrorCategory.CAMERA_ERROR, ("camera", "permission")),
]


def classify_error(error: BaseException | str) -> ErrorCategory:
    """Map an exception or message to an error category."""
    if isinstance(error, CameraError):
        return ErrorCategory.CAMERA_ERROR
    if isinstance(error, TimeoutError):
        return ErrorCategory.PROCESSING_TIMEOUT
    if isinstance(error, MemoryError):
        return ErrorCategory.MEMORY_OVERFLOW

    message = str(error).lower()
    for category, keywords in _MESSAGE_PATTERNS:
        if any(keyword in message for keyword in keywords):
            return category
    return ErrorCategory.UNKNOWN


# =============================================================================
# Parameter transforms
# =============================================================================


def reduced_quality_parameters(params: ProcessingParameters) -> ProcessingParameters:
    """Cheaper parameters after a timeout or memory pressure."""
    return ProcessingParameters(
        canny_low_threshold=min(200.0, params.canny_low_threshold + 20),
        canny_high_threshold=min(250.0, params.canny_high_threshold + 30),
        hough_rho_resolution=min(5.0, params.hough_rho_resolution + 1),
        hough_theta_resolution=min(math.pi / 60, params.hough_theta_resolution * 2),
        hough_threshold=max(20, params.hough_threshold - 10),
        min_line_length=max(50.0, params.min_line_length + 20),
        max_line_gap=max(25.0, params.max_line_gap + 10),
    )


def adjusted_parameters(
    params: ProcessingParameters,
    processing_time_ms: float,
    error_rate: float,
    config: RecoveryConfig | None = None,
) -> ProcessingParameters:
    """Parameters retuned from current metrics after a detection failure."""
    config = config or RecoveryConfig()
    update: dict[str, Any] = {}

    if processing_time_ms > config.slow_processing_ms:
        update["hough_threshold"] = max(20, params.hough_threshold - 15)
        update["min_line_length"] = max(40.0, params.min_line_length + 15)

    if error_rate > config.high_error_rate:
        update["canny_low_threshold"] = min(200.0, params.canny_low_threshold + 15)
        update["canny_high_threshold"] = min(250.0, params.canny_high_threshold + 25)

    return params.model_copy(update=update)


def safe_mode_parameters() -> ProcessingParameters:
    """Conservative parameters used after an unexplained failure."""
    return ProcessingParameters(
        canny_low_threshold=100,
        canny_high_threshold=220,
        hough_rho_resolution=3,
        hough_theta_resolution=math.pi / 60,
        hough_threshold=25,
        min_line_length=60,
        max_line_gap=30,
    )


# =============================================================================
# Monitoring
# =============================================================================


class ErrorMonitor:
    """Counts errors per category and flags bursts for escalation."""

    def __init__(
        self,
        window_seconds: float = 300.0,
        limit: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.window_seconds = window_seconds
        self.limit = limit
        self._clock = clock
        self._counts: Counter[ErrorCategory] = Counter()
        self._recent: deque[float] = deque()
        self._lock = threading.Lock()

    def record(self, category: ErrorCategory) -> None:
        with self._lock:
            self._counts[category] += 1
            self._recent.append(self._clock())
            self._prune()

    def _prune(self) -> None:
        cutoff = self._clock() - self.window_seconds
        while self._recent and self._recent[0] < cutoff:
            self._recent.popleft()

    def recent_count(self) -> int:
        with self._lock:
            self._prune()
            return len(self._recent)

    def should_escalate(self) -> bool:
        return self.recent_count() > self.limit

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {category.value: n for category, n in self._counts.items()}

    def summary(self) -> dict[str, Any]:
        counts = self.counts()
        return {
            "total_errors": sum(counts.values()),
            "recent_errors": self.recent_count(),
            "by_category": counts,
            "escalate": self.should_escalate(),
        }

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._recent.clear()


# =============================================================================
# Controller
# =============================================================================


@dataclass
class ErrorInfo:
    """What went wrong with a frame and what was done about it."""

    category: ErrorCategory
    severity: Severity
    action: RecoveryAction
    fallback: str
    message: str
    user_message: str
    suggestions: list[str] = field(default_factory=list)
    auto_recover: bool = False
    terminal: bool = False
    escalated: bool = False
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "action": self.action.value,
            "fallback": self.fallback,
            "message": self.message,
            "user_message": self.user_message,
            "suggestions": list(self.suggestions),
            "auto_recover": self.auto_recover,
            "terminal": self.terminal,
            "escalated": self.escalated,
        }


@dataclass
class RecoveryDecision:
    info: ErrorInfo
    parameters: ProcessingParameters | None = None
    clear_cache: bool = False
    escalate: bool = False


class ErrorRecoveryController:
    """Decides how a pipeline responds to a failure."""

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or RecoveryConfig()
        self._clock = clock
        self._last_error_at: float | None = None
        self.monitor = ErrorMonitor(
            self.config.escalation_window_seconds, self.config.escalation_limit, clock
        )

    @property
    def last_error_at(self) -> float | None:
        return self._last_error_at

    def in_backoff(self, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        return (
            self._last_error_at is not None
            and now - self._last_error_at < self.config.backoff_seconds
        )

    def handle(
        self,
        error: BaseException | str,
        params: ProcessingParameters,
        processing_time_ms: float = 0.0,
        error_rate: float = 0.0,
    ) -> RecoveryDecision:
        """Classify ``error`` and pick the recovery for it."""
        category = classify_error(error)
        strategy = STRATEGIES[category]
        now = self._clock()
        backoff = self.in_backoff(now)
        self._last_error_at = now
        self.monitor.record(category)

        terminal = category == ErrorCategory.CAMERA_ERROR
        auto_recover = strategy.auto_recover and not backoff and not terminal

        parameters: ProcessingParameters | None = None
        if auto_recover:
            if strategy.action in (RecoveryAction.REDUCE_QUALITY, RecoveryAction.CLEAR_CACHE):
                parameters = reduced_quality_parameters(params)
            elif strategy.action == RecoveryAction.ADJUST_PARAMETERS:
                parameters = adjusted_parameters(
                    params, processing_time_ms, error_rate, self.config
                )
            elif strategy.action == RecoveryAction.RESET:
                parameters = safe_mode_parameters()

        escalate = self.monitor.should_escalate()
        info = ErrorInfo(
            category=category,
            severity=strategy.severity,
            action=strategy.action,
            fallback=strategy.fallback,
            message=str(error),
            user_message=USER_MESSAGES[category],
            suggestions=list(SUGGESTIONS[category]),
            auto_recover=auto_recover,
            terminal=terminal,
            escalated=escalate,
            timestamp=now,
        )

        if terminal:
            logger.error(f"Camera error: {error}")
        elif escalate:
            logger.error(
                f"{self.monitor.recent_count()} errors within "
                f"{self.config.escalation_window_seconds:.0f}s, latest {category.value}: {error}"
            )
        elif backoff and strategy.auto_recover:
            logger.warning(f"{category.value} within backoff window, not auto-recovering: {error}")
        else:
            logger.warning(f"{category.value} ({strategy.action.value}): {error}")

        return RecoveryDecision(
            info=info,
            parameters=parameters,
            clear_cache=auto_recover and strategy.action == RecoveryAction.CLEAR_CACHE,
            escalate=escalate,
        )

    def reset(self) -> None:
        self._last_error_at = None
        self.monitor.reset()
