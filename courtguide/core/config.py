"""Configuration management for courtguide."""

from __future__ import annotations

import math
from enum import Enum
from pathlib import Path

import yaml
from platformdirs import user_cache_dir
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from courtguide.core.errors import ConfigError

# =============================================================================
# Nested Configuration Classes
# =============================================================================


class QualityConfig(BaseModel):
    """Preprocessor quality gate."""

    min_contrast: float = 20.0
    min_brightness: float = 30.0
    max_brightness: float = 225.0


class EdgeConfig(BaseModel):
    """Edge detector defaults and auto-tuning."""

    default_low_threshold: float = 50.0
    default_high_threshold: float = 150.0
    simple_threshold: float = 50.0
    fast_threshold: float = 60.0  # simple edges on the fast path
    auto_base_min: float = 30.0
    auto_base_max: float = 200.0
    auto_low_factor: float = 0.5
    auto_high_factor: float = 1.5


class HoughConfig(BaseModel):
    """Line transform configuration."""

    rho_resolution: float = 1.0
    theta_resolution: float = math.pi / 180
    vote_threshold: int = 50
    votes_for_full_confidence: float = 100.0
    min_confidence: float = 0.3
    min_length_fraction: float = 0.1  # of the smaller image dimension
    max_length_fraction: float = 1.5  # of the larger image dimension
    min_length_px: float = 20.0
    orientation_tolerance_deg: float = 15.0
    max_peaks: int = 200
    # Fast variant for constrained devices
    fast_rho_resolution: float = 2.0
    fast_theta_resolution: float = math.pi / 90
    fast_vote_threshold: int = 30
    fast_max_lines: int = 20


class RoleTarget(BaseModel):
    """Expected position of a court role as a fraction of a frame dimension."""

    fraction: float
    tolerance: float


class ScoreWeights(BaseModel):
    """Weights of the role score. Tuned heuristics, exposed for calibration."""

    position: float = 0.4
    confidence: float = 0.4
    length: float = 0.2


class ClassifierConfig(BaseModel):
    """Line classifier configuration."""

    min_length_fraction: float = 0.15  # of the smaller image dimension
    max_length_fraction: float = 1.2  # of the larger image dimension
    min_length_px: float = 30.0
    min_confidence: float = 0.4
    angle_tolerance_deg: float = 15.0
    merge_threshold: float = 15.0
    max_lines: int = 30
    length_reference_px: float = 100.0
    top_back_wall: RoleTarget = Field(
        default_factory=lambda: RoleTarget(fraction=0.15, tolerance=0.10)
    )
    baseline: RoleTarget = Field(
        default_factory=lambda: RoleTarget(fraction=0.75, tolerance=0.10)
    )
    vertical_center: RoleTarget = Field(
        default_factory=lambda: RoleTarget(fraction=0.5, tolerance=0.15)
    )
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    all_roles_bonus: float = 0.2
    missing_role_penalty: float = 0.1
    # Validator
    expected_spacing_fraction: float = 0.6
    spacing_tolerance_fraction: float = 0.2
    center_tolerance_fraction: float = 0.2


class AdaptiveConfig(BaseModel):
    """Adaptive performance controller bounds and steps."""

    # Relaxation when frames are slower than the target period
    relax_canny_low_step: float = 10.0
    relax_canny_high_step: float = 15.0
    relax_hough_threshold_step: int = 5
    relax_rho_step: float = 0.5
    relax_theta_factor: float = 1.25
    max_canny_low: float = 200.0
    max_canny_high: float = 250.0
    min_hough_threshold: int = 20
    max_rho_resolution: float = 5.0
    max_theta_resolution: float = math.pi / 60
    # Tightening when frames are comfortably fast
    fast_ratio: float = 0.5
    tighten_canny_low_step: float = 5.0
    tighten_canny_high_step: float = 10.0
    tighten_hough_threshold_step: int = 5
    tighten_rho_step: float = 0.2
    min_canny_low: float = 30.0
    min_canny_high: float = 100.0
    max_hough_threshold: int = 80
    min_rho_resolution: float = 1.0
    min_theta_resolution: float = math.pi / 180
    # Error-rate relaxation
    error_rate_limit: float = 0.1
    error_hough_threshold_step: int = 10
    error_min_length_step: float = 10.0
    min_line_length_floor: float = 20.0
    # Monitoring
    monitor_window: int = 30
    report_interval: int = 30
    memory_budget_mb: float = 100.0


class CacheConfig(BaseModel):
    """Calibration cache configuration."""

    directory: Path = Field(
        default_factory=lambda: Path(user_cache_dir("courtguide")) / "calibration"
    )
    calibration_ttl_seconds: float = 24 * 3600
    parameters_ttl_seconds: float = 7 * 24 * 3600
    device_performance_ttl_seconds: float = 30 * 24 * 3600
    preferences_ttl_seconds: float = 365 * 24 * 3600
    error_history_ttl_seconds: float = 7 * 24 * 3600
    max_error_history: int = 50


class RecoveryConfig(BaseModel):
    """Error/recovery controller configuration."""

    backoff_seconds: float = 5.0
    escalation_window_seconds: float = 300.0
    escalation_limit: int = 10
    slow_processing_ms: float = 200.0
    high_error_rate: float = 0.15


class SlotPolicy(str, Enum):
    """What the worker does when a frame arrives while one is in flight."""

    DROP_NEW = "drop_new"
    REPLACE = "replace"


class WorkerConfig(BaseModel):
    """Detection worker configuration."""

    policy: SlotPolicy = SlotPolicy.DROP_NEW
    result_timeout_seconds: float = 5.0


class DeviceConfig(BaseModel):
    """Device hint overrides (unset values are probed)."""

    cpu_cores: int | None = None
    memory_gb: float | None = None
    gpu_name: str | None = None


# =============================================================================
# Main Configuration Class
# =============================================================================


class CourtGuideConfig(BaseSettings):
    """Configuration settings for courtguide."""

    quality: QualityConfig = Field(default_factory=QualityConfig)
    edges: EdgeConfig = Field(default_factory=EdgeConfig)
    hough: HoughConfig = Field(default_factory=HoughConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    adaptive: AdaptiveConfig = Field(default_factory=AdaptiveConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)

    model_config = SettingsConfigDict(
        env_prefix="COURTGUIDE_",
        env_nested_delimiter="__",  # Allows COURTGUIDE_HOUGH__VOTE_THRESHOLD
    )

    # -------------------------------------------------------------------------
    # YAML Loading
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: Path) -> CourtGuideConfig:
        """Load configuration from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
            return cls(**data) if data else cls()
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML in {path}: {e}",
                hint="Check the file syntax",
            ) from e
        except ValidationError as e:
            raise ConfigError(
                f"Invalid configuration in {path}: {e.error_count()} error(s)",
                hint=str(e.errors()[0]["loc"]) if e.errors() else None,
            ) from e

    @classmethod
    def find_and_load(cls) -> CourtGuideConfig:
        """Find and load config from standard locations."""
        locations = [
            Path.cwd() / "courtguide.yaml",
            Path.home() / ".config" / "courtguide" / "courtguide.yaml",
        ]

        for path in locations:
            if path.exists():
                return cls.from_yaml(path)

        # Fall back to defaults + environment variables
        return cls()
