"""Calibration cache for courtguide.

Persists prior successful detections, tuned parameters per device tier, the
device profile, performance history, user preferences and recent errors.
Entries are JSON documents carrying their own TTL and, for calibrations, a
compatibility fingerprint. Expired or corrupt entries are purged lazily when
read. Every write replaces a whole entry.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Protocol
from urllib.parse import quote, unquote

from platformdirs import user_cache_dir
from pydantic import BaseModel, Field, ValidationError

from courtguide.core.config import CacheConfig
from courtguide.core.errors import CacheError
from courtguide.core.models import (
    CourtLine,
    DeviceProfile,
    LightingCondition,
    Orientation,
    PerformanceMetrics,
    PerformanceTier,
    ProcessingParameters,
)

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"


# =============================================================================
# Stores
# =============================================================================


class KeyValueStore(Protocol):
    """Minimal byte store the cache persists into."""

    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryStore:
    """In-process store."""

    def __init__(self) -> None:
        self._data: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


class FileStore:
    """One file per key in a directory. Writes go through an atomic rename."""

    suffix = ".json"

    def __init__(self, directory: Path | None = None):
        self.directory = directory or Path(user_cache_dir("courtguide")) / "calibration"
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.suffix}"

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.replace(tmp_name, self._path(key))
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        return [
            unquote(path.name[: -len(self.suffix)])
            for path in self.directory.glob(f"*{self.suffix}")
        ]


# =============================================================================
# Cached records
# =============================================================================


class CacheKind(str, Enum):
    """Entry families, each with its own TTL."""

    CALIBRATION = "calibration_data"
    PARAMETERS = "processing_params"
    DEVICE_PROFILE = "device_profile"
    DEVICE_PERFORMANCE = "device_performance"
    USER_PREFERENCES = "user_preferences"
    ERROR_HISTORY = "error_history"


class Environment(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"


class CacheFingerprint(BaseModel):
    """Conditions a calibration was taken under."""

    frame_width: int
    frame_height: int
    orientation: Orientation
    lighting: LightingCondition


class CacheEntry(BaseModel):
    """Envelope stored for every key."""

    kind: CacheKind
    created_at: float
    ttl_seconds: float
    payload: dict[str, Any]
    fingerprint: CacheFingerprint | None = None
    version: str = CACHE_VERSION

    def expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_seconds


class CalibrationMetadata(BaseModel):
    lighting: LightingCondition = LightingCondition.NORMAL
    orientation: Orientation = Orientation.LANDSCAPE
    camera_height: float | None = None
    environment: Environment = Environment.INDOOR


class CalibrationRecord(BaseModel):
    """A successful detection worth reusing."""

    court_lines: list[CourtLine]
    frame_width: int
    frame_height: int
    parameters: ProcessingParameters
    confidence: float
    metadata: CalibrationMetadata = Field(default_factory=CalibrationMetadata)
    timestamp: float = 0.0


@dataclass(frozen=True)
class CalibrationContext:
    """Current conditions a cached calibration must match."""

    frame_width: int
    frame_height: int
    lighting: LightingCondition = LightingCondition.NORMAL
    orientation: Orientation | None = None

    @property
    def resolved_orientation(self) -> Orientation:
        return self.orientation or Orientation.of(self.frame_width, self.frame_height)


class NotificationSettings(BaseModel):
    calibration_success: bool = True
    performance_warnings: bool = True
    error_notifications: bool = True


class UserPreferences(BaseModel):
    auto_calibration: bool = True
    debug_mode: bool = False
    performance_mode: Literal["conservative", "balanced", "aggressive"] = "balanced"
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)


class DevicePerformanceRecord(BaseModel):
    tier: PerformanceTier
    processing_time_ms: float
    frame_rate: float
    memory_usage_bytes: int
    error_rate: float
    quality_level: str
    timestamp: float


class ErrorRecord(BaseModel):
    category: str
    message: str
    timestamp: float


@dataclass
class CacheStats:
    total_items: int = 0
    total_bytes: int = 0
    expired_items: int = 0
    keys: list[str] = field(default_factory=list)


def lighting_compatible(a: LightingCondition, b: LightingCondition) -> bool:
    """Identical or one step apart on the dim-normal-bright scale."""
    return abs(a.level - b.level) <= 1


# =============================================================================
# Cache
# =============================================================================


class CalibrationCache:
    """TTL-bound cache of calibrations, parameters and device state."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig()
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self._clock = clock

    def ttl_for(self, kind: CacheKind) -> float:
        return {
            CacheKind.CALIBRATION: self.config.calibration_ttl_seconds,
            CacheKind.PARAMETERS: self.config.parameters_ttl_seconds,
            CacheKind.DEVICE_PROFILE: self.config.device_performance_ttl_seconds,
            CacheKind.DEVICE_PERFORMANCE: self.config.device_performance_ttl_seconds,
            CacheKind.USER_PREFERENCES: self.config.preferences_ttl_seconds,
            CacheKind.ERROR_HISTORY: self.config.error_history_ttl_seconds,
        }[kind]

    # -------------------------------------------------------------------------
    # Entry plumbing
    # -------------------------------------------------------------------------

    def _write(
        self,
        key: str,
        kind: CacheKind,
        payload: dict[str, Any],
        fingerprint: CacheFingerprint | None = None,
    ) -> bool:
        entry = CacheEntry(
            kind=kind,
            created_at=self._clock(),
            ttl_seconds=self.ttl_for(kind),
            payload=payload,
            fingerprint=fingerprint,
        )
        try:
            self.store.set(key, entry.model_dump_json().encode("utf-8"))
            return True
        except OSError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    def _read(self, key: str) -> CacheEntry | None:
        try:
            raw = self.store.get(key)
        except OSError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Discarding corrupt cache entry {key}")
            self._delete(key)
            return None

        if entry.version != CACHE_VERSION:
            logger.info(f"Discarding cache entry {key} from version {entry.version}")
            self._delete(key)
            return None

        if entry.expired(self._clock()):
            logger.info(f"Cache entry {key} expired, purging")
            self._delete(key)
            return None

        return entry

    def _delete(self, key: str) -> None:
        try:
            self.store.delete(key)
        except OSError as e:
            logger.warning(f"Cache delete failed for {key}: {e}")

    # -------------------------------------------------------------------------
    # Calibration
    # -------------------------------------------------------------------------

    def save_calibration(self, record: CalibrationRecord) -> bool:
        fingerprint = CacheFingerprint(
            frame_width=record.frame_width,
            frame_height=record.frame_height,
            orientation=record.metadata.orientation,
            lighting=record.metadata.lighting,
        )
        if not record.timestamp:
            record = record.model_copy(update={"timestamp": self._clock()})
        saved = self._write(
            CacheKind.CALIBRATION.value,
            CacheKind.CALIBRATION,
            record.model_dump(mode="json"),
            fingerprint,
        )
        if saved:
            logger.info(
                f"Calibration saved ({len(record.court_lines)} lines, "
                f"confidence {record.confidence:.2f})"
            )
        return saved

    def load_calibration(self, context: CalibrationContext) -> CalibrationRecord | None:
        """Return the cached calibration if it is fresh and compatible."""
        entry = self._read(CacheKind.CALIBRATION.value)
        if entry is None or entry.fingerprint is None:
            return None

        fp = entry.fingerprint
        if (fp.frame_width, fp.frame_height) != (context.frame_width, context.frame_height):
            logger.debug("Calibration miss: frame dimensions changed")
            return None
        if fp.orientation != context.resolved_orientation:
            logger.debug("Calibration miss: orientation changed")
            return None
        if not lighting_compatible(fp.lighting, context.lighting):
            logger.debug(
                f"Calibration miss: lighting {fp.lighting.value} -> {context.lighting.value}"
            )
            return None

        try:
            return CalibrationRecord.model_validate(entry.payload)
        except ValidationError:
            logger.warning("Discarding unreadable calibration payload")
            self._delete(CacheKind.CALIBRATION.value)
            return None

    # -------------------------------------------------------------------------
    # Processing parameters (per tier)
    # -------------------------------------------------------------------------

    @staticmethod
    def parameters_key(tier: PerformanceTier) -> str:
        return f"{CacheKind.PARAMETERS.value}:{tier.value}"

    def save_parameters(self, params: ProcessingParameters, tier: PerformanceTier) -> bool:
        return self._write(
            self.parameters_key(tier), CacheKind.PARAMETERS, params.model_dump(mode="json")
        )

    def load_parameters(self, tier: PerformanceTier) -> ProcessingParameters | None:
        entry = self._read(self.parameters_key(tier))
        if entry is None:
            return None
        try:
            return ProcessingParameters.model_validate(entry.payload)
        except ValidationError:
            self._delete(self.parameters_key(tier))
            return None

    # -------------------------------------------------------------------------
    # Device state
    # -------------------------------------------------------------------------

    def save_device_profile(self, profile: DeviceProfile) -> bool:
        return self._write(
            CacheKind.DEVICE_PROFILE.value,
            CacheKind.DEVICE_PROFILE,
            profile.model_dump(mode="json"),
        )

    def load_device_profile(self) -> DeviceProfile | None:
        entry = self._read(CacheKind.DEVICE_PROFILE.value)
        if entry is None:
            return None
        try:
            return DeviceProfile.model_validate(entry.payload)
        except ValidationError:
            self._delete(CacheKind.DEVICE_PROFILE.value)
            return None

    def save_device_performance(
        self, metrics: PerformanceMetrics, tier: PerformanceTier
    ) -> bool:
        record = DevicePerformanceRecord(
            tier=tier,
            processing_time_ms=metrics.processing_time_ms,
            frame_rate=metrics.frame_rate,
            memory_usage_bytes=metrics.memory_usage_bytes,
            error_rate=metrics.error_rate,
            quality_level=metrics.quality_level.value,
            timestamp=self._clock(),
        )
        return self._write(
            CacheKind.DEVICE_PERFORMANCE.value,
            CacheKind.DEVICE_PERFORMANCE,
            record.model_dump(mode="json"),
        )

    def load_device_performance(self) -> DevicePerformanceRecord | None:
        entry = self._read(CacheKind.DEVICE_PERFORMANCE.value)
        if entry is None:
            return None
        try:
            return DevicePerformanceRecord.model_validate(entry.payload)
        except ValidationError:
            self._delete(CacheKind.DEVICE_PERFORMANCE.value)
            return None

    # -------------------------------------------------------------------------
    # User preferences
    # -------------------------------------------------------------------------

    def save_user_preferences(self, preferences: UserPreferences) -> bool:
        return self._write(
            CacheKind.USER_PREFERENCES.value,
            CacheKind.USER_PREFERENCES,
            preferences.model_dump(mode="json"),
        )

    def load_user_preferences(self) -> UserPreferences:
        """Stored preferences, or defaults when none are cached."""
        entry = self._read(CacheKind.USER_PREFERENCES.value)
        if entry is None:
            return UserPreferences()
        try:
            return UserPreferences.model_validate(entry.payload)
        except ValidationError:
            self._delete(CacheKind.USER_PREFERENCES.value)
            return UserPreferences()

    # -------------------------------------------------------------------------
    # Error history
    # -------------------------------------------------------------------------

    def append_error(self, category: str, message: str) -> bool:
        history = self.load_error_history()
        history.append(ErrorRecord(category=category, message=message, timestamp=self._clock()))
        history = history[-self.config.max_error_history :]
        return self._write(
            CacheKind.ERROR_HISTORY.value,
            CacheKind.ERROR_HISTORY,
            {"errors": [record.model_dump(mode="json") for record in history]},
        )

    def load_error_history(self) -> list[ErrorRecord]:
        entry = self._read(CacheKind.ERROR_HISTORY.value)
        if entry is None:
            return []
        try:
            return [ErrorRecord.model_validate(item) for item in entry.payload.get("errors", [])]
        except ValidationError:
            self._delete(CacheKind.ERROR_HISTORY.value)
            return []

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------

    def _purge(self, keys: list[str]) -> None:
        try:
            for key in keys:
                self.store.delete(key)
        except OSError as e:
            raise CacheError(
                f"Could not clear cache entries: {e}",
                hint="Check permissions on the cache directory",
            ) from e

    def _listed_keys(self) -> list[str]:
        try:
            return self.store.keys()
        except OSError as e:
            raise CacheError(f"Could not list cache entries: {e}") from e

    def clear(self, kind: CacheKind) -> int:
        """Delete every entry of one kind. Returns number of entries deleted.

        Raises:
            CacheError: If the store cannot be listed or an entry cannot be deleted.
        """
        keys = [
            key
            for key in self._listed_keys()
            if key == kind.value or key.startswith(f"{kind.value}:")
        ]
        self._purge(keys)
        return len(keys)

    def clear_all(self) -> int:
        """Delete every entry. Returns number of entries deleted.

        Raises:
            CacheError: If the store cannot be listed or an entry cannot be deleted.
        """
        keys = self._listed_keys()
        self._purge(keys)
        if keys:
            logger.info(f"Cleared {len(keys)} cache entries")
        return len(keys)

    def stats(self) -> CacheStats:
        stats = CacheStats()
        now = self._clock()
        for key in self._keys():
            try:
                raw = self.store.get(key)
            except OSError:
                continue
            if raw is None:
                continue
            stats.total_items += 1
            stats.total_bytes += len(raw)
            stats.keys.append(key)
            try:
                if CacheEntry.model_validate_json(raw).expired(now):
                    stats.expired_items += 1
            except ValidationError:
                stats.expired_items += 1
        return stats

    def _keys(self) -> list[str]:
        try:
            return self.store.keys()
        except OSError as e:
            logger.warning(f"Cache listing failed: {e}")
            return []
