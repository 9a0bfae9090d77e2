"""Per-stage timing for the detection pipeline."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any


@dataclass
class StageTiming:
    """Single stage measurement."""

    stage: str
    duration_ms: float
    frame_index: int | None = None


class StageProfiler:
    """Thread-safe collector of stage timings.

    Keeps the most recent ``max_entries`` measurements so it can stay enabled
    on a live camera feed.

    Usage:
        profiler = StageProfiler(enabled=True)

        with profiler.time("edges", frame_index=12):
            ...

        report = profiler.report()
    """

    def __init__(self, enabled: bool = False, max_entries: int = 10_000) -> None:
        self._entries: deque[StageTiming] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        """Disable profiling (context managers become no-ops)."""
        self._enabled = False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @contextmanager
    def time(self, stage: str, frame_index: int | None = None) -> Generator[None, None, None]:
        """Context manager timing one stage of one frame."""
        if not self._enabled:
            yield
            return

        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            with self._lock:
                self._entries.append(StageTiming(stage, elapsed_ms, frame_index))

    def get_entries(self) -> list[StageTiming]:
        with self._lock:
            return list(self._entries)

    def report(self) -> dict[str, Any]:
        """Summarise timings per stage.

        Returns:
            Dict with structure:
            {
                "total_ms": float,
                "stages": {
                    "stage_name": {
                        "total_ms": float,
                        "percentage": float,
                        "count": int,
                        "avg_ms": float,
                        "max_ms": float,
                    }
                },
                "entries_count": int,
            }
        """
        entries = self.get_entries()
        if not entries:
            return {"total_ms": 0.0, "stages": {}, "entries_count": 0}

        by_stage: dict[str, list[float]] = defaultdict(list)
        for entry in entries:
            by_stage[entry.stage].append(entry.duration_ms)

        total_ms = sum(e.duration_ms for e in entries)
        stages: dict[str, Any] = {}
        for stage, durations in by_stage.items():
            stage_total = sum(durations)
            stages[stage] = {
                "total_ms": round(stage_total, 3),
                "percentage": round(100 * stage_total / total_ms, 1) if total_ms > 0 else 0,
                "count": len(durations),
                "avg_ms": round(stage_total / len(durations), 3),
                "max_ms": round(max(durations), 3),
            }

        return {
            "total_ms": round(total_ms, 3),
            "stages": stages,
            "entries_count": len(entries),
        }
