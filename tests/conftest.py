"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from courtguide.core.cache import MemoryStore
from courtguide.core.models import DeviceHints, Frame
from courtguide.runtime.pipeline import DetectionPipeline
from courtguide.vision.synthetic import court_frame


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests (full HD frames, long frame sequences)",
    )


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (run with --run-slow)")


def pytest_collection_modifyitems(config, items):
    """Skip slow tests unless --run-slow is specified."""
    if config.getoption("--run-slow"):
        return

    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def high_tier_hints() -> DeviceHints:
    """Scores 100: 8 cores, 8 GB, Apple GPU, no battery info."""
    return DeviceHints(cpu_cores=8, memory_gb=8.0, gpu_name="Apple M2")


@pytest.fixture
def medium_tier_hints() -> DeviceHints:
    """Scores 60: 6 cores, 6 GB, no GPU."""
    return DeviceHints(cpu_cores=6, memory_gb=6.0)


@pytest.fixture
def low_tier_hints() -> DeviceHints:
    """Scores 20: 2 cores, 2 GB, no GPU."""
    return DeviceHints(cpu_cores=2, memory_gb=2.0)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def pipeline(store, high_tier_hints, clock) -> DetectionPipeline:
    return DetectionPipeline(store=store, hints=high_tier_hints, clock=clock)


@pytest.fixture
def well_placed_frame() -> Frame:
    """640x480 frame with all three guide lines where they belong."""
    return court_frame(640, 480)
