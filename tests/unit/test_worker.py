"""Tests for the single-slot detection worker."""

from __future__ import annotations

import threading
import time

import numpy as np

from courtguide.core.config import SlotPolicy
from courtguide.core.models import Frame
from courtguide.runtime.worker import DetectionWorker, WorkerResult


def _frame(timestamp: float) -> Frame:
    return Frame.from_array(np.zeros((2, 2), dtype=np.uint8), timestamp=timestamp)


class GatedProcess:
    """Blocks inside ``process`` until released."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.seen: list[float] = []

    def __call__(self, frame: Frame) -> float:
        self.seen.append(frame.timestamp)
        self.started.set()
        assert self.release.wait(timeout=5.0)
        return frame.timestamp * 10


class TestDetectionWorker:
    def test_processes_frame(self) -> None:
        with DetectionWorker(lambda f: f.timestamp + 1) as worker:
            assert worker.submit(_frame(1.0))
            result = worker.get_result(timeout=5.0)
        assert result is not None
        assert result.value == 2.0
        assert result.error is None
        assert result.sequence == 1

    def test_drop_new_while_busy(self) -> None:
        process = GatedProcess()
        with DetectionWorker(process, SlotPolicy.DROP_NEW) as worker:
            assert worker.submit(_frame(1.0))
            assert process.started.wait(timeout=5.0)
            assert worker.busy
            assert not worker.submit(_frame(2.0))
            process.release.set()
            result = worker.get_result(timeout=5.0)

        assert result is not None
        assert result.value == 10.0
        assert worker.dropped == 1
        assert process.seen == [1.0]

    def test_replace_discards_stale_results(self) -> None:
        process = GatedProcess()
        with DetectionWorker(process, SlotPolicy.REPLACE) as worker:
            assert worker.submit(_frame(1.0))
            assert process.started.wait(timeout=5.0)
            assert worker.submit(_frame(2.0))
            assert worker.submit(_frame(3.0))
            process.release.set()
            result = worker.get_result(timeout=5.0)

        assert result is not None
        assert result.frame.timestamp == 3.0
        assert result.value == 30.0
        # Frame 1 finished stale, frame 2 was overwritten in the slot
        assert worker.discarded == 2
        assert process.seen == [1.0, 3.0]

    def test_timed_out_result_is_discarded(self) -> None:
        process = GatedProcess()
        with DetectionWorker(process, SlotPolicy.DROP_NEW) as worker:
            assert worker.submit(_frame(1.0))
            assert process.started.wait(timeout=5.0)
            assert worker.get_result(timeout=0.05) is None

            process.release.set()
            deadline = time.monotonic() + 5.0
            while worker.busy and time.monotonic() < deadline:
                time.sleep(0.01)

            assert worker.submit(_frame(2.0))
            result = worker.get_result(timeout=5.0)

        assert result is not None
        assert result.frame.timestamp == 2.0
        assert worker.discarded == 1
        assert worker.completed == 1

    def test_errors_are_delivered(self) -> None:
        def fail(frame: Frame) -> None:
            raise RuntimeError("detector crashed")

        with DetectionWorker(fail) as worker:
            worker.submit(_frame(1.0))
            result = worker.get_result(timeout=5.0)

        assert result is not None
        assert isinstance(result.error, RuntimeError)
        assert result.value is None

    def test_on_result_callback(self) -> None:
        delivered: list[WorkerResult] = []
        done = threading.Event()

        def on_result(result: WorkerResult) -> None:
            delivered.append(result)
            done.set()

        with DetectionWorker(lambda f: "ok", on_result=on_result) as worker:
            worker.submit(_frame(1.0))
            assert done.wait(timeout=5.0)
            assert worker.get_result(timeout=0.05) is None

        assert [r.value for r in delivered] == ["ok"]

    def test_get_result_times_out(self) -> None:
        with DetectionWorker(lambda f: None, result_timeout=0.05) as worker:
            assert worker.get_result() is None

    def test_stop_joins_thread(self) -> None:
        worker = DetectionWorker(lambda f: None)
        worker.start()
        worker.stop()
        assert worker._thread is None
        assert not worker.busy
