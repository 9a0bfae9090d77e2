"""Off-thread detection with a single-frame slot.

Frames are handed to a worker thread through a slot that holds at most one
pending frame, so detection never blocks the producer and latency cannot
grow under load:

    [frame source] -> submit() -> [slot] -> [worker thread] -> [results]

With ``SlotPolicy.DROP_NEW`` a frame arriving while another is pending or in
flight is dropped. With ``SlotPolicy.REPLACE`` it overwrites the slot and the
in-flight frame's result is discarded when it completes.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from queue import Empty, Full, Queue
from threading import Event, Thread
from typing import TYPE_CHECKING, Any

from courtguide.core.config import SlotPolicy
from courtguide.core.models import Frame

if TYPE_CHECKING:
    from courtguide.runtime.pipeline import DetectionOptions, DetectionPipeline

logger = logging.getLogger(__name__)


@dataclass
class WorkerResult:
    """Result of processing one frame."""

    frame: Frame
    sequence: int
    value: Any = None
    error: Exception | None = None


class DetectionWorker:
    """Runs ``process(frame)`` on a background thread, one frame at a time."""

    def __init__(
        self,
        process: Callable[[Frame], Any],
        policy: SlotPolicy = SlotPolicy.DROP_NEW,
        on_result: Callable[[WorkerResult], None] | None = None,
        result_timeout: float = 5.0,
    ):
        self.process = process
        self.policy = policy
        self.on_result = on_result
        self.result_timeout = result_timeout

        self._results: Queue[WorkerResult] = Queue(maxsize=1)
        self._condition = threading.Condition()
        self._pending: Frame | None = None
        self._busy = False
        self._generation = 0
        self._sequence = 0
        self._abandoned_through = 0
        self._stop_event = Event()
        self._thread: Thread | None = None

        self.submitted = 0
        self.dropped = 0
        self.discarded = 0
        self.completed = 0

    def start(self) -> None:
        """Start the worker thread."""
        self._stop_event.clear()
        self._thread = Thread(target=self._work_loop, name="courtguide-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the worker thread. A frame still in flight finishes first."""
        self._stop_event.set()
        with self._condition:
            self._pending = None
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    @property
    def busy(self) -> bool:
        with self._condition:
            return self._busy or self._pending is not None

    def submit(self, frame: Frame) -> bool:
        """Offer a frame. Returns False when the frame was dropped."""
        with self._condition:
            self.submitted += 1
            occupied = self._busy or self._pending is not None
            if occupied and self.policy == SlotPolicy.DROP_NEW:
                self.dropped += 1
                return False

            if occupied:
                # Invalidate whatever is in flight; its result will be discarded
                self._generation += 1
                if self._pending is not None:
                    self.discarded += 1

            self._pending = frame
            self._condition.notify()
            return True

    def get_result(self, timeout: float | None = None) -> WorkerResult | None:
        """Wait for the next result. Returns None on timeout.

        A timeout abandons the frame in flight: its result is discarded when
        it completes instead of being returned by a later call.
        """
        timeout = self.result_timeout if timeout is None else timeout
        try:
            return self._results.get(timeout=timeout)
        except Empty:
            pass

        with self._condition:
            self._abandoned_through = self._sequence
            # A result may have landed between the timeout and taking the lock
            while True:
                try:
                    self._results.get_nowait()
                except Empty:
                    break
                self.completed -= 1
                self.discarded += 1
        return None

    def _take(self) -> tuple[Frame, int, int] | None:
        with self._condition:
            while self._pending is None and not self._stop_event.is_set():
                self._condition.wait(timeout=0.1)
            if self._stop_event.is_set():
                return None
            frame = self._pending
            self._pending = None
            self._busy = True
            self._sequence += 1
            return frame, self._generation, self._sequence

    def _work_loop(self) -> None:
        while not self._stop_event.is_set():
            taken = self._take()
            if taken is None:
                break
            frame, generation, sequence = taken

            result = WorkerResult(frame=frame, sequence=sequence)
            try:
                result.value = self.process(frame)
            except Exception as e:
                logger.warning(f"Worker process failed: {type(e).__name__}: {e}")
                result.error = e

            with self._condition:
                self._busy = False
                stale = (
                    generation != self._generation or sequence <= self._abandoned_through
                )
                if stale:
                    self.discarded += 1
                else:
                    self.completed += 1
                    if self.on_result is None:
                        self._publish(result)

            if not stale and self.on_result is not None:
                self.on_result(result)

    def _publish(self, result: WorkerResult) -> None:
        # Keep only the newest unread result
        while True:
            try:
                self._results.put_nowait(result)
                return
            except Full:
                try:
                    self._results.get_nowait()
                except Empty:
                    pass

    def __enter__(self) -> DetectionWorker:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()


def pipeline_worker(
    pipeline: DetectionPipeline,
    options: DetectionOptions | None = None,
    on_result: Callable[[WorkerResult], None] | None = None,
) -> DetectionWorker:
    """Worker running the pipeline's optimized path with its configured slot policy."""

    def process(frame: Frame) -> Any:
        return pipeline.detect_with_performance_optimization(frame, options)

    worker_config = pipeline.config.worker
    return DetectionWorker(
        process, worker_config.policy, on_result, worker_config.result_timeout_seconds
    )
