"""
Frame admission for a push-based frame source.

The producer calls `FrameScheduler.submit(frame)` at whatever rate frames
arrive. Admission is decided on the producer's thread without blocking: a
frame is dropped while a detection pass is running or when it arrives sooner
than `min_process_interval_ms` after the last admitted one. Admitted frames
are copied into a pooled buffer and run through the detection pipeline on a
single worker thread; the result goes to the sink, optionally through a
`dispatch` callable that moves the call onto another thread (e.g. a UI loop).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Tuple

from guard_kit.errors import FrameConversionFailure, PipelineError
from guard_kit.runtime import DetectionPipeline
from guard_kit.types import Detection

from .buffer_pool import BufferPool
from .config import PipelineConfig
from .frame import Frame

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of one admitted frame. A frame that could not be processed still
    yields a result, with no detections and the failure in `error`.
    """

    detections: Tuple[Detection, ...]
    source_width: int
    source_height: int
    timestamp: float
    error: Optional[PipelineError] = None

    @property
    def flagged(self) -> bool:
        return bool(self.detections)


@dataclass(frozen=True)
class SchedulerStats:
    admitted: int = 0
    dropped: int = 0
    failed: int = 0
    delivered: int = 0
    # Admitted but stopped by shutdown before detection ran.
    cancelled: int = 0


Sink = Callable[[DetectionResult], None]
Dispatch = Callable[[Callable[[], None]], None]


class FrameScheduler:
    """
    Single-flight, rate-limited gate between a frame source and the detector.

    At most one detection pass runs at a time. Dropped frames are left to the
    caller to release; admitted frames are released by the scheduler as soon
    as their pixels are copied.
    """

    def __init__(
        self,
        pipeline: DetectionPipeline,
        sink: Sink,
        cfg: PipelineConfig = PipelineConfig(),
        *,
        pool: Optional[BufferPool] = None,
        executor: Optional[Executor] = None,
        dispatch: Optional[Dispatch] = None,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self._pipeline = pipeline
        self._sink = sink
        self.cfg = cfg
        self.pool = pool if pool is not None else BufferPool()
        self._owns_executor = executor is None
        self._executor = executor if executor is not None else ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="frame-scheduler"
        )
        self._dispatch = dispatch
        self._clock = clock

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._stopping = threading.Event()
        self._closed = False
        self._in_flight = False
        self._last_processed_at: Optional[float] = None
        self._pending: Optional[Future] = None

        self._admitted = 0
        self._dropped = 0
        self._failed = 0
        self._delivered = 0
        self._cancelled = 0

    def __enter__(self) -> "FrameScheduler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    @property
    def stats(self) -> SchedulerStats:
        with self._lock:
            return SchedulerStats(
                admitted=self._admitted,
                dropped=self._dropped,
                failed=self._failed,
                delivered=self._delivered,
                cancelled=self._cancelled,
            )

    def submit(self, frame: Frame) -> bool:
        """
        Offer a frame. Returns True when it was admitted; on False the caller
        still owns the frame and should release it.
        """

        now = self._clock()
        with self._lock:
            if self._stopping.is_set() or self._in_flight:
                self._dropped += 1
                return False
            last = self._last_processed_at
            if last is not None and now - last < self.cfg.min_process_interval_ms:
                self._dropped += 1
                return False
            self._in_flight = True
            self._last_processed_at = now
            self._admitted += 1

        try:
            future = self._executor.submit(self._process, frame)
        except RuntimeError:
            # Executor already shut down.
            with self._lock:
                self._admitted -= 1
                self._dropped += 1
                self._clear_in_flight_locked()
            return False

        # Runs at once when the pass already finished; a cancelled pass never
        # reaches `_process`, so the frame is released here instead.
        future.add_done_callback(partial(self._on_pass_done, frame))
        with self._lock:
            self._pending = future
            stopping = self._stopping.is_set()
        if stopping:
            future.cancel()
        return True

    def shutdown(self) -> None:
        """
        Stop admitting frames, cancel a queued pass, let a running pass finish
        without delivering its result, then release pooled buffers and the
        pipeline. Idempotent.
        """

        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stopping.set()
            pending = self._pending

        try:
            if pending is not None:
                pending.cancel()
            if self._owns_executor:
                self._executor.shutdown(wait=True, cancel_futures=True)
            with self._lock:
                self._idle.wait_for(lambda: not self._in_flight)
        finally:
            self.pool.release_all()
            self._pipeline.close()
            logger.info("Frame scheduler stopped (%s)", self.stats)

    # ------------------------------------------------------------------ #
    # Worker side
    # ------------------------------------------------------------------ #
    def _process(self, frame: Frame) -> None:
        if self._stopping.is_set():
            frame.close()
            self._finish_pass(cancelled=True)
            return

        result: Optional[DetectionResult] = None
        try:
            result = self._detect(frame)
        finally:
            self._finish_pass(failed=result is None or result.error is not None)
        self._deliver(result)

    def _on_pass_done(self, frame: Frame, future: Future) -> None:
        if not future.cancelled():
            return
        frame.close()
        self._finish_pass(cancelled=True)
        logger.debug("Queued detection pass for frame at %.3f cancelled", frame.timestamp)

    def _finish_pass(self, *, failed: bool = False, cancelled: bool = False) -> None:
        with self._lock:
            if cancelled:
                self._cancelled += 1
            elif failed:
                self._failed += 1
            self._clear_in_flight_locked()

    def _clear_in_flight_locked(self) -> None:
        self._in_flight = False
        self._idle.notify_all()

    def _detect(self, frame: Frame) -> DetectionResult:
        try:
            try:
                buf = self.pool.copy_frame(frame)
            finally:
                frame.close()
            assert buf.data is not None
            detections: List[Detection] = self._pipeline.detect(buf.data, buf.pixel_format)
        except FrameConversionFailure as exc:
            logger.warning("Skipping frame at %.3f: %s", frame.timestamp, exc)
            return self._empty_result(frame, exc)
        except Exception as exc:
            logger.exception("Detection pass failed for frame at %.3f", frame.timestamp)
            error = exc if isinstance(exc, PipelineError) else PipelineError(f"{type(exc).__name__}: {exc}")
            return self._empty_result(frame, error)

        if detections:
            logger.info(
                "Flagged %d region(s) in %dx%d frame (top confidence %.2f)",
                len(detections),
                frame.width,
                frame.height,
                detections[0].confidence,
            )
        return DetectionResult(
            detections=tuple(detections),
            source_width=frame.width,
            source_height=frame.height,
            timestamp=frame.timestamp,
        )

    @staticmethod
    def _empty_result(frame: Frame, error: PipelineError) -> DetectionResult:
        return DetectionResult(
            detections=(),
            source_width=frame.width,
            source_height=frame.height,
            timestamp=frame.timestamp,
            error=error,
        )

    def _deliver(self, result: DetectionResult) -> None:
        if self._stopping.is_set():
            return
        if self._dispatch is None:
            self._call_sink(result)
        else:
            self._dispatch(lambda: self._call_sink(result))

    def _call_sink(self, result: DetectionResult) -> None:
        # Re-checked here: a dispatched hand-off may run after shutdown started.
        if self._stopping.is_set():
            return
        try:
            self._sink(result)
        except Exception:
            logger.exception("Detection sink failed")
            return
        with self._lock:
            self._delivered += 1
