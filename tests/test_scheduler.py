import threading
import unittest
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Callable, List

import numpy as np

from guard_kit.errors import FrameConversionFailure, PipelineError
from guard_kit.types import Detection
from Screen_Filter.config import PipelineConfig
from Screen_Filter.frame import Frame
from Screen_Filter.scheduler import DetectionResult, FrameScheduler


class InlineExecutor(Executor):
    """Runs work on the submitting thread so admission tests are deterministic."""

    def submit(self, fn, *args, **kwargs):  # type: ignore[override]
        fut: Future = Future()
        try:
            fut.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            fut.set_exception(exc)
        return fut


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakePipeline:
    def __init__(self, detections: List[Detection] = None, fail: Exception = None) -> None:
        self.detections = list(detections or [])
        self.fail = fail
        self.calls: List[tuple] = []
        self.closed = 0

    def detect(self, image: np.ndarray, pixel_format: str = "RGBA_8888") -> List[Detection]:
        self.calls.append((image.shape, pixel_format))
        if self.fail is not None:
            raise self.fail
        return list(self.detections)

    def close(self) -> None:
        self.closed += 1


def _frame(ts: float, release: Callable[[], None] = None, pixel_format: str = "RGBA_8888") -> Frame:
    channels = 3 if pixel_format != "RGBA_8888" else 4
    return Frame(
        pixels=np.zeros((4, 4, channels), dtype=np.uint8),
        width=4,
        height=4,
        timestamp=ts,
        pixel_format=pixel_format,
        release=release,
    )


class TestFrameSchedulerAdmission(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.results: List[DetectionResult] = []
        self.pipeline = FakePipeline([Detection(2, 2, 2, 2, 0.9)])
        self.scheduler = FrameScheduler(
            self.pipeline,
            self.results.append,
            PipelineConfig(min_process_interval_ms=300),
            executor=InlineExecutor(),
            clock=self.clock,
        )

    def tearDown(self) -> None:
        self.scheduler.shutdown()

    def test_burst_admits_exactly_one(self) -> None:
        admitted = []
        for i in range(10):
            self.clock.now = i * 10.0
            admitted.append(self.scheduler.submit(_frame(float(i))))
        self.assertEqual(admitted.count(True), 1)
        self.assertTrue(admitted[0])
        stats = self.scheduler.stats
        self.assertEqual((stats.admitted, stats.dropped), (1, 9))
        self.assertEqual(len(self.results), 1)

    def test_frames_spaced_at_interval_are_all_admitted(self) -> None:
        for i in range(5):
            self.clock.now = i * 300.0
            self.assertTrue(self.scheduler.submit(_frame(float(i))))
        self.assertEqual(self.scheduler.stats.admitted, 5)
        self.assertEqual([r.timestamp for r in self.results], [0.0, 1.0, 2.0, 3.0, 4.0])

    def test_result_carries_source_dimensions(self) -> None:
        self.scheduler.submit(_frame(1.5))
        r = self.results[0]
        self.assertTrue(r.flagged)
        self.assertIsNone(r.error)
        self.assertEqual((r.source_width, r.source_height), (4, 4))
        self.assertEqual(self.pipeline.calls, [((4, 4, 4), "RGBA_8888")])

    def test_admitted_frame_is_released_dropped_frame_is_not(self) -> None:
        released = []
        self.assertTrue(self.scheduler.submit(_frame(0.0, release=lambda: released.append("a"))))
        self.clock.now = 10.0
        dropped = _frame(1.0, release=lambda: released.append("b"))
        self.assertFalse(self.scheduler.submit(dropped))
        self.assertEqual(released, ["a"])
        self.assertFalse(dropped.closed)

    def test_conversion_failure_yields_empty_result(self) -> None:
        released = []
        bad = Frame(
            pixels=np.zeros((4, 4, 4), dtype=np.uint8),
            width=4,
            height=4,
            timestamp=0.0,
            pixel_format="BGR_888",
            release=lambda: released.append(1),
        )
        with self.assertLogs("Screen_Filter.scheduler", level="WARNING"):
            self.assertTrue(self.scheduler.submit(bad))
        r = self.results[0]
        self.assertEqual(r.detections, ())
        self.assertIsInstance(r.error, FrameConversionFailure)
        self.assertEqual(released, [1])
        self.assertFalse(self.scheduler.in_flight)
        self.assertEqual(self.scheduler.stats.failed, 1)
        self.assertEqual(self.pipeline.calls, [])

        self.clock.now = 300.0
        self.assertTrue(self.scheduler.submit(_frame(1.0)))
        self.assertIsNone(self.results[-1].error)

    def test_pipeline_exception_is_reported_on_result(self) -> None:
        self.pipeline.fail = RuntimeError("boom")
        with self.assertLogs("Screen_Filter.scheduler", level="ERROR"):
            self.scheduler.submit(_frame(0.0))
        r = self.results[0]
        self.assertFalse(r.flagged)
        self.assertIsInstance(r.error, PipelineError)
        self.assertIn("boom", str(r.error))
        self.assertFalse(self.scheduler.in_flight)

    def test_sink_failure_does_not_stop_scheduler(self) -> None:
        def _bad_sink(result: DetectionResult) -> None:
            raise ValueError("sink broke")

        scheduler = FrameScheduler(
            FakePipeline(),
            _bad_sink,
            PipelineConfig(min_process_interval_ms=0),
            executor=InlineExecutor(),
            clock=self.clock,
        )
        with self.assertLogs("Screen_Filter.scheduler", level="ERROR"):
            self.assertTrue(scheduler.submit(_frame(0.0)))
        self.assertTrue(scheduler.submit(_frame(1.0)))
        self.assertEqual(scheduler.stats.delivered, 0)
        scheduler.shutdown()


class TestFrameSchedulerShutdown(unittest.TestCase):
    def test_shutdown_is_idempotent_and_closes_pipeline(self) -> None:
        pipeline = FakePipeline()
        scheduler = FrameScheduler(pipeline, lambda r: None, executor=InlineExecutor())
        scheduler.submit(_frame(0.0))
        scheduler.shutdown()
        scheduler.shutdown()
        self.assertEqual(pipeline.closed, 1)
        self.assertEqual(len(scheduler.pool), 0)

    def test_no_admission_after_shutdown(self) -> None:
        scheduler = FrameScheduler(FakePipeline(), lambda r: None, executor=InlineExecutor())
        scheduler.shutdown()
        self.assertFalse(scheduler.submit(_frame(0.0)))
        self.assertEqual(scheduler.stats.dropped, 1)

    def test_dispatched_delivery_is_suppressed_after_shutdown(self) -> None:
        queued: List[Callable[[], None]] = []
        results: List[DetectionResult] = []
        scheduler = FrameScheduler(
            FakePipeline([Detection(2, 2, 2, 2, 0.9)]),
            results.append,
            executor=InlineExecutor(),
            dispatch=queued.append,
        )
        self.assertTrue(scheduler.submit(_frame(0.0)))
        self.assertEqual(len(queued), 1)
        scheduler.shutdown()
        for fn in queued:
            fn()
        self.assertEqual(results, [])

    def test_dispatched_delivery_before_shutdown(self) -> None:
        queued: List[Callable[[], None]] = []
        results: List[DetectionResult] = []
        with FrameScheduler(FakePipeline(), results.append, executor=InlineExecutor(), dispatch=queued.append) as scheduler:
            scheduler.submit(_frame(0.0))
            for fn in queued:
                fn()
            self.assertEqual(len(results), 1)
            self.assertEqual(scheduler.stats.delivered, 1)


class _BlockingPipeline(FakePipeline):
    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.proceed = threading.Event()

    def detect(self, image: np.ndarray, pixel_format: str = "RGBA_8888") -> List[Detection]:
        self.started.set()
        self.proceed.wait(timeout=5.0)
        return super().detect(image, pixel_format)


class TestFrameSchedulerWorkerThread(unittest.TestCase):
    def test_frames_dropped_while_pass_in_flight(self) -> None:
        clock = FakeClock()
        delivered = threading.Event()
        results: List[DetectionResult] = []

        def _sink(result: DetectionResult) -> None:
            results.append(result)
            delivered.set()

        pipeline = _BlockingPipeline()
        scheduler = FrameScheduler(pipeline, _sink, PipelineConfig(min_process_interval_ms=300), clock=clock)
        try:
            self.assertTrue(scheduler.submit(_frame(0.0)))
            self.assertTrue(pipeline.started.wait(timeout=5.0))
            self.assertTrue(scheduler.in_flight)

            # Past the interval, but the first pass is still running.
            clock.now = 1000.0
            self.assertFalse(scheduler.submit(_frame(1.0)))

            pipeline.proceed.set()
            self.assertTrue(delivered.wait(timeout=5.0))
            self.assertFalse(scheduler.in_flight)

            clock.now = 2000.0
            delivered.clear()
            self.assertTrue(scheduler.submit(_frame(2.0)))
            self.assertTrue(delivered.wait(timeout=5.0))
        finally:
            scheduler.shutdown()

        self.assertEqual([r.timestamp for r in results], [0.0, 2.0])
        stats = scheduler.stats
        self.assertEqual((stats.admitted, stats.dropped, stats.delivered), (2, 1, 2))
        self.assertEqual(pipeline.closed, 1)

    def test_queued_pass_cancelled_by_shutdown_releases_frame(self) -> None:
        executor = ThreadPoolExecutor(max_workers=1)
        gate = threading.Event()
        executor.submit(gate.wait, 5.0)
        released: List[int] = []
        results: List[DetectionResult] = []
        pipeline = FakePipeline()
        try:
            scheduler = FrameScheduler(pipeline, results.append, executor=executor)
            self.assertTrue(scheduler.submit(_frame(0.0, release=lambda: released.append(1))))
            scheduler.shutdown()

            self.assertEqual(released, [1])
            self.assertFalse(scheduler.in_flight)
            self.assertEqual(scheduler.stats.cancelled, 1)
            self.assertEqual(scheduler.stats.failed, 0)
            self.assertEqual(pipeline.calls, [])
            self.assertEqual(pipeline.closed, 1)
        finally:
            gate.set()
            executor.shutdown(wait=True)
        self.assertEqual(results, [])

    def _shutdown_during_running_pass(self, executor) -> None:
        results: List[DetectionResult] = []
        released: List[int] = []
        pipeline = _BlockingPipeline()
        scheduler = FrameScheduler(pipeline, results.append, executor=executor)
        self.assertTrue(scheduler.submit(_frame(0.0, release=lambda: released.append(1))))
        self.assertTrue(pipeline.started.wait(timeout=5.0))

        stopper = threading.Thread(target=scheduler.shutdown)
        stopper.start()
        self.assertTrue(scheduler._stopping.wait(timeout=5.0))
        stopper.join(timeout=0.2)
        # Still waiting on the running pass; its buffer stays pooled.
        self.assertTrue(stopper.is_alive())
        self.assertEqual(len(scheduler.pool), 1)
        self.assertEqual(pipeline.closed, 0)

        pipeline.proceed.set()
        stopper.join(timeout=5.0)
        self.assertFalse(stopper.is_alive())

        self.assertEqual(results, [])
        self.assertEqual(released, [1])
        self.assertEqual(len(pipeline.calls), 1)
        self.assertEqual(len(scheduler.pool), 0)
        self.assertEqual(pipeline.closed, 1)
        self.assertFalse(scheduler.in_flight)

    def test_shutdown_waits_for_running_pass_on_own_worker(self) -> None:
        self._shutdown_during_running_pass(None)

    def test_shutdown_waits_for_running_pass_on_injected_executor(self) -> None:
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            self._shutdown_during_running_pass(executor)
        finally:
            executor.shutdown(wait=True)


if __name__ == "__main__":
    unittest.main()
