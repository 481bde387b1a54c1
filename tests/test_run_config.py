import unittest

from Screen_Filter.run_config import apply_run_config, collect_cli_dests
from Screen_Filter.runner import ResultTally, build_parser, resolve_pipeline_config
from Screen_Filter.scheduler import DetectionResult
from guard_kit.types import Detection


def _parse(argv, payload):
    parser = build_parser()
    args = parser.parse_args(argv)
    apply_run_config(args=args, payload=payload, cli_dests=collect_cli_dests(parser, argv), parser=parser)
    return args


class TestRunConfig(unittest.TestCase):
    def test_config_fills_unset_options(self) -> None:
        args = _parse([], {"source": {"video": "clip.mp4"}, "conf": 0.3, "interval_ms": 500, "show": True})
        self.assertEqual(args.video, "clip.mp4")
        self.assertEqual(args.conf, 0.3)
        self.assertEqual(args.interval_ms, 500)
        self.assertTrue(args.show)

    def test_cli_wins_over_config(self) -> None:
        args = _parse(["--conf", "0.5", "--iou=0.6"], {"conf": 0.3, "iou": 0.2})
        self.assertEqual(args.conf, 0.5)
        self.assertEqual(args.iou, 0.6)

    def test_cli_source_replaces_config_source(self) -> None:
        args = _parse(["--webcam", "1"], {"source": {"video": "clip.mp4"}})
        self.assertEqual(args.webcam, 1)
        self.assertIsNone(args.video)

    def test_top_level_source_key(self) -> None:
        args = _parse([], {"rtsp": "rtsp://cam/stream"})
        self.assertEqual(args.rtsp, "rtsp://cam/stream")

    def test_onnx_providers_list(self) -> None:
        args = _parse([], {"onnx_providers": ["CUDAExecutionProvider", "CPUExecutionProvider"]})
        self.assertEqual(args.onnx_providers, "CUDAExecutionProvider,CPUExecutionProvider")

    def test_rejects_unknown_keys(self) -> None:
        with self.assertRaises(ValueError):
            _parse([], {"blur": True})

    def test_rejects_source_block_with_two_sources(self) -> None:
        with self.assertRaises(ValueError):
            _parse([], {"source": {"video": "a.mp4", "webcam": 0}})

    def test_rejects_mixed_source_styles(self) -> None:
        with self.assertRaises(ValueError):
            _parse([], {"source": {"video": "a.mp4"}, "rtsp": "rtsp://x"})

    def test_type_checks(self) -> None:
        with self.assertRaises(ValueError):
            _parse([], {"max_frames": 1.5})
        with self.assertRaises(ValueError):
            _parse([], {"realtime": "yes"})
        with self.assertRaises(ValueError):
            _parse([], {"conf": True})
        with self.assertRaises(ValueError):
            _parse([], {"source": {"webcam": "0"}})


class TestRunnerHelpers(unittest.TestCase):
    def test_resolve_pipeline_config_overrides(self) -> None:
        args = build_parser().parse_args(["--conf", "0.25", "--interval-ms", "100"])
        cfg = resolve_pipeline_config(args)
        self.assertEqual(cfg.confidence_threshold, 0.25)
        self.assertEqual(cfg.min_process_interval_ms, 100)
        self.assertEqual(cfg.iou_threshold, 0.45)
        self.assertEqual(cfg.model_input_size, 512)

    def test_result_tally(self) -> None:
        tally = ResultTally()
        flagged = DetectionResult(detections=(Detection(5, 5, 2, 2, 0.9),), source_width=10, source_height=10, timestamp=1.0)
        empty = DetectionResult(detections=(), source_width=10, source_height=10, timestamp=2.0)
        tally(flagged)
        tally(empty)
        self.assertEqual((tally.results, tally.flagged, tally.errors), (2, 1, 0))
        self.assertIs(tally.latest, empty)


if __name__ == "__main__":
    unittest.main()
