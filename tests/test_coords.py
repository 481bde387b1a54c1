import unittest

from guard_kit.coords import CoordinateMapper, clip_box, clip_detection, model_scale, to_display
from guard_kit.types import Box, Detection


class TestDetectionValue(unittest.TestCase):
    def test_box_computed_at_construction(self) -> None:
        d = Detection(center_x=50, center_y=40, width=20, height=10, confidence=0.9)
        self.assertEqual(d.as_xyxy(), (40.0, 35.0, 60.0, 45.0))
        self.assertEqual(d.box.area, 200.0)

    def test_from_corners_round_trips_center_form(self) -> None:
        d = Detection.from_corners(10, 20, 30, 60, confidence=0.5)
        self.assertEqual((d.center_x, d.center_y, d.width, d.height), (20.0, 40.0, 20.0, 40.0))
        self.assertEqual(d.class_id, 0)
        self.assertEqual(d.class_name, "not_safe")

    def test_is_immutable(self) -> None:
        d = Detection(center_x=1, center_y=1, width=1, height=1, confidence=0.1)
        with self.assertRaises(Exception):
            d.confidence = 0.5  # type: ignore[misc]


class TestCoordinateSpaces(unittest.TestCase):
    def test_model_scale(self) -> None:
        self.assertEqual(model_scale(1000, 800, 512), (1.953125, 1.5625))
        with self.assertRaises(ValueError):
            model_scale(1000, 800, 0)

    def test_to_display_scales_each_axis(self) -> None:
        out = to_display(Box(100, 100, 200, 300), 1000, 800, 500, 200)
        self.assertEqual(out.as_xyxy(), (50.0, 25.0, 100.0, 75.0))

    def test_to_display_with_zero_source_is_identity(self) -> None:
        box = Box(1, 2, 3, 4)
        self.assertEqual(to_display(box, 0, 0, 500, 200), box)

    def test_mapper(self) -> None:
        mapper = CoordinateMapper(source_width=640, source_height=480, display_width=1280, display_height=960)
        self.assertEqual(mapper.scale, (2.0, 2.0))
        d = Detection.from_corners(10, 20, 30, 40, confidence=0.9)
        self.assertEqual(mapper.detections_to_display([d]), [Box(20, 40, 60, 80)])

    def test_clip_box(self) -> None:
        self.assertEqual(clip_box(Box(-10, -5, 50, 700), 100, 600), Box(0, 0, 50, 600))

    def test_clip_box_fully_outside_collapses(self) -> None:
        clipped = clip_box(Box(150, 150, 200, 200), 100, 100)
        self.assertTrue(clipped.is_degenerate)
        self.assertEqual(clipped.area, 0.0)

    def test_clip_detection_inside_returns_same_object(self) -> None:
        d = Detection.from_corners(10, 10, 20, 20, confidence=0.9)
        self.assertIs(clip_detection(d, 100, 100), d)

    def test_clip_detection_keeps_metadata(self) -> None:
        d = Detection.from_corners(-10, 10, 20, 20, confidence=0.7, class_id=0, class_name="flagged")
        out = clip_detection(d, 100, 100)
        self.assertEqual(out.as_xyxy(), (0.0, 10.0, 20.0, 20.0))
        self.assertEqual(out.confidence, 0.7)
        self.assertEqual(out.class_name, "flagged")


if __name__ == "__main__":
    unittest.main()
