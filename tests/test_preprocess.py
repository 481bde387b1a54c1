import tempfile
import unittest
from pathlib import Path

import numpy as np

from guard_kit.metadata import DEFAULT_CLASS_NAMES, load_class_names
from guard_kit.preprocess import channels_for, prepare_input, to_rgb

try:
    import cv2  # noqa: F401

    HAS_CV2 = True
except ModuleNotFoundError:
    HAS_CV2 = False


class TestPreprocess(unittest.TestCase):
    def test_channels_for(self) -> None:
        self.assertEqual(channels_for("RGBA_8888"), 4)
        self.assertEqual(channels_for("BGR_888"), 3)
        with self.assertRaises(ValueError):
            channels_for("NV21")

    def test_to_rgb(self) -> None:
        px = np.array([[[10, 20, 30, 255]]], dtype=np.uint8)
        self.assertEqual(to_rgb(px, "RGBA_8888").tolist(), [[[10, 20, 30]]])
        bgr = np.array([[[10, 20, 30]]], dtype=np.uint8)
        self.assertEqual(to_rgb(bgr, "BGR_888").tolist(), [[[30, 20, 10]]])
        with self.assertRaises(ValueError):
            to_rgb(bgr, "RGBA_8888")

    def test_prepare_input_nhwc(self) -> None:
        image = np.full((8, 8, 4), 255, dtype=np.uint8)
        blob, orig = prepare_input(image, 8)
        self.assertEqual(blob.shape, (1, 8, 8, 3))
        self.assertEqual(blob.dtype, np.float32)
        self.assertTrue(np.all(blob == 1.0))
        self.assertEqual(orig, (8, 8))

    def test_prepare_input_nchw(self) -> None:
        image = np.zeros((8, 8, 3), dtype=np.uint8)
        image[..., 0] = 255  # blue in BGR
        blob, _ = prepare_input(image, 8, pixel_format="BGR_888", channels_first=True)
        self.assertEqual(blob.shape, (1, 3, 8, 8))
        self.assertTrue(np.all(blob[0, 2] == 1.0))
        self.assertTrue(np.all(blob[0, 0] == 0.0))

    def test_prepare_input_rejects_non_array(self) -> None:
        with self.assertRaises(TypeError):
            prepare_input(None, 8)  # type: ignore[arg-type]

    @unittest.skipUnless(HAS_CV2, "OpenCV not installed")
    def test_prepare_input_resizes_to_square(self) -> None:
        image = np.zeros((48, 64, 4), dtype=np.uint8)
        blob, orig = prepare_input(image, 32)
        self.assertEqual(blob.shape, (1, 32, 32, 3))
        self.assertEqual(orig, (64, 48))


class TestClassNames(unittest.TestCase):
    def test_names_block(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "metadata.yaml"
            path.write_text("description: screen filter\nnames:\n  0: 'unsafe'\n  1: nudity\nimgsz: [512, 512]\n", encoding="utf-8")
            self.assertEqual(load_class_names(path), {0: "unsafe", 1: "nudity"})

    def test_no_names_falls_back(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "metadata.yaml"
            path.write_text("description: screen filter\n", encoding="utf-8")
            self.assertEqual(load_class_names(path), DEFAULT_CLASS_NAMES)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_class_names("does/not/exist.yaml")


if __name__ == "__main__":
    unittest.main()
