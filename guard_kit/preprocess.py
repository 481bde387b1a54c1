from typing import Dict, Tuple

import numpy as np

# Channel count per supported pixel format.
PIXEL_FORMATS: Dict[str, int] = {
    "RGBA_8888": 4,
    "RGB_888": 3,
    "BGR_888": 3,
}


def channels_for(pixel_format: str) -> int:
    try:
        return PIXEL_FORMATS[pixel_format]
    except KeyError:
        raise ValueError(f"Unsupported pixel format {pixel_format!r}; expected one of {sorted(PIXEL_FORMATS)}") from None


def to_rgb(image: np.ndarray, pixel_format: str) -> np.ndarray:
    """
    Return an (H, W, 3) RGB view/copy of `image` given its pixel format.
    """

    channels = channels_for(pixel_format)
    if image.ndim != 3 or image.shape[2] != channels:
        raise ValueError(f"Expected image shape (H, W, {channels}) for {pixel_format}, got {getattr(image, 'shape', None)}")
    if pixel_format == "RGBA_8888":
        return image[:, :, :3]
    if pixel_format == "BGR_888":
        return image[:, :, ::-1]
    return image


def resize_square(image: np.ndarray, size: int) -> np.ndarray:
    """
    Bilinear resize to size x size. The aspect ratio is not preserved, matching
    how the detector was trained (no letterbox padding).
    """

    h, w = image.shape[:2]
    if (w, h) == (size, size):
        return image

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required to resize frames. Install with `pip install opencv-python`.") from e

    return cv2.resize(np.ascontiguousarray(image), (size, size), interpolation=cv2.INTER_LINEAR)


def prepare_input(
    image: np.ndarray,
    size: int,
    pixel_format: str = "RGBA_8888",
    channels_first: bool = False,
) -> Tuple[np.ndarray, Tuple[int, int]]:
    """
    Build the model input blob for one frame.

    Returns:
        blob: float32 in [0, 1], (1, S, S, 3) or (1, 3, S, S) when channels_first
        orig_size: (width, height) of the frame before resizing
    """

    if image is None or not hasattr(image, "shape"):
        raise TypeError("image must be a NumPy array.")
    if size <= 0:
        raise ValueError("size must be > 0")

    orig_h, orig_w = image.shape[:2]
    rgb = resize_square(to_rgb(image, pixel_format), size)

    blob = rgb.astype(np.float32) / 255.0
    if channels_first:
        blob = np.transpose(blob, (2, 0, 1))
    return blob[None, ...], (int(orig_w), int(orig_h))
