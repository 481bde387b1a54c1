from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class TensorLayout(Enum):
    """
    How candidates are laid out in a raw detection output tensor.

    - ROW_MAJOR: shape (N, K), one row per candidate, features in columns.
    - FEATURE_MAJOR: shape (K, N), one row per feature, candidates in columns.
    """

    ROW_MAJOR = "row_major"
    FEATURE_MAJOR = "feature_major"


class CoordinateSpace(Enum):
    NORMALIZED = "normalized"
    MODEL_INPUT = "model_input"
    SOURCE_IMAGE = "source_image"
    DISPLAY_SURFACE = "display_surface"


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned box in corner form.
    """

    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def area(self) -> float:
        if self.is_degenerate:
            return 0.0
        return self.width * self.height

    @property
    def is_degenerate(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom


@dataclass(frozen=True)
class Detection:
    """
    One flagged region in source-image pixels.

    Geometry is stored in center form; `box` is the corner form, computed once
    at construction and shared by suppression and rendering.
    """

    center_x: float
    center_y: float
    width: float
    height: float
    confidence: float
    class_id: int = 0
    class_name: str = "not_safe"
    box: Box = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        half_w = self.width / 2.0
        half_h = self.height / 2.0
        object.__setattr__(
            self,
            "box",
            Box(
                left=self.center_x - half_w,
                top=self.center_y - half_h,
                right=self.center_x + half_w,
                bottom=self.center_y + half_h,
            ),
        )

    @classmethod
    def from_corners(
        cls,
        left: float,
        top: float,
        right: float,
        bottom: float,
        confidence: float,
        class_id: int = 0,
        class_name: str = "not_safe",
    ) -> "Detection":
        return cls(
            center_x=(left + right) / 2.0,
            center_y=(top + bottom) / 2.0,
            width=right - left,
            height=bottom - top,
            confidence=confidence,
            class_id=class_id,
            class_name=class_name,
        )

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()
