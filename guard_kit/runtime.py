from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .decode import TensorDecoder
from .errors import ModelUnavailable
from .metadata import DEFAULT_CLASS_NAMES, load_class_names
from .nms import suppress
from .preprocess import prepare_input
from .types import Detection, TensorLayout

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], Optional[np.ndarray]]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths
    such as `models/detector.onnx`.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, the project root otherwise.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class DetectorConfig:
    confidence_threshold: float = 0.10
    iou_threshold: float = 0.45
    model_input_size: int = 512
    # None follows the backend's declared input layout (NHWC when unknown).
    channels_first: Optional[bool] = None
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.model_input_size <= 0:
            raise ValueError("model_input_size must be > 0")
        if self.max_detections is not None and self.max_detections <= 0:
            raise ValueError("max_detections must be > 0 when set")


class DetectionPipeline:
    """
    preprocess (square resize) -> inference -> decode -> suppression.

    `detect(image)` takes one frame as an (H, W, C) uint8 array and returns the
    kept detections in source-image pixels, highest confidence first.

    The output layout is fixed at construction, either from `output_shape` or
    by running the model once on a blank input. A pipeline whose engine is
    missing, or stops returning tensors, is degraded: it reports zero
    detections for every frame instead of raising.
    """

    def __init__(
        self,
        infer_fn: Optional[InferFn],
        *,
        cfg: DetectorConfig = DetectorConfig(),
        output_shape: Optional[Sequence[int]] = None,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
        class_names: Optional[Dict[int, str]] = None,
    ):
        self._infer_fn = infer_fn
        self.cfg = cfg
        self.backend = backend
        self.backend_name = backend_name
        names = class_names or DEFAULT_CLASS_NAMES
        self.decoder = TensorDecoder(cfg.model_input_size, class_id=0, class_name=names.get(0, "not_safe"))
        if cfg.channels_first is not None:
            self.channels_first = bool(cfg.channels_first)
        else:
            self.channels_first = bool(getattr(backend, "channels_first", False))
        self._unavailable_reason: Optional[str] = None

        if infer_fn is None:
            self._unavailable_reason = "no inference engine"
            return

        if output_shape is None:
            output_shape = self._probe_output_shape(infer_fn)
        self.decoder.configure(output_shape)

    @classmethod
    def unavailable(cls, reason: str, cfg: DetectorConfig = DetectorConfig()) -> "DetectionPipeline":
        pipeline = cls(None, cfg=cfg)
        pipeline._unavailable_reason = reason
        return pipeline

    @property
    def available(self) -> bool:
        return self._unavailable_reason is None

    @property
    def unavailable_reason(self) -> Optional[str]:
        return self._unavailable_reason

    @property
    def layout(self) -> Optional[TensorLayout]:
        return self.decoder.layout

    def preprocess(self, image: np.ndarray, pixel_format: str = "RGBA_8888") -> Tuple[np.ndarray, Tuple[int, int]]:
        return prepare_input(
            image,
            self.cfg.model_input_size,
            pixel_format=pixel_format,
            channels_first=self.channels_first,
        )

    def detect(self, image: np.ndarray, pixel_format: str = "RGBA_8888") -> List[Detection]:
        if self._infer_fn is None or not self.available:
            return []

        blob, (orig_w, orig_h) = self.preprocess(image, pixel_format)
        preds = self._infer_fn(blob)
        if preds is None:
            self._degrade("inference produced no output tensor")
            return []

        raw = self.decoder.decode(
            preds,
            source_width=orig_w,
            source_height=orig_h,
            confidence_threshold=self.cfg.confidence_threshold,
        )
        kept = suppress(raw, self.cfg.iou_threshold, self.cfg.max_detections)
        logger.debug("Frame %dx%d: %d raw, %d after NMS", orig_w, orig_h, len(raw), len(kept))
        return kept

    def __call__(self, image: np.ndarray, pixel_format: str = "RGBA_8888") -> List[Detection]:
        return self.detect(image, pixel_format)

    def close(self) -> None:
        backend = self.backend
        self._infer_fn = None
        self.backend = None
        if self._unavailable_reason is None:
            self._unavailable_reason = "closed"
        close = getattr(backend, "close", None)
        if callable(close):
            close()

    def _probe_output_shape(self, infer_fn: InferFn) -> Tuple[int, ...]:
        size = self.cfg.model_input_size
        shape = (1, 3, size, size) if self.channels_first else (1, size, size, 3)
        preds = infer_fn(np.zeros(shape, dtype=np.float32))
        if preds is None:
            raise ModelUnavailable("Inference engine produced no output tensor on a blank input")
        return tuple(int(d) for d in np.shape(preds))

    def _degrade(self, reason: str) -> None:
        if self._unavailable_reason is None:
            logger.error("Detection disabled: %s", reason)
        self._unavailable_reason = reason


def load_pipeline(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    cfg: DetectorConfig = DetectorConfig(),
    metadata_path: Optional[PathLike] = None,
    onnx_providers: Optional[Sequence[str]] = None,
    onnx_input_name: Optional[str] = None,
    onnx_output_name: Optional[str] = None,
    torch_device: str = "cpu",
    torch_output_index: int = 0,
    strict: bool = True,
) -> DetectionPipeline:
    """
    Create a detection pipeline for a model on disk.

        pipe = load_pipeline("models/detector.onnx")  # resolves from project root by default

    Args:
        model_path: path to the model file; relative paths resolve against project root by default
        backend: "onnxruntime" or "torchscript"; None infers it from the extension
        metadata_path: optional metadata.yaml with a `names:` mapping
        strict: raise ModelUnavailable when the engine cannot start; when False,
            return a degraded pipeline that reports no detections

    A model whose output does not carry 5 features raises MalformedTensor in
    both modes.
    """

    resolved = resolve_path(model_path, root=root)
    class_names = load_class_names(resolve_path(metadata_path, root=root)) if metadata_path else None

    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )
    chosen = chosen.lower()
    if chosen not in ("onnxruntime", "torchscript"):
        raise ValueError(f"Unsupported backend: {backend!r}")

    try:
        engine = _open_backend(
            chosen,
            resolved,
            onnx_providers=onnx_providers,
            onnx_input_name=onnx_input_name,
            onnx_output_name=onnx_output_name,
            torch_device=torch_device,
            torch_output_index=torch_output_index,
        )
        pipeline = DetectionPipeline(
            engine.infer,
            cfg=cfg,
            output_shape=engine.output_shape,
            backend=engine,
            backend_name=chosen,
            class_names=class_names,
        )
    except (ImportError, OSError, RuntimeError, ModelUnavailable) as exc:
        if strict:
            if isinstance(exc, ModelUnavailable):
                raise
            raise ModelUnavailable(f"Could not start {chosen} engine for {resolved}: {exc}") from exc
        logger.error("Model unavailable, continuing without detection: %s", exc)
        return DetectionPipeline.unavailable(str(exc), cfg=cfg)

    logger.info(
        "Loaded %s model %s (layout=%s, input=%d, channels_first=%s)",
        chosen,
        resolved,
        pipeline.layout.value if pipeline.layout else None,
        cfg.model_input_size,
        pipeline.channels_first,
    )
    return pipeline


def _open_backend(
    chosen: str,
    resolved: Path,
    *,
    onnx_providers: Optional[Sequence[str]],
    onnx_input_name: Optional[str],
    onnx_output_name: Optional[str],
    torch_device: str,
    torch_output_index: int,
):
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(
            resolved,
            OnnxRuntimeBackendConfig(
                providers=onnx_providers,
                input_name=onnx_input_name,
                output_name=onnx_output_name,
            ),
        )

    from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

    return TorchScriptBackend(
        resolved,
        TorchScriptBackendConfig(device=torch_device, output_index=torch_output_index),
    )
