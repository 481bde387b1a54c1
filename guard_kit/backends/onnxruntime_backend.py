from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _static_shape(shape: Sequence[Any]) -> Optional[Tuple[int, ...]]:
    # ORT reports dynamic axes as strings ("batch") or None.
    if not shape or any(not isinstance(d, int) or d < 0 for d in shape):
        return None
    return tuple(int(d) for d in shape)


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name/output_name: override auto-selected I/O names if needed
    - intra_op_threads: CPU threads per inference; 0 lets ORT decide
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    intra_op_threads: int = 4


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime backend.

    Accepts the float32 blob built by `prepare_input` (NHWC or NCHW, matching the
    model input) and returns the detection output as a NumPy array.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        sess_opts = ort.SessionOptions()
        if cfg.intra_op_threads > 0:
            sess_opts.intra_op_num_threads = int(cfg.intra_op_threads)
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), sess_options=sess_opts, providers=providers)

        inputs = self.session.get_inputs()
        outputs = self.session.get_outputs()
        self.input_name = cfg.input_name or inputs[0].name
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or outputs[0].name

        input_meta = next((i for i in inputs if i.name == self.input_name), inputs[0])
        output_meta = next((o for o in outputs if o.name == self.output_name), outputs[0])
        self._input_shape = list(input_meta.shape)
        self._output_shape = _static_shape(output_meta.shape)
        logger.debug(
            "ORT session %s: input %s %s, output %s %s, providers %s",
            self.model_path.name,
            self.input_name,
            self._input_shape,
            self.output_name,
            output_meta.shape,
            self.providers_in_use,
        )

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    @property
    def output_shape(self) -> Optional[Tuple[int, ...]]:
        return self._output_shape

    @property
    def channels_first(self) -> bool:
        # (N, 3, H, W) vs (N, H, W, 3)
        return len(self._input_shape) == 4 and self._input_shape[1] == 3

    def infer(self, blob: np.ndarray, extra_inputs: Optional[Dict[str, Any]] = None) -> Optional[np.ndarray]:
        inputs: Dict[str, Any] = {self.input_name: blob}
        if extra_inputs:
            inputs.update(extra_inputs)
        outputs = self.session.run([self.output_name], inputs)
        if not outputs:
            return None
        return outputs[0]

    def close(self) -> None:
        # ORT frees the session with its last reference.
        self.session = None
