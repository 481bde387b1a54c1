from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    - device: torch device string, e.g. "cpu" or "cuda:0"
    - half: run in float16 (GPU models exported with half precision)
    - output_index: which output to decode when the module returns several
    """

    device: str = "cpu"
    half: bool = False
    output_index: int = 0


def _pick_output(raw: Any, index: int) -> Any:
    # Exported detectors often return (predictions, aux...) tuples.
    if isinstance(raw, dict):
        raw = list(raw.values())
    if isinstance(raw, (tuple, list)):
        if not raw or index >= len(raw):
            return None
        return raw[index]
    return raw


class TorchScriptBackend:
    """
    Screens frames with a scripted/traced module loaded via `torch.jit.load`.

    TorchScript carries no static output shape, so `output_shape` is None and
    the pipeline probes the module once on a blank NCHW blob to fix the layout.
    """

    channels_first = True
    output_shape: Optional[Tuple[int, ...]] = None

    def __init__(self, model_path: PathLike, cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(str(path))

        self._torch = torch
        self.model_path = path
        self.cfg = cfg
        self.device = torch.device(cfg.device)
        self._dtype = torch.float16 if cfg.half else torch.float32

        self.model = torch.jit.load(str(path), map_location=self.device).eval()
        logger.info("TorchScript module %s on %s (%s)", path.name, self.device, self._dtype)

    def infer(self, blob: np.ndarray) -> Optional[np.ndarray]:
        """
        Run one NCHW float blob; None when the module is closed or returns nothing.
        """

        if self.model is None:
            return None

        torch = self._torch
        x = torch.from_numpy(np.ascontiguousarray(blob)).to(device=self.device, dtype=self._dtype)
        with torch.inference_mode():
            out = _pick_output(self.model(x), self.cfg.output_index)

        if out is None or not hasattr(out, "detach"):
            return None
        return out.detach().to("cpu", dtype=torch.float32).numpy()

    def close(self) -> None:
        self.model = None
