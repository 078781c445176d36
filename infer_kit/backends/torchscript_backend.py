from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..environment import InferenceEnvironment
from ..types import TensorSpec
from .base import EngineBackend

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
ModelSource = Union[PathLike, bytes]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda" (if available)
    - half: cast input to float16 (only if the model expects it)
    - input_name/input_shape: TorchScript graphs don't declare their input, so
      the expected shape is stated here; None marks a dynamic axis
    """

    device: str = "cpu"
    half: bool = False
    input_name: str = "images"
    input_shape: Tuple[Optional[int], ...] = (1, 3, None, None)


def _flatten_outputs(y) -> List[object]:
    if isinstance(y, (tuple, list)):
        out: List[object] = []
        for item in y:
            out.extend(_flatten_outputs(item))
        return out
    if isinstance(y, dict):
        out = []
        for key in y:
            out.extend(_flatten_outputs(y[key]))
        return out
    return [y]


class TorchScriptBackend(EngineBackend):
    """
    TorchScript backend using `torch.jit.load`.

    Doesn't require model class code (unlike raw .pt weight checkpoints).
    Module calls are not documented as re-entrant, so sessions serialize runs.
    """

    name = "torchscript"
    thread_safe = False

    def __init__(
        self,
        model: ModelSource,
        env: InferenceEnvironment,
        cfg: TorchScriptBackendConfig = TorchScriptBackendConfig(),
    ):
        try:
            import torch  # type: ignore
        except ImportError as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.device = torch.device(cfg.device)
        self.half = cfg.half

        if env.intra_op_threads:
            torch.set_num_threads(int(env.intra_op_threads))

        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            loaded = torch.jit.load(io.BytesIO(bytes(model)), map_location=self.device)
        else:
            self.model_path = Path(model)
            if not self.model_path.is_file():
                raise FileNotFoundError(str(self.model_path))
            loaded = torch.jit.load(str(self.model_path), map_location=self.device)
        loaded.eval()
        self.model = loaded

        # Callers always hand over float32; `half` casts on the way in.
        self._inputs = (TensorSpec(name=cfg.input_name, shape=tuple(cfg.input_shape), dtype="float32"),)
        logger.info("torchscript module ready (model=%s, device=%s)", self.model_path or "<bytes>", self.device)

    @property
    def input_specs(self) -> Sequence[TensorSpec]:
        return self._inputs

    @property
    def output_specs(self) -> Sequence[TensorSpec]:
        # Not declared by TorchScript; names are assigned per run.
        return ()

    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        torch = self._torch
        blob = feeds[self._inputs[0].name]
        x = torch.as_tensor(blob, device=self.device)
        x = x.half() if self.half else x.float()
        x = x.contiguous()

        with torch.no_grad():
            y = self.model(x)

        outputs: List[np.ndarray] = []
        for t in _flatten_outputs(y):
            if hasattr(t, "detach"):
                t = t.detach().to("cpu")
                outputs.append(t.numpy())
            else:
                outputs.append(np.asarray(t))
        return outputs

    def close(self) -> None:
        self.model = None
