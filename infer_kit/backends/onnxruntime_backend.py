from __future__ import annotations

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

_ORT_DTYPES = {
    "tensor(float)": "float32",
    "tensor(float16)": "float16",
    "tensor(double)": "float64",
    "tensor(uint8)": "uint8",
    "tensor(int8)": "int8",
    "tensor(int32)": "int32",
    "tensor(int64)": "int64",
    "tensor(bool)": "bool",
}


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"]);
      overrides the environment's providers when set
    """

    providers: Optional[Sequence[str]] = None


def _spec_from_node_arg(arg) -> TensorSpec:
    # Dynamic axes come back as symbolic names (str) or None.
    shape: Tuple[Optional[int], ...] = tuple(d if isinstance(d, int) and d > 0 else None for d in (arg.shape or ()))
    return TensorSpec(name=arg.name, shape=shape, dtype=_ORT_DTYPES.get(arg.type, str(arg.type)))


def _optimization_level(ort, level: str):
    levels = {
        "disabled": ort.GraphOptimizationLevel.ORT_DISABLE_ALL,
        "basic": ort.GraphOptimizationLevel.ORT_ENABLE_BASIC,
        "extended": ort.GraphOptimizationLevel.ORT_ENABLE_EXTENDED,
        "all": ort.GraphOptimizationLevel.ORT_ENABLE_ALL,
    }
    return levels[level]


class OnnxRuntimeBackend(EngineBackend):
    """
    ONNX Runtime backend.

    Loads from a path or serialized bytes. ORT documents `InferenceSession.run`
    as safe to call concurrently, so sessions are not serialized by default.
    """

    name = "onnxruntime"
    thread_safe = True

    def __init__(
        self,
        model: ModelSource,
        env: InferenceEnvironment,
        cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig(),
    ):
        try:
            import onnxruntime as ort  # type: ignore
        except ImportError as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            source = bytes(model)
        else:
            self.model_path = Path(model)
            if not self.model_path.is_file():
                raise FileNotFoundError(str(self.model_path))
            source = str(self.model_path)

        ort.set_default_logger_severity(int(env.log_severity))
        sess_opts = ort.SessionOptions()
        sess_opts.logid = env.name
        sess_opts.log_severity_level = int(env.log_severity)
        sess_opts.graph_optimization_level = _optimization_level(ort, env.optimization_level)
        if env.intra_op_threads:
            sess_opts.intra_op_num_threads = int(env.intra_op_threads)

        if cfg.providers is not None:
            providers = list(cfg.providers)
        elif env.provider_list is not None:
            providers = list(env.provider_list)
        else:
            providers = None
        self.session = ort.InferenceSession(source, sess_options=sess_opts, providers=providers)

        self._inputs = tuple(_spec_from_node_arg(a) for a in self.session.get_inputs())
        self._outputs = tuple(_spec_from_node_arg(a) for a in self.session.get_outputs())
        logger.info(
            "onnxruntime session ready (model=%s, providers=%s)",
            self.model_path or "<bytes>",
            ",".join(self.providers_in_use),
        )

    @property
    def input_specs(self) -> Sequence[TensorSpec]:
        return self._inputs

    @property
    def output_specs(self) -> Sequence[TensorSpec]:
        return self._outputs

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        # None = all outputs, in graph order.
        return list(self.session.run(None, feeds))

    def close(self) -> None:
        self.session = None
