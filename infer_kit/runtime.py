from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .backends.base import EngineBackend
from .config import PipelineConfig
from .environment import InferenceEnvironment, default_environment
from .errors import InferenceError, InferKitError, ModelLoadError, ShapeMismatchError
from .preprocess import ImageLike, TensorBuilder
from .types import OutputTensor, RawImage, TensorSpec

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
ModelSource = Union[PathLike, bytes, bytearray]

BACKEND_SUFFIXES = {
    ".onnx": "onnxruntime",
    ".torchscript": "torchscript",
    ".ts": "torchscript",
    ".pt": "torchscript",
}


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery.

    Useful when models live in `<root>/models` and scripts run from elsewhere.
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
    Resolve `path` to a Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - the project root when `root == "auto"`
      - `root` if it is a directory path
      - nothing (left relative to the cwd) when `root` is None
    """

    p = Path(path)
    if p.is_absolute() or root is None:
        return p

    if root == "auto":
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


def infer_backend_name(model_source: ModelSource) -> str:
    if isinstance(model_source, (bytes, bytearray)):
        return "onnxruntime"
    suffix = Path(model_source).suffix.lower()
    try:
        return BACKEND_SUFFIXES[suffix]
    except KeyError:
        raise ModelLoadError(
            f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
        ) from None


def check_input(spec: TensorSpec, tensor: np.ndarray) -> None:
    """
    Raise ShapeMismatchError unless `tensor` fits the graph-declared input.

    Fixed axes must match exactly; dynamic (None) axes accept any size >= 1.
    """

    if not isinstance(tensor, np.ndarray):
        raise ShapeMismatchError(f"Input must be a NumPy array, got {type(tensor).__name__}")

    try:
        expected_dtype = np.dtype(spec.dtype)
    except TypeError:
        expected_dtype = None
    if expected_dtype is not None and tensor.dtype != expected_dtype:
        raise ShapeMismatchError(f"Input dtype {tensor.dtype} does not match {spec.describe()}")

    if tensor.ndim != spec.rank:
        raise ShapeMismatchError(f"Input shape {tensor.shape} has rank {tensor.ndim}, expected {spec.describe()}")

    for axis, (actual, expected) in enumerate(zip(tensor.shape, spec.shape)):
        if expected is None:
            if actual < 1:
                raise ShapeMismatchError(f"Input axis {axis} is empty in shape {tensor.shape}")
            continue
        if actual != expected:
            raise ShapeMismatchError(
                f"Input shape {tensor.shape} does not match {spec.describe()} (axis {axis}: {actual} != {expected})"
            )


class InferenceSession:
    """
    A loaded model, ready to `run` any number of times.

    Runs are serialized with a lock unless the backend documents concurrent
    execution as safe (`serialize_runs` overrides either way).
    """

    def __init__(self, engine: EngineBackend, *, serialize_runs: Optional[bool] = None):
        inputs = tuple(engine.input_specs)
        if len(inputs) != 1:
            raise ModelLoadError(f"Expected a graph with exactly one input, got {len(inputs)}")
        self._engine: Optional[EngineBackend] = engine
        self.backend_name = engine.name
        self.input_spec: TensorSpec = inputs[0]
        self.output_specs: Tuple[TensorSpec, ...] = tuple(engine.output_specs)
        self.serialized = (not engine.thread_safe) if serialize_runs is None else bool(serialize_runs)
        self._lock = threading.Lock()

    @property
    def backend(self) -> Optional[EngineBackend]:
        return self._engine

    @property
    def closed(self) -> bool:
        return self._engine is None

    def run(self, tensor: np.ndarray) -> List[OutputTensor]:
        check_input(self.input_spec, tensor)
        feeds = {self.input_spec.name: tensor}

        if self.serialized:
            with self._lock:
                raw = self._execute(feeds)
        else:
            raw = self._execute(feeds)

        outputs = self._wrap_outputs(raw, tensor)
        logger.debug("ran %s: %s -> %s", self.backend_name, tensor.shape, [o.shape for o in outputs])
        return outputs

    def _execute(self, feeds):
        engine = self._engine
        if engine is None:
            raise InferenceError("Session is closed.")
        try:
            return engine.run(feeds)
        except Exception as e:
            raise InferenceError(f"{self.backend_name} inference failed: {e}") from e

    def _wrap_outputs(self, raw: Sequence[np.ndarray], tensor: np.ndarray) -> List[OutputTensor]:
        names = [s.name for s in self.output_specs]
        if len(names) != len(raw):
            names = [f"output{i}" for i in range(len(raw))]

        outputs: List[OutputTensor] = []
        for name, arr in zip(names, raw):
            data = np.asarray(arr)
            # Never hand back a view of the caller's input buffer.
            if np.shares_memory(data, tensor):
                data = data.copy()
            data.setflags(write=False)
            outputs.append(OutputTensor(name=name, data=data))
        return outputs

    def close(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.close()
            self._engine = None

    def __enter__(self) -> "InferenceSession":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class InferenceRunner:
    """
    Loads model sources into sessions through one explicit environment.
    """

    def __init__(self, env: Optional[InferenceEnvironment] = None):
        self.env = env if env is not None else default_environment()

    def load(
        self,
        model_source: ModelSource,
        *,
        backend: Optional[str] = None,
        root: Optional[PathLike] = None,
        serialize_runs: Optional[bool] = None,
        onnx_providers: Optional[Sequence[str]] = None,
        torch_device: str = "cpu",
        torch_half: bool = False,
        torch_input_name: str = "images",
        torch_input_shape: Optional[Tuple[Optional[int], ...]] = None,
    ) -> InferenceSession:
        """
        Parse a model (path or bytes) and build an optimized session.

        Args:
            model_source: path to a model file, or its serialized bytes
            backend: "onnxruntime" or "torchscript"; None infers from the extension
                (bytes default to onnxruntime)
            root: base for relative paths ("auto" uses the project root, None the cwd)
            serialize_runs: force/disable the per-session run lock
        """

        if self.env.closed:
            raise ModelLoadError(f"Inference environment {self.env.name!r} is closed.")

        if isinstance(model_source, (bytes, bytearray)):
            if not model_source:
                raise ModelLoadError("Model buffer is empty.")
            source: Union[Path, bytes] = bytes(model_source)
            label = f"<{len(source)} bytes>"
        else:
            source = resolve_path(model_source, root=root)
            label = str(source)

        chosen = (backend or infer_backend_name(source)).lower()
        try:
            engine = self._create_backend(
                chosen,
                source,
                onnx_providers=onnx_providers,
                torch_device=torch_device,
                torch_half=torch_half,
                torch_input_name=torch_input_name,
                torch_input_shape=torch_input_shape,
            )
        except InferKitError:
            raise
        except FileNotFoundError as e:
            raise ModelLoadError(f"Model not found: {label}") from e
        except Exception as e:
            raise ModelLoadError(f"Failed to load model {label} with {chosen}: {e}") from e

        try:
            session = InferenceSession(engine, serialize_runs=serialize_runs)
        except ModelLoadError:
            engine.close()
            raise

        logger.info(
            "loaded %s via %s (input=%s, outputs=%d, serialized=%s)",
            label,
            chosen,
            session.input_spec.describe(),
            len(session.output_specs),
            session.serialized,
        )
        return session

    def _create_backend(
        self,
        chosen: str,
        source: Union[Path, bytes],
        *,
        onnx_providers: Optional[Sequence[str]],
        torch_device: str,
        torch_half: bool,
        torch_input_name: str,
        torch_input_shape: Optional[Tuple[Optional[int], ...]],
    ) -> EngineBackend:
        if chosen == "onnxruntime":
            from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

            return OnnxRuntimeBackend(source, self.env, OnnxRuntimeBackendConfig(providers=onnx_providers))

        if chosen == "torchscript":
            from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

            ts_cfg = TorchScriptBackendConfig(device=torch_device, half=torch_half, input_name=torch_input_name)
            if torch_input_shape is not None:
                ts_cfg = replace(ts_cfg, input_shape=tuple(torch_input_shape))
            return TorchScriptBackend(source, self.env, ts_cfg)

        raise ModelLoadError(f"Unsupported backend: {chosen!r}")

    def run(self, session: InferenceSession, tensor: np.ndarray) -> List[OutputTensor]:
        return session.run(tensor)


def load(model_source: ModelSource, env: Optional[InferenceEnvironment] = None, **kwargs) -> InferenceSession:
    """
    Load a model through `env` (or the process-wide default environment).
    """

    return InferenceRunner(env).load(model_source, **kwargs)


def run(session: InferenceSession, tensor: np.ndarray) -> List[OutputTensor]:
    return session.run(tensor)


class InferencePipeline:
    """
    Plug-and-play pipeline: preprocess (resize + normalize + CHW) -> inference.

    Accepts RawImage or NumPy arrays (interpreted in `source_order`) and
    returns the raw output tensors; no post-processing.
    """

    def __init__(
        self,
        session: InferenceSession,
        *,
        width: Optional[int] = None,
        height: Optional[int] = None,
        builder: Optional[TensorBuilder] = None,
        source_order: str = "BGR",
    ):
        self.session = session
        self.builder = builder if builder is not None else TensorBuilder()
        self.source_order = source_order
        self.width, self.height = self._input_size(width, height)

    def _input_size(self, width: Optional[int], height: Optional[int]) -> Tuple[int, int]:
        shape = self.session.input_spec.shape
        declared_h = shape[2] if len(shape) == 4 else None
        declared_w = shape[3] if len(shape) == 4 else None
        w = width if width is not None else declared_w
        h = height if height is not None else declared_h
        if w is None or h is None:
            raise ValueError(
                f"Model input {self.session.input_spec.describe()} has dynamic spatial axes; pass width/height."
            )
        return int(w), int(h)

    def preprocess(self, image: ImageLike) -> np.ndarray:
        if isinstance(image, np.ndarray):
            image = RawImage(pixels=image, channel_order=self.source_order)
        return self.builder.build(image, self.width, self.height)

    def __call__(self, image: ImageLike) -> List[OutputTensor]:
        return self.session.run(self.preprocess(image))


def load_pipeline(
    cfg: PipelineConfig,
    *,
    env: Optional[InferenceEnvironment] = None,
    root: Optional[PathLike] = "auto",
) -> InferencePipeline:
    """
    Create a pipeline from a `PipelineConfig`.

    Typical usage:
        pipe = load_pipeline(PipelineConfig(model="models/yolov5s.onnx", width=640, height=640))
    """

    session = InferenceRunner(env if env is not None else cfg.environment()).load(
        cfg.model,
        backend=cfg.backend,
        root=root,
        onnx_providers=cfg.providers,
    )
    return InferencePipeline(
        session,
        width=cfg.width,
        height=cfg.height,
        builder=TensorBuilder(cfg.builder_config()),
        source_order=cfg.source_order,
    )
