"""
Image -> tensor preprocessing and fixed-shape inference for YOLO-style models.

Framework-agnostic core: images are decoded with OpenCV into NumPy arrays,
turned into normalized planar (1, 3, H, W) float32 tensors and run through an
engine session (ONNX Runtime by default, TorchScript optionally). Outputs are
returned raw; no box decoding or NMS.
"""

from .types import BGR, RGB, OutputTensor, RawImage, TensorSpec
from .errors import (
    DeviceUnavailableError,
    EmptyImageError,
    ImageNotFoundError,
    InferenceError,
    InferKitError,
    ModelLoadError,
    ProcessingError,
    ShapeMismatchError,
)
from .decode import decode_image
from .preprocess import TensorBuilder, TensorBuilderConfig, build, planar_index
from .environment import InferenceEnvironment, default_environment, shutdown_default_environment
from .config import PipelineConfig, load_pipeline_config
from .runtime import (
    InferencePipeline,
    InferenceRunner,
    InferenceSession,
    find_project_root,
    load,
    load_pipeline,
    resolve_path,
    run,
)

__all__ = [
    "BGR",
    "RGB",
    "OutputTensor",
    "RawImage",
    "TensorSpec",
    "DeviceUnavailableError",
    "EmptyImageError",
    "ImageNotFoundError",
    "InferenceError",
    "InferKitError",
    "ModelLoadError",
    "ProcessingError",
    "ShapeMismatchError",
    "decode_image",
    "TensorBuilder",
    "TensorBuilderConfig",
    "build",
    "planar_index",
    "InferenceEnvironment",
    "default_environment",
    "shutdown_default_environment",
    "PipelineConfig",
    "load_pipeline_config",
    "InferencePipeline",
    "InferenceRunner",
    "InferenceSession",
    "find_project_root",
    "load",
    "load_pipeline",
    "resolve_path",
    "run",
]
