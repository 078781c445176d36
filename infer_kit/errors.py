"""
Error taxonomy for infer_kit.

Every failure in the preprocessing / inference path surfaces as one of these,
with the underlying library error (OpenCV, ONNX Runtime, torch) chained as
`__cause__`. Nothing here terminates the process; the caller decides.
"""

from __future__ import annotations


class InferKitError(Exception):
    """Base class for all infer_kit errors."""


class EmptyImageError(InferKitError):
    """Input image is missing or has zero width/height."""


class ImageNotFoundError(EmptyImageError):
    """Image path/buffer could not be read or decoded."""


class ProcessingError(InferKitError):
    """Resize / color conversion failed inside the image library."""


class ModelLoadError(InferKitError):
    """Model source is missing, malformed or incompatible."""


class ShapeMismatchError(InferKitError):
    """Input tensor does not match the graph's declared input."""


class InferenceError(InferKitError):
    """Graph execution failed in the engine."""


class DeviceUnavailableError(InferKitError):
    """Camera / video source could not be opened."""
