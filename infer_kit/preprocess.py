from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from .errors import EmptyImageError, ProcessingError
from .types import BGR, RGB, RawImage, validate_channel_order

logger = logging.getLogger(__name__)

ImageLike = Union[RawImage, np.ndarray, None]

PIXEL_MAX = 255.0


def planar_index(channel: int, row: int, col: int, height: int, width: int) -> int:
    """
    Flat index of element (channel, row, col) in a planar (C, H, W) buffer.
    """

    return channel * height * width + row * width + col


def channel_permutation(source_order: str, target_order: str) -> Tuple[int, int, int]:
    """
    Indices into the source channel axis that produce `target_order`.

    e.g. BGR -> RGB gives (2, 1, 0).
    """

    src = validate_channel_order(source_order)
    dst = validate_channel_order(target_order)
    return tuple(src.index(ch) for ch in dst)  # type: ignore[return-value]


def _as_triplet(values: Optional[Sequence[float]], key: str) -> Optional[Tuple[float, float, float]]:
    if values is None:
        return None
    vals = tuple(float(v) for v in values)
    if len(vals) != 3:
        raise ValueError(f"{key} must have exactly 3 values (one per channel)")
    return vals  # type: ignore[return-value]


@dataclass(frozen=True)
class TensorBuilderConfig:
    """
    Preprocessing policy.

    - target_order: channel order the model expects
    - mean/std: optional per-channel standardization applied after the 1/255
      scale, given in `target_order`. Both None keeps scale-only [0, 1] output.
    """

    target_order: str = RGB
    mean: Optional[Tuple[float, float, float]] = None
    std: Optional[Tuple[float, float, float]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_order", validate_channel_order(self.target_order))
        object.__setattr__(self, "mean", _as_triplet(self.mean, "mean"))
        std = _as_triplet(self.std, "std")
        if std is not None and any(s <= 0 for s in std):
            raise ValueError("std values must be > 0")
        object.__setattr__(self, "std", std)

    @property
    def scale_only(self) -> bool:
        return self.mean is None and self.std is None


class TensorBuilder:
    """
    RawImage -> (1, 3, H, W) float32 planar tensor.

    Steps: validate -> bilinear resize (no letterbox) -> channel reorder ->
    scale to [0, 1] (+ optional mean/std) -> HWC to CHW -> add batch axis.
    """

    def __init__(self, cfg: TensorBuilderConfig = TensorBuilderConfig()):
        self.cfg = cfg

    def build(self, image: ImageLike, target_width: int, target_height: int) -> np.ndarray:
        raw = _coerce_image(image)
        if raw.is_empty:
            raise EmptyImageError(f"Input image is empty (width={raw.width}, height={raw.height}).")
        if int(target_width) < 1 or int(target_height) < 1:
            raise ValueError(f"target size must be >= 1, got {target_width}x{target_height}")
        target_width, target_height = int(target_width), int(target_height)

        pixels = raw.pixels
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ProcessingError(f"Expected image shape (H, W, 3), got {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise ProcessingError(f"Expected uint8 pixels, got {pixels.dtype}")

        try:
            resized = self._resize(pixels, target_width, target_height)
        except cv2.error as e:
            raise ProcessingError(f"Resize to {target_width}x{target_height} failed: {e}") from e

        perm = channel_permutation(raw.channel_order, self.cfg.target_order)
        if perm != (0, 1, 2):
            resized = resized[:, :, list(perm)]

        blob = resized.astype(np.float32) / np.float32(PIXEL_MAX)
        if not self.cfg.scale_only:
            mean = np.asarray(self.cfg.mean or (0.0, 0.0, 0.0), dtype=np.float32)
            std = np.asarray(self.cfg.std or (1.0, 1.0, 1.0), dtype=np.float32)
            blob = (blob - mean) / std

        # HWC -> CHW, add batch
        tensor = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...], dtype=np.float32)
        logger.debug(
            "built tensor %s from %dx%d %s image",
            tensor.shape,
            raw.width,
            raw.height,
            raw.channel_order,
        )
        return tensor

    @staticmethod
    def _resize(pixels: np.ndarray, width: int, height: int) -> np.ndarray:
        h, w = pixels.shape[:2]
        if (w, h) == (width, height):
            return pixels
        return cv2.resize(np.ascontiguousarray(pixels), (width, height), interpolation=cv2.INTER_LINEAR)


def _coerce_image(image: ImageLike) -> RawImage:
    if image is None:
        raise EmptyImageError("No image provided (decode failed upstream?).")
    if isinstance(image, RawImage):
        if image.pixels is None:
            raise EmptyImageError("No image provided (decode failed upstream?).")
        return image
    if isinstance(image, np.ndarray):
        return RawImage(pixels=image, channel_order=BGR)
    raise TypeError(f"image must be a RawImage or NumPy array, got {type(image).__name__}")


_DEFAULT_BUILDER = TensorBuilder()


def build(image: ImageLike, target_width: int, target_height: int) -> np.ndarray:
    """
    Convert an image into a normalized NCHW tensor using the default policy
    (RGB order, scale-only normalization).
    """

    return _DEFAULT_BUILDER.build(image, target_width, target_height)
