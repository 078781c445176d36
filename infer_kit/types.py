from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

# OpenCV decodes to BGR; most YOLO exports expect RGB.
BGR = "BGR"
RGB = "RGB"

Dim = Optional[int]


def validate_channel_order(order: str) -> str:
    """
    Normalize and check a 3-letter channel order such as "BGR" or "RGB".
    """

    if not isinstance(order, str):
        raise ValueError(f"channel order must be a string, got {type(order).__name__}")
    norm = order.strip().upper()
    if len(norm) != 3 or sorted(norm) != ["B", "G", "R"]:
        raise ValueError(f"channel order must be a permutation of 'BGR', got {order!r}")
    return norm


@dataclass(frozen=True, eq=False)
class RawImage:
    """
    Decoded color image: interleaved (H, W, 3) uint8 pixels, row-major.

    `channel_order` names the channel stored at index 0, 1, 2 of the last axis.
    """

    pixels: Optional[np.ndarray]
    channel_order: str = BGR

    def __post_init__(self) -> None:
        object.__setattr__(self, "channel_order", validate_channel_order(self.channel_order))

    @property
    def height(self) -> int:
        if self.pixels is None or self.pixels.ndim < 2:
            return 0
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        if self.pixels is None or self.pixels.ndim < 2:
            return 0
        return int(self.pixels.shape[1])

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0


@dataclass(frozen=True)
class TensorSpec:
    """
    Graph-declared tensor description. Dynamic axes are `None`.
    """

    name: str
    shape: Tuple[Dim, ...]
    dtype: str = "float32"

    @property
    def rank(self) -> int:
        return len(self.shape)

    def describe(self) -> str:
        dims = ", ".join("?" if d is None else str(d) for d in self.shape)
        return f"{self.name}[{dims}]:{self.dtype}"


@dataclass(frozen=True, eq=False)
class OutputTensor:
    name: str
    data: np.ndarray

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(int(d) for d in self.data.shape)
