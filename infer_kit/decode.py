from __future__ import annotations

from pathlib import Path
from typing import Union

import cv2
import numpy as np

from .errors import ImageNotFoundError
from .types import BGR, RawImage

ImageSource = Union[str, Path, bytes, bytearray, memoryview]


def decode_image(source: ImageSource) -> RawImage:
    """
    Decode a JPEG/PNG/... path or byte buffer into a BGR RawImage.
    """

    if isinstance(source, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(bytes(source), dtype=np.uint8)
        if buf.size == 0:
            raise ImageNotFoundError("Image buffer is empty.")
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if img is None:
            raise ImageNotFoundError(f"Could not decode image buffer ({buf.size} bytes).")
        return RawImage(pixels=img, channel_order=BGR)

    path = Path(source)
    if not path.is_file():
        raise ImageNotFoundError(f"Could not read image at path: {path}")
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise ImageNotFoundError(f"Could not read image at path: {path}")
    return RawImage(pixels=img, channel_order=BGR)
