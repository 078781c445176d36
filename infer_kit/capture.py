from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import cv2

from .errors import DeviceUnavailableError, EmptyImageError
from .types import BGR, RawImage


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None) -> cv2.VideoCapture:
    if (video is None) == (webcam is None):
        raise ValueError("Exactly one of video/webcam must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
        label = f"video {video!r}"
    else:
        cap = cv2.VideoCapture(int(webcam))
        label = f"webcam index {webcam}"

    if not cap.isOpened():
        cap.release()
        raise DeviceUnavailableError(f"Failed to open {label}.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    if fps is None or fps <= 0:
        fps_val = None
    else:
        fps_val = float(fps)

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val)


def read_frame(cap: cv2.VideoCapture) -> RawImage:
    """
    Read one BGR frame. A failed read or an empty frame is an error, not an abort.
    """

    ok, frame = cap.read()
    if not ok or frame is None or frame.size == 0:
        raise EmptyImageError("Capture returned no frame.")
    return RawImage(pixels=frame, channel_order=BGR)


def iter_frames(cap: cv2.VideoCapture, *, max_frames: int = 0) -> Iterator[RawImage]:
    """
    Yield frames until the source ends (or `max_frames` > 0 is reached).
    """

    count = 0
    while True:
        try:
            frame = read_frame(cap)
        except EmptyImageError:
            return
        yield frame
        count += 1
        if max_frames and count >= max_frames:
            return
