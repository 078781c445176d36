import unittest
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from infer_kit.capture import get_capture_info, iter_frames, open_capture, read_frame
from infer_kit.errors import DeviceUnavailableError, EmptyImageError


class FakeCapture:
    def __init__(self, frames: List[Optional[np.ndarray]], props: Optional[Dict[int, float]] = None):
        self._frames = list(frames)
        self._props = props or {}

    def read(self) -> Tuple[bool, Optional[np.ndarray]]:
        if not self._frames:
            return False, None
        frame = self._frames.pop(0)
        return frame is not None, frame

    def get(self, prop: int) -> float:
        return self._props.get(prop, 0.0)


def _frame(value: int) -> np.ndarray:
    return np.full((4, 6, 3), value, dtype=np.uint8)


class TestOpenCapture(unittest.TestCase):
    def test_missing_video_is_device_unavailable(self) -> None:
        with self.assertRaises(DeviceUnavailableError):
            open_capture(video="does/not/exist.mp4")

    def test_exactly_one_source(self) -> None:
        with self.assertRaises(ValueError):
            open_capture()
        with self.assertRaises(ValueError):
            open_capture(video="a.mp4", webcam=0)


class TestReadFrame(unittest.TestCase):
    def test_frame_is_bgr_raw_image(self) -> None:
        raw = read_frame(FakeCapture([_frame(7)]))
        self.assertEqual(raw.channel_order, "BGR")
        self.assertEqual((raw.width, raw.height), (6, 4))

    def test_failed_read_is_an_error(self) -> None:
        with self.assertRaises(EmptyImageError):
            read_frame(FakeCapture([]))
        with self.assertRaises(EmptyImageError):
            read_frame(FakeCapture([np.zeros((0, 0, 3), dtype=np.uint8)]))

    def test_iter_frames_stops_at_end(self) -> None:
        frames = list(iter_frames(FakeCapture([_frame(1), _frame(2), _frame(3)])))
        self.assertEqual([int(f.pixels[0, 0, 0]) for f in frames], [1, 2, 3])

    def test_iter_frames_max_frames(self) -> None:
        frames = list(iter_frames(FakeCapture([_frame(1), _frame(2), _frame(3)]), max_frames=2))
        self.assertEqual(len(frames), 2)

    def test_capture_info(self) -> None:
        cap = FakeCapture(
            [],
            props={cv2.CAP_PROP_FPS: 30.0, cv2.CAP_PROP_FRAME_WIDTH: 640.0, cv2.CAP_PROP_FRAME_HEIGHT: 480.0},
        )
        info = get_capture_info(cap)
        self.assertEqual((info.fps, info.width, info.height), (30.0, 640, 480))
        empty = get_capture_info(FakeCapture([]))
        self.assertEqual((empty.fps, empty.width, empty.height), (None, None, None))


if __name__ == "__main__":
    unittest.main()
