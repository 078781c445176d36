from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

import cv2

from infer_kit import InferKitError
from infer_kit.capture import get_capture_info, iter_frames, open_capture

ESC_KEY = 27
SAVE_KEY = ord("s")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Camera preview. 's' saves the current frame, Esc exits.")
    src = ap.add_mutually_exclusive_group()
    src.add_argument("--webcam", type=int, default=None, help="Camera index (default 0).")
    src.add_argument("--video", type=str, default=None, help="Preview a video file instead of a camera.")
    ap.add_argument("--out-dir", type=str, default="img", help="Where saved frames are written.")
    ap.add_argument("--window", type=str, default="infer_kit preview")
    return ap.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    webcam = None if args.video is not None else (args.webcam if args.webcam is not None else 0)

    try:
        cap = open_capture(video=args.video, webcam=webcam)
    except InferKitError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    info = get_capture_info(cap)
    print(f"Capture opened: {info.width}x{info.height} @ {info.fps or '?'} fps. 's' saves, Esc exits.")

    out_dir = Path(args.out_dir)
    saved = 0
    cv2.namedWindow(args.window, cv2.WINDOW_AUTOSIZE)
    try:
        for frame in iter_frames(cap):
            cv2.imshow(args.window, frame.pixels)
            key = cv2.waitKey(1) & 0xFF
            if key == ESC_KEY:
                break
            if key == SAVE_KEY:
                out_dir.mkdir(parents=True, exist_ok=True)
                path = out_dir / f"frame_{saved:04d}.png"
                if not cv2.imwrite(str(path), frame.pixels):
                    raise RuntimeError(f"Failed to write frame: {path}")
                saved += 1
                print(f"Saved frame: {path}")
    finally:
        cap.release()
        cv2.destroyAllWindows()
    return 0


if __name__ == "__main__":
    sys.exit(main())
