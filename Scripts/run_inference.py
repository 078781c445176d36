from __future__ import annotations

import argparse
import logging
import statistics
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Sequence

from tqdm import tqdm

from infer_kit import (
    InferKitError,
    InferencePipeline,
    PipelineConfig,
    RawImage,
    decode_image,
    load_pipeline,
    load_pipeline_config,
)
from infer_kit.capture import open_capture, read_frame


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Preprocess one image and run it through a model; prints output shapes.")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", type=str, help="Path to an input image.")
    src.add_argument("--webcam", type=int, help="Grab a single frame from this camera index.")
    ap.add_argument("--config", type=str, default=None, help="JSON pipeline config (CLI flags override it).")
    ap.add_argument("--model", type=str, default=None, help="Model path (.onnx / .torchscript).")
    ap.add_argument("--backend", type=str, default=None, choices=("onnxruntime", "torchscript"))
    ap.add_argument("--width", type=int, default=None, help="Target width (defaults to the model's).")
    ap.add_argument("--height", type=int, default=None, help="Target height (defaults to the model's).")
    ap.add_argument("--onnx-providers", type=str, default=None, help="Comma-separated ORT providers.")
    ap.add_argument("--repeats", type=int, default=1, help="Run inference N times and report timing.")
    ap.add_argument("--log-level", type=str, default="WARNING")
    return ap.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> PipelineConfig:
    if args.config is not None:
        cfg = load_pipeline_config(Path(args.config))
    elif args.model is not None:
        cfg = PipelineConfig(model=args.model)
    else:
        raise ValueError("Either --model or --config is required.")

    overrides = {
        "model": args.model,
        "backend": args.backend,
        "width": args.width,
        "height": args.height,
    }
    if args.onnx_providers:
        overrides["providers"] = tuple(p.strip() for p in args.onnx_providers.split(",") if p.strip())
    return replace(cfg, **{k: v for k, v in overrides.items() if v is not None})


def _read_input(args: argparse.Namespace) -> RawImage:
    if args.image is not None:
        return decode_image(args.image)
    cap = open_capture(webcam=args.webcam)
    try:
        return read_frame(cap)
    finally:
        cap.release()


def _time_runs(pipeline: InferencePipeline, image: RawImage, repeats: int) -> List[float]:
    tensor = pipeline.preprocess(image)
    times_ms: List[float] = []
    for _ in tqdm(range(repeats), desc="inference", unit="run"):
        t0 = time.perf_counter()
        pipeline.session.run(tensor)
        times_ms.append((time.perf_counter() - t0) * 1000.0)
    return times_ms


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    try:
        cfg = _resolve_config(args)
        image = _read_input(args)
        pipeline = load_pipeline(cfg)

        t0 = time.perf_counter()
        tensor = pipeline.preprocess(image)
        t_pre = (time.perf_counter() - t0) * 1000.0
        outputs = pipeline.session.run(tensor)
    except InferKitError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"Backend: {pipeline.session.backend_name}")
    print(f"Input: {image.width}x{image.height} {image.channel_order} -> tensor {tuple(tensor.shape)}")
    print(f"Preprocess: {t_pre:.2f} ms")
    for out in outputs:
        print(f"Output {out.name}: shape={out.shape} dtype={out.data.dtype}")

    if args.repeats > 1:
        times_ms = _time_runs(pipeline, image, int(args.repeats))
        print(
            f"Inference over {len(times_ms)} runs: mean={statistics.fmean(times_ms):.2f} ms "
            f"p50={statistics.median(times_ms):.2f} ms"
        )

    pipeline.session.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
