from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .environment import DEFAULT_LOG_SEVERITY, OPTIMIZATION_LEVELS, InferenceEnvironment
from .preprocess import TensorBuilderConfig
from .types import BGR, RGB, validate_channel_order

BACKENDS = ("onnxruntime", "torchscript")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Everything needed to go from an image to raw model outputs.

    width/height may be left as None when the model declares a fixed input size.
    """

    model: str
    width: Optional[int] = None
    height: Optional[int] = None
    backend: Optional[str] = None
    source_order: str = BGR
    target_order: str = RGB
    mean: Optional[Tuple[float, float, float]] = None
    std: Optional[Tuple[float, float, float]] = None
    providers: Optional[Tuple[str, ...]] = None
    optimization_level: str = "all"
    log_severity: int = DEFAULT_LOG_SEVERITY
    intra_op_threads: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.model, str) or not self.model.strip():
            raise ValueError("model must be a non-empty string")
        for key in ("width", "height"):
            value = getattr(self, key)
            if value is not None and value < 1:
                raise ValueError(f"{key} must be >= 1")
        if self.backend is not None and self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}")
        object.__setattr__(self, "source_order", validate_channel_order(self.source_order))
        object.__setattr__(self, "target_order", validate_channel_order(self.target_order))
        if self.optimization_level not in OPTIMIZATION_LEVELS:
            raise ValueError(f"optimization_level must be one of {OPTIMIZATION_LEVELS}")
        if not 0 <= self.log_severity <= 4:
            raise ValueError("log_severity must be within [0, 4]")
        if self.intra_op_threads < 0:
            raise ValueError("intra_op_threads must be >= 0")
        if self.providers is not None:
            object.__setattr__(self, "providers", tuple(self.providers))
        # Validates mean/std.
        self.builder_config()

    def builder_config(self) -> TensorBuilderConfig:
        return TensorBuilderConfig(target_order=self.target_order, mean=self.mean, std=self.std)

    def environment(self) -> InferenceEnvironment:
        return InferenceEnvironment(
            log_severity=self.log_severity,
            optimization_level=self.optimization_level,
            providers=self.providers,
            intra_op_threads=self.intra_op_threads,
        )


def _require_str(payload: Dict[str, Any], key: str) -> str:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _optional_int(payload: Dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value.strip()


def _optional_triplet(payload: Dict[str, Any], key: str) -> Optional[Tuple[float, float, float]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or len(value) != 3:
        raise ValueError(f"{key} must be a list of 3 numbers")
    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in value):
        raise ValueError(f"{key} must be a list of 3 numbers")
    return tuple(float(v) for v in value)  # type: ignore[return-value]


def _optional_str_list(payload: Dict[str, Any], key: str) -> Optional[Tuple[str, ...]]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        value = [v for v in value.split(",")]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a string or list of strings")
    cleaned = [v.strip() for v in value]
    if not cleaned or any(not v for v in cleaned):
        raise ValueError(f"{key} must not contain empty strings")
    return tuple(cleaned)


def load_pipeline_config(path: Path) -> PipelineConfig:
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid pipeline config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Pipeline config must be a JSON object")

    allowed = {
        "model",
        "width",
        "height",
        "backend",
        "source_order",
        "target_order",
        "mean",
        "std",
        "providers",
        "optimization_level",
        "log_severity",
        "intra_op_threads",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown pipeline config keys: {unknown}")

    log_severity = _optional_int(payload, "log_severity")
    intra_op_threads = _optional_int(payload, "intra_op_threads")

    return PipelineConfig(
        model=_require_str(payload, "model"),
        width=_optional_int(payload, "width"),
        height=_optional_int(payload, "height"),
        backend=_optional_str(payload, "backend"),
        source_order=_optional_str(payload, "source_order") or BGR,
        target_order=_optional_str(payload, "target_order") or RGB,
        mean=_optional_triplet(payload, "mean"),
        std=_optional_triplet(payload, "std"),
        providers=_optional_str_list(payload, "providers"),
        optimization_level=_optional_str(payload, "optimization_level") or "all",
        log_severity=DEFAULT_LOG_SEVERITY if log_severity is None else log_severity,
        intra_op_threads=0 if intra_op_threads is None else intra_op_threads,
    )
