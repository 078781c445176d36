"""
Process-wide inference engine environment.

Engines such as ONNX Runtime keep global state (the default logger, thread
pools). That state is owned by one `InferenceEnvironment`: created at startup,
passed into every session load, closed at shutdown.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

OPTIMIZATION_LEVELS = ("disabled", "basic", "extended", "all")

# ORT severities: 0 verbose, 1 info, 2 warning, 3 error, 4 fatal
DEFAULT_LOG_SEVERITY = 2


@dataclass
class InferenceEnvironment:
    """
    - name: log id attached to every session created through this environment
    - log_severity: engine log severity (0 verbose .. 4 fatal)
    - optimization_level: graph optimization ("disabled", "basic", "extended", "all")
    - providers: ORT execution providers in priority order; None uses ORT defaults
    - intra_op_threads: engine intra-op thread count; 0 lets the engine decide
    """

    name: str = "infer_kit"
    log_severity: int = DEFAULT_LOG_SEVERITY
    optimization_level: str = "all"
    providers: Optional[Sequence[str]] = None
    intra_op_threads: int = 0
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0 <= int(self.log_severity) <= 4:
            raise ValueError("log_severity must be within [0, 4]")
        level = str(self.optimization_level).strip().lower()
        if level not in OPTIMIZATION_LEVELS:
            raise ValueError(f"optimization_level must be one of {OPTIMIZATION_LEVELS}, got {self.optimization_level!r}")
        self.optimization_level = level
        if int(self.intra_op_threads) < 0:
            raise ValueError("intra_op_threads must be >= 0")
        if self.providers is not None:
            self.providers = tuple(str(p) for p in self.providers)
        logger.debug("created inference environment %r", self.name)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def provider_list(self) -> Optional[Tuple[str, ...]]:
        return tuple(self.providers) if self.providers is not None else None

    def close(self) -> None:
        """
        Teardown point. Sessions already loaded keep working; new loads fail.
        """

        if not self._closed:
            logger.debug("closing inference environment %r", self.name)
        self._closed = True

    def __enter__(self) -> "InferenceEnvironment":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


_default_env: Optional[InferenceEnvironment] = None
_default_lock = threading.Lock()


def default_environment() -> InferenceEnvironment:
    """
    Lazily created process-wide environment used by the module-level helpers.
    """

    global _default_env
    with _default_lock:
        if _default_env is None or _default_env.closed:
            _default_env = InferenceEnvironment()
        return _default_env


def shutdown_default_environment() -> None:
    global _default_env
    with _default_lock:
        if _default_env is not None:
            _default_env.close()
        _default_env = None
