from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence

import numpy as np

from ..types import TensorSpec


class EngineBackend(ABC):
    """
    Engine adapter used by `InferenceSession`.

    Backends raise the engine's own exceptions; `infer_kit.runtime` maps them
    into the infer_kit error taxonomy.
    """

    name: str = "base"
    # True only when the engine documents concurrent run() on one handle as safe.
    thread_safe: bool = False

    @property
    @abstractmethod
    def input_specs(self) -> Sequence[TensorSpec]:
        pass

    @property
    @abstractmethod
    def output_specs(self) -> Sequence[TensorSpec]:
        pass

    @abstractmethod
    def run(self, feeds: Dict[str, np.ndarray]) -> List[np.ndarray]:
        """Execute the graph and return every output, in graph order."""

    def close(self) -> None:
        pass
