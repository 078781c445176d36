"""
Inference engine backends for infer_kit.

Backends are kept in a separate module so core functionality (preprocessing)
stays lightweight; each backend imports its runtime only when instantiated.
"""

from __future__ import annotations

from .base import EngineBackend

__all__ = ["EngineBackend"]
