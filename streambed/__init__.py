"""Grid-based hydraulic erosion package."""

from .config import DEFAULT_HEIGHT, DEFAULT_WIDTH, MAX_FRAME_DT, EngineConfig
from .engine import ErosionEngine
from .sampler import sample_bilinear

__all__ = [
    "DEFAULT_WIDTH",
    "DEFAULT_HEIGHT",
    "MAX_FRAME_DT",
    "EngineConfig",
    "ErosionEngine",
    "sample_bilinear",
]
