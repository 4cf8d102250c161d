"""Configuration models for the erosion engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


DEFAULT_WIDTH = 64
DEFAULT_HEIGHT = 128
MAX_FRAME_DT = 0.05
SCENE_SIZE_X = 9.0
SCENE_SIZE_Z = 15.0


@dataclass(frozen=True)
class PhysicsConfig:
    """Pipe-model constants and transport coefficients."""

    gravity: float = 9.81
    pipe_length: float = 1.0
    cell_area: float = 1.0
    capacity_constant: float = 0.5
    dissolve_constant: float = 0.3
    deposition_constant: float = 0.3
    evaporation_constant: float = 0.015
    velocity_damping: float = 0.98
    depth_epsilon: float = 1e-4
    evaporation_epsilon: float = 1e-4


@dataclass(frozen=True)
class SourceConfig:
    """Rectangular inflow region near the upstream edge."""

    width_fraction: float = 0.2
    start_row: int = 2
    depth_rows: int = 5
    intensity: float = 5.0
    uniform_rain_intensity: float = 0.0


@dataclass(frozen=True)
class ErosionConfig:
    """Sediment capacity, per-step caps, and height clamps."""

    capacity_scale: float = 5.0
    min_capacity: float = 0.01
    max_erosion_per_step: float = 0.05
    max_deposition_per_step: float = 0.05
    min_height: float = 0.01
    max_height: float = 1.5
    boundary_margin: int = 1


@dataclass(frozen=True)
class DrainageConfig:
    """Open outflow rows zeroed every step."""

    drain_rows: int = 3
    drain_source_edge: bool = True


@dataclass(frozen=True)
class SmoothingConfig:
    """Wet-weighted diffusion of terrain toward the neighbour mean."""

    enabled: bool = True
    base_rate: float = 0.5
    wet_rate: float = 4.0
    wet_depth: float = 0.05
    max_blend: float = 0.25


@dataclass(frozen=True)
class BedConfig:
    """Initial sloped stream bed."""

    slope_height: float = 1.5
    noise_amplitude: float = 0.3
    noise_octaves: int = 4
    channel_depth: float = 0.4
    channel_width: float = 3.0
    floor_height: float = 0.05
    size_x: float = SCENE_SIZE_X
    size_z: float = SCENE_SIZE_Z


@dataclass(frozen=True)
class EngineConfig:
    """Primary simulation configuration."""

    physics: PhysicsConfig = field(default_factory=PhysicsConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    erosion: ErosionConfig = field(default_factory=ErosionConfig)
    drainage: DrainageConfig = field(default_factory=DrainageConfig)
    smoothing: SmoothingConfig = field(default_factory=SmoothingConfig)
    bed: BedConfig = field(default_factory=BedConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
