"""Ground elevation queries in scene coordinates."""

from __future__ import annotations

import numpy as np

from streambed.config import SCENE_SIZE_X, SCENE_SIZE_Z
from streambed.sampler import sample_bilinear


def world_to_grid(
    world_x: float,
    world_z: float,
    *,
    width: int,
    height: int,
    size_x: float = SCENE_SIZE_X,
    size_z: float = SCENE_SIZE_Z,
) -> tuple[float, float]:
    """Convert scene (x, z) on a plane centred at the origin to fractional grid (x, y)."""

    grid_x = (world_x + size_x / 2.0) / size_x * (width - 1)
    grid_y = (world_z + size_z / 2.0) / size_z * (height - 1)
    return grid_x, grid_y


def ground_elevation(
    terrain: np.ndarray,
    world_x: float,
    world_z: float,
    *,
    width: int,
    height: int,
    size_x: float = SCENE_SIZE_X,
    size_z: float = SCENE_SIZE_Z,
) -> float:
    """Terrain height under a scene position; zero off the sampled grid."""

    grid_x, grid_y = world_to_grid(world_x, world_z, width=width, height=height, size_x=size_x, size_z=size_z)
    return sample_bilinear(terrain, grid_x, grid_y, width=width, height=height)
