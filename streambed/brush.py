"""Dig and fill edits applied to terrain around a scene position."""

from __future__ import annotations

import numpy as np

from streambed.config import SCENE_SIZE_X, SCENE_SIZE_Z
from streambed.heightfield import scene_coordinates


BRUSH_TOOLS = ("dig", "fill")


def apply_brush(
    terrain: np.ndarray,
    world_x: float,
    world_z: float,
    *,
    width: int,
    height: int,
    tool: str,
    radius: float = 0.8,
    strength: float = 0.15,
    size_x: float = SCENE_SIZE_X,
    size_z: float = SCENE_SIZE_Z,
) -> int:
    """Lower or raise terrain with linear falloff; return the number of cells touched.

    Digging never takes a cell below zero.
    """

    if tool not in BRUSH_TOOLS:
        raise ValueError(f"unknown brush tool {tool!r}; expected one of {BRUSH_TOOLS}")
    if radius <= 0:
        raise ValueError("radius must be positive")
    if terrain.size != width * height:
        raise ValueError("terrain size does not match width * height")

    xs, zs = scene_coordinates(width, height, size_x, size_z)
    dist = np.hypot(xs[None, :] - world_x, zs[:, None] - world_z)
    inside = dist < radius
    influence = np.where(inside, (1.0 - dist / radius) * strength, 0.0)

    grid = terrain.reshape(height, width)
    if tool == "dig":
        grid[inside] = np.maximum(0.0, grid[inside] - influence[inside])
    else:
        grid[inside] += influence[inside]
    return int(np.count_nonzero(inside))
