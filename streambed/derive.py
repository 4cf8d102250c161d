"""Derived rasters and surfaces read from simulation state."""

from __future__ import annotations

import numpy as np
from matplotlib.colors import LinearSegmentedColormap


SAND_RGB = (0.76, 0.70, 0.50)
SHALLOW_WATER_RGB = (0.20, 0.50, 0.80)
DEEP_WATER_RGB = (0.10, 0.30, 0.60)


def water_surface(
    terrain: np.ndarray,
    water: np.ndarray,
    *,
    threshold: float = 0.01,
    hide_offset: float = 0.1,
) -> tuple[np.ndarray, bool]:
    """Return per-cell water surface heights and whether any cell is wet.

    Dry cells are pushed `hide_offset` below the terrain so the surface stays
    hidden under the ground.
    """

    if terrain.shape != water.shape:
        raise ValueError("terrain and water must have the same shape")

    wet = water > threshold
    surface = np.where(wet, terrain + water, terrain - hide_offset).astype(np.float32)
    return surface, bool(np.any(wet))


def water_depth_factor(water: np.ndarray, *, full_depth: float = 0.1) -> np.ndarray:
    """Map water depth to [0, 1] with saturation at `full_depth`."""

    if full_depth <= 0:
        raise ValueError("full_depth must be positive")
    return np.clip(water / full_depth, 0.0, 1.0).astype(np.float32)


def water_depth_rgb(water: np.ndarray, *, threshold: float = 0.005, full_depth: float = 0.1) -> np.ndarray:
    """Colour water depth from sand through shallow to deep water."""

    cmap = LinearSegmentedColormap.from_list(
        "streambed_water",
        [SHALLOW_WATER_RGB, DEEP_WATER_RGB],
    )
    factor = water_depth_factor(water, full_depth=full_depth)
    rgba = cmap(factor)
    rgba[water <= threshold, :3] = SAND_RGB
    return np.round(rgba[..., :3] * 255.0).astype(np.uint8)


def hillshade(
    terrain: np.ndarray,
    *,
    pipe_length: float = 1.0,
    light_azimuth_deg: float = 315.0,
    light_altitude_deg: float = 45.0,
    vertical_exaggeration: float = 1.0,
) -> np.ndarray:
    """Lambert-shade a 2D terrain grid into 8-bit grayscale.

    Normals come from the same central differences over `pipe_length` that the
    erosion step uses for slope; edge cells reuse their nearest neighbour.
    """

    if terrain.ndim != 2:
        raise ValueError("terrain must be a 2D array")
    if pipe_length <= 0:
        raise ValueError("pipe_length must be positive")

    padded = np.pad(terrain.astype(np.float64) * float(vertical_exaggeration), 1, mode="edge")
    dhdx = (padded[1:-1, 2:] - padded[1:-1, :-2]) / (2.0 * pipe_length)
    dhdy = (padded[2:, 1:-1] - padded[:-2, 1:-1]) / (2.0 * pipe_length)

    normals = np.stack([-dhdx, -dhdy, np.ones_like(dhdx)], axis=-1)
    normals /= np.linalg.norm(normals, axis=-1, keepdims=True)

    azimuth = np.deg2rad(light_azimuth_deg)
    altitude = np.deg2rad(light_altitude_deg)
    light = np.array(
        [np.cos(altitude) * np.sin(azimuth), np.cos(altitude) * np.cos(azimuth), np.sin(altitude)]
    )
    lambert = np.clip(normals @ light, 0.0, 1.0)
    return np.round(lambert * 255.0).astype(np.uint8)


def range_preview_u16(values: np.ndarray, lo: float, hi: float) -> np.ndarray:
    """Map values in [lo, hi] to 16-bit grayscale."""

    scale = max(hi - lo, 1e-6)
    norm = np.clip((values - lo) / scale, 0.0, 1.0)
    return np.round(norm * 65535.0).astype(np.uint16)


def range_preview_u8(values: np.ndarray, lo: float, hi: float) -> np.ndarray:
    """Map values in [lo, hi] to 8-bit grayscale."""

    scale = max(hi - lo, 1e-6)
    norm = np.clip((values - lo) / scale, 0.0, 1.0)
    return np.round(norm * 255.0).astype(np.uint8)
