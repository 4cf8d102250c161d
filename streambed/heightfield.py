"""Initial sloped stream-bed heightfield."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from streambed.config import BedConfig
from streambed.noise import fbm_noise


@dataclass(frozen=True)
class StreambedResult:
    """Flat terrain plus the components it was composed from."""

    terrain: np.ndarray
    slope: np.ndarray
    noise: np.ndarray
    channel: np.ndarray
    scene_x: np.ndarray
    scene_z: np.ndarray


def scene_coordinates(width: int, height: int, size_x: float, size_z: float) -> tuple[np.ndarray, np.ndarray]:
    """Scene-space x per column and z per row for a plane centred on the origin.

    Row 0 lies at the back edge (``z = -size_z / 2``), the high end of the bed.
    """

    xs = np.linspace(-size_x / 2.0, size_x / 2.0, num=width, dtype=np.float64)
    zs = np.linspace(-size_z / 2.0, size_z / 2.0, num=height, dtype=np.float64)
    return xs, zs


def generate_streambed(
    width: int,
    height: int,
    rng: np.random.Generator,
    *,
    config: BedConfig | None = None,
) -> StreambedResult:
    """Build a bed sloping from the source edge with a noisy central channel."""

    if width < 3 or height < 3:
        raise ValueError("width and height must be at least 3")

    cfg = config or BedConfig()
    xs, zs = scene_coordinates(width, height, cfg.size_x, cfg.size_z)
    grid_x = xs[None, :]
    grid_z = zs[:, None]

    slope = np.broadcast_to((-grid_z / cfg.size_z + 0.5) * cfg.slope_height, (height, width))
    noise = fbm_noise(grid_x * 0.5, grid_z * 0.5, rng, octaves=cfg.noise_octaves) * cfg.noise_amplitude
    channel = np.broadcast_to(
        np.exp(-(grid_x * grid_x) / cfg.channel_width) * cfg.channel_depth,
        (height, width),
    )

    terrain = np.maximum(cfg.floor_height, slope + noise - channel).astype(np.float32)
    return StreambedResult(
        terrain=np.ascontiguousarray(terrain).reshape(-1),
        slope=np.asarray(slope, dtype=np.float32),
        noise=noise.astype(np.float32),
        channel=np.asarray(channel, dtype=np.float32),
        scene_x=xs,
        scene_z=zs,
    )
