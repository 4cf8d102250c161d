"""Value noise evaluated at continuous scene coordinates."""

from __future__ import annotations

import numpy as np


def _smoothstep(t: np.ndarray) -> np.ndarray:
    return t * t * (3.0 - 2.0 * t)


def lattice_noise(
    coord_x: np.ndarray,
    coord_y: np.ndarray,
    rng: np.random.Generator,
) -> np.ndarray:
    """Smooth value noise in [-1, 1] over a unit-spaced random lattice.

    `coord_x` and `coord_y` are broadcast against each other; the lattice is
    sized to cover their extent.
    """

    cx, cy = np.broadcast_arrays(np.asarray(coord_x, dtype=np.float64), np.asarray(coord_y, dtype=np.float64))
    if cx.size == 0:
        return np.zeros(cx.shape, dtype=np.float32)

    origin_x = np.floor(cx.min())
    origin_y = np.floor(cy.min())
    lx = cx - origin_x
    ly = cy - origin_y
    cols = int(np.floor(lx.max())) + 2
    rows = int(np.floor(ly.max())) + 2
    lattice = rng.uniform(-1.0, 1.0, size=(rows, cols))

    x0 = np.floor(lx).astype(np.int64)
    y0 = np.floor(ly).astype(np.int64)
    tx = _smoothstep(lx - x0)
    ty = _smoothstep(ly - y0)

    g00 = lattice[y0, x0]
    g10 = lattice[y0, x0 + 1]
    g01 = lattice[y0 + 1, x0]
    g11 = lattice[y0 + 1, x0 + 1]

    top = g00 * (1.0 - tx) + g10 * tx
    bottom = g01 * (1.0 - tx) + g11 * tx
    return (top * (1.0 - ty) + bottom * ty).astype(np.float32)


def fbm_noise(
    coord_x: np.ndarray,
    coord_y: np.ndarray,
    rng: np.random.Generator,
    *,
    frequency: float = 1.0,
    octaves: int = 4,
    lacunarity: float = 2.0,
    gain: float = 0.5,
) -> np.ndarray:
    """Fractal sum of `lattice_noise` octaves, normalised to about [-1, 1]."""

    if octaves < 1:
        raise ValueError("octaves must be >= 1")

    cx, cy = np.broadcast_arrays(np.asarray(coord_x, dtype=np.float64), np.asarray(coord_y, dtype=np.float64))
    field = np.zeros(cx.shape, dtype=np.float32)
    amplitude = 1.0
    total_amplitude = 0.0

    for octave in range(octaves):
        freq = frequency * lacunarity**octave
        field += amplitude * lattice_noise(cx * freq, cy * freq, rng)
        total_amplitude += amplitude
        amplitude *= gain

    return (field / total_amplitude).astype(np.float32)
