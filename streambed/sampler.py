"""Bilinear sampling of flat row-major scalar fields."""

from __future__ import annotations

import math

import numpy as np


def sample_bilinear(field: np.ndarray, x: float, y: float, *, width: int, height: int) -> float:
    """Interpolate `field` at fractional grid coordinates.

    Coordinates outside ``[0, width - 1) x [0, height - 1)`` sample as zero
    rather than clamping to the nearest edge cell.
    """

    if not (0.0 <= x < width - 1 and 0.0 <= y < height - 1):
        return 0.0

    flat = field.reshape(-1)
    x0 = int(math.floor(x))
    y0 = int(math.floor(y))
    ax = x - x0
    ay = y - y0

    row0 = y0 * width
    row1 = row0 + width
    v00 = float(flat[row0 + x0])
    v10 = float(flat[row0 + x0 + 1])
    v01 = float(flat[row1 + x0])
    v11 = float(flat[row1 + x0 + 1])

    v0 = v00 * (1.0 - ax) + v10 * ax
    v1 = v01 * (1.0 - ax) + v11 * ax
    return v0 * (1.0 - ay) + v1 * ay


def sample_bilinear_many(
    field: np.ndarray,
    xs: np.ndarray,
    ys: np.ndarray,
    *,
    width: int,
    height: int,
) -> np.ndarray:
    """Vectorised `sample_bilinear` over arrays of coordinates."""

    flat = field.reshape(-1)
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inside = (xs >= 0.0) & (xs < width - 1) & (ys >= 0.0) & (ys < height - 1)

    x_safe = np.where(inside, xs, 0.0)
    y_safe = np.where(inside, ys, 0.0)
    x0 = np.floor(x_safe).astype(np.int64)
    y0 = np.floor(y_safe).astype(np.int64)
    ax = x_safe - x0
    ay = y_safe - y0

    base = y0 * width + x0
    v00 = flat[base].astype(np.float64)
    v10 = flat[base + 1].astype(np.float64)
    v01 = flat[base + width].astype(np.float64)
    v11 = flat[base + width + 1].astype(np.float64)

    top = v00 * (1.0 - ax) + v10 * ax
    bottom = v01 * (1.0 - ax) + v11 * ax
    values = top * (1.0 - ay) + bottom * ay
    return np.where(inside, values, 0.0).astype(field.dtype, copy=False)
