"""Volume accounting and field summaries for simulation runs."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class StepMetrics:
    """Volume bookkeeping for one `simulate` call.

    Water volumes balance across the call:
    ``before + injected == water_volume + drained_water + evaporated + boundary_outflow``
    up to float32 rounding.
    """

    water_volume: float
    sediment_volume: float
    eroded: float
    deposited: float
    drained_water: float
    drained_sediment: float
    injected: float = 0.0
    evaporated: float = 0.0
    boundary_outflow: float = 0.0


@dataclass(frozen=True)
class FieldSummary:
    """Range and coverage summary of the simulated fields."""

    terrain_min: float
    terrain_max: float
    terrain_mean: float
    water_volume: float
    water_max: float
    wet_fraction: float
    sediment_volume: float
    sediment_max: float


def summarize_fields(
    terrain: np.ndarray,
    water: np.ndarray,
    sediment: np.ndarray,
    *,
    cell_area: float = 1.0,
    wet_threshold: float = 0.01,
) -> FieldSummary:
    """Summarise terrain, water, and sediment arrays of equal size.

    Water depths are converted to volume with `cell_area`, matching
    `StepMetrics.water_volume`.
    """

    if not (terrain.size == water.size == sediment.size):
        raise ValueError("terrain, water and sediment must have the same size")
    if cell_area <= 0:
        raise ValueError("cell_area must be positive")
    if terrain.size == 0:
        return FieldSummary(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    return FieldSummary(
        terrain_min=float(np.min(terrain)),
        terrain_max=float(np.max(terrain)),
        terrain_mean=float(np.mean(terrain)),
        water_volume=float(np.sum(water, dtype=np.float64)) * cell_area,
        water_max=float(np.max(water)),
        wet_fraction=float(np.mean(water > wet_threshold)),
        sediment_volume=float(np.sum(sediment, dtype=np.float64)),
        sediment_max=float(np.max(sediment)),
    )
