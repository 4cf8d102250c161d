"""Pipe-model hydraulic erosion on a fixed grid.

The engine owns water, sediment, flux, and velocity fields. Terrain is borrowed
from the caller on every `simulate` call and mutated in place, so renderers
holding the same array observe the new heights without a copy.

Flux directions: L flows to x - 1, R to x + 1, T to y + 1, B to y - 1.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.ndimage import convolve

from streambed.config import EngineConfig
from streambed.metrics import StepMetrics
from streambed.sampler import sample_bilinear_many


logger = logging.getLogger(__name__)

_NEIGHBOUR_KERNEL = np.array(
    [
        [0.0, 0.25, 0.0],
        [0.25, 0.0, 0.25],
        [0.0, 0.25, 0.0],
    ],
    dtype=np.float32,
)


def _zero_border(grid: np.ndarray) -> None:
    grid[0, :] = 0.0
    grid[-1, :] = 0.0
    grid[:, 0] = 0.0
    grid[:, -1] = 0.0


class ErosionEngine:
    """Shallow-water erosion integrator for one terrain grid."""

    def __init__(self, width: int, height: int, *, config: EngineConfig | None = None) -> None:
        if width < 3 or height < 3:
            raise ValueError("width and height must be at least 3")

        self.width = int(width)
        self.height = int(height)
        self.config = config or EngineConfig()
        size = self.width * self.height

        self.water_height = np.zeros(size, dtype=np.float32)
        self.sediment = np.zeros(size, dtype=np.float32)
        self.flux_l = np.zeros(size, dtype=np.float32)
        self.flux_r = np.zeros(size, dtype=np.float32)
        self.flux_t = np.zeros(size, dtype=np.float32)
        self.flux_b = np.zeros(size, dtype=np.float32)
        self.velocity_x = np.zeros(size, dtype=np.float32)
        self.velocity_y = np.zeros(size, dtype=np.float32)

        self._sediment_scratch = np.zeros(size, dtype=np.float32)
        self._terrain_scratch = np.zeros(size, dtype=np.float32)
        self.last_metrics: StepMetrics | None = None

        self.drain_rows = self._resolve_drain_rows()
        self.source_region = self._resolve_source_region()
        self._erodible = self._resolve_erodible_mask()

        ys, xs = np.mgrid[1 : self.height - 1, 1 : self.width - 1]
        self._interior_x = xs.astype(np.float64)
        self._interior_y = ys.astype(np.float64)

        logger.debug(
            "Erosion engine %dx%d: source rows %s cols %s, drain rows %s",
            self.width,
            self.height,
            self.source_region[0],
            self.source_region[1],
            self.drain_rows.tolist(),
        )

    def reset(self) -> None:
        """Zero every engine-owned field without reallocating."""

        for buffer in (
            self.water_height,
            self.sediment,
            self.flux_l,
            self.flux_r,
            self.flux_t,
            self.flux_b,
            self.velocity_x,
            self.velocity_y,
            self._sediment_scratch,
            self._terrain_scratch,
        ):
            buffer.fill(0.0)
        self.last_metrics = None
        logger.debug("Erosion engine %dx%d reset", self.width, self.height)

    def simulate(
        self,
        terrain: np.ndarray,
        dt: float,
        flow_rate: float,
        is_raining: bool,
        erosion_rate_multiplier: float = 1.0,
    ) -> np.ndarray:
        """Advance all fields by one step and return the mutated terrain."""

        self._check_terrain(terrain)
        if not np.isfinite(dt) or dt < 0:
            raise ValueError("dt must be finite and non-negative")
        dt = float(dt)

        cell_area = self.config.physics.cell_area
        injected = self.add_water(dt, flow_rate, is_raining)
        self.compute_flux(terrain, dt)
        boundary_outflow = self.update_water_and_velocity(dt)
        eroded, deposited = self.erode_and_deposit(terrain, dt, erosion_rate_multiplier)
        self.transport_sediment(dt)
        evaporated = self.evaporate(dt)
        self.smooth_terrain(terrain, dt)
        drained_water, drained_sediment = self.drain_boundary()

        self.last_metrics = StepMetrics(
            water_volume=float(np.sum(self.water_height, dtype=np.float64)) * cell_area,
            sediment_volume=float(np.sum(self.sediment, dtype=np.float64)),
            eroded=eroded,
            deposited=deposited,
            drained_water=drained_water * cell_area,
            drained_sediment=drained_sediment,
            injected=injected,
            evaporated=evaporated,
            boundary_outflow=boundary_outflow,
        )
        return terrain

    def add_water(self, dt: float, flow_rate: float, is_raining: bool) -> float:
        """Add source (and optional uniform) rain; return the added volume."""

        if not is_raining:
            return 0.0

        source = self.config.source
        water = self._grid(self.water_height)
        before = float(np.sum(water, dtype=np.float64))
        if source.uniform_rain_intensity > 0.0:
            water += flow_rate * dt * source.uniform_rain_intensity

        rows, cols = self.source_region
        water[rows, cols] += flow_rate * dt * source.intensity
        return (float(np.sum(water, dtype=np.float64)) - before) * self.config.physics.cell_area

    def compute_flux(self, terrain: np.ndarray, dt: float) -> None:
        """Update outgoing pipe fluxes, scaled so no cell emits more than it holds."""

        physics = self.config.physics
        water = self._grid(self.water_height)
        h = self._grid(terrain).astype(np.float32) + water
        center = h[1:-1, 1:-1]
        factor = dt * physics.cell_area * physics.gravity / physics.pipe_length

        grids = [self._grid(f) for f in (self.flux_l, self.flux_r, self.flux_t, self.flux_b)]
        neighbours = (h[1:-1, :-2], h[1:-1, 2:], h[2:, 1:-1], h[:-2, 1:-1])
        updated = [
            np.maximum(0.0, grid[1:-1, 1:-1] + factor * np.maximum(0.0, center - neighbour))
            for grid, neighbour in zip(grids, neighbours)
        ]

        outflow = (updated[0] + updated[1] + updated[2] + updated[3]) * dt
        volume = water[1:-1, 1:-1] * physics.cell_area
        scale = np.ones_like(outflow)
        np.divide(volume, outflow, out=scale, where=outflow > 0.0)
        np.minimum(scale, 1.0, out=scale)

        for grid, flux in zip(grids, updated):
            grid[1:-1, 1:-1] = flux * scale
            _zero_border(grid)

    def update_water_and_velocity(self, dt: float) -> float:
        """Move water along the fluxes and derive velocities.

        Border cells never take inflow, so flux pointing into them leaves the
        grid. Returns that boundary outflow volume.
        """

        physics = self.config.physics
        fl, fr, ft, fb = (self._grid(f) for f in (self.flux_l, self.flux_r, self.flux_t, self.flux_b))

        boundary_outflow = dt * (
            float(np.sum(fl[1:-1, 1], dtype=np.float64))
            + float(np.sum(fr[1:-1, -2], dtype=np.float64))
            + float(np.sum(ft[-2, 1:-1], dtype=np.float64))
            + float(np.sum(fb[1, 1:-1], dtype=np.float64))
        )

        in_l = fr[1:-1, :-2]
        in_r = fl[1:-1, 2:]
        in_t = fb[2:, 1:-1]
        in_b = ft[:-2, 1:-1]
        out_l = fl[1:-1, 1:-1]
        out_r = fr[1:-1, 1:-1]
        out_t = ft[1:-1, 1:-1]
        out_b = fb[1:-1, 1:-1]

        inflow = in_l + in_r + in_t + in_b
        outflow = out_l + out_r + out_t + out_b
        depth = self._grid(self.water_height)[1:-1, 1:-1]
        depth += dt * (inflow - outflow) / physics.cell_area
        np.maximum(depth, 0.0, out=depth)

        u = (in_l - out_l + out_r - in_r) * 0.5
        v = (in_b - out_b + out_t - in_t) * 0.5
        wet = depth > physics.depth_epsilon
        denom = np.where(wet, physics.cell_area * depth, 1.0)

        vx = self._grid(self.velocity_x)
        vy = self._grid(self.velocity_y)
        vx[1:-1, 1:-1] = np.where(wet, u / denom * physics.velocity_damping, 0.0)
        vy[1:-1, 1:-1] = np.where(wet, v / denom * physics.velocity_damping, 0.0)
        _zero_border(vx)
        _zero_border(vy)
        return boundary_outflow

    def erode_and_deposit(
        self,
        terrain: np.ndarray,
        dt: float,
        erosion_rate_multiplier: float = 1.0,
    ) -> tuple[float, float]:
        """Exchange material between terrain and suspended sediment.

        Returns the total eroded and deposited amounts for the step.
        """

        physics = self.config.physics
        cfg = self.config.erosion

        t = self._grid(terrain)
        snapshot = self._grid(self._terrain_scratch)
        np.copyto(snapshot, t, casting="same_kind")

        dhdx = (snapshot[1:-1, 2:] - snapshot[1:-1, :-2]) / (2.0 * physics.pipe_length)
        dhdy = (snapshot[2:, 1:-1] - snapshot[:-2, 1:-1]) / (2.0 * physics.pipe_length)
        slope = np.hypot(dhdx, dhdy)
        speed = np.hypot(self._grid(self.velocity_x)[1:-1, 1:-1], self._grid(self.velocity_y)[1:-1, 1:-1])
        capacity = np.maximum(
            cfg.min_capacity,
            physics.capacity_constant * speed * slope * cfg.capacity_scale,
        )

        t_in = t[1:-1, 1:-1]
        sed_in = self._grid(self.sediment)[1:-1, 1:-1]
        active = self._erodible[1:-1, 1:-1]
        eroding = capacity > sed_in

        erode = physics.dissolve_constant * (capacity - sed_in) * dt * erosion_rate_multiplier
        erode = np.minimum(erode, cfg.max_erosion_per_step)
        erode = np.minimum(erode, t_in - cfg.min_height)
        erode = np.where(active & eroding, np.maximum(erode, 0.0), 0.0)

        deposit = physics.deposition_constant * (sed_in - capacity) * dt
        deposit = np.minimum(deposit, sed_in)
        deposit = np.minimum(deposit, cfg.max_deposition_per_step)
        deposit = np.minimum(deposit, cfg.max_height - t_in)
        deposit = np.where(active & ~eroding, np.maximum(deposit, 0.0), 0.0)

        t_in += deposit - erode
        sed_in += erode - deposit
        np.maximum(sed_in, 0.0, out=sed_in)
        return float(np.sum(erode, dtype=np.float64)), float(np.sum(deposit, dtype=np.float64))

    def transport_sediment(self, dt: float) -> None:
        """Semi-Lagrangian advection of sediment along the velocity field."""

        vx = self._grid(self.velocity_x)[1:-1, 1:-1]
        vy = self._grid(self.velocity_y)[1:-1, 1:-1]
        src_x = self._interior_x - vx * dt
        src_y = self._interior_y - vy * dt

        advected = self._sediment_scratch
        np.copyto(advected, self.sediment)
        self._grid(advected)[1:-1, 1:-1] = sample_bilinear_many(
            self.sediment,
            src_x,
            src_y,
            width=self.width,
            height=self.height,
        )
        self.sediment, self._sediment_scratch = advected, self.sediment

    def evaporate(self, dt: float) -> float:
        physics = self.config.physics
        before = float(np.sum(self.water_height, dtype=np.float64))
        self.water_height *= 1.0 - physics.evaporation_constant * dt
        self.water_height[self.water_height < physics.evaporation_epsilon] = 0.0
        return (before - float(np.sum(self.water_height, dtype=np.float64))) * physics.cell_area

    def smooth_terrain(self, terrain: np.ndarray, dt: float) -> None:
        """Diffuse interior terrain toward its 4-neighbour mean, harder where wet."""

        smoothing = self.config.smoothing
        if not smoothing.enabled:
            return
        cfg = self.config.erosion

        t = self._grid(terrain)
        snapshot = self._grid(self._terrain_scratch)
        np.copyto(snapshot, t, casting="same_kind")
        neighbour_mean = convolve(snapshot, _NEIGHBOUR_KERNEL, mode="nearest")

        depth = self._grid(self.water_height)[1:-1, 1:-1]
        wetness = np.minimum(depth / max(smoothing.wet_depth, 1e-9), 1.0)
        blend = np.clip((smoothing.base_rate + smoothing.wet_rate * wetness) * dt, 0.0, smoothing.max_blend)

        t_in = t[1:-1, 1:-1]
        t_in += blend * (neighbour_mean[1:-1, 1:-1] - snapshot[1:-1, 1:-1])
        np.clip(t_in, cfg.min_height, cfg.max_height, out=t_in)

    def drain_boundary(self) -> tuple[float, float]:
        """Zero water and sediment in the outflow rows; return what was removed."""

        water = self._grid(self.water_height)
        sediment = self._grid(self.sediment)
        drained_water = float(np.sum(water[self.drain_rows], dtype=np.float64))
        drained_sediment = float(np.sum(sediment[self.drain_rows], dtype=np.float64))
        water[self.drain_rows] = 0.0
        sediment[self.drain_rows] = 0.0
        return drained_water, drained_sediment

    def _grid(self, field: np.ndarray) -> np.ndarray:
        return field.reshape(self.height, self.width)

    def _check_terrain(self, terrain: np.ndarray) -> None:
        if not isinstance(terrain, np.ndarray):
            raise ValueError("terrain must be a numpy array")
        if terrain.size != self.width * self.height:
            raise ValueError(
                f"terrain has {terrain.size} cells, expected {self.width * self.height} "
                f"({self.width}x{self.height})"
            )
        if not np.issubdtype(terrain.dtype, np.floating):
            raise ValueError("terrain must have a floating point dtype")
        if not terrain.flags.c_contiguous:
            raise ValueError("terrain must be C-contiguous so it can be updated in place")

    def _resolve_drain_rows(self) -> np.ndarray:
        drainage = self.config.drainage
        count = min(max(drainage.drain_rows, 0), self.height)
        rows = list(range(self.height - count, self.height))
        if drainage.drain_source_edge and 0 not in rows:
            rows.insert(0, 0)
        return np.array(rows, dtype=np.intp)

    def _resolve_source_region(self) -> tuple[slice, slice]:
        source = self.config.source
        source_width = max(1, int(self.width * source.width_fraction))
        start_x = (self.width - source_width) // 2

        first_drain = self.height - min(max(self.config.drainage.drain_rows, 0), self.height)
        start_y = max(source.start_row, 1)
        stop_y = min(source.start_row + source.depth_rows, self.height - 1, first_drain)
        stop_y = max(stop_y, start_y)
        return slice(start_y, stop_y), slice(start_x, start_x + source_width)

    def _resolve_erodible_mask(self) -> np.ndarray:
        margin = max(self.config.erosion.boundary_margin, 1)
        mask = np.zeros((self.height, self.width), dtype=bool)
        mask[margin : self.height - margin, margin : self.width - margin] = True
        mask[self.drain_rows, :] = False
        return mask
