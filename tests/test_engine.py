from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from streambed.config import EngineConfig, ErosionConfig, SmoothingConfig, SourceConfig
from streambed.engine import ErosionEngine
from streambed.heightfield import generate_streambed


def _uniform(width: int = 8, height: int = 8, value: float = 1.0) -> np.ndarray:
    return np.full(width * height, value, dtype=np.float32)


def _border(grid: np.ndarray) -> np.ndarray:
    return np.concatenate([grid[0, :], grid[-1, :], grid[:, 0], grid[:, -1]])


def test_rejects_grids_without_interior() -> None:
    with pytest.raises(ValueError):
        ErosionEngine(2, 8)
    with pytest.raises(ValueError):
        ErosionEngine(8, 1)


def test_fields_are_allocated_zeroed() -> None:
    engine = ErosionEngine(6, 4)

    for field in (
        engine.water_height,
        engine.sediment,
        engine.flux_l,
        engine.flux_r,
        engine.flux_t,
        engine.flux_b,
        engine.velocity_x,
        engine.velocity_y,
    ):
        assert field.shape == (24,)
        assert field.dtype == np.float32
        assert not np.any(field)


def test_reset_zeroes_fields_in_place() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()
    owned = [engine.water_height, engine.flux_l, engine.flux_r, engine.flux_t, engine.flux_b]
    owned += [engine.velocity_x, engine.velocity_y]
    sediment_buffers = {id(engine.sediment), id(engine._sediment_scratch)}

    for _ in range(20):
        engine.simulate(terrain, 0.016, 0.5, True)
    assert np.any(engine.water_height > 0.0)

    engine.reset()

    for before, after in zip(
        owned,
        [engine.water_height, engine.flux_l, engine.flux_r, engine.flux_t, engine.flux_b]
        + [engine.velocity_x, engine.velocity_y],
    ):
        assert before is after
        assert not np.any(after)
    assert id(engine.sediment) in sediment_buffers
    assert not np.any(engine.sediment)
    assert engine.last_metrics is None


def test_simulate_mutates_and_returns_caller_terrain() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()
    before = terrain.copy()

    result = engine.simulate(terrain, 0.05, 1.0, True)

    assert result is terrain
    assert not np.array_equal(terrain, before)


def test_simulate_accepts_two_dimensional_terrain() -> None:
    engine = ErosionEngine(8, 6)
    terrain = np.full((6, 8), 1.0, dtype=np.float32)

    result = engine.simulate(terrain, 0.05, 1.0, True)

    assert result is terrain
    assert float(terrain.min()) < 1.0


@pytest.mark.parametrize(
    "terrain",
    [
        np.ones(63, dtype=np.float32),
        np.ones(64, dtype=np.int32),
        [1.0] * 64,
        np.ones((8, 16), dtype=np.float32)[:, ::2],
    ],
)
def test_simulate_rejects_bad_terrain(terrain) -> None:
    engine = ErosionEngine(8, 8)

    with pytest.raises(ValueError):
        engine.simulate(terrain, 0.016, 0.5, True)


def test_simulate_rejects_negative_dt() -> None:
    engine = ErosionEngine(8, 8)

    with pytest.raises(ValueError):
        engine.simulate(_uniform(), -0.01, 0.5, True)


@pytest.mark.parametrize("dt", [float("nan"), float("inf"), -float("inf")])
def test_simulate_rejects_non_finite_dt(dt: float) -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()

    with pytest.raises(ValueError):
        engine.simulate(terrain, dt, 0.5, True)
    assert np.all(terrain == 1.0)
    assert not np.any(engine.water_height)
    assert engine.last_metrics is None


def test_fields_stay_in_range_on_generated_bed() -> None:
    width, height = 16, 32
    engine = ErosionEngine(width, height)
    terrain = generate_streambed(width, height, np.random.default_rng(3)).terrain
    cfg = engine.config.erosion

    for step in range(200):
        engine.simulate(terrain, 0.05, 1.0, step < 150, 1.0)

        interior = terrain.reshape(height, width)[1:-1, 1:-1]
        assert np.isfinite(terrain).all()
        assert np.isfinite(engine.water_height).all()
        assert np.isfinite(engine.sediment).all()
        assert float(engine.water_height.min()) >= 0.0
        assert float(engine.sediment.min()) >= 0.0
        assert interior.min() >= np.float32(cfg.min_height)
        assert interior.max() <= np.float32(cfg.max_height)


def test_boundary_flux_and_velocity_are_zero() -> None:
    width, height = 12, 16
    engine = ErosionEngine(width, height)
    terrain = generate_streambed(width, height, np.random.default_rng(11)).terrain

    for _ in range(30):
        engine.simulate(terrain, 0.03, 1.0, True)
        for field in (
            engine.flux_l,
            engine.flux_r,
            engine.flux_t,
            engine.flux_b,
            engine.velocity_x,
            engine.velocity_y,
        ):
            assert not np.any(_border(field.reshape(height, width)))


def test_flux_never_exceeds_cell_water() -> None:
    width, height = 12, 16
    engine = ErosionEngine(width, height)
    terrain = generate_streambed(width, height, np.random.default_rng(5)).terrain
    cell_area = engine.config.physics.cell_area
    dt = 0.05

    for _ in range(60):
        engine.add_water(dt, 1.0, True)
        water_before = engine.water_height.copy()
        engine.compute_flux(terrain, dt)

        emitted = (engine.flux_l + engine.flux_r + engine.flux_t + engine.flux_b) * dt
        assert np.all(emitted <= water_before * cell_area * (1.0 + 1e-5) + 1e-7)
        assert float(min(f.min() for f in (engine.flux_l, engine.flux_r, engine.flux_t, engine.flux_b))) >= 0.0

        engine.update_water_and_velocity(dt)
        engine.erode_and_deposit(terrain, dt)
        engine.transport_sediment(dt)
        engine.evaporate(dt)
        engine.smooth_terrain(terrain, dt)
        engine.drain_boundary()


def test_drain_rows_are_empty_after_every_step() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()

    assert engine.drain_rows.tolist() == [0, 5, 6, 7]
    for _ in range(40):
        engine.simulate(terrain, 0.016, 1.0, True)
        water = engine.water_height.reshape(8, 8)
        sediment = engine.sediment.reshape(8, 8)
        assert not np.any(water[engine.drain_rows])
        assert not np.any(sediment[engine.drain_rows])


def test_dry_grid_stays_dry() -> None:
    width, height = 10, 14
    engine = ErosionEngine(width, height)
    terrain = generate_streambed(width, height, np.random.default_rng(2)).terrain

    for _ in range(50):
        engine.simulate(terrain, 0.05, 1.0, False)
        assert not np.any(engine.water_height)


def test_source_region_is_centred_near_upstream_edge() -> None:
    engine = ErosionEngine(8, 8)
    rows, cols = engine.source_region

    assert (rows.start, rows.stop) == (2, 5)
    assert (cols.start, cols.stop) == (3, 4)

    big = ErosionEngine(64, 128)
    rows, cols = big.source_region
    assert (rows.start, rows.stop) == (2, 7)
    assert (cols.start, cols.stop) == (26, 38)


def test_add_water_only_when_raining() -> None:
    engine = ErosionEngine(8, 8)

    engine.add_water(0.1, 0.5, False)
    assert not np.any(engine.water_height)

    engine.add_water(0.1, 0.5, True)
    water = engine.water_height.reshape(8, 8)
    rows, cols = engine.source_region
    assert np.allclose(water[rows, cols], 0.5 * 0.1 * 5.0)
    assert float(water.sum()) == pytest.approx(0.25 * 3)


def test_uniform_rain_reaches_every_cell() -> None:
    config = replace(EngineConfig(), source=SourceConfig(uniform_rain_intensity=0.1))
    engine = ErosionEngine(8, 8, config=config)

    engine.add_water(0.1, 1.0, True)

    assert float(engine.water_height.min()) == pytest.approx(0.01)


def test_erosion_moves_terrain_into_sediment() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()

    eroded, deposited = engine.erode_and_deposit(terrain, 0.1, 1.0)

    expected = 0.3 * 0.01 * 0.1
    grid = terrain.reshape(8, 8)
    sediment = engine.sediment.reshape(8, 8)
    assert np.allclose(grid[1:5, 1:7], 1.0 - expected)
    assert np.allclose(sediment[1:5, 1:7], expected)
    assert np.all(grid[engine.drain_rows] == 1.0)
    assert np.all(grid[:, 0] == 1.0) and np.all(grid[:, -1] == 1.0)
    assert eroded == pytest.approx(24 * expected, rel=1e-4)
    assert deposited == 0.0


def test_erosion_is_capped_and_floored() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()
    grid = terrain.reshape(8, 8)
    grid[2, 2] = 0.0101

    engine.erode_and_deposit(terrain, 1.0, 1000.0)

    assert float(grid[2, 2]) >= engine.config.erosion.min_height - 1e-6
    assert float(grid[3, 3]) == pytest.approx(1.0 - engine.config.erosion.max_erosion_per_step)


def test_deposition_is_capped_by_sediment_and_ceiling() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()
    grid = terrain.reshape(8, 8)
    sediment = engine.sediment.reshape(8, 8)
    sediment[2, 2] = 0.5
    sediment[3, 3] = 0.5
    grid[3, 3] = 1.49

    engine.erode_and_deposit(terrain, 0.1, 1.0)
    assert float(grid[2, 2]) == pytest.approx(1.0 + 0.3 * 0.49 * 0.1, rel=1e-5)
    assert float(sediment[2, 2]) == pytest.approx(0.5 - 0.3 * 0.49 * 0.1, rel=1e-5)

    engine.erode_and_deposit(terrain, 1.0, 1.0)
    assert float(grid[3, 3]) <= engine.config.erosion.max_height + 1e-6
    assert float(grid[2, 2]) == pytest.approx(1.0 + 0.3 * 0.49 * 0.1 + 0.05, rel=1e-5)


def test_advection_reads_a_frozen_snapshot() -> None:
    engine = ErosionEngine(8, 8)
    sediment = engine.sediment.reshape(8, 8)
    sediment[3, 2] = 1.0
    engine.velocity_x.reshape(8, 8)[1:-1, 1:-1] = 10.0

    engine.transport_sediment(0.1)

    moved = engine.sediment.reshape(8, 8)
    assert moved[3, 3] == pytest.approx(1.0)
    assert moved[3, 2] == 0.0
    assert moved[3, 4] == 0.0
    assert float(moved.sum()) == pytest.approx(1.0)


def test_evaporation_scales_and_snaps() -> None:
    engine = ErosionEngine(8, 8)
    engine.water_height[:] = 0.5
    engine.water_height[10] = 5e-5

    engine.evaporate(0.1)

    assert engine.water_height[0] == pytest.approx(0.5 * (1.0 - 0.015 * 0.1))
    assert engine.water_height[10] == 0.0


def test_smoothing_is_stronger_where_wet() -> None:
    dry = ErosionEngine(8, 8)
    wet = ErosionEngine(8, 8)
    wet.water_height[:] = 0.1
    dry_terrain = _uniform()
    dry_terrain.reshape(8, 8)[3, 3] = 1.4
    wet_terrain = dry_terrain.copy()

    dry.smooth_terrain(dry_terrain, 0.1)
    wet.smooth_terrain(wet_terrain, 0.1)

    assert float(dry_terrain.reshape(8, 8)[3, 3]) == pytest.approx(1.38, rel=1e-5)
    assert float(wet_terrain.reshape(8, 8)[3, 3]) == pytest.approx(1.3, rel=1e-5)
    assert float(dry_terrain.reshape(8, 8)[3, 4]) > 1.0


def test_smoothing_clamps_and_can_be_disabled() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform(value=2.5)
    terrain.reshape(8, 8)[4, 4] = -1.0

    engine.smooth_terrain(terrain, 0.016)
    interior = terrain.reshape(8, 8)[1:-1, 1:-1]
    assert float(interior.max()) == engine.config.erosion.max_height
    assert float(interior.min()) == pytest.approx(engine.config.erosion.min_height)

    config = replace(EngineConfig(), smoothing=SmoothingConfig(enabled=False))
    off = ErosionEngine(8, 8, config=config)
    spiky = _uniform(value=2.5)
    off.smooth_terrain(spiky, 0.016)
    assert np.all(spiky == 2.5)


def test_drain_reports_removed_volume() -> None:
    engine = ErosionEngine(8, 8)
    engine.water_height[:] = 1.0
    engine.sediment[:] = 0.5

    drained_water, drained_sediment = engine.drain_boundary()

    assert drained_water == pytest.approx(4 * 8)
    assert drained_sediment == pytest.approx(4 * 8 * 0.5)
    assert float(engine.water_height.sum()) == pytest.approx(4 * 8)


def test_wider_boundary_margin_protects_more_cells() -> None:
    config = replace(EngineConfig(), erosion=ErosionConfig(boundary_margin=2))
    engine = ErosionEngine(10, 12, config=config)
    terrain = _uniform(10, 12)

    engine.erode_and_deposit(terrain, 0.1, 1.0)

    grid = terrain.reshape(12, 10)
    assert np.all(grid[:, 1] == 1.0)
    assert np.all(grid[1, :] == 1.0)
    assert float(grid[2, 2]) < 1.0


def test_last_metrics_track_volumes() -> None:
    engine = ErosionEngine(8, 8)
    terrain = _uniform()

    engine.simulate(terrain, 0.016, 0.5, True)

    metrics = engine.last_metrics
    assert metrics is not None
    assert metrics.water_volume == pytest.approx(float(engine.water_height.sum()), rel=1e-5)
    assert metrics.sediment_volume >= 0.0
    assert metrics.eroded > 0.0
    assert metrics.drained_water >= 0.0


def _water_total(engine: ErosionEngine) -> float:
    return float(np.sum(engine.water_height, dtype=np.float64)) * engine.config.physics.cell_area


@pytest.mark.parametrize("raining", [False, True])
def test_step_metrics_balance_water_volume(raining: bool) -> None:
    width, height = 16, 16
    engine = ErosionEngine(width, height)
    terrain = _uniform(width, height)
    engine.water_height.reshape(height, width)[6:10, 6:10] = 0.5
    outflow = evaporated = 0.0

    for _ in range(200):
        before = _water_total(engine)
        engine.simulate(terrain, 0.05, 0.5, raining)
        m = engine.last_metrics

        assert m.water_volume == pytest.approx(_water_total(engine))
        assert before + m.injected == pytest.approx(
            m.water_volume + m.drained_water + m.evaporated + m.boundary_outflow,
            abs=1e-4,
        )
        assert m.boundary_outflow >= 0.0
        assert m.evaporated >= 0.0
        outflow += m.boundary_outflow
        evaporated += m.evaporated

    assert outflow > 0.0
    assert evaporated > 0.0


def test_boundary_outflow_counts_flux_into_border_cells() -> None:
    engine = ErosionEngine(6, 6)
    flux_l = engine.flux_l.reshape(6, 6)
    flux_b = engine.flux_b.reshape(6, 6)
    flux_l[2, 1] = 0.4
    flux_b[1, 3] = 0.2
    flux_l[2, 3] = 1.0
    engine.water_height.reshape(6, 6)[1:-1, 1:-1] = 1.0

    assert engine.update_water_and_velocity(0.1) == pytest.approx(0.06)


def test_metrics_record_injected_and_evaporated_volume() -> None:
    engine = ErosionEngine(8, 8)
    rows, cols = engine.source_region
    cells = (rows.stop - rows.start) * (cols.stop - cols.start)

    assert engine.add_water(0.1, 0.5, True) == pytest.approx(0.5 * 0.1 * 5.0 * cells)
    assert engine.add_water(0.1, 0.5, False) == 0.0

    held = _water_total(engine)
    assert engine.evaporate(0.1) == pytest.approx(held * 0.015 * 0.1, rel=1e-4)
