"""CLI entry point for headless erosion runs."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import logging
import platform
import time

import numpy as np

from streambed.config import DEFAULT_HEIGHT, DEFAULT_WIDTH, MAX_FRAME_DT, EngineConfig
from streambed.derive import hillshade, range_preview_u16, range_preview_u8, water_depth_rgb
from streambed.engine import ErosionEngine
from streambed.heightfield import generate_streambed
from streambed.io import resolve_output_dir, write_fields_npy, write_json, write_png
from streambed.metrics import summarize_fields


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hydraulic erosion of a sloped stream bed")
    parser.add_argument("--seed", type=int, default=0, help="Seed for the initial bed noise")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--w", type=int, default=DEFAULT_WIDTH, help="Grid width in cells")
    parser.add_argument("--h", type=int, default=DEFAULT_HEIGHT, help="Grid height in cells")
    parser.add_argument("--steps", type=int, default=600, help="Number of simulation steps")
    parser.add_argument(
        "--dt",
        type=float,
        default=1.0 / 60.0,
        help=f"Frame delta in seconds (clamped to {MAX_FRAME_DT})",
    )
    parser.add_argument("--flow-rate", type=float, default=0.5, help="Source flow rate, typically 0.1-1.0")
    parser.add_argument("--erosion-rate", type=float, default=0.1, help="Erosion rate multiplier")
    parser.add_argument(
        "--rain-steps",
        type=int,
        default=None,
        help="Stop the source after this many steps (default: source runs for the whole run)",
    )
    parser.add_argument(
        "--rain",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Enable the water source",
    )
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.w < 3 or args.h < 3:
        parser.error("--w and --h must be at least 3")
    if args.steps < 0:
        parser.error("--steps must be non-negative")
    if not np.isfinite(args.dt) or args.dt < 0:
        parser.error("--dt must be finite and non-negative")

    config = EngineConfig()
    dt = min(args.dt, MAX_FRAME_DT)
    if dt < args.dt:
        logger.info("Clamped frame delta %.4f s to %.4f s", args.dt, dt)

    bed = generate_streambed(args.w, args.h, np.random.default_rng(args.seed), config=config.bed)
    terrain = bed.terrain
    initial_terrain = terrain.copy()
    engine = ErosionEngine(args.w, args.h, config=config)

    initial_water = float(np.sum(engine.water_height, dtype=np.float64)) * config.physics.cell_area
    totals = dict.fromkeys(
        (
            "injected",
            "evaporated",
            "boundary_outflow",
            "drained_water",
            "eroded",
            "deposited",
            "drained_sediment",
        ),
        0.0,
    )
    report_every = max(args.steps // 10, 1)
    simulation_start = time.perf_counter()
    for step in range(args.steps):
        raining = args.rain and (args.rain_steps is None or step < args.rain_steps)
        engine.simulate(terrain, dt, args.flow_rate, raining, args.erosion_rate)
        metrics = engine.last_metrics
        for key in totals:
            totals[key] += getattr(metrics, key)
        if (step + 1) % report_every == 0:
            logger.debug(
                "step %d/%d: water=%.4f sediment=%.4f",
                step + 1,
                args.steps,
                metrics.water_volume,
                metrics.sediment_volume,
            )
    simulation_seconds = time.perf_counter() - simulation_start

    summary = summarize_fields(
        terrain,
        engine.water_height,
        engine.sediment,
        cell_area=config.physics.cell_area,
    )
    terrain_2d = terrain.reshape(args.h, args.w)
    water_2d = engine.water_height.reshape(args.h, args.w)
    sediment_2d = engine.sediment.reshape(args.h, args.w)
    erosion_cfg = config.erosion

    out_dir = resolve_output_dir(args.out, args.seed, args.w, args.h, overwrite=args.overwrite)
    write_fields_npy(
        out_dir,
        {
            "terrain": terrain_2d,
            "terrain_initial": initial_terrain.reshape(args.h, args.w),
            "water": water_2d,
            "sediment": sediment_2d,
        },
    )
    write_png(
        out_dir / "terrain_16.png",
        range_preview_u16(terrain_2d, erosion_cfg.min_height, erosion_cfg.max_height),
    )
    write_png(
        out_dir / "hillshade.png",
        hillshade(terrain_2d, pipe_length=config.physics.pipe_length, vertical_exaggeration=6.0),
    )
    write_png(out_dir / "water_depth.png", water_depth_rgb(water_2d))
    write_png(
        out_dir / "sediment.png",
        range_preview_u8(sediment_2d, 0.0, max(summary.sediment_max, 1e-6)),
    )
    # Residual of the water balance; nonzero only through float32 rounding.
    water_unaccounted = (
        initial_water
        + totals["injected"]
        - summary.water_volume
        - totals["evaporated"]
        - totals["boundary_outflow"]
        - totals["drained_water"]
    )

    if args.json:
        meta = {
            "seed": args.seed,
            "width": args.w,
            "height": args.h,
            "steps": args.steps,
            "dt": dt,
            "flow_rate": args.flow_rate,
            "erosion_rate": args.erosion_rate,
            "rain": args.rain,
            "rain_steps": args.rain_steps,
            "config": config.to_dict(),
            "summary": {
                "terrain_min": summary.terrain_min,
                "terrain_max": summary.terrain_max,
                "terrain_mean": summary.terrain_mean,
                "water_volume": summary.water_volume,
                "water_max": summary.water_max,
                "wet_fraction": summary.wet_fraction,
                "sediment_volume": summary.sediment_volume,
                "sediment_max": summary.sediment_max,
            },
            "totals": totals,
            "water_unaccounted": water_unaccounted,
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "simulation_seconds": simulation_seconds,
            "python_version": platform.python_version(),
            "numpy_version": np.__version__,
        }
        write_json(out_dir / "meta.json", meta)

    print(f"Simulated stream bed: {out_dir}")
    print(
        "Terrain: "
        f"min={summary.terrain_min:.3f}, max={summary.terrain_max:.3f}, "
        f"mean change={float(np.mean(terrain - initial_terrain)):+.5f}"
    )
    print(
        "Water: "
        f"volume={summary.water_volume:.3f}, max depth={summary.water_max:.3f}, "
        f"wet={summary.wet_fraction * 100.0:.1f}% of cells"
    )
    print(
        "Water balance: "
        f"injected={totals['injected']:.3f}, drained={totals['drained_water']:.3f}, "
        f"boundary outflow={totals['boundary_outflow']:.3f}, evaporated={totals['evaporated']:.3f}, "
        f"unaccounted={water_unaccounted:+.2e}"
    )
    print(
        "Sediment: "
        f"suspended={summary.sediment_volume:.4f}, eroded={totals['eroded']:.4f}, "
        f"deposited={totals['deposited']:.4f}, drained={totals['drained_sediment']:.4f}"
    )
    print(f"Simulation time: {simulation_seconds:.3f} s ({args.steps} steps, {args.w}x{args.h})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
