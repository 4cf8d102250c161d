"""Writers for simulation snapshots: raw fields, preview images, metadata."""

from __future__ import annotations

from collections.abc import Mapping
import json
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image


def resolve_output_dir(
    out_root: str | Path,
    seed: int,
    width: int,
    height: int,
    *,
    overwrite: bool,
) -> Path:
    """Return ``<out_root>/seed-<seed>/<width>x<height>``, creating it if needed.

    A directory that already holds files is only reused with `overwrite`.
    """

    run_dir = Path(out_root) / f"seed-{seed}" / f"{width}x{height}"
    existing = sorted(child.name for child in run_dir.iterdir()) if run_dir.is_dir() else []
    if existing and not overwrite:
        listed = ", ".join(existing[:3]) + (", ..." if len(existing) > 3 else "")
        raise FileExistsError(f"{run_dir} already holds {listed}; pass --overwrite to replace them")
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_fields_npy(out_dir: str | Path, fields: Mapping[str, np.ndarray]) -> list[Path]:
    """Save each named field as ``<name>.npy`` (float32) and return the paths."""

    written = []
    for name, field in fields.items():
        path = Path(out_dir) / f"{name}.npy"
        np.save(path, np.asarray(field, dtype=np.float32), allow_pickle=False)
        written.append(path)
    return written


def write_png(path: str | Path, raster: np.ndarray) -> None:
    """Save a uint8/uint16 grayscale or an (h, w, 3) uint8 RGB raster."""

    if raster.ndim == 3 and raster.shape[-1] == 3 and raster.dtype == np.uint8:
        pass
    elif raster.ndim != 2 or raster.dtype not in (np.uint8, np.uint16):
        raise ValueError(f"unsupported raster: shape {raster.shape}, dtype {raster.dtype}")
    Image.fromarray(np.ascontiguousarray(raster)).save(Path(path))


def _json_default(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def write_json(path: str | Path, payload: Mapping[str, Any]) -> None:
    with open(Path(path), "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, sort_keys=True, default=_json_default)
        handle.write("\n")
