"""
Sweep a simulation over every loop order and tiling option.

Each sweep point is a full run of the step engine; results are collected
into a pandas DataFrame with one row per (loop order, tiling) point.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional

import pandas as pd
from tqdm import tqdm

from tiling_sim.simulator import SimulationConfig
from tiling_sim.workload import Operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepPoint:
    """One point of the sweep: a loop order, untiled or tiled with ``tile_size``."""
    loop_order: str
    tile_size: Optional[int] = None

    @property
    def tiled(self) -> bool:
        return self.tile_size is not None


def sweep_points(operation: Operation,
                 tile_sizes: Optional[Iterable[int]] = None) -> list[SweepPoint]:
    """
    All sweep points for an operation.

    Args:
        operation: Operation definition
        tile_sizes: Tile sizes to try; defaults to ``operation.tile_sizes``

    Returns:
        For every loop order, the untiled point followed by one point per tile size
    """
    sizes = list(operation.tile_sizes if tile_sizes is None else tile_sizes)
    points = []
    for key in operation.loop_orders:
        points.append(SweepPoint(key))
        points.extend(SweepPoint(key, size) for size in sizes)
    return points


def run_sweep(config: SimulationConfig,
              tile_sizes: Optional[Iterable[int]] = None,
              progress: bool = True) -> pd.DataFrame:
    """
    Run the configured operation at every sweep point.

    Cache geometry and layouts come from ``config``; its loop order and
    tiling settings are replaced by each sweep point.

    Args:
        config: Base simulation configuration
        tile_sizes: Tile sizes to try; defaults to the operation's own
        progress: Show a tqdm progress bar

    Returns:
        DataFrame with columns loop_order, tiled, tile_size,
        <tensor>_hit_rate per tensor, hit_rate, misses, iterations;
        sorted by misses (fewest first)
    """
    operation = config.build_operation()
    points = sweep_points(operation, tile_sizes)
    logger.info("Sweeping %s over %d points", operation.name, len(points))

    rows = []
    for point in tqdm(points, desc=f"Sweeping {operation.name}", disable=not progress):
        point_config = replace(
            config,
            loop_order=point.loop_order,
            tiling_enabled=point.tiled,
            tile_size=point.tile_size if point.tiled else config.tile_size,
        )
        engine = point_config.build_engine(operation)
        engine.run_to_end()
        result = engine.result()

        row = {
            "loop_order": point.loop_order,
            "tiled": point.tiled,
            "tile_size": point.tile_size if point.tiled else 0,
        }
        for name, stats in result.tensor_stats.items():
            row[f"{name}_hit_rate"] = stats.hit_rate
        row["hit_rate"] = result.hit_rate
        row["misses"] = result.total_misses
        row["iterations"] = result.iterations_executed
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        return df
    return df.sort_values(["misses", "loop_order", "tile_size"], kind="stable").reset_index(drop=True)


def summarize_sweep(df: pd.DataFrame) -> str:
    """Text table of a sweep result, best configuration first."""
    if df.empty:
        return "No sweep results."
    lines = [df.to_string(index=False, float_format=lambda v: f"{v:.3f}")]
    best = df.iloc[0]
    tiling = f"tile {int(best['tile_size'])}" if best["tiled"] else "untiled"
    lines.append("")
    lines.append(
        f"Best: {best['loop_order']} ({tiling}) with {int(best['misses'])} misses, "
        f"hit rate {best['hit_rate']:.1%}"
    )
    return "\n".join(lines)
