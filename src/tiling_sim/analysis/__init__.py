"""
Analysis module: loop-order and tiling sweeps.
"""

from tiling_sim.analysis.sweep import SweepPoint, sweep_points, run_sweep, summarize_sweep

__all__ = [
    "SweepPoint",
    "sweep_points",
    "run_sweep",
    "summarize_sweep",
]
