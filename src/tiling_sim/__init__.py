"""
Tiling Simulator - loop-order, tiling and data-layout effects on a cache.

Enumerates the iterations of a tensor operation (matrix multiplication or
2D convolution) under a chosen loop order and optional tiling, maps every
tensor access to a byte address under a chosen data layout, and replays the
accesses through an LRU cache one step at a time with undo and jump.

Main components:
- Operation / create_operation: Operation definitions
- generate_iterations / generate_tiled_iterations: Iteration sequences
- get_access_address: Address and layout resolution
- CacheSimulator / CacheHierarchy: LRU cache model
- StepEngine / SimulationConfig: Step-by-step simulation

Quick Start:
    from tiling_sim import SimulationConfig

    config = SimulationConfig(operation="matmul", loop_order="ikj",
                              tiling_enabled=True, tile_size=4)
    engine = config.build_engine()
    engine.run_to_end()

    print(engine.result().hit_rate)
"""

__version__ = "0.1.0"

from tiling_sim.arch import CacheConfig, CacheHierarchy, CacheSimulator, CacheSnapshot
from tiling_sim.model import (
    IterationRecord,
    generate_iterations,
    generate_tiled_iterations,
    get_access_address,
)
from tiling_sim.simulator import (
    EngineSnapshot,
    EngineState,
    SimulationConfig,
    SimulationResult,
    StepEngine,
    TensorStats,
)
from tiling_sim.utils import ConfigurationError, UnknownLoopOrderError
from tiling_sim.workload import Operation, create_operation

__all__ = [
    # Main classes
    "StepEngine",
    "SimulationConfig",
    "SimulationResult",
    "Operation",
    "CacheSimulator",
    "CacheHierarchy",

    # Helper classes
    "CacheConfig",
    "CacheSnapshot",
    "EngineSnapshot",
    "EngineState",
    "IterationRecord",
    "TensorStats",

    # Errors
    "ConfigurationError",
    "UnknownLoopOrderError",

    # Functions
    "create_operation",
    "generate_iterations",
    "generate_tiled_iterations",
    "get_access_address",
]
