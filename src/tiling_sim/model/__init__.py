"""
Model module: iteration generation, address resolution and loop-nest text.
"""

from tiling_sim.model.iterations import (
    IterationRecord,
    LoopKind,
    LoopSpec,
    build_loop_nest,
    walk_loop_nest,
    iter_iterations,
    iter_tiled_iterations,
    generate_iterations,
    generate_tiled_iterations,
)
from tiling_sim.model.address import (
    get_access_address,
    coordinates_to_address,
    address_to_coordinates,
    tensor_address_range,
)
from tiling_sim.model.loop_nest import format_loop, format_loop_nest

__all__ = [
    "IterationRecord",
    "LoopKind",
    "LoopSpec",
    "build_loop_nest",
    "walk_loop_nest",
    "iter_iterations",
    "iter_tiled_iterations",
    "generate_iterations",
    "generate_tiled_iterations",
    "get_access_address",
    "coordinates_to_address",
    "address_to_coordinates",
    "tensor_address_range",
    "format_loop",
    "format_loop_nest",
]
