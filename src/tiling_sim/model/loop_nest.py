"""
Plain-text rendering of a loop nest as pseudo-code.

    for ti in 0..12 step 4:
      for tj in 0..12 step 4:
        for i in ti..ti+4:  # i=3
          ...
            C[i][j] += A[i][k] * B[k][j]
"""

from typing import Mapping, Optional

from tiling_sim.model.iterations import LoopKind, LoopSpec, build_loop_nest
from tiling_sim.workload.operation import Operation

INDENT = "  "


def format_loop(loop: LoopSpec) -> str:
    """Header line of one loop, without indentation."""
    if loop.kind is LoopKind.TILE:
        return f"for {loop.var} in 0..{loop.bound} step {loop.tile_size}:"
    if loop.kind is LoopKind.ELEMENT:
        tile_var = "t" + loop.dim
        return f"for {loop.dim} in {tile_var}..{tile_var}+{loop.tile_size}:"
    return f"for {loop.dim} in 0..{loop.bound}:"


def format_loop_nest(operation: Operation, loop_order_key: str,
                     tile_size: Optional[int] = None,
                     iteration: Optional[Mapping[str, int]] = None) -> str:
    """
    Render the loop nest the generator walks for this order and tiling.

    Args:
        operation: Operation definition
        loop_order_key: Key into ``operation.loop_orders``
        tile_size: Tile extent, or None for the untiled nest
        iteration: Optional current iteration; each loop header is annotated
            with its variable's value

    Returns:
        Multi-line pseudo-code ending with the operation's statement
    """
    nest = build_loop_nest(operation, loop_order_key, tile_size)
    values = {}
    if iteration is not None:
        values = dict(iteration.to_dict() if hasattr(iteration, "to_dict") else iteration)

    lines = []
    for depth, loop in enumerate(nest):
        line = INDENT * depth + format_loop(loop)
        if loop.var in values:
            line += f"  # {loop.var}={values[loop.var]}"
        lines.append(line)
    lines.append(INDENT * len(nest) + operation.code_template)
    return "\n".join(lines)
