"""
Iteration generation for tensor operations.

Turns an operation, a loop-order key and an optional tile size into the
ordered sequence of iteration records the loop nest visits.

Tiled loop structure (partial tiling, only ``tileable_dims`` are tiled):

    1. simple loops for the dims before the first tileable dim
    2. one tile loop per tileable dim, stepping by the tile size
    3. from the first tileable dim onwards, in the original order:
       element loops [origin, min(origin + tile, bound)) for tileable dims,
       simple loops for the rest

The last tile along a dimension is clamped when the tile size does not
divide its bound. Every point of the index space is produced exactly once
whatever the order or tile size.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional

from tiling_sim.utils import ConfigurationError, require_positive
from tiling_sim.workload.operation import Operation

logger = logging.getLogger(__name__)


class LoopKind(Enum):
    """Kind of loop in a loop nest."""
    SIMPLE = "simple"    # 0 .. bound
    TILE = "tile"        # 0 .. bound step tile_size
    ELEMENT = "element"  # origin .. min(origin + tile_size, bound)


@dataclass(frozen=True)
class LoopSpec:
    """
    One loop of a (possibly tiled) loop nest.

    Attributes:
        kind: SIMPLE, TILE or ELEMENT
        dim: Loop dimension this loop drives
        bound: Extent of the dimension
        tile_size: Tile extent for TILE/ELEMENT loops, None for SIMPLE
    """
    kind: LoopKind
    dim: str
    bound: int
    tile_size: Optional[int] = None

    @property
    def var(self) -> str:
        """Loop variable name: ``t<dim>`` for tile loops, the dim otherwise."""
        if self.kind is LoopKind.TILE:
            return "t" + self.dim
        return self.dim

    def values(self, origins: Mapping[str, int]) -> range:
        """Values this loop takes given the tile origins set by the enclosing tile loops."""
        if self.kind is LoopKind.TILE:
            return range(0, self.bound, self.tile_size)
        if self.kind is LoopKind.ELEMENT:
            origin = origins[self.dim]
            return range(origin, min(origin + self.tile_size, self.bound))
        return range(self.bound)


class IterationRecord(Mapping):
    """
    One point of an operation's index space.

    Behaves as a read-only mapping from loop dimension to its value. When
    produced by the tiled generator it also carries, for every tileable
    dimension, the tile origin (a multiple of the tile size) and the local
    offset inside the tile.
    """

    __slots__ = ("_indices", "_tile_origins")

    def __init__(self, indices: Mapping[str, int], tile_origins: Optional[Mapping[str, int]] = None):
        self._indices = dict(indices)
        self._tile_origins = dict(tile_origins) if tile_origins else {}

    def __getitem__(self, dim: str) -> int:
        return self._indices[dim]

    def __iter__(self):
        return iter(self._indices)

    def __len__(self) -> int:
        return len(self._indices)

    def __eq__(self, other) -> bool:
        if isinstance(other, IterationRecord):
            return self._indices == other._indices and self._tile_origins == other._tile_origins
        return super().__eq__(other)

    def __hash__(self):
        return hash((tuple(self._indices.items()), tuple(self._tile_origins.items())))

    def __repr__(self) -> str:
        inner = ", ".join(f"{d}={v}" for d, v in self._indices.items())
        if self._tile_origins:
            tiles = ", ".join(f"t{d}={v}" for d, v in self._tile_origins.items())
            inner += f"; {tiles}"
        return f"IterationRecord({inner})"

    @property
    def is_tiled(self) -> bool:
        return bool(self._tile_origins)

    @property
    def tile_origins(self) -> dict[str, int]:
        return dict(self._tile_origins)

    def tile_origin(self, dim: str) -> int:
        return self._tile_origins[dim]

    def local_offset(self, dim: str) -> int:
        return self._indices[dim] - self._tile_origins[dim]

    def as_tuple(self, dims) -> tuple[int, ...]:
        return tuple(self._indices[d] for d in dims)

    def to_dict(self) -> dict[str, int]:
        """Flat dictionary: dims, plus ``t<dim>`` origins and ``l<dim>`` offsets when tiled."""
        flat = dict(self._indices)
        for dim, origin in self._tile_origins.items():
            flat["t" + dim] = origin
            flat["l" + dim] = self._indices[dim] - origin
        return flat


def build_loop_nest(operation: Operation, loop_order_key: str,
                    tile_size: Optional[int] = None) -> list[LoopSpec]:
    """
    Build the list of loops (outermost first) for an order and optional tiling.

    Without a tile size, or when no dimension of the order is tileable, the
    nest is the plain permutation of simple loops.

    Raises:
        UnknownLoopOrderError: if ``loop_order_key`` is not defined
        ConfigurationError: if ``tile_size`` is not a positive integer
    """
    order = operation.get_loop_order(loop_order_key)
    bounds = operation.loop_bounds

    if tile_size is not None:
        tile_size = require_positive("tile size", tile_size)
        tiled = [d for d in order if operation.is_tileable(d)]
    else:
        tiled = []

    if not tiled:
        return [LoopSpec(LoopKind.SIMPLE, d, bounds[d]) for d in order]

    first_tiled = order.index(tiled[0])
    nest = [LoopSpec(LoopKind.SIMPLE, d, bounds[d]) for d in order[:first_tiled]]
    nest.extend(LoopSpec(LoopKind.TILE, d, bounds[d], tile_size) for d in tiled)
    for dim in order[first_tiled:]:
        if operation.is_tileable(dim):
            nest.append(LoopSpec(LoopKind.ELEMENT, dim, bounds[dim], tile_size))
        else:
            nest.append(LoopSpec(LoopKind.SIMPLE, dim, bounds[dim]))
    return nest


def walk_loop_nest(operation: Operation, nest: list[LoopSpec]) -> Iterator[IterationRecord]:
    """
    Lazily run a loop nest, yielding one record per innermost iteration.

    Uses an explicit stack of per-level value iterators instead of recursion.
    """
    if not nest:
        return

    # Tile origins are keyed by dimension, apart from the dimension values
    indices: dict[str, int] = {}
    origins: dict[str, int] = {}
    stack = [iter(nest[0].values(origins))]
    innermost = len(nest) - 1

    while stack:
        level = len(stack) - 1
        value = next(stack[level], None)
        if value is None:
            stack.pop()
            continue
        loop = nest[level]
        if loop.kind is LoopKind.TILE:
            origins[loop.dim] = value
        else:
            indices[loop.dim] = value
        if level < innermost:
            stack.append(iter(nest[level + 1].values(origins)))
            continue
        yield IterationRecord(
            {d: indices[d] for d in operation.loop_dims},
            {d: origins[d] for d in operation.loop_dims if d in origins},
        )


def iter_iterations(operation: Operation, loop_order_key: str) -> Iterator[IterationRecord]:
    """Lazy version of :func:`generate_iterations`."""
    nest = build_loop_nest(operation, loop_order_key)
    logger.debug("Loop nest for %s/%s: %s", operation.name, loop_order_key,
                 [s.var for s in nest])
    return walk_loop_nest(operation, nest)


def iter_tiled_iterations(operation: Operation, loop_order_key: str,
                          tile_size: int) -> Iterator[IterationRecord]:
    """Lazy version of :func:`generate_tiled_iterations`."""
    if tile_size is None:
        raise ConfigurationError("A tile size is required for tiled iteration")
    nest = build_loop_nest(operation, loop_order_key, tile_size)
    logger.debug("Tiled loop nest for %s/%s (tile %d): %s", operation.name,
                 loop_order_key, tile_size, [s.var for s in nest])
    return walk_loop_nest(operation, nest)


def generate_iterations(operation: Operation, loop_order_key: str) -> list[IterationRecord]:
    """
    Generate the iteration sequence for non-tiled execution.

    Args:
        operation: Operation definition
        loop_order_key: Key into ``operation.loop_orders`` (e.g. "ijk")

    Returns:
        ``operation.total_iterations`` records in visitation order

    Raises:
        UnknownLoopOrderError: if the key is not defined
    """
    return list(iter_iterations(operation, loop_order_key))


def generate_tiled_iterations(operation: Operation, loop_order_key: str,
                              tile_size: int) -> list[IterationRecord]:
    """
    Generate the iteration sequence for tiled execution.

    Only the operation's tileable dimensions are tiled. If none of them
    occur in the order the result equals :func:`generate_iterations`.

    Args:
        operation: Operation definition
        loop_order_key: Key into ``operation.loop_orders``
        tile_size: Tile extent; need not divide the bounds

    Returns:
        ``operation.total_iterations`` records carrying tile origins

    Raises:
        UnknownLoopOrderError: if the key is not defined
        ConfigurationError: if ``tile_size`` is not positive
    """
    return list(iter_tiled_iterations(operation, loop_order_key, tile_size))
