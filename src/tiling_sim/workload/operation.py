"""
Operation descriptor shared by all tensor operations.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from tiling_sim.utils import ConfigurationError, UnknownLoopOrderError, product, require_positive
from tiling_sim.workload.tensor import Tensor


def running_base_addresses(element_counts: Sequence[int], element_size: int) -> list[int]:
    """
    Byte base address of each tensor when tensors are packed back to back.

    Each base is the cumulative element count of all prior tensors times
    ``element_size``.
    """
    bases = []
    offset = 0
    for count in element_counts:
        bases.append(offset * element_size)
        offset += count
    return bases


@dataclass(frozen=True)
class Operation:
    """
    Immutable description of a tensor operation as a loop nest.

    Attributes:
        name: Registry name (e.g. "matmul")
        display_name: Human-readable name
        tensors: Tensors in access order; the last one receives the result
        loop_dims: Dimension names in declaration order
        loop_bounds: Dimension -> extent
        loop_orders: Order key -> permutation of ``loop_dims`` (outermost first)
        tileable_dims: Dimensions eligible for tiling (defaults to all)
        tile_sizes: Tile extents offered for this operation
        element_size: Bytes per element
        code_template: Loop body statement, used for loop-nest text
        params: Sizing parameters the operation was built from
    """
    name: str
    display_name: str
    tensors: tuple[Tensor, ...]
    loop_dims: tuple[str, ...]
    loop_bounds: Mapping[str, int]
    loop_orders: Mapping[str, tuple[str, ...]]
    tileable_dims: Optional[tuple[str, ...]] = None
    tile_sizes: tuple[int, ...] = ()
    element_size: int = 4
    code_template: str = ""
    params: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "tensors", tuple(self.tensors))
        object.__setattr__(self, "loop_dims", tuple(self.loop_dims))
        object.__setattr__(self, "loop_bounds", MappingProxyType(dict(self.loop_bounds)))
        object.__setattr__(
            self, "loop_orders",
            MappingProxyType({k: tuple(v) for k, v in self.loop_orders.items()}),
        )
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        if self.tileable_dims is None:
            object.__setattr__(self, "tileable_dims", self.loop_dims)
        else:
            object.__setattr__(self, "tileable_dims", tuple(self.tileable_dims))
        object.__setattr__(self, "tile_sizes", tuple(self.tile_sizes))
        self._validate()

    def __hash__(self):
        return hash((self.name, self.tensors, self.loop_dims,
                     tuple(self.loop_bounds.items()), self.tileable_dims, self.element_size))

    def _validate(self) -> None:
        require_positive(f"{self.name} element size", self.element_size)

        if len(set(self.loop_dims)) != len(self.loop_dims):
            raise ConfigurationError(f"{self.name}: duplicate loop dimensions {self.loop_dims}")
        if set(self.loop_bounds) != set(self.loop_dims):
            raise ConfigurationError(
                f"{self.name}: loop bounds {sorted(self.loop_bounds)} do not match "
                f"loop dimensions {list(self.loop_dims)}"
            )
        for dim, bound in self.loop_bounds.items():
            require_positive(f"{self.name} bound of {dim}", bound)

        if not self.loop_orders:
            raise ConfigurationError(f"{self.name}: at least one loop order is required")
        for key, order in self.loop_orders.items():
            if sorted(order) != sorted(self.loop_dims):
                raise ConfigurationError(
                    f"{self.name}: loop order {key!r} is not a permutation of {list(self.loop_dims)}"
                )

        unknown = [d for d in self.tileable_dims if d not in self.loop_dims]
        if unknown:
            raise ConfigurationError(f"{self.name}: tileable dimensions {unknown} are not loop dimensions")
        # Tiled records flatten origins and offsets as t<dim> and l<dim>
        clashes = sorted(
            prefix + d for d in self.tileable_dims for prefix in ("t", "l")
            if prefix + d in self.loop_dims
        )
        if clashes:
            raise ConfigurationError(
                f"{self.name}: loop dimensions {clashes} clash with tile variables of tileable dimensions"
            )
        for size in self.tile_sizes:
            require_positive(f"{self.name} tile size", size)

        names = [t.name for t in self.tensors]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"{self.name}: duplicate tensor names {names}")
        for tensor in self.tensors:
            missing = {
                dim for dims in tensor.index_map.values() for dim in dims
            } - set(self.loop_dims)
            if missing:
                raise ConfigurationError(
                    f"{self.name}: tensor {tensor.name} indexes unknown dimensions {sorted(missing)}"
                )

        ranges = sorted(self.address_ranges().items(), key=lambda item: item[1])
        for (prev_name, (_, prev_end)), (name, (start, _)) in zip(ranges, ranges[1:]):
            if start < prev_end:
                raise ConfigurationError(
                    f"{self.name}: address range of {name} overlaps {prev_name}"
                )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def total_iterations(self) -> int:
        """Product of all loop bounds."""
        return product(self.loop_bounds[d] for d in self.loop_dims)

    @property
    def total_bytes(self) -> int:
        return sum(t.size_bytes(self.element_size) for t in self.tensors)

    def get_tensor(self, name: str) -> Tensor:
        for tensor in self.tensors:
            if tensor.name == name:
                return tensor
        raise ConfigurationError(f"{self.name} has no tensor {name!r}")

    def get_loop_order(self, key: str) -> tuple[str, ...]:
        """Resolve a loop-order key to its dimension permutation."""
        try:
            return self.loop_orders[key]
        except KeyError:
            raise UnknownLoopOrderError(key, self.loop_orders) from None

    def is_tileable(self, dim: str) -> bool:
        return dim in self.tileable_dims

    def default_layouts(self) -> dict[str, str]:
        return {t.name: t.default_layout for t in self.tensors}

    def address_ranges(self) -> dict[str, tuple[int, int]]:
        """Tensor name -> half-open byte range [start, end)."""
        return {
            t.name: (t.base_address, t.base_address + t.size_bytes(self.element_size))
            for t in self.tensors
        }

    def describe_iteration(self, iteration: Mapping[str, int]) -> str:
        """
        One-line description of the elements an iteration touches.

        Operands are joined with ``×`` and the result follows ``→``, e.g.
        ``A[3][7] × B[7][5] → C[3][5]``.
        """
        parts = [t.describe(t.get_indices(iteration)) for t in self.tensors]
        if len(parts) == 1:
            return parts[0]
        return " × ".join(parts[:-1]) + " → " + parts[-1]

    def to_dict(self) -> dict:
        """Convert operation to a plain dictionary."""
        return {
            "name": self.name,
            "params": dict(self.params),
            "element_size": self.element_size,
            "loop_dims": list(self.loop_dims),
            "loop_bounds": {d: self.loop_bounds[d] for d in self.loop_dims},
            "loop_orders": list(self.loop_orders),
            "tileable_dims": list(self.tileable_dims),
            "tile_sizes": list(self.tile_sizes),
            "tensors": [
                {
                    "name": t.name,
                    "rank": t.rank,
                    "shape": list(t.shape),
                    "base_address": t.base_address,
                    "layouts": list(t.layout_options),
                }
                for t in self.tensors
            ],
        }

    def summary(self) -> str:
        """Return a summary string."""
        bounds = ", ".join(f"{d}={self.loop_bounds[d]}" for d in self.loop_dims)
        lines = [
            f"{self.display_name} ({self.name})",
            f"  Statement: {self.code_template}",
            f"  Loop bounds: {bounds}",
            f"  Iterations: {self.total_iterations:,}",
            f"  Tileable: {', '.join(self.tileable_dims)} (tile sizes {list(self.tile_sizes)})",
            f"  Element size: {self.element_size} bytes",
            "  Tensors:",
        ]
        for t in self.tensors:
            start, end = self.address_ranges()[t.name]
            shape = "x".join(str(s) for s in t.shape)
            lines.append(
                f"    {t.name:<8} {shape:<10} bytes [{start}, {end})  layouts: {', '.join(t.layout_options)}"
            )
        return "\n".join(lines)
