"""
Tensor definitions for tensor operations.

A tensor belongs to exactly one operation. It knows how the loop indices of
an iteration select one of its elements (``index_map``) and how each of its
declared data layouts flattens that element's coordinates into a linear
element index.

Three ranks are supported, each with its own fixed coordinate names and
layouts:

- Tensor2D: (row, col) with layouts "row" (row-major) and "col" (column-major)
- Tensor3D: (channel, row, col) with layouts "CHW" and "HWC"
- Tensor4D: (c_out, c_in, row, col) with layouts "OIHW" and "HWIO"

The first layout of each rank is its default.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar, Mapping, Optional, Union

from tiling_sim.utils import ConfigurationError, product, require_positive

Coordinates = dict[str, int]


@dataclass(frozen=True)
class Tensor(ABC):
    """
    Common interface of all tensor ranks.

    Abstract: build a Tensor2D, Tensor3D or Tensor4D.

    Attributes:
        name: Tensor name, unique within its operation (e.g. "A", "Input")
        base_address: Byte address of element 0
        index_map: Coordinate name -> loop dimensions whose values are summed
            to obtain that coordinate, e.g. {"row": ("h_out", "k_h")}
    """
    name: str
    base_address: int
    index_map: Mapping[str, tuple[str, ...]]

    COORDINATES: ClassVar[tuple[str, ...]] = ()
    LAYOUTS: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self):
        if self.base_address < 0:
            raise ConfigurationError(
                f"Tensor {self.name}: base address must be non-negative, got {self.base_address}"
            )
        if set(self.index_map) != set(self.COORDINATES):
            raise ConfigurationError(
                f"Tensor {self.name}: index map must define exactly {list(self.COORDINATES)}, "
                f"got {sorted(self.index_map)}"
            )
        normalized = {
            coord: (dims,) if isinstance(dims, str) else tuple(dims)
            for coord, dims in self.index_map.items()
        }
        object.__setattr__(self, "index_map", MappingProxyType(normalized))
        for dim, extent in zip(self.COORDINATES, self.shape):
            require_positive(f"Tensor {self.name} extent {dim}", extent)

    def __hash__(self):
        return hash((type(self).__name__, self.name, self.base_address,
                     tuple(self.index_map.items()), self.shape))

    # ------------------------------------------------------------------
    # Layouts
    # ------------------------------------------------------------------

    @property
    def layout_options(self) -> tuple[str, ...]:
        return self.LAYOUTS

    @property
    def default_layout(self) -> str:
        return self.LAYOUTS[0]

    def check_layout(self, layout: Optional[str]) -> str:
        """Return the layout to use, defaulting ``None`` and rejecting undeclared names."""
        if layout is None:
            return self.default_layout
        if layout not in self.LAYOUTS:
            raise ConfigurationError(
                f"Tensor {self.name} has no layout {layout!r} "
                f"(declared: {', '.join(self.LAYOUTS)})"
            )
        return layout

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def shape(self) -> tuple[int, ...]:
        """Extents in COORDINATES order."""

    @property
    def rank(self) -> int:
        return len(self.COORDINATES)

    @property
    def total_elements(self) -> int:
        return product(self.shape)

    def size_bytes(self, element_size: int) -> int:
        return self.total_elements * element_size

    def contains(self, coords: Mapping[str, int]) -> bool:
        """Check that every coordinate lies inside the tensor's shape."""
        return all(
            0 <= coords[name] < extent
            for name, extent in zip(self.COORDINATES, self.shape)
        )

    # ------------------------------------------------------------------
    # Index translation
    # ------------------------------------------------------------------

    def get_indices(self, iteration: Mapping[str, int]) -> Coordinates:
        """Coordinates of the element touched by ``iteration``."""
        return {
            coord: sum(iteration[dim] for dim in self.index_map[coord])
            for coord in self.COORDINATES
        }

    def get_linear_index(self, iteration: Mapping[str, int], layout: Optional[str] = None) -> int:
        """Flat element index of the element touched by ``iteration`` under ``layout``."""
        return self.linearize(self.get_indices(iteration), layout)

    @abstractmethod
    def linearize(self, coords: Mapping[str, int], layout: Optional[str] = None) -> int:
        """Flat element index of ``coords`` under ``layout``."""

    @abstractmethod
    def get_coordinates_from_linear(self, linear_index: int, layout: Optional[str] = None) -> Coordinates:
        """Exact inverse of :meth:`linearize`."""

    def _check_linear_index(self, linear_index: int) -> None:
        if not 0 <= linear_index < self.total_elements:
            raise IndexError(
                f"Linear index {linear_index} out of range for tensor {self.name} "
                f"with {self.total_elements} elements"
            )

    def describe(self, coords: Mapping[str, int]) -> str:
        """Subscript notation, e.g. ``A[3][7]``."""
        return self.name + "".join(f"[{coords[c]}]" for c in self.COORDINATES)


@dataclass(frozen=True)
class Tensor2D(Tensor):
    """Matrix with row-major ("row") or column-major ("col") storage."""
    rows: int
    cols: int

    COORDINATES: ClassVar[tuple[str, ...]] = ("row", "col")
    LAYOUTS: ClassVar[tuple[str, ...]] = ("row", "col")

    __hash__ = Tensor.__hash__

    @property
    def shape(self) -> tuple[int, ...]:
        return (self.rows, self.cols)

    def linearize(self, coords: Mapping[str, int], layout: Optional[str] = None) -> int:
        layout = self.check_layout(layout)
        row, col = coords["row"], coords["col"]
        if layout == "col":
            return col * self.rows + row
        return row * self.cols + col

    def get_coordinates_from_linear(self, linear_index: int, layout: Optional[str] = None) -> Coordinates:
        layout = self.check_layout(layout)
        self._check_linear_index(linear_index)
        if layout == "col":
            col, row = divmod(linear_index, self.rows)
        else:
            row, col = divmod(linear_index, self.cols)
        return {"row": row, "col": col}


@dataclass(frozen=True)
class Tensor3D(Tensor):
    """Feature map of ``channels`` planes of ``rows`` x ``cols`` (CHW or HWC)."""
    rows: int
    cols: int
    channels: int

    COORDINATES: ClassVar[tuple[str, ...]] = ("channel", "row", "col")
    LAYOUTS: ClassVar[tuple[str, ...]] = ("CHW", "HWC")

    __hash__ = Tensor.__hash__

    @property
    def shape(self) -> tuple[int, ...]:
        return (self.channels, self.rows, self.cols)

    def linearize(self, coords: Mapping[str, int], layout: Optional[str] = None) -> int:
        layout = self.check_layout(layout)
        c, h, w = coords["channel"], coords["row"], coords["col"]
        H, W, C = self.rows, self.cols, self.channels
        if layout == "HWC":
            return h * (W * C) + w * C + c
        return c * (H * W) + h * W + w

    def get_coordinates_from_linear(self, linear_index: int, layout: Optional[str] = None) -> Coordinates:
        layout = self.check_layout(layout)
        self._check_linear_index(linear_index)
        H, W, C = self.rows, self.cols, self.channels
        if layout == "HWC":
            h, rem = divmod(linear_index, W * C)
            w, c = divmod(rem, C)
        else:
            c, rem = divmod(linear_index, H * W)
            h, w = divmod(rem, W)
        return {"channel": c, "row": h, "col": w}


@dataclass(frozen=True)
class Tensor4D(Tensor):
    """Convolution kernel with O output / I input channels of ``rows`` x ``cols`` (OIHW or HWIO)."""
    rows: int
    cols: int
    channels_in: int
    channels_out: int

    COORDINATES: ClassVar[tuple[str, ...]] = ("c_out", "c_in", "row", "col")
    LAYOUTS: ClassVar[tuple[str, ...]] = ("OIHW", "HWIO")

    __hash__ = Tensor.__hash__

    @property
    def shape(self) -> tuple[int, ...]:
        return (self.channels_out, self.channels_in, self.rows, self.cols)

    def linearize(self, coords: Mapping[str, int], layout: Optional[str] = None) -> int:
        layout = self.check_layout(layout)
        o, i, h, w = coords["c_out"], coords["c_in"], coords["row"], coords["col"]
        H, W, I, O = self.rows, self.cols, self.channels_in, self.channels_out
        if layout == "HWIO":
            return h * (W * I * O) + w * (I * O) + i * O + o
        return o * (I * H * W) + i * (H * W) + h * W + w

    def get_coordinates_from_linear(self, linear_index: int, layout: Optional[str] = None) -> Coordinates:
        layout = self.check_layout(layout)
        self._check_linear_index(linear_index)
        H, W, I, O = self.rows, self.cols, self.channels_in, self.channels_out
        if layout == "HWIO":
            h, rem = divmod(linear_index, W * I * O)
            w, rem = divmod(rem, I * O)
            i, o = divmod(rem, O)
        else:
            o, rem = divmod(linear_index, I * H * W)
            i, rem = divmod(rem, H * W)
            h, w = divmod(rem, W)
        return {"c_out": o, "c_in": i, "row": h, "col": w}


AnyTensor = Union[Tensor2D, Tensor3D, Tensor4D]
