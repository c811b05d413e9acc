"""
Address and layout resolution.

Maps an iteration record (or explicit tensor coordinates) plus a selected
data layout to a linear element index and a byte address:

    address = base_address + linear_index * element_size
"""

from typing import Mapping, Optional

from tiling_sim.workload.tensor import Coordinates, Tensor


def get_access_address(tensor: Tensor, iteration: Mapping[str, int],
                       layouts: Optional[Mapping[str, str]], element_size: int) -> int:
    """
    Byte address of the element ``tensor`` accesses in ``iteration``.

    Args:
        tensor: Tensor definition
        iteration: Loop indices of the current iteration
        layouts: Tensor name -> selected layout; tensors without an entry
            use their default layout
        element_size: Bytes per element

    Returns:
        Memory address in bytes
    """
    layout = layouts.get(tensor.name) if layouts else None
    return tensor.base_address + tensor.get_linear_index(iteration, layout) * element_size


def coordinates_to_address(tensor: Tensor, coords: Mapping[str, int],
                           layout: Optional[str], element_size: int) -> int:
    """Byte address of the element at ``coords``."""
    if not tensor.contains(coords):
        raise IndexError(f"Coordinates {dict(coords)} outside tensor {tensor.name} {tensor.shape}")
    return tensor.base_address + tensor.linearize(coords, layout) * element_size


def address_to_coordinates(tensor: Tensor, address: int,
                           layout: Optional[str], element_size: int) -> Coordinates:
    """
    Coordinates of the element stored at ``address``.

    Raises:
        IndexError: if the address falls outside the tensor or is not element aligned
    """
    offset = address - tensor.base_address
    linear_index, remainder = divmod(offset, element_size)
    if remainder:
        raise IndexError(f"Address {address} is not aligned to {element_size}-byte elements")
    return tensor.get_coordinates_from_linear(linear_index, layout)


def tensor_address_range(tensor: Tensor, element_size: int) -> tuple[int, int]:
    """Half-open byte range [start, end) occupied by ``tensor``."""
    return tensor.base_address, tensor.base_address + tensor.size_bytes(element_size)
