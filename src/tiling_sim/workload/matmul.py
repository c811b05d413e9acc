"""
Matrix multiplication operation definition.

    C[i][j] += A[i][k] * B[k][j]
"""

from tiling_sim.utils import require_positive
from tiling_sim.workload.operation import Operation, running_base_addresses
from tiling_sim.workload.tensor import Tensor2D

MATMUL_LOOP_ORDERS = {
    "ijk": ("i", "j", "k"),
    "ikj": ("i", "k", "j"),
    "jik": ("j", "i", "k"),
    "jki": ("j", "k", "i"),
    "kij": ("k", "i", "j"),
    "kji": ("k", "j", "i"),
}


def create_matmul_operation(size: int = 12, element_size: int = 4) -> Operation:
    """
    Create the square matrix multiplication operation.

    All three loops run to ``size`` and every dimension may be tiled.
    A, B and C are laid out back to back starting at address 0.

    Args:
        size: Matrix dimension
        element_size: Bytes per element

    Returns:
        Operation definition
    """
    size = require_positive("matmul size", size)
    element_size = require_positive("element size", element_size)

    base_a, base_b, base_c = running_base_addresses([size * size] * 3, element_size)

    tensors = (
        Tensor2D(name="A", base_address=base_a, index_map={"row": ("i",), "col": ("k",)},
                 rows=size, cols=size),
        Tensor2D(name="B", base_address=base_b, index_map={"row": ("k",), "col": ("j",)},
                 rows=size, cols=size),
        Tensor2D(name="C", base_address=base_c, index_map={"row": ("i",), "col": ("j",)},
                 rows=size, cols=size),
    )

    return Operation(
        name="matmul",
        display_name="Matrix Multiplication",
        tensors=tensors,
        loop_dims=("i", "j", "k"),
        loop_bounds={"i": size, "j": size, "k": size},
        loop_orders=MATMUL_LOOP_ORDERS,
        tileable_dims=("i", "j", "k"),
        tile_sizes=(2, 4, 6),
        element_size=element_size,
        code_template="C[i][j] += A[i][k] * B[k][j]",
        params={"size": size},
    )
