"""
Workload module: tensors, operations and the operation registry.
"""

from tiling_sim.workload.tensor import Tensor, Tensor2D, Tensor3D, Tensor4D, AnyTensor
from tiling_sim.workload.operation import Operation, running_base_addresses
from tiling_sim.workload.matmul import create_matmul_operation
from tiling_sim.workload.conv2d import create_conv2d_operation
from tiling_sim.workload.registry import (
    OPERATIONS,
    OperationEntry,
    create_operation,
    get_operation_entry,
    list_operations,
)

__all__ = [
    "Tensor",
    "Tensor2D",
    "Tensor3D",
    "Tensor4D",
    "AnyTensor",
    "Operation",
    "running_base_addresses",
    "create_matmul_operation",
    "create_conv2d_operation",
    "OPERATIONS",
    "OperationEntry",
    "create_operation",
    "get_operation_entry",
    "list_operations",
]
