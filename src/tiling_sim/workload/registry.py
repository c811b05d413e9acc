"""
Registry of the available tensor operations.
"""

import inspect
from dataclasses import dataclass
from typing import Callable

from tiling_sim.utils import ConfigurationError
from tiling_sim.workload.conv2d import create_conv2d_operation
from tiling_sim.workload.matmul import create_matmul_operation
from tiling_sim.workload.operation import Operation


@dataclass(frozen=True)
class OperationEntry:
    """
    Registry entry for one operation.

    Attributes:
        factory: Callable building the Operation from keyword sizing parameters
        title: Title shown by front ends
        default_loop_order: Loop-order key used when none is configured
    """
    factory: Callable[..., Operation]
    title: str
    default_loop_order: str

    @property
    def parameters(self) -> list[str]:
        """Keyword parameters accepted by the factory."""
        return list(inspect.signature(self.factory).parameters)


OPERATIONS: dict[str, OperationEntry] = {
    "matmul": OperationEntry(
        factory=create_matmul_operation,
        title="Matrix Multiplication: Tiling & Cache Visualization",
        default_loop_order="ijk",
    ),
    "conv2d": OperationEntry(
        factory=create_conv2d_operation,
        title="2D Convolution: Tiling & Cache Visualization",
        default_loop_order="c_out,h_out,w_out,c_in,k_h,k_w",
    ),
}


def list_operations() -> list[str]:
    return list(OPERATIONS)


def get_operation_entry(name: str) -> OperationEntry:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown operation: {name} (available: {', '.join(OPERATIONS)})"
        ) from None


def create_operation(name: str, **params) -> Operation:
    """
    Build a registered operation.

    Args:
        name: Registry key ("matmul" or "conv2d")
        **params: Sizing parameters forwarded to the factory

    Returns:
        Operation definition
    """
    entry = get_operation_entry(name)
    unknown = sorted(set(params) - set(entry.parameters))
    if unknown:
        raise ConfigurationError(
            f"Unknown parameters for {name}: {unknown} (accepted: {entry.parameters})"
        )
    return entry.factory(**params)
