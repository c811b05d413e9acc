"""
Utility functions and error types for the tiling simulator.
"""

import time
from contextlib import contextmanager
from typing import Iterable

import numpy as np


class ConfigurationError(ValueError):
    """Raised for a simulation set up that cannot be run (bad sizes, names, geometry)."""


class UnknownLoopOrderError(ConfigurationError):
    """Raised when a loop-order key is not defined by the operation."""

    def __init__(self, key: str, available: Iterable[str] = ()):
        self.key = key
        self.available = list(available)
        message = f"Unknown loop order: {key}"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


def product(values: Iterable[int]) -> int:
    """Product of integer extents (1 for an empty sequence)."""
    values = list(values)
    if not values:
        return 1
    return int(np.prod(values, dtype=np.int64))


def require_positive(name: str, value) -> int:
    """
    Validate that a sizing parameter is a positive integer.

    Args:
        name: Parameter name used in the error message
        value: Value to check

    Returns:
        The value as int

    Raises:
        ConfigurationError: if the value is not a positive integer
    """
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return int(value)


def format_rate(hits: int, total: int) -> str:
    """Format a hit rate as a percentage, '-' when nothing was accessed."""
    if total <= 0:
        return "-"
    return f"{100.0 * hits / total:.1f}%"


class Timer:
    """Wall-clock time accumulated per named section."""

    def __init__(self):
        self.times: dict[str, float] = {}

    @contextmanager
    def section(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.times[name] = self.times.get(name, 0.0) + time.perf_counter() - start

    def report(self) -> str:
        lines = ["Timing:"] + [f"  {name}: {elapsed:.3f}s" for name, elapsed in self.times.items()]
        return "\n".join(lines)
