"""
Step engine for cache simulation.

Drives the iteration list of an operation through the address resolver and
the cache one iteration at a time:

    iteration record -> address per tensor -> cache access -> hit/miss -> stats

The engine is the whole simulation context: it owns the iteration list, the
cache, the per-tensor statistics, the per-step history and the undo stack.
Independent simulations use independent engines.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

import numpy as np
import yaml

from tiling_sim.arch import CacheConfig, CacheHierarchy, CacheSimulator
from tiling_sim.model import (
    IterationRecord,
    coordinates_to_address,
    generate_iterations,
    generate_tiled_iterations,
    get_access_address,
)
from tiling_sim.utils import ConfigurationError
from tiling_sim.workload import Operation, create_operation, get_operation_entry

logger = logging.getLogger(__name__)

Cache = Union[CacheSimulator, CacheHierarchy]


class EngineState(Enum):
    """Playback state derived from the cursor."""
    READY = "ready"
    STEPPING = "stepping"
    COMPLETE = "complete"


@dataclass
class TensorStats:
    """Access statistics of one tensor."""
    accesses: int = 0
    hits: int = 0

    @property
    def misses(self) -> int:
        return self.accesses - self.hits

    @property
    def hit_rate(self) -> float:
        return self.hits / self.accesses if self.accesses > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "accesses": self.accesses,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
        }


@dataclass(frozen=True)
class EngineSnapshot:
    """
    State captured before a forward step, enough to undo it.

    Attributes:
        cache: Cache snapshot (a tuple of snapshots for a hierarchy)
        stats: (tensor name, accesses, hits) per tensor
        history_length: Number of history entries at capture time
        cursor: Iteration cursor at capture time
    """
    cache: object
    stats: tuple[tuple[str, int, int], ...]
    history_length: int
    cursor: int


@dataclass
class SimulationResult:
    """
    Summary of a simulation run up to the current cursor.
    """
    operation: str
    loop_order: str
    tile_size: Optional[int]
    layouts: dict = field(default_factory=dict)
    iterations_executed: int = 0
    total_iterations: int = 0
    tensor_stats: dict = field(default_factory=dict)
    level_hits: dict = field(default_factory=dict)

    @property
    def total_accesses(self) -> int:
        return sum(s.accesses for s in self.tensor_stats.values())

    @property
    def total_hits(self) -> int:
        return sum(s.hits for s in self.tensor_stats.values())

    @property
    def total_misses(self) -> int:
        return self.total_accesses - self.total_hits

    @property
    def hit_rate(self) -> float:
        total = self.total_accesses
        return self.total_hits / total if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to a plain dictionary (YAML friendly)."""
        data = {
            "operation": self.operation,
            "loop_order": self.loop_order,
            "tile_size": self.tile_size,
            "layouts": dict(self.layouts),
            "iterations_executed": self.iterations_executed,
            "total_iterations": self.total_iterations,
            "total_accesses": self.total_accesses,
            "total_hits": self.total_hits,
            "total_misses": self.total_misses,
            "hit_rate": self.hit_rate,
            "tensors": {name: s.to_dict() for name, s in self.tensor_stats.items()},
        }
        if self.level_hits:
            data["level_hits"] = dict(self.level_hits)
        return data


class StepEngine:
    """
    Step-by-step cache simulation of one operation configuration.

    Usage:
        engine = SimulationConfig(operation="matmul", loop_order="ikj").build_engine()
        engine.step_forward()
        engine.step_backward()
        engine.jump_to_iteration(500)
        print(engine.result().hit_rate)
    """

    # Undo stack high-water mark and the number of entries kept when it is exceeded
    MAX_UNDO_DEPTH = 100
    UNDO_RETAIN = 50

    def __init__(
        self,
        operation: Operation,
        iterations: Sequence[IterationRecord],
        cache: Cache,
        layouts: Optional[Mapping[str, str]] = None,
        loop_order: str = "",
        tile_size: Optional[int] = None,
    ):
        """
        Initialize the engine.

        Args:
            operation: Operation being simulated
            iterations: Iteration records in execution order
            cache: Cache model (single level or hierarchy)
            layouts: Tensor name -> layout; missing tensors use their default
            loop_order: Loop-order key the iterations were generated with
            tile_size: Tile size the iterations were generated with, if tiled

        Raises:
            ConfigurationError: for unknown tensors or undeclared layouts
        """
        self.operation = operation
        self.iterations = list(iterations)
        self.cache = cache
        self.loop_order = loop_order
        self.tile_size = tile_size
        self.layouts = self._resolve_layouts(layouts or {})

        self.cursor = 0
        self.stats: dict[str, TensorStats] = {}
        self.history: list[dict[str, bool]] = []
        self._undo: list[EngineSnapshot] = []
        self._reset_stats()

        logger.debug("StepEngine for %s: %d iterations, layouts %s",
                     operation.name, len(self.iterations), self.layouts)

    def _resolve_layouts(self, layouts: Mapping[str, str]) -> dict[str, str]:
        names = {t.name for t in self.operation.tensors}
        unknown = sorted(set(layouts) - names)
        if unknown:
            raise ConfigurationError(f"{self.operation.name} has no tensors {unknown}")
        return {
            t.name: t.check_layout(layouts.get(t.name))
            for t in self.operation.tensors
        }

    def _reset_stats(self) -> None:
        self.stats = {t.name: TensorStats() for t in self.operation.tensors}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def iteration_count(self) -> int:
        return len(self.iterations)

    @property
    def is_complete(self) -> bool:
        return self.cursor >= len(self.iterations)

    @property
    def state(self) -> EngineState:
        if self.is_complete:
            return EngineState.COMPLETE
        if self.cursor == 0:
            return EngineState.READY
        return EngineState.STEPPING

    @property
    def current_iteration(self) -> Optional[IterationRecord]:
        """Next iteration to execute, None when complete."""
        if self.is_complete:
            return None
        return self.iterations[self.cursor]

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def execute_step(self) -> Optional[dict[str, bool]]:
        """
        Execute the iteration at the cursor.

        Every tensor is accessed in the operation's declared order.

        Returns:
            Tensor name -> hit flag, or None if the simulation is complete
        """
        if self.cursor >= len(self.iterations):
            return None

        iteration = self.iterations[self.cursor]
        element_size = self.operation.element_size
        result = {}
        for tensor in self.operation.tensors:
            address = get_access_address(tensor, iteration, self.layouts, element_size)
            hit = self.cache.access(address)
            stats = self.stats[tensor.name]
            stats.accesses += 1
            if hit:
                stats.hits += 1
            result[tensor.name] = hit

        self.history.append(result)
        self.cursor += 1
        return result

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            cache=self.cache.snapshot(),
            stats=tuple((name, s.accesses, s.hits) for name, s in self.stats.items()),
            history_length=len(self.history),
            cursor=self.cursor,
        )

    def restore(self, snapshot: EngineSnapshot) -> None:
        self.cache.restore(snapshot.cache)
        self.stats = {
            name: TensorStats(accesses=accesses, hits=hits)
            for name, accesses, hits in snapshot.stats
        }
        del self.history[snapshot.history_length:]
        self.cursor = snapshot.cursor

    def step_forward(self) -> Optional[dict[str, bool]]:
        """
        Record an undo snapshot, then execute one step.

        Returns:
            The step's hit map, or None if the simulation is already complete
        """
        if self.is_complete:
            return None
        self._undo.append(self.snapshot())
        if len(self._undo) > self.MAX_UNDO_DEPTH:
            del self._undo[:-self.UNDO_RETAIN]
            logger.debug("Undo stack trimmed to %d entries", len(self._undo))
        return self.execute_step()

    def step_backward(self) -> bool:
        """
        Undo the most recent forward step.

        Returns:
            True if a step was undone, False if the undo stack was empty
        """
        if not self._undo:
            return False
        self.restore(self._undo.pop())
        return True

    def reset(self) -> None:
        """Return to the first iteration with empty stats, history, undo stack and cache."""
        self.cursor = 0
        self._reset_stats()
        self.history = []
        self._undo = []
        self.cache.reset()
        logger.debug("StepEngine reset")

    def jump_to_iteration(self, target: int) -> None:
        """
        Move the cursor to ``target``.

        The target is clamped into [0, iteration_count]. Moving backward
        replays from the start, since cache residency depends on the whole
        access history.
        """
        target = max(0, min(int(target), len(self.iterations)))
        if target < self.cursor:
            logger.debug("Jump back from %d to %d: replaying", self.cursor, target)
            self.reset()
        while self.cursor < target:
            self.execute_step()

    def run_to_end(self) -> None:
        """Execute all remaining iterations."""
        self.jump_to_iteration(len(self.iterations))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_element_cached(self, tensor_name: str, coords: Mapping[str, int]):
        """
        Whether the element at ``coords`` is resident, under the selected layout.

        Returns whatever the cache's residency query returns: a bool for a
        single cache, the innermost holding level (or None) for a hierarchy.
        """
        tensor = self.operation.get_tensor(tensor_name)
        address = coordinates_to_address(
            tensor, coords, self.layouts[tensor_name], self.operation.element_size
        )
        return self.cache.is_address_cached(address)

    def hit_matrix(self) -> np.ndarray:
        """Boolean array (steps x tensors) of the executed history."""
        names = [t.name for t in self.operation.tensors]
        if not self.history:
            return np.zeros((0, len(names)), dtype=bool)
        return np.array([[step[n] for n in names] for step in self.history], dtype=bool)

    def result(self) -> SimulationResult:
        """Summary of the run so far."""
        level_hits = {}
        if isinstance(self.cache, CacheHierarchy):
            level_hits = {f"L{c.level}": c.hits for c in self.cache}
        return SimulationResult(
            operation=self.operation.name,
            loop_order=self.loop_order,
            tile_size=self.tile_size,
            layouts=dict(self.layouts),
            iterations_executed=self.cursor,
            total_iterations=len(self.iterations),
            tensor_stats={name: TensorStats(s.accesses, s.hits) for name, s in self.stats.items()},
            level_hits=level_hits,
        )


@dataclass
class SimulationConfig:
    """
    Everything needed to build a StepEngine.

    Attributes:
        operation: Registry key of the operation
        operation_params: Sizing parameters for the operation factory
        loop_order: Loop-order key; None selects the operation's default
        tiling_enabled: Whether to generate tiled iterations
        tile_size: Tile extent used when tiling is enabled
        layouts: Tensor name -> layout; missing tensors use their default
        cache: Cache geometry
    """
    operation: str = "matmul"
    operation_params: dict = field(default_factory=dict)
    loop_order: Optional[str] = None
    tiling_enabled: bool = False
    tile_size: int = 4
    layouts: dict = field(default_factory=dict)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def build_operation(self) -> Operation:
        return create_operation(self.operation, **self.operation_params)

    def resolve_loop_order(self) -> str:
        return self.loop_order or get_operation_entry(self.operation).default_loop_order

    def build_engine(self, operation: Optional[Operation] = None) -> StepEngine:
        """
        Build the operation, iteration list and cache, and wire up an engine.

        Args:
            operation: Pre-built operation to reuse instead of calling the factory
        """
        operation = operation or self.build_operation()
        loop_order = self.resolve_loop_order()
        if self.tiling_enabled:
            iterations = generate_tiled_iterations(operation, loop_order, self.tile_size)
            tile_size = self.tile_size
        else:
            iterations = generate_iterations(operation, loop_order)
            tile_size = None
        cache = self.cache.build(operation.element_size)
        return StepEngine(
            operation,
            iterations,
            cache,
            layouts=self.layouts,
            loop_order=loop_order,
            tile_size=tile_size,
        )

    @classmethod
    def from_dict(cls, config: dict) -> "SimulationConfig":
        """
        Create a SimulationConfig from a dictionary.

        Accepts the settings either at top level or under a ``simulation`` key.
        """
        config = config or {}
        if "simulation" in config:
            config = config["simulation"] or {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Simulation config must be a mapping, got {config!r}")
        known = {"operation", "operation_params", "loop_order", "tiling_enabled",
                 "tile_size", "layouts", "cache"}
        unknown = set(config) - known
        if unknown:
            raise ConfigurationError(f"Unknown simulation config keys: {sorted(unknown)}")
        return cls(
            operation=config.get("operation", "matmul"),
            operation_params=dict(config.get("operation_params") or {}),
            loop_order=config.get("loop_order"),
            tiling_enabled=bool(config.get("tiling_enabled", False)),
            tile_size=config.get("tile_size", 4),
            layouts=dict(config.get("layouts") or {}),
            cache=CacheConfig.from_dict(config.get("cache") or {}),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "SimulationConfig":
        """
        Create a SimulationConfig from a YAML file.

        Raises:
            FileNotFoundError: if the file does not exist
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with path.open("r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return cls.from_dict(config)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "operation_params": dict(self.operation_params),
            "loop_order": self.loop_order,
            "tiling_enabled": self.tiling_enabled,
            "tile_size": self.tile_size,
            "layouts": dict(self.layouts),
            "cache": self.cache.to_dict(),
        }
