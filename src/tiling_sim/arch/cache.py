"""
LRU cache model.

A single fully-associative cache with LRU replacement at cache-line
granularity. Each instance is one cache level; a CacheHierarchy chains
several levels, innermost first.

This is a teaching model: no sets, no write policy, no coherence.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Sequence

from tiling_sim.utils import ConfigurationError, require_positive


@dataclass(frozen=True)
class CacheSnapshot:
    """
    Value copy of a cache's state.

    Attributes:
        lines: Resident line addresses, least recently used first
        total_accesses: Access counter
        hits: Hit counter
        misses: Miss counter
    """
    lines: tuple[int, ...]
    total_accesses: int
    hits: int
    misses: int


class CacheSimulator:
    """
    Fully-associative LRU cache.

    Resident lines are kept in an ordered map from line address to None,
    ordered least recently used (front) to most recently used (back).
    """

    def __init__(self, capacity_bytes: int, line_size: int, level: int = 1):
        """
        Initialize the cache.

        Args:
            capacity_bytes: Total capacity in bytes
            line_size: Cache line size in bytes
            level: Cache level this instance models (1 = L1)

        Raises:
            ConfigurationError: if the geometry does not hold at least one line
        """
        self.capacity_bytes = require_positive("cache capacity", capacity_bytes)
        self.line_size = require_positive("cache line size", line_size)
        self.level = level
        self.max_lines = capacity_bytes // line_size
        if self.max_lines < 1:
            raise ConfigurationError(
                f"Cache of {capacity_bytes} bytes cannot hold a {line_size}-byte line"
            )
        self._lines: OrderedDict[int, None] = OrderedDict()
        self.total_accesses = 0
        self.hits = 0
        self.misses = 0

    def __repr__(self) -> str:
        return (f"CacheSimulator(L{self.level}, {self.capacity_bytes}B, "
                f"line={self.line_size}B, {len(self._lines)}/{self.max_lines} lines)")

    @property
    def lines(self) -> tuple[int, ...]:
        """Resident line addresses, least recently used first."""
        return tuple(self._lines)

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_accesses if self.total_accesses > 0 else 0.0

    def get_line_address(self, address: int) -> int:
        return (address // self.line_size) * self.line_size

    def access(self, address: int) -> bool:
        """
        Access a byte address.

        A hit moves the line to the most recently used end. A miss evicts
        the least recently used line when the cache is full, then installs
        the new line as most recently used.

        Returns:
            True on hit, False on miss
        """
        self.total_accesses += 1
        line = self.get_line_address(address)

        if line in self._lines:
            self._lines.move_to_end(line)
            self.hits += 1
            return True

        self.misses += 1
        if len(self._lines) >= self.max_lines:
            self._lines.popitem(last=False)
        self._lines[line] = None
        return False

    def is_address_cached(self, address: int) -> bool:
        """Membership query; does not touch recency order or counters."""
        return self.get_line_address(address) in self._lines

    def reset(self) -> None:
        """Clear resident lines and counters."""
        self._lines.clear()
        self.total_accesses = 0
        self.hits = 0
        self.misses = 0

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot(
            lines=tuple(self._lines),
            total_accesses=self.total_accesses,
            hits=self.hits,
            misses=self.misses,
        )

    def restore(self, snapshot: CacheSnapshot) -> None:
        """Replace the current state with ``snapshot`` exactly."""
        self._lines = OrderedDict.fromkeys(snapshot.lines)
        self.total_accesses = snapshot.total_accesses
        self.hits = snapshot.hits
        self.misses = snapshot.misses


class CacheHierarchy:
    """
    Chain of cache levels queried innermost first.

    Every level consulted before the hitting level records a miss and
    installs the line; levels beyond the hitting level are not touched.
    """

    def __init__(self, levels: Sequence[CacheSimulator]):
        if not levels:
            raise ConfigurationError("A cache hierarchy needs at least one level")
        self.levels = list(levels)

    def __len__(self) -> int:
        return len(self.levels)

    def __getitem__(self, idx: int) -> CacheSimulator:
        return self.levels[idx]

    def __iter__(self):
        return iter(self.levels)

    def get_level(self, level: int) -> Optional[CacheSimulator]:
        """Cache with the given level number, if present."""
        for cache in self.levels:
            if cache.level == level:
                return cache
        return None

    @property
    def total_accesses(self) -> int:
        return self.levels[0].total_accesses

    @property
    def hits(self) -> int:
        """Accesses served by any level."""
        return sum(cache.hits for cache in self.levels)

    @property
    def misses(self) -> int:
        """Accesses that missed every level."""
        return self.levels[-1].misses

    def access_level(self, address: int) -> Optional[int]:
        """
        Access an address through the chain.

        Returns:
            Level number of the first level that hits, None if all miss
        """
        for cache in self.levels:
            if cache.access(address):
                return cache.level
        return None

    def access(self, address: int) -> bool:
        return self.access_level(address) is not None

    def is_address_cached(self, address: int) -> Optional[int]:
        """Innermost level holding the address, None if not resident anywhere."""
        for cache in self.levels:
            if cache.is_address_cached(address):
                return cache.level
        return None

    def reset(self) -> None:
        for cache in self.levels:
            cache.reset()

    def snapshot(self) -> tuple[CacheSnapshot, ...]:
        return tuple(cache.snapshot() for cache in self.levels)

    def restore(self, snapshot: tuple[CacheSnapshot, ...]) -> None:
        if len(snapshot) != len(self.levels):
            raise ValueError(
                f"Snapshot has {len(snapshot)} levels, hierarchy has {len(self.levels)}"
            )
        for cache, level_snapshot in zip(self.levels, snapshot):
            cache.restore(level_snapshot)
