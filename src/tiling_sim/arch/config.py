"""
Cache geometry configuration.
"""

from dataclasses import dataclass, field
from typing import Union

from tiling_sim.arch.cache import CacheHierarchy, CacheSimulator
from tiling_sim.utils import ConfigurationError, require_positive


@dataclass
class CacheLevelConfig:
    """
    Geometry of one cache level, counted in elements.

    Attributes:
        elements_per_line: Elements per cache line
        num_lines: Number of lines the level holds
    """
    elements_per_line: int = 16
    num_lines: int = 4

    def line_size(self, element_size: int) -> int:
        """Line size in bytes."""
        return self.elements_per_line * element_size

    def capacity(self, element_size: int) -> int:
        """Capacity in bytes."""
        return self.line_size(element_size) * self.num_lines

    def build(self, element_size: int, level: int = 1) -> CacheSimulator:
        require_positive("elements per line", self.elements_per_line)
        require_positive("number of cache lines", self.num_lines)
        return CacheSimulator(self.capacity(element_size), self.line_size(element_size), level=level)

    @classmethod
    def from_dict(cls, data: dict) -> "CacheLevelConfig":
        unknown = set(data) - {"elements_per_line", "num_lines"}
        if unknown:
            raise ConfigurationError(f"Unknown cache level keys: {sorted(unknown)}")
        return cls(
            elements_per_line=data.get("elements_per_line", 16),
            num_lines=data.get("num_lines", 4),
        )

    def to_dict(self) -> dict:
        return {"elements_per_line": self.elements_per_line, "num_lines": self.num_lines}


@dataclass
class CacheConfig(CacheLevelConfig):
    """
    Cache configuration: the innermost level plus optional outer levels.

    Attributes:
        levels: Outer levels (L2, L3, ...) in order; empty for a single cache
    """
    levels: list[CacheLevelConfig] = field(default_factory=list)

    @property
    def num_levels(self) -> int:
        return 1 + len(self.levels)

    def build(self, element_size: int, level: int = 1) -> Union[CacheSimulator, CacheHierarchy]:
        """
        Build the cache model for elements of ``element_size`` bytes.

        Returns:
            A CacheSimulator, or a CacheHierarchy when outer levels are configured
        """
        inner = super().build(element_size, level=level)
        if not self.levels:
            return inner
        outer = [
            cfg.build(element_size, level=level + offset)
            for offset, cfg in enumerate(self.levels, start=1)
        ]
        return CacheHierarchy([inner] + outer)

    @classmethod
    def from_dict(cls, data: dict) -> "CacheConfig":
        data = dict(data or {})
        levels = [CacheLevelConfig.from_dict(level) for level in data.pop("levels", None) or []]
        base = CacheLevelConfig.from_dict(data)
        return cls(
            elements_per_line=base.elements_per_line,
            num_lines=base.num_lines,
            levels=levels,
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.levels:
            data["levels"] = [level.to_dict() for level in self.levels]
        return data
