"""
Architecture module: cache models and cache geometry.
"""

from tiling_sim.arch.cache import CacheSimulator, CacheHierarchy, CacheSnapshot
from tiling_sim.arch.config import CacheConfig, CacheLevelConfig

__all__ = [
    "CacheSimulator",
    "CacheHierarchy",
    "CacheSnapshot",
    "CacheConfig",
    "CacheLevelConfig",
]
