from .adapters import (
    CacheAdapter,
    CacheError,
    CacheStore,
    DbCacheAdapter,
    FsCacheAdapter,
    MemoryCacheAdapter,
)
from .manager import CacheManager, CacheOptions, CacheResult, CacheStatus

__all__ = [
    "CacheAdapter",
    "CacheError",
    "CacheStore",
    "DbCacheAdapter",
    "FsCacheAdapter",
    "MemoryCacheAdapter",
    "CacheManager",
    "CacheOptions",
    "CacheResult",
    "CacheStatus",
]
