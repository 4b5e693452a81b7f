"""
Storage package.

Single-blob persistence primitives (memory, file, Redis) consumed by the
feature cache and the override layer.
"""

from .primitives import (
    FEATURE_CACHE_ITEM,
    OVERRIDES_ITEM,
    FileStorage,
    MemoryStorage,
    RedisStorage,
    StorageItem,
    create_storage,
)

__all__ = [
    "FEATURE_CACHE_ITEM",
    "OVERRIDES_ITEM",
    "FileStorage",
    "MemoryStorage",
    "RedisStorage",
    "StorageItem",
    "create_storage",
]
