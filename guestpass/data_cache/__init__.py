"""
Persistent key/value cache with versioned, expiring entries.
"""

from .models import CachedData, CacheEntry, CacheMetadata
from .service import DataCacheService
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage, StorageQuotaExceeded

__all__ = [
    "CachedData",
    "CacheEntry",
    "CacheMetadata",
    "DataCacheService",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
    "StorageQuotaExceeded",
]
