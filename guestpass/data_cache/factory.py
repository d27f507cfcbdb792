"""
Factory for creating cache components.
"""

from pathlib import Path
from typing import Callable, Dict, Optional

from .models import HOUR_MS
from .service import CURRENT_VERSION, DEFAULT_PREFIX, DataCacheService
from .storage import JsonFileStorage, MemoryStorage


def create_data_cache_module(
    storage_file: Optional[Path] = None,
    prefix: str = DEFAULT_PREFIX,
    version: str = CURRENT_VERSION,
    quota_bytes: Optional[int] = None,
    ttl_hours: Optional[Dict[str, float]] = None,
    clock: Optional[Callable[[], int]] = None,
) -> dict:
    """
    Create the cache module.

    Args:
        storage_file: JSON file for persistent storage; in-memory when None
        prefix: Key prefix
        version: Cache schema version
        quota_bytes: Optional storage quota
        ttl_hours: Per entity type expiry overrides in hours
        clock: Returns the current time in ms epoch

    Returns:
        Dictionary with:
        - service: DataCacheService instance
        - storage: the KeyValueStorage backend
    """
    if storage_file is not None:
        storage = JsonFileStorage(storage_file, quota_bytes=quota_bytes)
    else:
        storage = MemoryStorage(quota_bytes=quota_bytes)

    ttl_ms = None
    if ttl_hours:
        ttl_ms = {name: int(hours * HOUR_MS) for name, hours in ttl_hours.items()}

    service = DataCacheService(
        storage=storage,
        prefix=prefix,
        version=version,
        ttl_ms=ttl_ms,
        clock=clock,
    )

    return {
        "service": service,
        "storage": storage,
    }
