"""
Persistent cache for residents, units, communities and aggregate counts.

Entries are versioned and timestamped. A single version string invalidates
every entry after a breaking change, and each entity type has its own expiry.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional

from guestpass.errors import CacheCorrupt
from .models import DEFAULT_TTL_MS, FALLBACK_TTL_MS, CachedData, CacheEntry, CacheMetadata
from .storage import KeyValueStorage, StorageQuotaExceeded

logger = logging.getLogger(__name__)

CURRENT_VERSION = "1.0"
DEFAULT_PREFIX = "guestpass_cache_"


def _now_ms() -> int:
    return int(time.time() * 1000)


class DataCacheService:
    """
    Cache layer that shields the remote store from repeated reads.

    Keys are ``prefix + entity_type [+ "_" + scope_id]`` so per-community
    data can coexist without cross-contamination.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        prefix: str = DEFAULT_PREFIX,
        version: str = CURRENT_VERSION,
        ttl_ms: Optional[Dict[str, int]] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize DataCacheService.

        Args:
            storage: Key/value storage backend
            prefix: Namespace prefix for every key
            version: Current schema version; other versions are purged on read
            ttl_ms: Per entity type expiry overrides in milliseconds
            clock: Returns the current time in ms epoch
        """
        self.storage = storage
        self.prefix = prefix
        self.version = version
        self.ttl_ms = dict(DEFAULT_TTL_MS)
        if ttl_ms:
            self.ttl_ms.update(ttl_ms)
        self._clock = clock or _now_ms

    def get_cache_key(self, entity_type: str, scope_id: Optional[str] = None) -> str:
        base = f"{self.prefix}{entity_type}"
        return f"{base}_{scope_id}" if scope_id else base

    def ttl_for(self, entity_type: str) -> int:
        return self.ttl_ms.get(entity_type, FALLBACK_TTL_MS)

    def _describe(self, entity_type: str, scope_id: Optional[str]) -> str:
        return f"{entity_type} (scope: {scope_id})" if scope_id else entity_type

    def _read_entry(self, key: str) -> Optional[CacheEntry]:
        raw = self.storage.get_item(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except json.JSONDecodeError as e:
            raise CacheCorrupt(f"Unparseable cache entry: {e}") from e

    def get(
        self,
        entity_type: str,
        scope_id: Optional[str] = None,
        respect_ttl: bool = True,
    ) -> Optional[CachedData]:
        """
        Get cached data, purging it when stale.

        Args:
            entity_type: Entity type name, e.g. "residents"
            scope_id: Optional scope such as a community id
            respect_ttl: When False the age check is skipped (version and
                structure are still validated)

        Returns:
            CachedData, or None on a miss, version mismatch, expiry or corrupt entry
        """
        key = self.get_cache_key(entity_type, scope_id)
        label = self._describe(entity_type, scope_id)

        try:
            entry = self._read_entry(key)
        except CacheCorrupt as e:
            logger.warning(f"DataCache: Invalid cache entry for {label}, clearing: {e.message}")
            self.clear(entity_type, scope_id)
            return None

        if entry is None:
            logger.debug(f"DataCache: No cache found for {label}")
            return None

        if entry.version != self.version:
            logger.info(f"DataCache: Version mismatch for {label} ({entry.version} != {self.version}), clearing")
            self.clear(entity_type, scope_id)
            return None

        age = self._clock() - entry.timestamp
        if respect_ttl and age > self.ttl_for(entity_type):
            logger.info(f"DataCache: Cache expired for {label} (age: {round(age / 1000 / 60)} minutes)")
            self.clear(entity_type, scope_id)
            return None

        logger.debug(f"DataCache: Using cached {label} - age: {round(age / 1000 / 60)} minutes")
        return CachedData(data=entry.data, timestamp=entry.timestamp, scope_id=entry.scope_id)

    def set(self, entity_type: str, data: Any, scope_id: Optional[str] = None) -> bool:
        """
        Cache data with the current timestamp.

        Returns:
            True if stored. On storage quota exhaustion every cache entry is
            cleared and False is returned without retrying the write.
        """
        key = self.get_cache_key(entity_type, scope_id)
        label = self._describe(entity_type, scope_id)
        entry = CacheEntry(
            version=self.version,
            timestamp=self._clock(),
            scope_id=scope_id,
            data=data,
        )

        try:
            payload = json.dumps(entry.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"DataCache: Error serializing {label}: {e}")
            return False

        try:
            self.storage.set_item(key, payload)
        except StorageQuotaExceeded as e:
            logger.warning(f"DataCache: Storage quota exceeded while caching {label}, clearing all caches: {e}")
            self.clear_all()
            return False
        except OSError as e:
            logger.error(f"DataCache: Error saving cache for {label}: {e}")
            return False

        count = len(data) if isinstance(data, (list, dict)) else "N/A"
        logger.info(f"DataCache: Cached {label} - {count} items")
        return True

    def clear(self, entity_type: str, scope_id: Optional[str] = None) -> None:
        """Clear a specific cache entry."""
        try:
            self.storage.remove_item(self.get_cache_key(entity_type, scope_id))
            logger.debug(f"DataCache: Cleared cache for {self._describe(entity_type, scope_id)}")
        except OSError as e:
            logger.error(f"DataCache: Error clearing cache for {entity_type}: {e}")

    def clear_all(self) -> int:
        """Clear every prefixed entry. Returns the number of entries removed."""
        cache_keys = [k for k in self.storage.keys() if k.startswith(self.prefix)]
        for key in cache_keys:
            try:
                self.storage.remove_item(key)
            except OSError as e:
                logger.error(f"DataCache: Error removing {key}: {e}")
        logger.info(f"DataCache: Cleared {len(cache_keys)} cache entries")
        return len(cache_keys)

    def metadata(self, entity_type: str, scope_id: Optional[str] = None) -> Optional[CacheMetadata]:
        """Describe a cache slot without mutating it."""
        try:
            entry = self._read_entry(self.get_cache_key(entity_type, scope_id))
        except CacheCorrupt:
            return None
        if entry is None:
            return None

        age = self._clock() - entry.timestamp
        return CacheMetadata(
            timestamp=entry.timestamp,
            age_ms=age,
            is_expired=age > self.ttl_for(entity_type),
            item_count=len(entry.data) if isinstance(entry.data, list) else None,
            version=entry.version,
        )

    def most_recent_timestamp(
        self,
        scope_id: Optional[str] = None,
        entity_types: Iterable[str] = ("residents", "units", "communities"),
    ) -> Optional[int]:
        """Most recent write time across entity types (communities are unscoped)."""
        timestamps = []
        for entity_type in entity_types:
            scope = None if entity_type == "communities" else scope_id
            meta = self.metadata(entity_type, scope)
            if meta is not None:
                timestamps.append(meta.timestamp)
        return max(timestamps) if timestamps else None

    def needs_refresh(self, scope_id: Optional[str] = None) -> bool:
        """True when residents or units for the scope are missing or expired."""
        for entity_type in ("residents", "units"):
            meta = self.metadata(entity_type, scope_id)
            if meta is None or meta.is_expired:
                return True
        return False

    def size_kb(self) -> int:
        """Estimated size of prefixed entries in KB."""
        total = 0
        for key in self.storage.keys():
            if key.startswith(self.prefix):
                value = self.storage.get_item(key) or ""
                total += len(value) * 2
        return round(total / 1024)
