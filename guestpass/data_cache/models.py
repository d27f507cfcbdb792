"""
Data models for the persistent cache.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from guestpass.errors import CacheCorrupt

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

# Entity type -> time to live in milliseconds
DEFAULT_TTL_MS = {
    "residents": DAY_MS,
    "units": DAY_MS,
    "communities": 7 * DAY_MS,  # communities rarely change
    "counts": DAY_MS,
}
FALLBACK_TTL_MS = DAY_MS


@dataclass
class CacheEntry:
    """A versioned, timestamped cache slot as stored in the key/value storage."""
    version: str
    timestamp: int  # ms epoch
    scope_id: Optional[str]
    data: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "timestamp": self.timestamp,
            "scopeId": self.scope_id,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "CacheEntry":
        """Parse a stored entry, raising CacheCorrupt when the shape is wrong."""
        if not isinstance(raw, dict):
            raise CacheCorrupt("Cache entry is not an object")
        missing = [k for k in ("version", "timestamp", "data") if raw.get(k) is None]
        if missing:
            raise CacheCorrupt("Cache entry is missing fields", {"missing": missing})
        timestamp = raw["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise CacheCorrupt("Cache entry timestamp is not numeric")
        return cls(
            version=str(raw["version"]),
            timestamp=int(timestamp),
            scope_id=raw.get("scopeId"),
            data=raw["data"],
        )


@dataclass
class CachedData:
    """Result of a successful cache read."""
    data: Any
    timestamp: int
    scope_id: Optional[str] = None


@dataclass
class CacheMetadata:
    """Read-only view of a cache slot for "last updated" displays."""
    timestamp: int
    age_ms: int
    is_expired: bool
    item_count: Optional[int]
    version: str

    @property
    def age_minutes(self) -> int:
        return round(self.age_ms / 1000 / 60)

    @property
    def age_hours(self) -> int:
        return round(self.age_ms / HOUR_MS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "age_ms": self.age_ms,
            "age_minutes": self.age_minutes,
            "age_hours": self.age_hours,
            "is_expired": self.is_expired,
            "item_count": self.item_count,
            "version": self.version,
        }
