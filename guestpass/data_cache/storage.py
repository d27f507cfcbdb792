"""
Flat key/value storage backends for the cache.

Both backends enforce an optional size quota measured the way browser
storage measures it (two bytes per character of key and value).
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class StorageQuotaExceeded(Exception):
    """Raised when a write would push the storage past its quota."""


class KeyValueStorage(ABC):
    """Single flat namespace of string keys and string values."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value or None."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a value, raising StorageQuotaExceeded when over quota."""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key if present."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return every stored key."""

    def size_bytes(self) -> int:
        total = 0
        for key in self.keys():
            value = self.get_item(key) or ""
            total += (len(key) + len(value)) * 2
        return total

    def _check_quota(self, items: Dict[str, str], key: str, value: str) -> None:
        if self.quota_bytes is None:
            return
        used = sum((len(k) + len(v)) * 2 for k, v in items.items() if k != key)
        needed = (len(key) + len(value)) * 2
        if used + needed > self.quota_bytes:
            raise StorageQuotaExceeded(
                f"Storage quota of {self.quota_bytes} bytes exceeded "
                f"(used {used}, needed {needed})"
            )


class MemoryStorage(KeyValueStorage):
    """Process-local storage."""

    def __init__(self, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_quota(self._items, key, value)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())


class JsonFileStorage(KeyValueStorage):
    """Storage persisted to a single JSON file, rewritten on every change."""

    def __init__(self, storage_file: Path, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self.storage_file = Path(storage_file)
        self._items: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Load items from file."""
        try:
            if self.storage_file.exists():
                with open(self.storage_file, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
                self._items = {str(k): str(v) for k, v in raw.items()} if isinstance(raw, dict) else {}
            else:
                self._items = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading cache storage: {e}")
            self._items = {}

    def _save(self) -> None:
        """Save items to file."""
        self.storage_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.storage_file, 'w', encoding='utf-8') as f:
            json.dump(self._items, f, ensure_ascii=False)

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_quota(self._items, key, value)
        self._items[key] = value
        self._save()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._save()

    def keys(self) -> List[str]:
        return list(self._items.keys())
