"""
Local implementations of the DocumentStore interface.

InMemoryDocumentStore backs tests and local runs; JsonFileDocumentStore
persists the same structure to a JSON file for maintenance scripts.
"""

import asyncio
import copy
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from guestpass.errors import RemoteUnavailable
from .document_store import (
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    FieldFilter,
    split_document_path,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _matches(data: Dict[str, Any], flt: FieldFilter) -> bool:
    # Documents missing the filtered field never match
    if flt.field not in data:
        return False
    value = data[flt.field]
    try:
        if flt.op == "==":
            return value == flt.value
        if flt.op == "!=":
            return value != flt.value
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        if flt.op == ">=":
            return value >= flt.value
        if flt.op == "array_contains":
            return isinstance(value, list) and flt.value in value
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {flt.op}")


class InMemoryDocumentStore(DocumentStore):
    """
    Dictionary-backed document store.

    Every call yields to the event loop once so concurrent callers interleave
    the way they would against a real remote store. ``query_log`` records each
    query for inspection, and ``fail_reads`` / ``fail_writes`` simulate outages.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._clock = clock or _utcnow
        self.query_log: List[Dict[str, Any]] = []
        self.read_count = 0
        self.write_count = 0
        self.fail_reads = False
        self.fail_writes = False

    @property
    def query_count(self) -> int:
        return len(self.query_log)

    # =====================
    # Seeding helpers
    # =====================

    def seed(self, path: str, data: Dict[str, Any]) -> None:
        """Write a document synchronously without counting it as a write."""
        collection, doc_id = split_document_path(path)
        self._collections.setdefault(collection, {})[doc_id] = self._resolve(data, {})

    def dump(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return a deep copy of every collection."""
        return copy.deepcopy(self._collections)

    def peek(self, path: str) -> Optional[Dict[str, Any]]:
        """Synchronously read a document, bypassing counters and failures."""
        collection, doc_id = split_document_path(path)
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    # =====================
    # DocumentStore interface
    # =====================

    async def get_document(self, path: str) -> Optional[Document]:
        await asyncio.sleep(0)
        self._check_read()
        self.read_count += 1
        collection, doc_id = split_document_path(path)
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, path=path, data=copy.deepcopy(data))

    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        start_after: Optional[Document] = None,
    ) -> List[Document]:
        await asyncio.sleep(0)
        self._check_read()
        filters = list(filters)
        collection = collection.strip("/")
        self.query_log.append({
            "collection": collection,
            "filters": filters,
            "order_by": order_by,
            "descending": descending,
            "limit": limit,
            "start_after": start_after.id if start_after else None,
        })

        rows = [
            (doc_id, data)
            for doc_id, data in self._collections.get(collection, {}).items()
            if all(_matches(data, f) for f in filters)
        ]

        if order_by is not None:
            if order_by == DOCUMENT_ID:
                key = lambda row: row[0]
            else:
                rows = [row for row in rows if order_by in row[1]]
                key = lambda row: row[1][order_by]
            rows.sort(key=key, reverse=descending)

            if start_after is not None:
                cursor = start_after.id if order_by == DOCUMENT_ID else start_after.data.get(order_by)
                if descending:
                    rows = [row for row in rows if key(row) < cursor]
                else:
                    rows = [row for row in rows if key(row) > cursor]

        if limit is not None:
            rows = rows[:limit]

        self.read_count += len(rows)
        return [
            Document(id=doc_id, path=f"{collection}/{doc_id}", data=copy.deepcopy(data))
            for doc_id, data in rows
        ]

    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await asyncio.sleep(0)
        self._check_write()
        self._write(path, data, merge=merge)

    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        await asyncio.sleep(0)
        self._check_write()
        collection, doc_id = split_document_path(path)
        if doc_id not in self._collections.get(collection, {}):
            raise RemoteUnavailable(f"No document to update: {path}", {"path": path})
        self._write(path, data, merge=True)

    async def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        await asyncio.sleep(0)
        self._check_write()
        for path, data in updates:
            self._write(path, data, merge=True)

    # =====================
    # Private helpers
    # =====================

    def _check_read(self) -> None:
        if self.fail_reads:
            raise RemoteUnavailable("Remote store unavailable for reads")

    def _check_write(self) -> None:
        if self.fail_writes:
            raise RemoteUnavailable("Remote store unavailable for writes")

    def _resolve(self, data: Dict[str, Any], existing: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(existing)
        for key, value in data.items():
            if value is DELETE_FIELD:
                result.pop(key, None)
            elif value is SERVER_TIMESTAMP:
                result[key] = self._clock()
            elif isinstance(value, dict):
                result[key] = self._resolve(value, {})
            else:
                result[key] = copy.deepcopy(value)
        return result

    def _write(self, path: str, data: Dict[str, Any], merge: bool) -> None:
        collection, doc_id = split_document_path(path)
        docs = self._collections.setdefault(collection, {})
        existing = docs.get(doc_id, {}) if merge else {}
        docs[doc_id] = self._resolve(data, existing)
        self.write_count += 1


class JsonFileDocumentStore(InMemoryDocumentStore):
    """InMemoryDocumentStore that persists to a JSON file after each write."""

    def __init__(self, data_file: Path, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock=clock)
        self.data_file = Path(data_file)
        self._load()

    def _load(self) -> None:
        if not self.data_file.exists():
            return
        try:
            with open(self.data_file, 'r', encoding='utf-8') as f:
                raw = json.load(f, object_hook=self._decode)
            self._collections = raw.get("collections", {})
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading document store from {self.data_file}: {e}")
            self._collections = {}

    def flush(self) -> None:
        """Write every collection to the data file."""
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.data_file, 'w', encoding='utf-8') as f:
                json.dump(
                    {"collections": self._collections},
                    f,
                    ensure_ascii=False,
                    indent=2,
                    default=self._encode,
                )
        except OSError as e:
            raise RemoteUnavailable(f"Error saving document store: {e}") from e

    def _write(self, path: str, data: Dict[str, Any], merge: bool) -> None:
        super()._write(path, data, merge)
        self.flush()

    @staticmethod
    def _encode(value: Any) -> Any:
        if isinstance(value, datetime):
            return {"__datetime__": value.isoformat()}
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

    @staticmethod
    def _decode(obj: Dict[str, Any]) -> Any:
        if set(obj.keys()) == {"__datetime__"}:
            return datetime.fromisoformat(obj["__datetime__"])
        return obj
