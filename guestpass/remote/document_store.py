"""
Interface to the remote document database.

Paths are slash separated: an even number of segments names a document
(``communities/c1/unitSettings/A1``), an odd number names a collection
(``communities/c1/unitSettings``). Implementations raise RemoteUnavailable
for any query or write failure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


# Order by document identity instead of a field
DOCUMENT_ID = "__name__"


class _Sentinel:
    """Write-time placeholder resolved by the store."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


# Removes the field from the stored document
DELETE_FIELD = _Sentinel("DELETE_FIELD")

# Replaced with the store's clock at write time
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


@dataclass(frozen=True)
class FieldFilter:
    """A single where-clause."""
    field: str
    op: str  # "==", "!=", "<", "<=", ">", ">=", "array_contains"
    value: Any


@dataclass
class Document:
    """A document snapshot."""
    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


def where(field_name: str, op: str, value: Any) -> FieldFilter:
    """Shorthand for building a FieldFilter."""
    return FieldFilter(field_name, op, value)


def split_document_path(path: str) -> Tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2 or len(parts) % 2 != 0:
        raise ValueError(f"Not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


class DocumentStore(ABC):
    """Async document store used by the fetch orchestrator and quota engine."""

    @abstractmethod
    async def get_document(self, path: str) -> Optional[Document]:
        """Return the document at ``path`` or None if it does not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Iterable[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        start_after: Optional[Document] = None,
    ) -> List[Document]:
        """Run a bounded query against a collection."""

    @abstractmethod
    async def set_document(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a document; ``merge`` upserts the given fields."""

    @abstractmethod
    async def update_document(self, path: str, data: Dict[str, Any]) -> None:
        """Update fields of an existing document."""

    @abstractmethod
    async def batch_update(self, updates: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        """Apply several merge-upserts as one write."""
