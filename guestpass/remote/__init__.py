"""
Remote document store interface and local implementations.
"""

from .document_store import (
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    FieldFilter,
    where,
)
from .memory_store import InMemoryDocumentStore, JsonFileDocumentStore

__all__ = [
    "DELETE_FIELD",
    "DOCUMENT_ID",
    "SERVER_TIMESTAMP",
    "Document",
    "DocumentStore",
    "FieldFilter",
    "where",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
]
