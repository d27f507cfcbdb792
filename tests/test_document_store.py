"""
Tests for the local document store implementations.
"""

from datetime import datetime, timezone

import pytest

from guestpass.errors import RemoteUnavailable
from guestpass.remote import (
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    InMemoryDocumentStore,
    JsonFileDocumentStore,
    where,
)
from guestpass.remote.document_store import split_document_path


class TestPaths:

    def test_split_document_path(self):
        assert split_document_path("communities/c1/units/u1") == ("communities/c1/units", "u1")
        assert split_document_path("users/u1") == ("users", "u1")

    @pytest.mark.parametrize("path", ["users", "communities/c1/units", ""])
    def test_collection_paths_rejected(self, path):
        with pytest.raises(ValueError):
            split_document_path(path)


class TestInMemoryDocumentStore:
    """Test queries, writes and sentinels."""

    @pytest.mark.asyncio
    async def test_get_missing_document(self, document_store):
        assert await document_store.get_document("users/nobody") is None

    @pytest.mark.asyncio
    async def test_equality_and_range_filters(self, document_store):
        early = datetime(2025, 5, 1, tzinfo=timezone.utc)
        late = datetime(2025, 6, 2, tzinfo=timezone.utc)
        document_store.seed("passes/p1", {"userId": "u1", "createdAt": early})
        document_store.seed("passes/p2", {"userId": "u1", "createdAt": late})
        document_store.seed("passes/p3", {"userId": "u2", "createdAt": late})
        document_store.seed("passes/p4", {"userId": "u1"})

        docs = await document_store.query("passes", filters=[
            where("userId", "==", "u1"),
            where("createdAt", ">=", datetime(2025, 6, 1, tzinfo=timezone.utc)),
        ])
        assert [d.id for d in docs] == ["p2"]

    @pytest.mark.asyncio
    async def test_order_limit_and_cursor(self, document_store):
        for i in range(5):
            document_store.seed(f"items/{i:03d}", {"n": i})

        first = await document_store.query("items", order_by=DOCUMENT_ID, limit=2)
        assert [d.id for d in first] == ["000", "001"]

        rest = await document_store.query("items", order_by=DOCUMENT_ID, limit=10, start_after=first[-1])
        assert [d.id for d in rest] == ["002", "003", "004"]

        newest = await document_store.query("items", order_by="n", descending=True, limit=1)
        assert newest[0].data["n"] == 4

    @pytest.mark.asyncio
    async def test_query_log_records_each_query(self, document_store):
        await document_store.query("items", limit=3)
        await document_store.query("items", order_by=DOCUMENT_ID)
        assert document_store.query_count == 2
        assert document_store.query_log[0]["limit"] == 3

    @pytest.mark.asyncio
    async def test_set_merge_and_delete_field(self, document_store, clock):
        await document_store.set_document("s/a", {"monthlyLimit": 5, "blocked": True})
        await document_store.set_document("s/a", {"monthlyLimit": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP}, merge=True)

        data = document_store.peek("s/a")
        assert "monthlyLimit" not in data
        assert data["blocked"] is True
        assert data["updatedAt"] == clock()

    @pytest.mark.asyncio
    async def test_set_without_merge_replaces(self, document_store):
        await document_store.set_document("s/a", {"x": 1, "y": 2})
        await document_store.set_document("s/a", {"x": 3})
        assert document_store.peek("s/a") == {"x": 3}

    @pytest.mark.asyncio
    async def test_update_missing_document_fails(self, document_store):
        with pytest.raises(RemoteUnavailable):
            await document_store.update_document("s/missing", {"x": 1})

    @pytest.mark.asyncio
    async def test_batch_update(self, document_store):
        document_store.seed("s/a", {"count": 3})
        await document_store.batch_update([("s/a", {"count": 0}), ("s/b", {"count": 0})])
        assert document_store.peek("s/a") == {"count": 0}
        assert document_store.peek("s/b") == {"count": 0}

    @pytest.mark.asyncio
    async def test_failure_flags(self, document_store):
        document_store.fail_reads = True
        with pytest.raises(RemoteUnavailable):
            await document_store.query("items")

        document_store.fail_reads = False
        document_store.fail_writes = True
        with pytest.raises(RemoteUnavailable):
            await document_store.set_document("s/a", {"x": 1})

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, document_store):
        document_store.seed("s/a", {"tags": ["x"]})
        doc = await document_store.get_document("s/a")
        doc.data["tags"].append("y")
        assert document_store.peek("s/a") == {"tags": ["x"]}


class TestJsonFileDocumentStore:

    @pytest.mark.asyncio
    async def test_documents_persist_with_datetimes(self, tmp_path, clock):
        data_file = tmp_path / "documents.json"
        store = JsonFileDocumentStore(data_file, clock=clock)
        await store.set_document("communities/c1/guestPasses/GP-1", {"createdAt": SERVER_TIMESTAMP, "userId": "u1"})

        reloaded = JsonFileDocumentStore(data_file, clock=clock)
        doc = await reloaded.get_document("communities/c1/guestPasses/GP-1")
        assert doc.data["createdAt"] == clock()
        assert doc.data["userId"] == "u1"

    def test_missing_file_starts_empty(self, tmp_path):
        store = JsonFileDocumentStore(tmp_path / "nope.json")
        assert store.dump() == {}
