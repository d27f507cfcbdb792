"""
Tests for the persistent key/value cache.
"""

import json

import pytest

from guestpass.data_cache import CacheEntry, DataCacheService, JsonFileStorage, MemoryStorage
from guestpass.data_cache.factory import create_data_cache_module
from guestpass.data_cache.models import DAY_MS, HOUR_MS
from guestpass.errors import CacheCorrupt


class TestCacheEntry:
    """Test the stored entry format."""

    def test_round_trip_keys(self):
        entry = CacheEntry(version="1.0", timestamp=123, scope_id="c1", data=[1, 2])
        raw = entry.to_dict()
        assert raw == {"version": "1.0", "timestamp": 123, "scopeId": "c1", "data": [1, 2]}
        assert CacheEntry.from_dict(raw) == entry

    @pytest.mark.parametrize("raw", [
        "not a dict",
        {"version": "1.0", "timestamp": 1},
        {"version": "1.0", "data": []},
        {"version": "1.0", "timestamp": "yesterday", "data": []},
        {"version": "1.0", "timestamp": True, "data": []},
    ])
    def test_malformed_entries_raise(self, raw):
        with pytest.raises(CacheCorrupt):
            CacheEntry.from_dict(raw)


class TestDataCacheService:
    """Test get/set, expiry and invalidation."""

    def test_cache_key_format(self, cache):
        assert cache.get_cache_key("residents") == "guestpass_cache_residents"
        assert cache.get_cache_key("residents", "c1") == "guestpass_cache_residents_c1"

    def test_set_then_get_returns_equal_payload(self, cache):
        payload = [{"id": "u1", "memberships": [{"communityId": "c1", "unit": "A1"}]}, {"id": "u2"}]
        assert cache.set("residents", payload, "c1") is True

        cached = cache.get("residents", "c1")
        assert cached is not None
        assert cached.data == payload
        assert cached.scope_id == "c1"

    def test_scopes_do_not_collide(self, cache):
        cache.set("units", ["a"], "c1")
        cache.set("units", ["b"], "c2")
        assert cache.get("units", "c1").data == ["a"]
        assert cache.get("units", "c2").data == ["b"]
        assert cache.get("units") is None

    def test_expired_entry_is_purged_on_read(self, cache, storage, clock):
        cache.set("residents", ["r"], "c1")
        clock.advance(hours=24, seconds=1)

        assert cache.get("residents", "c1") is None
        assert storage.get_item("guestpass_cache_residents_c1") is None

    def test_entry_at_exact_ttl_is_still_valid(self, cache, clock):
        cache.set("residents", ["r"])
        clock.advance(hours=24)
        assert cache.get("residents") is not None

    def test_communities_live_seven_days(self, cache, clock):
        cache.set("communities", ["c1"])
        clock.advance(days=6)
        assert cache.get("communities") is not None
        clock.advance(days=1, seconds=1)
        assert cache.get("communities") is None

    def test_unknown_entity_type_uses_one_day(self, cache, clock):
        cache.set("widgets", {"x": 1})
        clock.advance(hours=25)
        assert cache.get("widgets") is None

    def test_respect_ttl_false_skips_age_check(self, cache, clock):
        cache.set("units", ["u"], "c1")
        clock.advance(days=30)
        cached = cache.get("units", "c1", respect_ttl=False)
        assert cached is not None
        assert cached.data == ["u"]

    def test_version_mismatch_is_purged(self, storage, clock):
        old = DataCacheService(storage=storage, version="0.9", clock=clock.ms)
        old.set("residents", ["r"])

        current = DataCacheService(storage=storage, version="1.0", clock=clock.ms)
        assert current.get("residents") is None
        assert storage.get_item("guestpass_cache_residents") is None

    def test_version_mismatch_purged_even_without_ttl(self, storage, clock):
        DataCacheService(storage=storage, version="0.9", clock=clock.ms).set("units", ["u"], "c1")
        current = DataCacheService(storage=storage, clock=clock.ms)
        assert current.get("units", "c1", respect_ttl=False) is None

    def test_corrupt_json_is_purged(self, cache, storage):
        storage.set_item("guestpass_cache_residents", "{not json")
        assert cache.get("residents") is None
        assert storage.get_item("guestpass_cache_residents") is None

    def test_missing_fields_are_purged(self, cache, storage):
        storage.set_item("guestpass_cache_units_c1", json.dumps({"version": "1.0", "timestamp": 1}))
        assert cache.get("units", "c1") is None
        assert storage.get_item("guestpass_cache_units_c1") is None

    def test_clear_removes_single_entry(self, cache):
        cache.set("residents", ["r"], "c1")
        cache.set("units", ["u"], "c1")
        cache.clear("residents", "c1")
        assert cache.get("residents", "c1") is None
        assert cache.get("units", "c1") is not None

    def test_clear_all_only_touches_prefixed_keys(self, cache, storage):
        storage.set_item("other_app_key", "keep me")
        cache.set("residents", ["r"])
        cache.set("units", ["u"], "c1")

        assert cache.clear_all() == 2
        assert storage.keys() == ["other_app_key"]

    def test_quota_exhaustion_clears_everything_and_returns_false(self, clock):
        storage = MemoryStorage(quota_bytes=400)
        cache = DataCacheService(storage=storage, clock=clock.ms)
        assert cache.set("communities", ["c1"]) is True

        assert cache.set("residents", ["x" * 500]) is False
        assert cache.get("communities") is None
        assert cache.get("residents") is None
        assert [k for k in storage.keys() if k.startswith(cache.prefix)] == []

    def test_unserializable_data_returns_false(self, cache):
        assert cache.set("residents", [object()]) is False
        assert cache.get("residents") is None


class TestCacheMetadata:
    """Test read-only metadata and helpers."""

    def test_metadata_reports_age_and_count(self, cache, clock):
        cache.set("residents", [1, 2, 3], "c1")
        clock.advance(hours=2)

        meta = cache.metadata("residents", "c1")
        assert meta.item_count == 3
        assert meta.age_ms == 2 * HOUR_MS
        assert meta.age_minutes == 120
        assert meta.age_hours == 2
        assert meta.is_expired is False
        assert meta.version == "1.0"

    def test_metadata_does_not_purge_expired_entries(self, cache, storage, clock):
        cache.set("residents", [1], "c1")
        clock.advance(days=2)

        meta = cache.metadata("residents", "c1")
        assert meta.is_expired is True
        assert storage.get_item("guestpass_cache_residents_c1") is not None

    def test_metadata_missing_returns_none(self, cache):
        assert cache.metadata("units", "nope") is None

    def test_most_recent_timestamp(self, cache, clock):
        assert cache.most_recent_timestamp("c1") is None
        cache.set("communities", [])
        clock.advance(minutes=5)
        cache.set("units", [], "c1")
        assert cache.most_recent_timestamp("c1") == clock.ms()

    def test_needs_refresh(self, cache, clock):
        assert cache.needs_refresh("c1") is True
        cache.set("residents", [], "c1")
        cache.set("units", [], "c1")
        assert cache.needs_refresh("c1") is False
        clock.advance(days=1, minutes=1)
        assert cache.needs_refresh("c1") is True

    def test_size_kb(self, cache):
        assert cache.size_kb() == 0
        cache.set("residents", ["x" * 2048])
        assert cache.size_kb() >= 4


class TestJsonFileStorage:
    """Test the file-backed storage."""

    def test_entries_survive_restart(self, tmp_path, clock):
        storage_file = tmp_path / "cache" / "storage.json"
        first = create_data_cache_module(storage_file=storage_file, clock=clock.ms)["service"]
        first.set("units", [{"id": "1"}], "c1")

        second = create_data_cache_module(storage_file=storage_file, clock=clock.ms)["service"]
        assert second.get("units", "c1").data == [{"id": "1"}]

    def test_unreadable_file_starts_empty(self, tmp_path):
        storage_file = tmp_path / "storage.json"
        storage_file.write_text("garbage", encoding="utf-8")
        storage = JsonFileStorage(storage_file)
        assert storage.keys() == []

    def test_factory_ttl_override(self, clock):
        service = create_data_cache_module(ttl_hours={"residents": 1}, clock=clock.ms)["service"]
        assert service.ttl_for("residents") == HOUR_MS
        assert service.ttl_for("units") == DAY_MS
