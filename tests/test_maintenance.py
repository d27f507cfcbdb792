"""
Tests for the guest pass limit repair functions.
"""

import pytest

from guestpass.quota.maintenance import (
    fix_guest_pass_limits,
    fix_string_limits,
    remove_default_user_limits,
)

SETTINGS = "communities/c1/settings/guestPasses"


@pytest.fixture
def messy_store(document_store):
    document_store.seed(SETTINGS, {"monthlyLimit": "10"})
    document_store.seed("communities/c1/unitSettings/A1", {"unit": "A1", "monthlyLimit": 4})
    document_store.seed("communities/c1/unitSettings/A2", {"unit": "A2", "blocked": True})
    document_store.seed("communities/c1/userSettings/u1", {"monthlyLimit": "10"})
    document_store.seed("communities/c1/userSettings/u2", {"monthlyLimit": 25})
    document_store.seed("communities/c1/userSettings/u3", {"monthlyLimit": "lots"})
    document_store.seed("communities/c1/userSettings/u4", {"monthlyLimit": 10})
    return document_store


class TestFixStringLimits:

    @pytest.mark.asyncio
    async def test_coerces_string_values(self, messy_store):
        result = await fix_string_limits(messy_store, "c1")

        assert result == {"fixed": 2, "already_correct": 3, "errors": 1, "total": 6}
        assert messy_store.peek(SETTINGS)["monthlyLimit"] == 10
        assert messy_store.peek("communities/c1/userSettings/u1")["monthlyLimit"] == 10
        assert messy_store.peek("communities/c1/userSettings/u3")["monthlyLimit"] == "lots"

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, messy_store):
        before = messy_store.dump()
        result = await fix_string_limits(messy_store, "c1", dry_run=True)
        assert result["fixed"] == 2
        assert messy_store.dump() == before
        assert messy_store.write_count == 0


class TestRemoveDefaultUserLimits:

    @pytest.mark.asyncio
    async def test_removes_limits_equal_to_default(self, messy_store):
        result = await remove_default_user_limits(messy_store, "c1")

        assert result == {"removed": 2, "kept": 2, "total": 4}
        assert "monthlyLimit" not in messy_store.peek("communities/c1/userSettings/u1")
        assert "monthlyLimit" not in messy_store.peek("communities/c1/userSettings/u4")
        assert messy_store.peek("communities/c1/userSettings/u2")["monthlyLimit"] == 25

    @pytest.mark.asyncio
    async def test_explicit_default(self, messy_store):
        result = await remove_default_user_limits(messy_store, "c1", default_limit=25)
        assert result["removed"] == 1
        assert "monthlyLimit" not in messy_store.peek("communities/c1/userSettings/u2")

    @pytest.mark.asyncio
    async def test_remove_all(self, messy_store):
        result = await remove_default_user_limits(messy_store, "c1", remove_all=True)
        assert result["removed"] == 4
        assert result["kept"] == 0

    @pytest.mark.asyncio
    async def test_without_community_settings_keeps_everything(self, document_store):
        document_store.seed("communities/c9/userSettings/u1", {"monthlyLimit": 10})
        result = await remove_default_user_limits(document_store, "c9")
        assert result == {"removed": 0, "kept": 1, "total": 1}


class TestFixGuestPassLimits:

    @pytest.mark.asyncio
    async def test_runs_both_repairs(self, messy_store):
        result = await fix_guest_pass_limits(messy_store, "c1")
        assert result["community_id"] == "c1"
        assert result["string_limits"]["fixed"] == 2
        assert result["user_limits"]["removed"] == 2

    @pytest.mark.asyncio
    async def test_keep_defaults_skips_removal(self, messy_store):
        result = await fix_guest_pass_limits(messy_store, "c1", remove_defaults=False)
        assert result["user_limits"] is None
        assert messy_store.peek("communities/c1/userSettings/u4")["monthlyLimit"] == 10
