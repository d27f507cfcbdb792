"""
Shared fixtures: a manual clock and pre-wired cache, store and quota manager.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from guestpass.app_data import AppDataStore
from guestpass.data_cache import DataCacheService, MemoryStorage
from guestpass.quota import QuotaConfig, QuotaManager, QuotaReports
from guestpass.remote import InMemoryDocumentStore


class ManualClock:
    """Clock that only moves when told to. Calling it returns an aware UTC datetime."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def ms(self) -> int:
        return int(self.current.timestamp() * 1000)

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class SlowDocumentStore(InMemoryDocumentStore):
    """Keeps each query open long enough for callers in other threads to pile up."""

    def __init__(self, clock=None, delay: float = 0.2):
        super().__init__(clock=clock)
        self.delay = delay
        self.started: list = []

    async def query(self, collection, *args, **kwargs):
        self.started.append(collection)
        await asyncio.sleep(self.delay)
        return await super().query(collection, *args, **kwargs)

    def queries_on(self, collection: str) -> int:
        return self.started.count(collection)


def seed_resident(store, user_id, community_id="c1", unit="A1", role="owner", name=None, **extra):
    data = {
        "displayName": name or f"Resident {user_id}",
        "email": f"{user_id}@example.com",
        "memberships": [{"communityId": community_id, "unit": unit, "role": role}],
        "createdAt": datetime(2025, 1, 1, tzinfo=timezone.utc),
    }
    data.update(extra)
    store.seed(f"users/{user_id}", data)


def seed_pass(store, community_id, user_id, pass_id, created_at, sent=False, sent_at=None):
    store.seed(f"communities/{community_id}/guestPasses/{pass_id}", {
        "id": pass_id,
        "communityId": community_id,
        "userId": user_id,
        "userName": f"Resident {user_id}",
        "createdAt": created_at,
        "sentStatus": sent,
        "sentAt": sent_at,
    })


@pytest.fixture
def clock():
    return ManualClock(datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def cache(storage, clock):
    return DataCacheService(storage=storage, clock=clock.ms)


@pytest.fixture
def document_store(clock):
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def app_data(document_store, cache, clock):
    return AppDataStore(document_store=document_store, cache=cache, clock=clock.ms)


@pytest.fixture
def quota_config():
    return QuotaConfig(default_monthly_limit=100, default_validity_hours=24, family_roles=["family"])


@pytest.fixture
def manager(document_store, app_data, quota_config, clock):
    return QuotaManager(document_store=document_store, app_data=app_data, config=quota_config, clock=clock)


@pytest.fixture
def reports(document_store, app_data, manager):
    return QuotaReports(document_store, app_data, manager)
