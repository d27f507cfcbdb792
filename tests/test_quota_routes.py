"""
Tests for the guest pass HTTP API.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from config_manager import ConfigManager
from conftest import SlowDocumentStore, seed_pass, seed_resident
from guestpass.errors import (
    GuestPassError,
    InvalidInput,
    LimitReached,
    NotFoundError,
    NotInCommunity,
    PassBlocked,
    RemoteUnavailable,
    ResidentNotFound,
)
from guestpass.main import create_app
from guestpass.quota.routes import status_for


@pytest.fixture
def app(tmp_path, document_store, clock):
    config_manager = ConfigManager(str(tmp_path / "missing_config.json"))
    app = create_app(
        config_manager=config_manager,
        document_store=document_store,
        cache_clock=clock.ms,
        clock=clock,
    )
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def resident(document_store):
    seed_resident(document_store, "u1", unit="A1", name="Mona Adel")
    document_store.seed("communities/c1/settings/guestPasses", {"monthlyLimit": 2})
    return "u1"


class TestStatusCodes:

    @pytest.mark.parametrize("error, status", [
        (InvalidInput("bad"), 400),
        (PassBlocked("unit", "blocked"), 403),
        (ResidentNotFound("missing"), 404),
        (NotFoundError("no such pass"), 404),
        (NotInCommunity("elsewhere"), 404),
        (LimitReached("full"), 409),
        (RemoteUnavailable("down"), 503),
        (GuestPassError("other"), 500),
    ])
    def test_status_for(self, error, status):
        assert status_for(error) == status


class TestEligibilityRoutes:

    def test_eligible_resident(self, client, resident):
        response = client.get("/api/communities/c1/residents/u1/eligibility")
        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is True
        assert body["data"]["reason"] == "eligible"
        assert body["data"]["effective_limit"] == 2

    def test_unknown_resident_is_structured(self, client):
        response = client.get("/api/communities/c1/residents/ghost/eligibility")
        assert response.status_code == 200
        body = response.get_json()
        assert body["success"] is False
        assert body["data"]["reason"] == "not_found"

    def test_resident_status(self, client, resident, document_store, clock):
        seed_pass(document_store, "c1", "u1", "GP-A", clock())
        body = client.get("/api/communities/c1/residents/u1/status").get_json()
        assert body["data"]["user"]["used_this_month"] == 1
        assert body["data"]["user"]["remaining"] == 1
        assert body["data"]["user"]["name"] == "Mona Adel"

    def test_remote_outage_returns_503(self, client, document_store):
        document_store.fail_reads = True
        response = client.get("/api/communities/c1/residents/u1/eligibility")
        assert response.status_code == 503
        assert response.get_json()["error"]["code"] == "REMOTE_UNAVAILABLE"

    def test_parallel_requests_share_one_residents_query(self, tmp_path, clock):
        store = SlowDocumentStore(clock=clock)
        seed_resident(store, "u1", unit="A1")
        seed_resident(store, "u2", unit="A2")
        app = create_app(
            config_manager=ConfigManager(str(tmp_path / "missing_config.json")),
            document_store=store,
            cache_clock=clock.ms,
            clock=clock,
        )
        barrier = threading.Barrier(2)

        def check(user_id):
            client = app.test_client()
            barrier.wait()
            return client.get(f"/api/communities/c1/residents/{user_id}/eligibility")

        with ThreadPoolExecutor(max_workers=2) as pool:
            responses = list(pool.map(check, ["u1", "u2"], timeout=10))

        assert [r.status_code for r in responses] == [200, 200]
        assert [r.get_json()["data"]["user_id"] for r in responses] == ["u1", "u2"]
        assert all(r.get_json()["data"]["reason"] == "eligible" for r in responses)
        assert store.queries_on("users") == 1


class TestCreatePassRoute:

    def test_create_then_limit_reached(self, client, resident):
        for _ in range(2):
            response = client.post("/api/communities/c1/guest-passes", json={"userId": "u1"})
            assert response.status_code == 201
            assert response.get_json()["data"]["user_id"] == "u1"

        response = client.post("/api/communities/c1/guest-passes", json={"userId": "u1"})
        assert response.status_code == 409
        body = response.get_json()
        assert body["success"] is False
        assert body["error"]["details"]["used_this_month"] == 2

    def test_blocked_unit_returns_403(self, client, resident, document_store):
        document_store.seed("communities/c1/unitSettings/A1", {"unit": "A1", "blocked": True})

        response = client.post("/api/communities/c1/guest-passes", json={"userId": "u1"})
        assert response.status_code == 403
        assert response.get_json()["error"]["details"]["sub_reason"] == "unit"

    def test_invalid_body(self, client):
        assert client.post("/api/communities/c1/guest-passes", data="nope").status_code == 400
        assert client.post("/api/communities/c1/guest-passes", json={}).status_code == 400

    def test_unknown_resident_returns_404(self, client):
        response = client.post("/api/communities/c1/guest-passes", json={"userId": "ghost"})
        assert response.status_code == 404


class TestPassRoutes:

    def test_mark_sent_and_list(self, client, resident):
        created = client.post("/api/communities/c1/guest-passes", json={"userId": "u1"}).get_json()["data"]

        response = client.post(f"/api/communities/c1/guest-passes/{created['id']}/sent")
        assert response.status_code == 200
        assert response.get_json()["data"]["sent_status"] is True

        sent = client.get("/api/communities/c1/guest-passes?sent=true").get_json()["data"]
        assert [p["id"] for p in sent] == [created["id"]]
        assert client.get("/api/communities/c1/guest-passes?sent=false").get_json()["data"] == []

    def test_mark_sent_rejects_non_bool(self, client, resident):
        created = client.post("/api/communities/c1/guest-passes", json={"userId": "u1"}).get_json()["data"]
        response = client.post(f"/api/communities/c1/guest-passes/{created['id']}/sent", json={"sent": "yes"})
        assert response.status_code == 400

    def test_mark_sent_missing_pass(self, client):
        assert client.post("/api/communities/c1/guest-passes/GP-1-ABCDE/sent").status_code == 404
        assert client.post("/api/communities/c1/guest-passes/bogus/sent").status_code == 400

    def test_list_query_validation(self, client):
        assert client.get("/api/communities/c1/guest-passes?sent=maybe").status_code == 400
        assert client.get("/api/communities/c1/guest-passes?limit=0").status_code == 400

    def test_validate_pass_id(self, client):
        assert client.get("/api/guest-passes/GP-1-ABCDE/validate").get_json()["data"]["valid"] is True
        assert client.get("/api/guest-passes/gp-1/validate").get_json()["data"]["valid"] is False


class TestStatsRoute:

    def test_stats_with_analytics(self, client, resident, document_store, clock):
        seed_pass(document_store, "c1", "u1", "GP-A", clock(), sent=True, sent_at=clock())
        body = client.get("/api/communities/c1/stats?period=week").get_json()
        assert body["data"]["total_passes_this_month"] == 1
        assert body["data"]["default_limit"] == 2
        assert body["data"]["analytics"]["total_passes"] == 1

    def test_invalid_period(self, client):
        assert client.get("/api/communities/c1/stats?period=decade").status_code == 400

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}
