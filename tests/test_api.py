"""HTTP tests through FastAPI's TestClient against an in-memory SQLite database."""

import pytest
from fastapi.testclient import TestClient

from startup_exchange.database import get_db, get_store
from startup_exchange.main import app
from startup_exchange.store import SqlAlchemyStore

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client(session_factory):
    def override_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_store():
        db = session_factory()
        try:
            yield SqlAlchemyStore(db)
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_store] = override_store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestBasics:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_identity_required(self, client):
        assert client.get("/api/portfolio").status_code == 401

    def test_create_user_is_idempotent(self, client):
        first = client.post("/api/users", json={"user_id": "carol", "display_name": "Carol"})
        assert first.status_code == 200
        assert first.json()["balance"] == 10000.0
        assert first.json()["free_gifts_count"] == 5

        again = client.post("/api/users", json={"user_id": "alice"})
        assert again.json()["display_name"] == "Alice"


class TestStartupsAndComparisons:

    def test_list_startups_with_price_and_tier(self, client):
        startups = {s["id"]: s for s in client.get("/api/startups").json()}
        assert startups["cedar"]["price"] == 16.0
        assert startups["cedar"]["display_price"] == "$16.00"
        assert startups["cedar"]["tier"] == "B"

    def test_list_startups_by_batch(self, client):
        ids = {s["id"] for s in client.get("/api/startups", params={"batch": "S24"}).json()}
        assert ids == {"cedar", "delta"}

    def test_next_pair(self, client):
        body = client.get("/api/comparisons/next", headers=ALICE).json()
        assert body["startup_a"]["id"] != body["startup_b"]["id"]

    def test_next_pair_needs_two_startups(self, client):
        response = client.get("/api/comparisons/next", params={"batch": "X99"}, headers=ALICE)
        assert response.status_code == 404

    def test_vote(self, client):
        response = client.post("/api/comparisons", headers=ALICE, json={
            "startup_a_id": "acme", "startup_b_id": "bolt", "chosen_startup_id": "acme",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["startup_a"]["delta"] == 16.0
        assert body["startup_b"]["delta"] == -16.0
        assert body["startup_a"]["new_rating"] == 1516.0

    def test_vote_for_outsider_rejected(self, client):
        response = client.post("/api/comparisons", headers=ALICE, json={
            "startup_a_id": "acme", "startup_b_id": "bolt", "chosen_startup_id": "cedar",
        })
        assert response.status_code == 400

    def test_vote_on_unknown_startup(self, client):
        response = client.post("/api/comparisons", headers=ALICE, json={
            "startup_a_id": "acme", "startup_b_id": "ghost", "chosen_startup_id": "acme",
        })
        assert response.status_code == 404
        assert response.json()["error"] == "ValidationError"


class TestRankings:

    def test_recompute_empty_then_with_votes(self, client):
        assert client.post("/api/rankings/recompute").json()["status"] == "nothing_to_do"

        client.post("/api/comparisons", headers=ALICE, json={
            "startup_a_id": "delta", "startup_b_id": "cedar", "chosen_startup_id": "delta",
        })
        body = client.post("/api/rankings/recompute").json()
        assert body["status"] == "updated"
        assert body["processed_comparisons"] == 1
        assert body["passes"] == 3

        ranks = {s["id"]: s["global_rank"] for s in client.get("/api/startups").json()}
        assert sorted(ranks.values()) == [1, 2, 3, 4]

    def test_recompute_subset_requires_ids(self, client):
        response = client.post("/api/rankings/recompute-subset", json={"startup_ids": []})
        assert response.status_code == 400


class TestTrading:

    def test_buy_and_portfolio(self, client):
        response = client.post("/api/trades", headers=ALICE, json={
            "startup_id": "acme", "kind": "buy", "quantity": 10,
        })
        assert response.status_code == 200
        assert response.json()["balance"] == 9850.0
        assert response.json()["description"] == "Bought 10 @ $15.00"

        portfolio = client.get("/api/portfolio", headers=ALICE).json()
        assert portfolio["cash"] == 9850.0
        assert portfolio["positions"][0]["quantity"] == 10

        trades = client.get("/api/trades", headers=ALICE).json()
        assert [t["kind"] for t in trades] == ["buy"]

    def test_insufficient_funds(self, client):
        response = client.post("/api/trades", headers=BOB, json={
            "startup_id": "acme", "kind": "buy", "quantity": 100,
        })
        assert response.status_code == 400
        assert response.json()["error"] == "InsufficientFunds"

    def test_conflicting_direction(self, client):
        client.post("/api/trades", headers=ALICE, json={
            "startup_id": "acme", "kind": "open_short", "quantity": 2,
        })
        response = client.post("/api/trades", headers=ALICE, json={
            "startup_id": "acme", "kind": "buy", "quantity": 1,
        })
        assert response.status_code == 409

    def test_gift_is_not_a_trade(self, client):
        response = client.post("/api/trades", headers=ALICE, json={
            "startup_id": "acme", "kind": "gift", "quantity": 10,
        })
        assert response.status_code == 400

    @pytest.mark.parametrize("payload", [
        {"startup_id": "acme", "kind": "hold", "quantity": 1},
        {"startup_id": "acme", "kind": "buy", "quantity": 0},
    ])
    def test_malformed_requests(self, client, payload):
        assert client.post("/api/trades", headers=ALICE, json=payload).status_code == 422

    def test_gift_roll(self, client):
        body = client.post("/api/gifts/roll", headers=ALICE).json()
        assert body["shares"] == 10
        assert body["remaining_gifts"] == 4
        assert body["position"]["average_cost"] == 0.0

    def test_gift_roll_without_allowance(self, client):
        response = client.post("/api/gifts/roll", headers=BOB)
        assert response.status_code == 400
        assert response.json()["error"] == "NoGiftsRemaining"


class TestLeaderboardAndStats:

    def test_leaderboard(self, client):
        board = client.get("/api/leaderboard").json()
        assert [e["user_id"] for e in board] == ["alice", "bob"]
        assert board[0]["rank"] == 1

    def test_stats(self, client):
        client.post("/api/comparisons", headers=BOB, json={
            "startup_a_id": "acme", "startup_b_id": "bolt", "chosen_startup_id": "bolt",
        })
        stats = client.get("/api/stats").json()
        assert stats["comparisons"]["total"] == 1
        assert stats["comparisons"]["unique_users"] == 1
