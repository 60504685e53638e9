"""HTTP surface: confirm-then-render responses and error mapping."""

from app.db.data.spin_prizes import SPIN_PRIZES
from app.services import wheel_sync

USER = {"X-User-Id": "player-1"}


def register(client, user_id="player-1", username="player"):
    return client.post("/api/v1/users/", json={"user_id": user_id, "username": username})


class TestUsers:
    def test_register_is_idempotent(self, client):
        first = register(client)
        assert first.status_code == 201
        body = first.json()
        assert body["coin_balance"] == 100
        assert body["spins_remaining"] == 3
        assert body["daily_streak_count"] == 0

        again = register(client)
        assert again.status_code == 200
        assert again.json()["user_id"] == "player-1"

    def test_me_requires_header(self, client):
        assert client.get("/api/v1/users/me").status_code == 401

    def test_unknown_user(self, client):
        res = client.get("/api/v1/users/me", headers={"X-User-Id": "ghost"})
        assert res.status_code == 404
        assert res.json()["code"] == "profile_not_found"

    def test_leaderboard(self, client):
        register(client, "rich")
        register(client, "poor")
        client.post("/api/v1/rewards/daily/claim", headers={"X-User-Id": "rich"})

        res = client.get("/api/v1/users/leaderboard", headers={"X-User-Id": "poor"})
        body = res.json()
        assert [row["user_id"] for row in body["leaderboard"]] == ["rich", "poor"]
        assert body["leaderboard"][0]["rank"] == 1
        assert body["user_rank"] == 2


class TestDailyReward:
    def test_status_before_claim(self, client):
        register(client)
        body = client.get("/api/v1/rewards/daily", headers=USER).json()
        assert body["eligible"] is True
        assert body["cycle_position"] == 1
        assert len(body["calendar"]) == 7
        assert body["calendar"][0]["is_current_target"] is True

    def test_claim_twice_credits_once(self, client):
        register(client)
        first = client.post("/api/v1/rewards/daily/claim", headers=USER).json()
        second = client.post("/api/v1/rewards/daily/claim", headers=USER)

        assert first["success"] is True
        assert first["reward"] == 50
        assert first["coin_balance"] == 150
        assert second.status_code == 200
        body = second.json()
        assert body["already_claimed"] is True
        assert body["coin_balance"] == 150
        assert body["grant"]["idempotency_key"] == first["grant"]["idempotency_key"]

        status = client.get("/api/v1/rewards/daily", headers=USER).json()
        assert status["eligible"] is False

    def test_ladder(self, client):
        ladder = client.get("/api/v1/rewards/ladder").json()
        assert [row["cycle_position"] for row in ladder] == list(range(1, 8))
        assert ladder[-1]["reward_amount"] == 500


class TestSpin:
    def test_prize_table_hides_weights(self, client):
        body = client.get("/api/v1/spin/prizes").json()
        assert body["segment_count"] == len(SPIN_PRIZES)
        assert "weight" not in body["prizes"][0]

    def test_spin_returns_committed_outcome_and_animation(self, client):
        register(client)
        res = client.post("/api/v1/spin", json={"current_rotation": 400.0}, headers=USER)
        assert res.status_code == 200
        body = res.json()

        outcome = body["outcome"]
        animation = body["animation"]
        assert body["spins_left"] == 2
        assert body["coin_balance"] == 100 + outcome["reward_amount"]
        assert animation["start_rotation"] == 400.0
        assert animation["final_rotation"] > 400.0
        assert animation["duration_seconds"] >= 2.5
        assert (
            wheel_sync.landed_segment(animation["final_rotation"], len(SPIN_PRIZES))
            == outcome["winning_index"]
        )

        again = client.get(f"/api/v1/spin/outcomes/{outcome['outcome_id']}", headers=USER)
        fetched = again.json()
        assert fetched["outcome_id"] == outcome["outcome_id"]
        assert fetched["winning_index"] == outcome["winning_index"]
        assert fetched["reward_amount"] == outcome["reward_amount"]

    def test_out_of_spins(self, client):
        register(client)
        for _ in range(3):
            assert client.post("/api/v1/spin", headers=USER).status_code == 200
        res = client.post("/api/v1/spin", headers=USER)
        assert res.status_code == 409
        assert res.json()["code"] == "no_spins_available"
        assert res.json()["retryable"] is False

    def test_unknown_outcome(self, client):
        register(client)
        res = client.get("/api/v1/spin/outcomes/nope", headers=USER)
        assert res.status_code == 404


class TestAdReward:
    def test_extra_spin_once_per_ad_session(self, client):
        register(client)
        for _ in range(3):
            client.post("/api/v1/spin", headers=USER)

        payload = {"ad_session_id": "ad-123", "purpose": "spin"}
        first = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER).json()
        retry = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER).json()

        assert first["granted"] is True
        assert first["spins_remaining"] == 1
        assert retry["granted"] is False
        assert retry["spins_remaining"] == 1
        assert client.post("/api/v1/spin", headers=USER).status_code == 200

    def test_double_once(self, client):
        register(client)
        spin = client.post("/api/v1/spin", headers=USER).json()
        outcome = spin["outcome"]
        payload = {"ad_session_id": "ad-9", "purpose": "double", "outcome_id": outcome["outcome_id"]}

        first = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER).json()
        retry = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER).json()

        assert first["granted"] is True
        assert first["coin_balance"] == spin["coin_balance"] + outcome["reward_amount"]
        assert retry["granted"] is False
        assert retry["coin_balance"] == first["coin_balance"]

    def test_double_unknown_outcome(self, client):
        register(client)
        payload = {"ad_session_id": "ad-1", "purpose": "double", "outcome_id": "missing"}
        res = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER)
        assert res.status_code == 404

    def test_ad_session_of_another_user_is_rejected(self, client):
        register(client)
        register(client, "player-2")
        payload = {"ad_session_id": "ad-shared", "purpose": "spin"}
        client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER)

        res = client.post(
            "/api/v1/rewards/ads/reward", json=payload, headers={"X-User-Id": "player-2"}
        )
        assert res.status_code == 409
        assert res.json()["code"] == "grant_key_conflict"
        me = client.get("/api/v1/users/me", headers={"X-User-Id": "player-2"}).json()
        assert me["spins_remaining"] == 3

    def test_bad_purpose(self, client):
        register(client)
        payload = {"ad_session_id": "ad-1", "purpose": "triple"}
        res = client.post("/api/v1/rewards/ads/reward", json=payload, headers=USER)
        assert res.status_code == 400

    def test_grant_history(self, client):
        register(client)
        client.post("/api/v1/rewards/daily/claim", headers=USER)
        client.post("/api/v1/spin", headers=USER)
        grants = client.get("/api/v1/rewards/grants", headers=USER).json()
        assert len(grants) == 2
        assert grants[0]["idempotency_key"].startswith("spin:")


def test_ping(client):
    assert client.get("/api/v1/ping").json() == {"status": "success"}
