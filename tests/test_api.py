"""Tests for main.py FastAPI endpoints."""

from datetime import timedelta

import httpx
from sqlalchemy.exc import OperationalError

import main
import store
from conftest import TODAY, FakeResend, add_record
from exceptions import UpstreamError
from main import app, get_email_sender
from models import EmailLog, User, WaterLog
from notifications import EmailSender

ANA = {"user_id": "user_1", "email": "ana@example.com", "user_name": "Ana"}


def _add_glasses(client, n: int, body: dict = ANA) -> dict:
    data = None
    for _ in range(n):
        resp = client.post("/hydration", json=body)
        assert resp.status_code == 200, resp.text
        data = resp.json()
    return data


def test_health(client) -> None:
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["today"] == TODAY.isoformat()


# ---------------------------------------------------------------------------
# POST /hydration
# ---------------------------------------------------------------------------


def test_add_glass_requires_user_id_and_email(client, db) -> None:
    resp = client.post("/hydration", json={"email": "ana@example.com"})
    assert resp.status_code == 400
    assert resp.json()["type"] == "ValidationError"

    resp = client.post("/hydration", json={"user_id": "user_1"})
    assert resp.status_code == 400

    assert db.query(User).count() == 0
    assert db.query(WaterLog).count() == 0


def test_add_glass_creates_user_and_record(client, db) -> None:
    data = _add_glasses(client, 1)

    assert data["success"] is True
    assert data["hydration"] == {"glasses": 1, "target": 8, "completed": False, "streak": 0}
    assert data["stats"] == {"total_glasses": 1, "completed_days": 0, "weekly_average": 1.0}
    assert data["new_achievements"] == ["first-sip"]
    assert data["notification_sent"] is False

    user = db.query(User).one()
    assert user.id == "user_1"
    assert user.name == "Ana"
    assert user.notification_email == "ana@example.com"


def test_reaching_target_completes_day(client) -> None:
    data = _add_glasses(client, 7)
    assert data["hydration"]["completed"] is False

    data = _add_glasses(client, 1)
    assert data["hydration"] == {"glasses": 8, "target": 8, "completed": True, "streak": 1}
    assert data["new_achievements"] == ["hydration-hero"]
    assert data["stats"]["completed_days"] == 1


def test_notifications_on_even_counts_only(client, resend, db) -> None:
    sent_flags = [_add_glasses(client, 1)["notification_sent"] for _ in range(8)]

    assert sent_flags == [False, True, False, True, False, True, False, True]
    assert len(resend.requests) == 4
    assert db.query(EmailLog).filter(EmailLog.sent == True).count() == 4  # noqa: E712


def test_notification_not_repeated_for_same_count(client, resend, set_today) -> None:
    _add_glasses(client, 2)
    set_today(TODAY + timedelta(days=1))

    data = _add_glasses(client, 2)

    assert data["notification_sent"] is False
    assert len(resend.requests) == 1


def test_notification_goes_to_notification_email(client, resend) -> None:
    body = {**ANA, "notification_email": "alerts@example.com"}
    _add_glasses(client, 2, body)

    [request] = resend.requests
    assert b"alerts@example.com" in request.content


def test_notification_failure_does_not_fail_request(client, db) -> None:
    failing = FakeResend(status_code=500)
    app.dependency_overrides[get_email_sender] = lambda: EmailSender(
        api_key="re_test", transport=httpx.MockTransport(failing.handler)
    )

    data = _add_glasses(client, 2)

    assert data["hydration"]["glasses"] == 2
    assert data["notification_sent"] is False
    log = db.query(EmailLog).one()
    assert log.sent is False
    assert log.error


def test_non_json_resend_reply_does_not_fail_request(client, db) -> None:
    plain = httpx.MockTransport(lambda request: httpx.Response(200, text="OK"))
    app.dependency_overrides[get_email_sender] = lambda: EmailSender(api_key="re_test", transport=plain)

    data = _add_glasses(client, 2)

    assert data["hydration"]["glasses"] == 2
    assert data["notification_sent"] is True
    assert db.query(EmailLog).one().sent is True


class CrashingSender(EmailSender):
    def send(self, to: str, subject: str, html: str) -> dict:
        raise RuntimeError("sender exploded")


def test_unexpected_sender_error_does_not_fail_request(client, db) -> None:
    app.dependency_overrides[get_email_sender] = lambda: CrashingSender(api_key="re_test")

    data = _add_glasses(client, 2)

    assert data["hydration"]["glasses"] == 2
    assert data["notification_sent"] is False
    log = db.query(EmailLog).one()
    assert log.sent is False
    assert "sender exploded" in log.error


def test_notification_log_failure_does_not_fail_request(client, db, monkeypatch) -> None:
    def broken_log(*args, **kwargs):
        raise OperationalError("INSERT INTO email_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(main, "send_hydration_notification", broken_log)

    data = _add_glasses(client, 2)

    assert data["hydration"]["glasses"] == 2
    assert data["notification_sent"] is False
    assert db.query(WaterLog).one().glasses == 2


def test_unlock_failure_does_not_fail_request(client, db, monkeypatch) -> None:
    def broken_refresh(*args, **kwargs):
        raise OperationalError("SELECT achievements", {}, Exception("database is locked"))

    monkeypatch.setattr(main, "refresh_unlocks", broken_refresh)

    data = _add_glasses(client, 1)

    assert data["hydration"]["glasses"] == 1
    assert data["new_achievements"] == []
    assert data["stats"]["total_glasses"] == 1
    assert db.query(WaterLog).one().glasses == 1


def test_history_read_failure_still_returns_increment(client, db, user, monkeypatch) -> None:
    add_record(db, user, TODAY - timedelta(days=1), glasses=8)

    def broken_history(*args, **kwargs):
        raise UpstreamError("No se pudieron leer los registros")

    monkeypatch.setattr(store, "list_records", broken_history)

    resp = client.post("/hydration", json=ANA)

    assert resp.status_code == 200
    data = resp.json()
    assert data["hydration"]["glasses"] == 1
    assert data["stats"]["total_glasses"] == 1
    assert db.query(WaterLog).filter(WaterLog.date == TODAY).one().glasses == 1


def test_three_day_scenario(client, set_today) -> None:
    day1 = TODAY - timedelta(days=3)
    unlocked = {}
    for offset in range(3):
        set_today(day1 + timedelta(days=offset))
        for _ in range(8):
            data = _add_glasses(client, 1)
            for code in data["new_achievements"] + data["new_rewards"]:
                unlocked[code] = offset + 1

    assert unlocked["hydration-hero"] == 1
    assert unlocked["3-day-streak"] == 3
    assert unlocked["3-day-dedication"] == 3
    assert "100-glasses-club" not in unlocked

    set_today(TODAY)
    data = client.get("/hydration", params={"email": "ana@example.com"}).json()
    assert data["streak"] == 3
    assert data["stats"]["completed_days"] == 3
    assert data["stats"]["total_glasses"] == 24
    assert data["hydration"] == {"glasses": 0, "target": 8, "completed": False, "streak": 3}


# ---------------------------------------------------------------------------
# GET /hydration
# ---------------------------------------------------------------------------


def test_get_hydration_requires_identity(client) -> None:
    resp = client.get("/hydration")
    assert resp.status_code == 400


def test_get_hydration_unknown_user(client) -> None:
    resp = client.get("/hydration", params={"email": "nobody@example.com"})
    assert resp.status_code == 404
    assert resp.json()["type"] == "NotFoundError"


def test_get_hydration_creates_today_lazily(client, db, user) -> None:
    resp = client.get("/hydration", params={"user_id": user.id})

    assert resp.status_code == 200
    data = resp.json()
    assert data["user"]["email"] == "ana@example.com"
    assert data["hydration"]["glasses"] == 0
    assert db.query(WaterLog).filter(WaterLog.date == TODAY).count() == 1


# ---------------------------------------------------------------------------
# GET /progress
# ---------------------------------------------------------------------------


def test_progress(client, db, user) -> None:
    add_record(db, user, TODAY - timedelta(days=20), glasses=8)
    add_record(db, user, TODAY - timedelta(days=10), glasses=8)
    add_record(db, user, TODAY - timedelta(days=2), glasses=2)
    add_record(db, user, TODAY - timedelta(days=1), glasses=8)

    data = client.get("/progress", params={"email": user.email}).json()

    assert [d["date"] for d in data["weekly_data"]] == [
        (TODAY - timedelta(days=i)).isoformat() for i in range(6, -1, -1)
    ]
    assert data["weekly_data"][-2]["glasses"] == 8
    assert data["weekly_data"][-3]["glasses"] == 2
    assert data["weekly_data"][-1] == {
        "date": TODAY.isoformat(), "day_name": "Wed", "glasses": 0, "target": 8, "completed": False,
    }
    assert data["streak"] == 1
    # best streak ignores the gaps between the first two completed days
    assert data["best_streak"] == 2
    assert data["stats"]["weekly_average"] == 5.0
    assert data["achievements"] == []


def test_progress_lists_unlocked_achievements(client) -> None:
    _add_glasses(client, 8)

    data = client.get("/progress", params={"user_id": "user_1"}).json()

    assert {a["id"] for a in data["achievements"]} == {"first-sip", "hydration-hero"}


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


def test_rewards_listing(client, user) -> None:
    data = client.get("/rewards", params={"email": user.email}).json()

    assert len(data["rewards"]) == 6
    assert data["streak"] == 0
    assert data["total_glasses"] == 0
    assert not any(r["unlocked"] for r in data["rewards"])


def test_rewards_unlock_from_history(client, db, user) -> None:
    for offset in range(1, 4):
        add_record(db, user, TODAY - timedelta(days=offset), glasses=8)

    data = client.get("/rewards", params={"email": user.email}).json()

    by_id = {r["id"]: r for r in data["rewards"]}
    assert by_id["3-day-dedication"]["unlocked"] is True
    assert by_id["3-day-dedication"]["claimed"] is False
    assert by_id["weekly-wonder"]["unlocked"] is False
    assert data["streak"] == 3


def test_claim_reward_flow(client, db, user) -> None:
    resp = client.post("/rewards/claim", json={"email": user.email, "reward_id": "3-day-dedication"})
    assert resp.status_code == 400

    for offset in range(3):
        add_record(db, user, TODAY - timedelta(days=offset), glasses=8)

    resp = client.post("/rewards/claim", json={"email": user.email, "reward_id": "3-day-dedication"})
    assert resp.status_code == 200
    reward = resp.json()["reward"]
    assert reward["unlocked"] is True
    assert reward["claimed"] is True
    assert reward["claimed_at"] is not None

    again = client.post("/rewards/claim", json={"user_id": user.id, "reward_id": "3-day-dedication"}).json()
    assert again["reward"]["claimed_at"] == reward["claimed_at"]


def test_claim_reward_validation(client, user) -> None:
    assert client.post("/rewards/claim", json={"email": user.email}).status_code == 400
    assert client.post("/rewards/claim", json={"reward_id": "weekly-wonder"}).status_code == 400
    resp = client.post("/rewards/claim", json={"email": user.email, "reward_id": "free-pony"})
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Notifications test endpoint
# ---------------------------------------------------------------------------


def test_test_email_instructions(client) -> None:
    resp = client.get("/notifications/test")
    assert resp.status_code == 200
    assert "setup" in resp.json()


def test_test_email_requires_email(client) -> None:
    assert client.post("/notifications/test", json={}).status_code == 400


def test_test_email_sends_milestone_sample(client, resend) -> None:
    resp = client.post("/notifications/test", json={"email": "ana@example.com", "test_type": "milestone"})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert b"4 Glasses Down" in resend.requests[0].content


def test_test_email_failure(client) -> None:
    failing = FakeResend(status_code=500)
    app.dependency_overrides[get_email_sender] = lambda: EmailSender(
        api_key="re_test", transport=httpx.MockTransport(failing.handler)
    )

    resp = client.post("/notifications/test", json={"email": "ana@example.com"})

    assert resp.status_code == 503
    assert resp.json()["type"] == "UpstreamError"
