from datetime import datetime, timedelta, timezone

from timeclock.api import create_app
from timeclock.container import build_container
from timeclock.db import Database
from timeclock.timezones import STORAGE_TZ


class FixedClock:
    def now(self) -> datetime:
        return datetime(2026, 2, 2, 10, 0, tzinfo=timezone.utc)


def make_client():
    container = build_container(Database(":memory:"), clock=FixedClock())
    app = create_app(container)
    app.config["TESTING"] = True
    return container, app.test_client()


def seed(container):
    alice = container.users.get_or_create_user("alice", email="alice@example.com")
    bob = container.users.get_or_create_user("bob", email="bob@example.com")
    start = datetime(2026, 2, 1, 9, 0, tzinfo=STORAGE_TZ)
    container.tracker.create_manual_session(alice.id, start, start + timedelta(hours=2))
    return alice, bob


def test_health() -> None:
    _, client = make_client()

    assert client.get("/health").get_json() == {"status": "ok"}


def test_last_day_stats_requires_user_id() -> None:
    _, client = make_client()

    missing = client.get("/getLastDayStats")
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "userId parameter is required"}

    malformed = client.get("/getLastDayStats?userId=abc")
    assert malformed.status_code == 400


def test_last_day_stats_for_user() -> None:
    container, client = make_client()
    alice, bob = seed(container)

    response = client.get(f"/getLastDayStats?userId={alice.id}")
    body = response.get_json()

    assert response.status_code == 200
    assert body["date"] == "2026-02-01"
    assert body["totalDuration"] == 120
    assert body["sessions"][0]["startTime"] == "2026-02-01T09:00:00+04:00"

    empty = client.get(f"/getLastDayStats?userId={bob.id}").get_json()
    assert empty["totalSessions"] == 0
    assert empty["completionRate"] == 0
    assert empty["hasOngoingSession"] is False


def test_all_users_last_day_and_today() -> None:
    container, client = make_client()
    alice, _ = seed(container)

    last_day = client.get("/getAllUsersLastDayStats").get_json()
    assert last_day["date"] == "2026-02-01"
    assert last_day["totalActiveUsers"] == 1
    assert last_day["usersStats"][0]["userId"] == alice.id
    assert last_day["usersStats"][0]["email"] == "alice@example.com"
    assert last_day["usersStats"][0]["date"] == "2026-02-01"
    assert "startDate" not in last_day

    today = client.get("/getAllUsersTodayStats").get_json()
    assert today["date"] == "2026-02-02"
    assert "endDate" not in today
    assert today["usersStats"] == []


def test_time_frame_validation() -> None:
    _, client = make_client()

    assert client.get("/getAllUsersTimeFrameStats").status_code == 400
    assert client.get("/getAllUsersTimeFrameStats?startDate=2026-02-01").status_code == 400

    bad_format = client.get("/getAllUsersTimeFrameStats?startDate=02-01-2026&endDate=2026-02-05")
    assert bad_format.status_code == 400
    assert "YYYY-MM-DD" in bad_format.get_json()["error"]

    reversed_range = client.get("/getAllUsersTimeFrameStats?startDate=2026-02-05&endDate=2026-02-01")
    assert reversed_range.status_code == 400


def test_time_frame_stats() -> None:
    container, client = make_client()
    alice, _ = seed(container)

    response = client.get("/getAllUsersTimeFrameStats?startDate=2026-01-01&endDate=2026-02-28")
    body = response.get_json()

    assert response.status_code == 200
    assert (body["startDate"], body["endDate"]) == ("2026-01-01", "2026-02-28")
    assert [row["userId"] for row in body["usersStats"]] == [alice.id]
    assert body["usersStats"][0]["endDate"] == "2026-02-28"
    assert body["usersStats"][0]["completionRate"] == 100.0


def test_session_summary_endpoint() -> None:
    container, client = make_client()
    alice, _ = seed(container)

    body = client.get(f"/getSessionSummary?userId={alice.id}&startDate=2026-02-01").get_json()
    assert body["totalSessions"] == 1
    assert body["averageDuration"] == 120

    assert client.get(f"/getSessionSummary?userId={alice.id}&startDate=2026-02-02&endDate=2026-02-01").status_code == 400


def test_unexpected_failure_maps_to_500(monkeypatch) -> None:
    container, client = make_client()

    def boom():
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(container.reporter, "get_all_users_today_stats", boom)

    response = client.get("/getAllUsersTodayStats")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}


def test_user_stats_endpoint() -> None:
    container, client = make_client()
    alice, bob = seed(container)

    response = client.get(f"/getUserStats?userId={alice.id}")

    assert response.status_code == 200
    assert response.get_json() == {
        "totalSessions": 1,
        "completedSessions": 1,
        "totalDuration": 120,
        "averageSessionDuration": 120,
    }
    assert client.get(f"/getUserStats?userId={bob.id}").get_json()["totalSessions"] == 0
    assert client.get("/getUserStats").status_code == 400
