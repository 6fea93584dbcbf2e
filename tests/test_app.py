import time
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.schemas import BinAssignment, User
from datastore.mock_firestore import MockDocumentStore
from models.records import Role
from services.monitor import MonitorService, build_default_monitor
from storage.mock_realtime import MockRealtimeDatabase


@pytest.fixture
def monitor(tmp_path, monkeypatch) -> Iterator[MonitorService]:
    monitors: List[MonitorService] = []

    def build_test_monitor() -> MonitorService:
        if not monitors:
            service = MonitorService(
                realtime_db=MockRealtimeDatabase(),
                store=MockDocumentStore(root_path=tmp_path / "store"),
                emptying_timeout_seconds=0.2,
            )
            service.store.users.add(
                User(id="u-1", first_name="Ana", last_name="Cruz", email="ana@example.com")
            )
            service.store.users.add(
                User(id="a-1", first_name="Ada", last_name="Admin", email="ada@example.com", role=Role.admin)
            )
            service.store.users.add(
                User(id="u-9", first_name="Old", last_name="Hand", email="old@example.com", is_deleted=True)
            )
            service.store.bin_assignments.add(BinAssignment(id="as-a", bin="bin-a", assignee=["u-1"]))
            monitors.append(service)
        return monitors[0]

    def cache_clear() -> None:
        while monitors:
            monitors.pop().shutdown()

    build_test_monitor.cache_clear = cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_monitor", build_test_monitor)
    monkeypatch.setattr("app.api.build_default_monitor", build_test_monitor)
    monkeypatch.setattr("services.monitor.build_default_monitor", build_test_monitor)

    yield build_test_monitor()

    cache_clear()


@pytest.fixture
def api_client(monitor: MonitorService) -> Iterator[TestClient]:
    app = create_app()
    with TestClient(app) as client:
        yield client


def test_lifespan_shuts_down_monitor_and_clears_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("MOCK_FIRESTORE_ROOT_PATH", str(tmp_path / "store"))
    from datastore.mock_firestore import build_default_store
    from storage.mock_realtime import build_default_realtime_db
    from settings import get_settings

    get_settings.cache_clear()
    build_default_store.cache_clear()
    build_default_realtime_db.cache_clear()
    app = create_app()

    try:
        with TestClient(app) as client:
            monitor_during = build_default_monitor()
            client.post("/bins/bin-a/telemetry", json={"distance(cm)": 51})
            assert monitor_during.realtime_db.listener_count("bin-a") == 1

        assert monitor_during.realtime_db.listener_count("bin-a") == 0
        monitor_after = build_default_monitor()
        assert monitor_after is not monitor_during
        monitor_after.shutdown()
    finally:
        build_default_monitor.cache_clear()
        build_default_store.cache_clear()
        build_default_realtime_db.cache_clear()
        get_settings.cache_clear()


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").status_code == 200


def test_push_telemetry_returns_level(api_client: TestClient) -> None:
    response = api_client.post("/bins/bin-a/telemetry", json={"distance(cm)": 51})

    assert response.status_code == 200
    assert response.json()["level"] == 50
    assert api_client.get("/bins/bin-a/level").json()["level"] == 50

    reported = api_client.post("/bins/bin-a/telemetry", json={"distance(cm)": 51, "trashLevel": 70})
    assert reported.json()["level"] == 70


def test_push_without_usable_fields_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/bins/bin-z/telemetry", json={"gps": {"latitude": 14.6}})

    assert response.status_code == 422


def test_unknown_bin_level_is_404(api_client: TestClient) -> None:
    assert api_client.get("/bins/nowhere/level").status_code == 404


def test_threshold_notifications_and_samples(api_client: TestClient, monitor: MonitorService) -> None:
    for level in [89, 90, 90, 95]:
        api_client.post("/bins/bin-a/telemetry", json={"trashLevel": level})

    notifications = api_client.get("/bins/bin-a/notifications").json()
    assert [item["trashLevel"] for item in notifications] == [95, 90]
    assert all(item["isRead"] is False for item in notifications)

    marked = api_client.post(f"/notifications/{notifications[0]['id']}/read")
    assert marked.status_code == 200
    assert marked.json()["isRead"] is True
    assert api_client.post("/notifications/missing/read").status_code == 404

    sample = monitor.store.trash_levels.scan()[0]
    day = sample.created_at.astimezone(monitor.zone).date().isoformat()
    series = api_client.get("/bins/bin-a/levels", params={"day": day}).json()
    assert [item["trashLevel"] for item in series] == [89]


def test_visible_bins_by_role(api_client: TestClient) -> None:
    for bin_id in ["bin-b", "bin-a"]:
        api_client.post(f"/bins/{bin_id}/telemetry", json={"distance(cm)": 80})

    assert api_client.get("/bins", params={"user_id": "a-1"}).json()["bins"] == ["bin-a", "bin-b"]
    assert api_client.get("/bins", params={"user_id": "u-1"}).json()["bins"] == ["bin-a"]
    assert api_client.get("/bins", params={"user_id": "ghost"}).status_code == 404
    assert api_client.get("/bins", params={"user_id": "u-9"}).status_code == 403


def test_emptying_flow_records_event_and_feeds_analytics(api_client: TestClient) -> None:
    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 80})

    started = api_client.post("/bins/bin-a/emptying", json={"user_id": "u-1"})
    assert started.status_code == 202
    assert started.json()["state"] == "awaiting_confirmation"
    assert started.json()["level_before"] == 80

    conflict = api_client.post("/bins/bin-a/emptying", json={"user_id": "u-1"})
    assert conflict.status_code == 409

    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 20})
    status = api_client.get("/bins/bin-a/emptying").json()
    assert status["state"] == "idle"
    assert status["outcome"] == "confirmed"
    assert status["volume"] == pytest.approx(74.133, abs=0.01)

    volumes = api_client.get("/analytics/bins", params={"window": "today"}).json()
    assert volumes["bins"][0]["bin"] == "bin-a"
    assert volumes["total"] == pytest.approx(74.133, abs=0.01)

    board = api_client.get("/analytics/leaderboard").json()
    assert board["top_performer"]["user_id"] == "u-1"
    assert board["top_performer"]["name"] == "Ana Cruz"

    stats = api_client.get("/analytics/users/u-1").json()
    assert stats["last_24_hours"] == pytest.approx(74.133, abs=0.01)
    assert stats["monthly"][0]["is_current_month"] is True


def test_emptying_times_out_without_level_change(api_client: TestClient) -> None:
    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 60})
    api_client.post("/bins/bin-a/emptying", json={"user_id": "u-1"})

    deadline = time.monotonic() + 3
    status = api_client.get("/bins/bin-a/emptying").json()
    while status["state"] != "idle" and time.monotonic() < deadline:
        time.sleep(0.05)
        status = api_client.get("/bins/bin-a/emptying").json()

    assert status["outcome"] == "timed_out"
    assert api_client.get("/analytics/bins").json()["bins"] == []


def test_emptying_cancel_and_error_mapping(api_client: TestClient) -> None:
    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 60})

    assert api_client.post("/bins/nowhere/emptying", json={"user_id": "u-1"}).status_code == 404
    assert api_client.post("/bins/bin-a/emptying", json={"user_id": "ghost"}).status_code == 404
    assert api_client.post("/bins/bin-a/emptying", json={"user_id": "u-9"}).status_code == 403
    assert api_client.get("/bins/bin-a/emptying").status_code == 404
    assert api_client.delete("/bins/bin-a/emptying").status_code == 404

    api_client.post("/bins/bin-a/emptying", json={"user_id": "u-1"})
    cancelled = api_client.delete("/bins/bin-a/emptying")
    assert cancelled.status_code == 200
    assert cancelled.json()["outcome"] == "cancelled"


def test_analytics_rejects_unknown_window(api_client: TestClient) -> None:
    assert api_client.get("/analytics/bins", params={"window": "decade"}).status_code == 422


def test_daily_history_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/analytics/history", params={"day": "2024-05-12"})

    assert response.status_code == 200
    assert response.json()["total"] == 0
    assert response.json()["entries"] == []


def test_assignment_and_user_management(api_client: TestClient) -> None:
    assigned = api_client.put("/assignments/as-a/assignees/u-2")
    assert assigned.json()["assignee"] == ["u-1", "u-2"]

    removed = api_client.delete("/assignments/as-a/assignees/u-1")
    assert removed.json()["assignee"] == ["u-2"]
    assert api_client.put("/assignments/missing/assignees/u-1").status_code == 404

    deleted = api_client.delete("/users/u-1")
    assert deleted.status_code == 200
    assert deleted.json()["isDeleted"] is True
    assert api_client.delete("/users/ghost").status_code == 404


def test_daily_history_filters_by_collector_and_bin(api_client: TestClient, monitor: MonitorService) -> None:
    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 80})
    api_client.post("/bins/bin-a/emptying", json={"user_id": "u-1"})
    api_client.post("/bins/bin-a/telemetry", json={"trashLevel": 20})
    event = monitor.store.emptying_events.scan()[0]
    day = event.emptied_at.astimezone(monitor.zone).date().isoformat()

    def history(**params: str) -> dict:
        response = api_client.get("/analytics/history", params={"day": day, **params})
        assert response.status_code == 200
        return response.json()

    assert [entry["id"] for entry in history()["entries"]] == [event.id]
    assert [entry["id"] for entry in history(collector="Ana Cruz", bin="bin-a")["entries"]] == [event.id]
    assert history(bin="bin-b")["entries"] == []
    assert history(collector="Ada Admin")["total"] == 0
