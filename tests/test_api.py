"""Tests for the HTTP API."""

import sqlite3
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from aligner.config import Settings
from aligner.main import create_app
from aligner.tracker.timer import to_epoch_ms


def ms(*args) -> int:
    return to_epoch_ms(datetime(*args))


@pytest.fixture
def client(tmp_path, database, tracker):
    config = Settings(
        db_path=str(tmp_path / "aligner.db"),
        state_path=str(tmp_path / "timer-state.json"),
        tick_interval_seconds=60,
    )
    app = create_app(config=config, database=database, tracker=tracker)
    with TestClient(app) as client:
        yield client


class TestTimerEndpoints:
    def test_status(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        assert response.json()["ticker_running"] is True

    def test_initial_timer(self, client):
        body = client.get("/api/timer").json()

        assert body["is_out"] is False
        assert body["budget_seconds"] == 7200
        assert body["seconds_remaining"] == 7200
        assert body["logical_date"] == "2026-06-10"

    def test_toggle_out_and_back_with_cleaning(self, client, clock):
        assert client.post("/api/timer/toggle").json()["is_out"] is True

        clock.advance(minutes=30)
        body = client.post("/api/timer/toggle", json={"brushing": True}).json()

        assert body["is_out"] is False
        assert body["seconds_consumed_today"] == 1800
        [session] = client.get("/api/sessions").json()
        assert session["brushing"] is True

    def test_tick_reports_overtime(self, client, clock):
        client.put("/api/settings", json={"daily_goal_hours": 23, "daily_goal_minutes": 30})
        client.post("/api/timer/toggle")
        clock.advance(minutes=40)

        body = client.post("/api/timer/tick").json()

        assert body["seconds_remaining"] == -600
        assert body["is_overtime"] is True

    def test_partial_settings_update(self, client):
        body = client.put("/api/settings", json={"daily_goal_minutes": 30}).json()

        assert body["daily_goal_hours"] == 22
        assert body["daily_goal_minutes"] == 30
        assert body["budget_seconds"] == 5400

    def test_goal_over_a_day_rejected(self, client):
        response = client.put(
            "/api/settings", json={"daily_goal_hours": 24, "daily_goal_minutes": 30}
        )

        assert response.status_code == 400


class TestSessionEndpoints:
    def test_backfill_updates_today(self, client):
        response = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 8, 45)},
        )

        assert response.status_code == 201
        assert response.json()["duration_seconds"] == 2700
        assert client.get("/api/timer").json()["seconds_consumed_today"] == 2700

    def test_future_session_rejected(self, client):
        response = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 13, 0), "end_time": ms(2026, 6, 10, 14, 0)},
        )

        assert response.status_code == 400
        assert "future" in response.json()["detail"]

    def test_backfill_while_out_rejected(self, client):
        client.post("/api/timer/toggle")

        response = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 9, 0)},
        )

        assert response.status_code == 400

    def test_overlap_rejected(self, client):
        client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 9, 0)},
        )

        response = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 30), "end_time": ms(2026, 6, 10, 9, 30)},
        )

        assert response.status_code == 400

    def test_edit_and_delete(self, client):
        created = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 9, 0)},
        ).json()

        edited = client.put(
            f"/api/sessions/{created['id']}",
            json={
                "start_time": ms(2026, 6, 10, 8, 30),
                "end_time": ms(2026, 6, 10, 9, 0),
                "flossing": True,
            },
        ).json()
        assert edited["duration_seconds"] == 1800
        assert edited["flossing"] is True
        assert client.get("/api/timer").json()["seconds_consumed_today"] == 1800

        assert client.delete(f"/api/sessions/{created['id']}").status_code == 200
        assert client.get("/api/sessions").json() == []
        assert client.get("/api/timer").json()["seconds_consumed_today"] == 0

    def test_failed_edit_keeps_session_and_budget(self, client, database):
        created = client.post(
            "/api/sessions",
            json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 8, 30)},
        ).json()
        with sqlite3.connect(database.db_path) as conn:
            conn.execute("""
                CREATE TRIGGER reject_cleaning BEFORE UPDATE OF brushing ON sessions
                BEGIN SELECT RAISE(ABORT, 'read only'); END
            """)
        conn.close()

        response = client.put(
            f"/api/sessions/{created['id']}",
            json={
                "start_time": ms(2026, 6, 10, 8, 0),
                "end_time": ms(2026, 6, 10, 9, 0),
                "brushing": True,
            },
        )

        assert response.status_code == 503
        [session] = client.get("/api/sessions").json()
        assert session["duration_seconds"] == 1800
        assert session["brushing"] is False
        assert client.get("/api/timer").json()["seconds_consumed_today"] == 1800

    def test_missing_session_is_404(self, client):
        assert client.delete("/api/sessions/99").status_code == 404

    def test_history_and_stats(self, client):
        for day in (8, 9):
            client.post(
                "/api/sessions",
                json={"start_time": ms(2026, 6, day, 8, 0), "end_time": ms(2026, 6, day, 9, 0)},
            )

        assert [s["date"] for s in client.get("/api/sessions/history").json()] == [
            "2026-06-09",
            "2026-06-08",
        ]
        week = client.get("/api/stats/week").json()
        assert week["total_seconds"] == 7200
        assert week["days_with_data"] == 2
        assert client.get("/api/stats/day", params={"day": "2026-06-08"}).json()[
            "total_seconds"
        ] == 3600
        assert client.get("/api/stats/month").json()["average_seconds"] == 3600

    def test_invalid_month(self, client):
        assert client.get("/api/stats/month", params={"month": 13}).status_code == 400


class TestCleaningEndpoints:
    def test_task_lifecycle(self, client, clock):
        response = client.post(
            "/api/cleaning-tasks",
            json={"name": "Morning", "scheduled_time": "08:00", "requires_brushing": True},
        )
        assert response.status_code == 201
        task = response.json()

        status = client.get("/api/cleaning-status").json()
        assert status["total_tasks"] == 1
        assert status["all_tasks_completed"] is False

        client.post("/api/timer/toggle")
        clock.advance(minutes=10)
        client.post(
            "/api/timer/toggle", json={"brushing": True, "task_id": task["id"]}
        )
        assert client.get("/api/cleaning-status").json()["all_tasks_completed"] is True

        client.delete(f"/api/cleaning-tasks/{task['id']}")
        assert client.get("/api/cleaning-tasks").json() == []
        assert len(client.get("/api/cleaning-tasks", params={"include_inactive": True}).json()) == 1

    def test_invalid_task_rejected(self, client):
        response = client.post(
            "/api/cleaning-tasks",
            json={"name": "Morning", "scheduled_time": "8am", "requires_brushing": True},
        )

        assert response.status_code == 400

    def test_status_range_order(self, client):
        response = client.get(
            "/api/cleaning-status/range", params={"start": "2026-06-10", "end": "2026-06-09"}
        )

        assert response.status_code == 400


class TestPlanEndpoints:
    def test_setup_shift_and_current(self, client):
        plan = client.post(
            "/api/plan",
            json={"upper_count": 5, "lower_count": 3, "days_per_tray": 14, "start_date": "2026-01-01"},
        ).json()
        assert [t["start_date"] for t in plan["upper_trays"]][:3] == [
            "2026-01-01",
            "2026-01-15",
            "2026-01-29",
        ]

        plan = client.put(
            "/api/plan/trays", json={"is_upper": True, "index": 2, "new_date": "2026-02-01"}
        ).json()
        assert plan["upper_trays"][4]["start_date"] == "2026-03-01"
        assert plan["lower_trays"][2]["start_date"] == "2026-01-29"

        plan = client.put("/api/plan/current", json={"is_upper": False, "tray_number": 2}).json()
        assert plan["current_lower_tray"] == 2
        assert [t["is_past"] for t in plan["lower_trays"]] == [True, False, False]
        assert [t["is_current"] for t in plan["lower_trays"]] == [False, True, False]
        assert plan["upper_trays"][0]["is_current"] is True

    def test_empty_plan_rejected(self, client):
        response = client.post(
            "/api/plan",
            json={"upper_count": 0, "lower_count": 0, "days_per_tray": 14, "start_date": "2026-01-01"},
        )

        assert response.status_code == 400


def test_reset_deletes_data(client):
    client.post(
        "/api/sessions",
        json={"start_time": ms(2026, 6, 10, 8, 0), "end_time": ms(2026, 6, 10, 9, 0)},
    )
    client.post(
        "/api/cleaning-tasks",
        json={"name": "Morning", "scheduled_time": "08:00", "requires_brushing": True},
    )

    assert client.post("/api/reset").status_code == 200
    assert client.get("/api/sessions/history").json() == []
    assert client.get("/api/cleaning-tasks", params={"include_inactive": True}).json() == []
    assert client.get("/api/timer").json()["seconds_consumed_today"] == 0
