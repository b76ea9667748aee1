from __future__ import annotations

from uuid import uuid4

from fastapi import HTTPException

BABY_ID = str(uuid4())


def _feeding_row(payload):
    return {"id": str(uuid4()), **payload}


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_feeding_timer_flow(client, fake_supabase, clock, scheduler) -> None:
    idle = client.get("/api/v1/feedings/timer").json()
    assert idle["running"] is False

    started = client.post("/api/v1/feedings/timer/start", json={"baby_id": BABY_ID})
    assert started.status_code == 200
    assert started.json()["running"] is True
    assert len(scheduler.live) == 1

    client.post("/api/v1/feedings/timer/sides/left/toggle")
    clock.advance(90)
    client.post("/api/v1/feedings/timer/sides/left/toggle")
    client.post("/api/v1/feedings/timer/sides/right/toggle")
    clock.advance(110)

    snapshot = client.get("/api/v1/feedings/timer").json()
    assert snapshot["left_seconds"] == 90
    assert snapshot["right_seconds"] == 110
    assert snapshot["right_active"] is True
    assert snapshot["elapsed_seconds"] == 200
    assert snapshot["elapsed_label"] == "00:00"

    scheduler.fire()
    assert client.get("/api/v1/feedings/timer").json()["elapsed_label"] == "03:20"

    fake_supabase.insert_queue["feeding_records"] = [
        [
            {
                "id": "feed-1",
                "baby_id": BABY_ID,
                "start_time": "2025-03-01T08:00:00+00:00",
                "end_time": "2025-03-01T08:03:20+00:00",
                "duration": 200,
                "left_duration": 90,
                "right_duration": 110,
                "note": "good feed",
                "feeding_type": "breast",
            }
        ]
    ]
    saved = client.post("/api/v1/feedings/timer/stop", json={"note": "good feed"})
    assert saved.status_code == 200
    assert saved.json()["id"] == "feed-1"

    ((_, _, payload, _),) = fake_supabase.calls_for("insert", "feeding_records")
    assert (payload["left_duration"], payload["right_duration"], payload["duration"]) == (90, 110, 200)
    assert client.get("/api/v1/feedings/timer").json()["running"] is False
    assert scheduler.live == []


def test_toggle_before_start_conflicts(client) -> None:
    resp = client.post("/api/v1/feedings/timer/sides/both/toggle")
    assert resp.status_code == 409


def test_unknown_side_is_rejected(client) -> None:
    client.post("/api/v1/feedings/timer/start", json={})
    resp = client.post("/api/v1/feedings/timer/sides/middle/toggle")
    assert resp.status_code == 422


def test_zero_duration_stop_refused(client, fake_supabase) -> None:
    client.post("/api/v1/feedings/timer/start", json={"baby_id": BABY_ID})
    resp = client.post("/api/v1/feedings/timer/stop", json={})
    assert resp.status_code == 400
    assert fake_supabase.calls_for("insert") == []
    assert client.get("/api/v1/feedings/timer").json()["running"] is True


def test_failed_stop_keeps_timer_running(client, fake_supabase, clock) -> None:
    client.post("/api/v1/feedings/timer/start", json={"baby_id": BABY_ID})
    clock.advance(120)
    fake_supabase.fail_with = HTTPException(status_code=503, detail="Supabase insert failed")

    resp = client.post("/api/v1/feedings/timer/stop", json={})

    assert resp.status_code == 503
    state = client.get("/api/v1/feedings/timer").json()
    assert state["running"] is True
    assert state["elapsed_seconds"] == 120
    assert state["saving"] is False


def test_sleep_flow(client, fake_supabase, clock) -> None:
    open_row = {
        "id": "sleep-1",
        "baby_id": BABY_ID,
        "start_time": "2025-03-01T08:00:00+00:00",
        "end_time": None,
        "duration": None,
        "note": None,
    }
    fake_supabase.insert_queue["sleep_records"] = [[open_row]]
    started = client.post(f"/api/v1/sleep/{BABY_ID}/start", json={"baby_name": "Mia"})
    assert started.status_code == 200

    again = client.post(f"/api/v1/sleep/{BABY_ID}/start", json={})
    assert again.status_code == 409
    assert len(fake_supabase.calls_for("insert", "sleep_records")) == 1

    clock.advance(7200)
    fake_supabase.select_queue["sleep_records"] = [[{**open_row, "baby_profiles": {"name": "Mia"}}]]
    statuses = client.get("/api/v1/sleep", params={"refresh": True}).json()
    assert statuses == [
        {
            "baby_id": BABY_ID,
            "baby_name": "Mia",
            "is_sleeping": True,
            "start_time": "2025-03-01T08:00:00Z",
            "record_id": "sleep-1",
            "elapsed_seconds": 7200,
            "elapsed_label": "2h",
            "note": "",
        }
    ]

    fake_supabase.update_queue["sleep_records"] = [
        [{**open_row, "end_time": "2025-03-01T10:00:00+00:00", "duration": 7200}]
    ]
    ended = client.post(f"/api/v1/sleep/{BABY_ID}/end", json={})
    assert ended.status_code == 200
    assert ended.json()["duration"] == 7200
    ((_, _, payload, params),) = fake_supabase.calls_for("update", "sleep_records")
    assert payload["duration"] == 7200
    assert params["id"] == "eq.sleep-1"

    assert client.get("/api/v1/sleep").json() == []


def test_sleep_end_when_awake(client) -> None:
    resp = client.post(f"/api/v1/sleep/{BABY_ID}/end", json={})
    assert resp.status_code == 409


def test_sleep_requires_valid_baby_id(client) -> None:
    resp = client.post("/api/v1/sleep/not-a-baby/start", json={})
    assert resp.status_code == 400


def test_analytics_summary(client, fake_supabase) -> None:
    fake_supabase.select_queue["feeding_records"] = [
        [
            {
                "id": "f1",
                "start_time": "2025-03-01T07:00:00+00:00",
                "end_time": "2025-03-01T07:10:00+00:00",
                "duration": 600,
                "feeding_type": "breast",
            }
        ]
    ]
    resp = client.get("/api/v1/analytics/summary", params={"days": 7})
    assert resp.status_code == 200
    body = resp.json()
    assert body["window_days"] == 7
    assert len(body["feeding"]) == 7
    assert body["feeding"][-1] == {
        "date": "2025-03-01",
        "count": 1,
        "total_minutes": 10,
        "avg_minutes": 10.0,
        "bottle_total_ml": 0,
        "bottle_avg_ml": 0,
    }
    assert body["totals"]["sleep"]["total"] == 0


def test_analytics_rejects_unknown_timezone(client) -> None:
    resp = client.get("/api/v1/analytics/summary", params={"timezone": "Mars/Olympus"})
    assert resp.status_code == 400


def _open_sleep_row(**extra):
    return {
        "id": "sleep-1",
        "baby_id": BABY_ID,
        "start_time": "2025-03-01T08:00:00+00:00",
        "end_time": None,
        "duration": None,
        "note": None,
        **extra,
    }


def test_sleep_start_rejected_when_backend_has_open_record(client, fake_supabase) -> None:
    fake_supabase.select_queue["sleep_records"] = [[_open_sleep_row()]]

    resp = client.post(f"/api/v1/sleep/{BABY_ID}/start", json={})

    assert resp.status_code == 409
    assert fake_supabase.calls_for("insert", "sleep_records") == []


def test_sleep_end_closes_record_opened_before_restart(client, fake_supabase, clock) -> None:
    fake_supabase.select_queue["sleep_records"] = [[_open_sleep_row()]]
    fake_supabase.update_queue["sleep_records"] = [
        [_open_sleep_row(end_time="2025-03-01T08:30:00+00:00", duration=1800)]
    ]
    clock.advance(1800)

    resp = client.post(f"/api/v1/sleep/{BABY_ID}/end", json={})

    assert resp.status_code == 200
    ((_, _, payload, params),) = fake_supabase.calls_for("update", "sleep_records")
    assert params["id"] == "eq.sleep-1"
    assert payload["duration"] == 1800


def test_feeding_label_advances_with_ticker(client, clock, scheduler) -> None:
    client.post("/api/v1/feedings/timer/start", json={"baby_id": BABY_ID})
    clock.advance(5)
    assert client.get("/api/v1/feedings/timer").json()["elapsed_label"] == "00:00"

    scheduler.fire()
    assert client.get("/api/v1/feedings/timer").json()["elapsed_label"] == "00:05"


def test_sleep_label_advances_with_ticker(client, fake_supabase, clock, scheduler) -> None:
    fake_supabase.insert_queue["sleep_records"] = [[_open_sleep_row()]]
    client.post(f"/api/v1/sleep/{BABY_ID}/start", json={})
    (status,) = client.get("/api/v1/sleep").json()
    assert status["elapsed_label"] == "0s"

    clock.advance(65)
    (status,) = client.get("/api/v1/sleep").json()
    assert status["elapsed_seconds"] == 65
    assert status["elapsed_label"] == "0s"

    scheduler.fire()
    (status,) = client.get("/api/v1/sleep").json()
    assert status["elapsed_label"] == "1m 5s"
    assert len(fake_supabase.calls_for("select", "sleep_records")) == 1


def test_finished_sessions_are_released(client, fake_supabase, auth, clock) -> None:
    registry = client.app.state.sessions
    client.post("/api/v1/feedings/timer/start", json={"baby_id": BABY_ID})
    running = registry.feeding(auth)
    clock.advance(60)
    fake_supabase.insert_queue["feeding_records"] = [
        [
            _feeding_row(
                {
                    "start_time": "2025-03-01T08:00:00+00:00",
                    "end_time": "2025-03-01T08:01:00+00:00",
                    "duration": 60,
                }
            )
        ]
    ]

    assert client.post("/api/v1/feedings/timer/stop", json={}).status_code == 200
    assert registry.feeding(auth) is not running
    assert client.get("/api/v1/feedings/timer").json()["running"] is False


def test_release_keeps_sessions_with_work_in_progress(client, auth, clock) -> None:
    registry = client.app.state.sessions
    feeding = registry.feeding(auth)
    feeding.start(clock(), baby_id=BABY_ID)
    sleep = registry.sleep(auth)

    registry.release(auth)

    assert registry.feeding(auth) is feeding
    assert registry.sleep(auth) is not sleep
