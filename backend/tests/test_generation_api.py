import pytest
from sqlalchemy import func, select

from app.models.activity_log import ActivityLog
from app.models.schedule_entry import ScheduleEntry
from app.models.timetable import TimetableStatus
from app.models.timetable_generation import GenerationRunState, TimetableGenerationRun
from app.services.generation_lock import TimetableLockManager


def entry_count(db):
    return db.execute(select(func.count()).select_from(ScheduleEntry)).scalar_one()


def test_dry_run_returns_preview_and_writes_nothing(client, build_school, db):
    seeded = build_school(days=("Monday", "Tuesday"), periods_per_day=2)
    timetable_id = seeded["timetable"].id

    response = client.post(
        f"/api/timetables/{timetable_id}/generate",
        json={"dry_run": True, "max_periods_per_teacher_per_day": 1},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["dry_run"] is True
    assert payload["filled_count"] == 2
    assert payload["gap_count"] == 2
    assert {entry["day"] for entry in payload["proposed_entries"]} == {"Monday", "Tuesday"}
    assert {gap["reason"] for gap in payload["gaps"]} == {"daily_limit_reached"}
    assert entry_count(db) == 0


def test_generate_queues_run_and_background_job_persists(client, build_school, db):
    seeded = build_school(days=("Monday",), periods_per_day=3, sections=("A", "B"), teachers=("T1", "T2"))
    timetable_id = seeded["timetable"].id

    response = client.post(f"/api/timetables/{timetable_id}/generate", json={})

    assert response.status_code == 202
    queued = response.json()
    assert queued["state"] == "pending"
    assert queued["max_periods_per_teacher_per_day"] == 3

    status_response = client.get(f"/api/generation-runs/{queued['id']}")
    assert status_response.status_code == 200
    run = status_response.json()
    assert run["state"] == "completed"
    assert run["attempts"] == 1
    assert run["summary"]["filled_count"] == 6
    assert len(run["summary"]["entry_ids"]) == 6
    assert entry_count(db) == 6

    entries = client.get(f"/api/timetables/{timetable_id}/entries").json()
    assert len(entries) == 6
    ordinals = [entry["start_time"] for entry in entries]
    assert ordinals == sorted(ordinals)


def test_entries_are_listed_in_calendar_order(client, build_school, db):
    seeded = build_school(days=("Wednesday", "Monday"), periods_per_day=2, teachers=("T1", "T2"))
    timetable_id = seeded["timetable"].id
    client.post(f"/api/timetables/{timetable_id}/generate", json={"max_periods_per_teacher_per_day": 2})

    entries = client.get(f"/api/timetables/{timetable_id}/entries").json()

    assert [(entry["day"], entry["start_time"]) for entry in entries] == [
        ("Monday", "09:00"),
        ("Monday", "10:00"),
        ("Wednesday", "09:00"),
        ("Wednesday", "10:00"),
    ]


def test_generate_rejects_invalid_daily_limit(client, build_school):
    seeded = build_school()

    response = client.post(
        f"/api/timetables/{seeded['timetable'].id}/generate",
        json={"max_periods_per_teacher_per_day": 0},
    )

    assert response.status_code == 422


def test_unknown_timetable_and_run_return_404(client):
    assert client.post("/api/timetables/missing/generate", json={}).status_code == 404
    assert client.get("/api/timetables/missing/entries").status_code == 404
    assert client.get("/api/generation-runs/missing").status_code == 404
    assert client.post("/api/generation-runs/missing/cancel").status_code == 404


def test_lock_contention_is_reported_as_conflict(client, build_school, session_factory, settings):
    seeded = build_school()
    timetable_id = seeded["timetable"].id
    manager = TimetableLockManager(session_factory, ttl_seconds=60, wait_seconds=0)

    with manager.hold(timetable_id):
        response = client.post(f"/api/timetables/{timetable_id}/generate", json={"dry_run": True})
        clear_response = client.delete(f"/api/timetables/{timetable_id}/entries")

    assert response.status_code == 409
    assert response.json() == {
        "message": "Timetable generation already in progress",
        "details": {"timetable_id": timetable_id},
    }
    assert clear_response.status_code == 409


def test_cancel_finished_run_is_conflict(client, build_school):
    seeded = build_school()
    queued = client.post(f"/api/timetables/{seeded['timetable'].id}/generate", json={}).json()

    response = client.post(f"/api/generation-runs/{queued['id']}/cancel")

    assert response.status_code == 409
    assert "completed" in response.json()["detail"]


def test_clear_entries_allows_regeneration(client, build_school, db):
    seeded = build_school(days=("Monday",), periods_per_day=2)
    timetable_id = seeded["timetable"].id
    client.post(f"/api/timetables/{timetable_id}/generate", json={"max_periods_per_teacher_per_day": 2})
    assert entry_count(db) == 2

    response = client.delete(f"/api/timetables/{timetable_id}/entries")

    assert response.status_code == 200
    assert response.json() == {"success": True, "deleted": 2}
    assert entry_count(db) == 0
    actions = set(db.execute(select(ActivityLog.action)).scalars())
    assert actions == {"timetable.generate", "timetable.entries.clear"}

    client.post(f"/api/timetables/{timetable_id}/generate", json={"max_periods_per_teacher_per_day": 2})
    assert entry_count(db) == 2


def test_published_timetable_entries_cannot_be_cleared(client, build_school, db):
    seeded = build_school()
    timetable = seeded["timetable"]
    timetable.status = TimetableStatus.published
    db.commit()

    response = client.delete(f"/api/timetables/{timetable.id}/entries")

    assert response.status_code == 409


def test_clear_entries_waits_for_generation_lock(client, build_school, db, session_factory):
    seeded = build_school(days=("Monday",), periods_per_day=2)
    timetable_id = seeded["timetable"].id
    client.post(f"/api/timetables/{timetable_id}/generate", json={"max_periods_per_teacher_per_day": 2})
    assert entry_count(db) == 2
    manager = TimetableLockManager(session_factory, ttl_seconds=60, wait_seconds=0)

    with manager.hold(timetable_id):
        response = client.delete(f"/api/timetables/{timetable_id}/entries")

    assert response.status_code == 409
    assert response.json()["details"] == {"timetable_id": timetable_id}
    assert entry_count(db) == 2
    assert client.delete(f"/api/timetables/{timetable_id}/entries").json() == {"success": True, "deleted": 2}


@pytest.mark.parametrize(
    "state",
    [GenerationRunState.dry_run_reporting, GenerationRunState.persisting, GenerationRunState.notifying],
)
def test_cancel_is_refused_once_persisting_can_no_longer_be_stopped(client, db, state):
    run = TimetableGenerationRun(timetable_id="tt-1", max_periods_per_teacher_per_day=3, state=state)
    db.add(run)
    db.commit()

    response = client.post(f"/api/generation-runs/{run.id}/cancel")

    assert response.status_code == 409
    db.refresh(run)
    assert run.cancel_requested is False


@pytest.mark.parametrize(
    "state",
    [GenerationRunState.pending, GenerationRunState.locking, GenerationRunState.allocating],
)
def test_cancel_is_accepted_before_persisting(client, db, state):
    run = TimetableGenerationRun(timetable_id="tt-1", max_periods_per_teacher_per_day=3, state=state)
    db.add(run)
    db.commit()

    response = client.post(f"/api/generation-runs/{run.id}/cancel")

    assert response.status_code == 200
    assert response.json()["cancel_requested"] is True
