from datetime import datetime, timedelta, timezone

import pytest

import db_store
import services
from errors import AuthorizationError, NotFoundError, ValidationError
from tests.conftest import CLIENT_ID, COACH_ID, OTHER_CLIENT_ID, OTHER_COACH_ID


@pytest.fixture
def first_log(program, squat_id):
    slot = db_store.list_program_workouts(program["id"])[0]
    prescribed_id = services.add_prescribed_exercise(COACH_ID, slot["id"], squat_id, sets=3, reps="5")
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")
    log = db_store.list_workout_logs_on([CLIENT_ID], "2024-01-01")[0]
    return {"id": log["id"], "prescribed_id": prescribed_id}


def test_detail_has_placeholder_for_every_prescribed_set(first_log):
    detail = services.get_workout_log(first_log["id"], CLIENT_ID)

    assert detail["program_workout_name"] == "Week 1 Day 1"
    assert detail["program_name"] == "Strength Block"
    assert detail["client_name"] == "Client One"
    assert detail["scheduled_date"] == "2024-01-01"
    [exercise] = detail["exercises"]
    assert exercise["exercise_name"] == "Back Squat"
    assert [s["set_number"] for s in exercise["set_logs"]] == [1, 2, 3]
    assert all(s["reps_completed"] is None for s in exercise["set_logs"])


def test_saved_sets_fill_their_slots(first_log):
    services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 2, "reps_completed": 5, "weight_kg": 102.5, "rpe": 8},
    ])

    sets = services.get_workout_log(first_log["id"], CLIENT_ID)["exercises"][0]["set_logs"]
    assert len(sets) == 3
    assert sets[0]["weight_kg"] is None
    assert sets[1]["weight_kg"] == 102.5
    assert sets[1]["rpe"] == 8
    assert sets[2]["reps_completed"] is None


def test_save_set_logs_is_a_full_replace(first_log):
    pid = first_log["prescribed_id"]
    services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": pid, "set_number": 1, "reps_completed": 5, "weight_kg": 100.0},
        {"prescribed_exercise_id": pid, "set_number": 2, "reps_completed": 5, "weight_kg": 100.0},
    ])
    saved = services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": pid, "set_number": 3, "reps_completed": 4, "weight_kg": 105.0},
    ])

    rows = db_store.list_set_logs(first_log["id"])
    assert saved == 1
    assert [(r["set_number"], r["weight_kg"]) for r in rows] == [(3, 105.0)]


def test_save_empty_list_clears_sets(first_log):
    services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 1, "reps_completed": 5},
    ])

    assert services.save_set_logs(first_log["id"], CLIENT_ID, []) == 0
    assert db_store.list_set_logs(first_log["id"]) == []


def test_coach_may_log_for_linked_client(first_log):
    services.save_set_logs(first_log["id"], COACH_ID, [
        {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 1, "reps_completed": 5},
    ])

    assert services.get_workout_log(first_log["id"], COACH_ID) is not None
    assert len(db_store.list_set_logs(first_log["id"])) == 1


def test_strangers_cannot_read_or_write(first_log):
    assert services.get_workout_log(first_log["id"], OTHER_COACH_ID) is None
    assert services.get_workout_log(first_log["id"], OTHER_CLIENT_ID) is None

    with pytest.raises(AuthorizationError):
        services.save_set_logs(first_log["id"], OTHER_COACH_ID, [])
    with pytest.raises(AuthorizationError):
        services.complete_workout(first_log["id"], OTHER_CLIENT_ID)

    assert db_store.get_workout_log(first_log["id"])["completed_at"] is None


def test_missing_workout_log(people):
    assert services.get_workout_log(9999, CLIENT_ID) is None
    with pytest.raises(NotFoundError):
        services.complete_workout(9999, CLIENT_ID)


def test_complete_workout_stamps_time_and_notes(first_log):
    now = datetime(2024, 1, 1, 18, 30, tzinfo=timezone.utc)

    completed_at = services.complete_workout(first_log["id"], CLIENT_ID, notes="  Felt strong ", now=now)

    log = db_store.get_workout_log(first_log["id"])
    assert completed_at == now.isoformat()
    assert log["completed_at"] == now.isoformat()
    assert log["notes"] == "Felt strong"


def test_completing_again_overwrites_timestamp_keeps_notes(first_log):
    first = datetime(2024, 1, 1, 18, tzinfo=timezone.utc)
    services.complete_workout(first_log["id"], CLIENT_ID, notes="Day one", now=first)
    services.complete_workout(first_log["id"], CLIENT_ID, now=first + timedelta(hours=2))

    log = db_store.get_workout_log(first_log["id"])
    assert log["completed_at"] == (first + timedelta(hours=2)).isoformat()
    assert log["notes"] == "Day one"

    services.complete_workout(first_log["id"], CLIENT_ID, notes=None, now=first + timedelta(hours=3))
    assert db_store.get_workout_log(first_log["id"])["notes"] is None


def test_client_views(first_log):
    services.complete_workout(
        first_log["id"], CLIENT_ID, notes="Done", now=datetime(2024, 1, 1, 19, tzinfo=timezone.utc)
    )

    today = services.todays_workouts(CLIENT_ID, "2024-01-01")
    assert [w["id"] for w in today] == [first_log["id"]]
    assert services.next_workout(CLIENT_ID, "2024-01-02")["scheduled_date"] == "2024-01-02"
    history = services.workout_history(CLIENT_ID)
    assert [w["notes"] for w in history] == ["Done"]
    assert services.recent_activity_with_notes(CLIENT_ID) == history
    assert services.last_activity(CLIENT_ID) == "2024-01-01T19:00:00+00:00"
    assert services.last_activity(OTHER_CLIENT_ID) is None


def test_removing_prescription_drops_its_sets(first_log):
    services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 1, "reps_completed": 5},
    ])

    services.remove_prescribed_exercise(COACH_ID, first_log["prescribed_id"])

    assert db_store.list_set_logs(first_log["id"]) == []
    assert services.get_workout_log(first_log["id"], CLIENT_ID)["exercises"] == []


def test_sets_must_target_this_workouts_prescriptions(first_log, program, squat_id):
    other_slot = db_store.list_program_workouts(program["id"])[1]
    elsewhere = services.add_prescribed_exercise(COACH_ID, other_slot["id"], squat_id)
    services.save_set_logs(first_log["id"], CLIENT_ID, [
        {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 1, "reps_completed": 5},
    ])

    for bad_id in (999999, elsewhere):
        with pytest.raises(ValidationError):
            services.save_set_logs(first_log["id"], CLIENT_ID, [
                {"prescribed_exercise_id": first_log["prescribed_id"], "set_number": 1},
                {"prescribed_exercise_id": bad_id, "set_number": 1},
            ])

    [kept] = db_store.list_set_logs(first_log["id"])
    assert kept["reps_completed"] == 5
