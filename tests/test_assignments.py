from datetime import date

import pytest

import db_store
import services
from errors import AuthorizationError, NotFoundError, ValidationError
from tests.conftest import CLIENT_ID, COACH_ID, OTHER_CLIENT_ID, OTHER_COACH_ID


def test_assignment_generates_one_log_per_slot(program):
    assignment_id = services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    logs = db_store.list_workout_logs_for_clients([CLIENT_ID])
    assert db_store.count_workout_logs_for_assignment(assignment_id) == 12
    assert len(logs) == 12
    assert all(log["completed_at"] is None for log in logs)
    assert all(log["assignment_id"] == assignment_id for log in logs)

    by_name = {log["program_workout_name"]: log["scheduled_date"] for log in logs}
    assert by_name["Week 1 Day 1"] == "2024-01-01"
    assert by_name["Week 1 Day 3"] == "2024-01-03"
    assert by_name["Week 2 Day 1"] == "2024-01-08"
    assert by_name["Week 4 Day 3"] == "2024-01-24"


def test_assignment_accepts_date_objects(program):
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], date(2024, 3, 4))

    first = services.next_workout(CLIENT_ID, "2024-01-01")
    assert first["scheduled_date"] == "2024-03-04"


def test_assigning_twice_creates_two_schedules(program):
    first = services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")
    second = services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    assert first != second
    assert len(db_store.list_workout_logs_for_clients([CLIENT_ID])) == 24
    assert len(services.todays_workouts(CLIENT_ID, "2024-01-01")) == 2


def test_assignment_requires_program_owner(program):
    db_store.link_client(OTHER_COACH_ID, CLIENT_ID, "2024-01-01T00:00:00+00:00")

    with pytest.raises(AuthorizationError):
        services.assign_program(OTHER_COACH_ID, CLIENT_ID, program["id"], "2024-01-01")
    with pytest.raises(NotFoundError):
        services.assign_program(COACH_ID, CLIENT_ID, 9999, "2024-01-01")

    assert db_store.list_workout_logs_for_clients([CLIENT_ID]) == []


def test_assignment_requires_active_client(program):
    with pytest.raises(AuthorizationError):
        services.assign_program(COACH_ID, OTHER_CLIENT_ID, program["id"], "2024-01-01")

    assert db_store.list_assignments_for_client(OTHER_CLIENT_ID) == []


def test_assignment_rejects_bad_start_date(program):
    with pytest.raises(ValidationError):
        services.assign_program(COACH_ID, CLIENT_ID, program["id"], "01/01/2024")


def test_client_program_summary_tracks_current_week(program):
    assert services.client_program_summary(CLIENT_ID, "2024-01-15") is None

    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    summary = services.client_program_summary(CLIENT_ID, "2024-01-15")
    assert summary == {"program_name": "Strength Block", "current_week": 3, "total_weeks": 4}
    assert services.client_program_summary(CLIENT_ID, "2024-05-01")["current_week"] == 4


def test_latest_assignment_wins_for_summary(program):
    later = services.create_program(COACH_ID, "Peaking", 2, 2)
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")
    services.assign_program(COACH_ID, CLIENT_ID, later["id"], "2024-02-01")

    summary = services.client_program_summary(CLIENT_ID, "2024-02-09")
    assert summary["program_name"] == "Peaking"
    assert summary["current_week"] == 2
    assert summary["total_weeks"] == 2


def test_coach_schedule_view_upcoming_then_past(program):
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    rows = services.list_workout_logs_for_client(COACH_ID, CLIENT_ID, "2024-01-09")

    dates = [r["scheduled_date"] for r in rows]
    assert dates[0] == "2024-01-09"
    assert dates[:3] == ["2024-01-09", "2024-01-10", "2024-01-15"]
    past = dates[-4:]
    assert past == ["2024-01-08", "2024-01-03", "2024-01-02", "2024-01-01"]
    assert len(rows) == 12


def test_coach_schedule_view_empty_without_link(program):
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    assert services.list_workout_logs_for_client(OTHER_COACH_ID, CLIENT_ID, "2024-01-09") == []


def test_client_detail_lists_assignments(program):
    services.assign_program(COACH_ID, CLIENT_ID, program["id"], "2024-01-01")

    detail = services.get_client_with_assignments(COACH_ID, CLIENT_ID)
    assert detail["client"]["name"] == "Client One"
    assert [a["program_name"] for a in detail["assignments"]] == ["Strength Block"]
    assert services.get_client_with_assignments(OTHER_COACH_ID, CLIENT_ID) is None
