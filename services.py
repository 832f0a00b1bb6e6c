from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

import pandas as pd

import db_store as db
from errors import NotFoundError, ValidationError
from mailer import build_invite_link, send_invite_email
from schedule import (
    current_week,
    expand_schedule,
    first_upcoming,
    is_recent,
    partition_by_date,
    slot_grid,
    to_date,
    week_start_sunday,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()

INVITE_TOKEN_BYTES = 24

MAX_SETS = 20
MAX_REST_SECONDS = 3600


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _log_summary(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "client_id": row["client_id"],
        "assignment_id": row["assignment_id"],
        "program_workout_id": row["program_workout_id"],
        "scheduled_date": row["scheduled_date"],
        "completed_at": row["completed_at"],
        "notes": row["notes"],
        "program_workout_name": row.get("program_workout_name") or "Workout",
        "program_name": row.get("program_name") or "Program",
    }


# -----------------------------
# Exercise catalog
# -----------------------------
def list_visible_exercises(coach_id: str) -> list[dict[str, Any]]:
    return db.list_visible_exercises(coach_id)


def create_exercise(coach_id: str, name: str, category: str) -> dict[str, Any]:
    name_c = _clean(name)
    category_c = (_clean(category) or "").lower()
    if not name_c:
        raise ValidationError("Exercise name is required.")
    if not category_c:
        raise ValidationError("Category is required.")
    if category_c not in db.EXERCISE_CATEGORIES:
        raise ValidationError("Invalid category.")
    return db.insert_exercise(coach_id, name_c, category_c)


# -----------------------------
# Programs
# -----------------------------
def create_program(
    coach_id: str,
    name: str,
    duration_weeks: int,
    days_per_week: int,
    description: Optional[str] = None,
) -> dict[str, Any]:
    name_c = _clean(name)
    if not name_c:
        raise ValidationError("Program name is required.")
    slots = slot_grid(duration_weeks, days_per_week)

    program_id = db.create_program_with_slots(
        coach_id,
        name_c,
        _clean(description),
        int(duration_weeks),
        int(days_per_week),
        slots,
    )
    logger.info("Created program %s for coach %s with %d slots", program_id, coach_id, len(slots))
    return db.get_program(program_id)


def list_programs(coach_id: str) -> list[dict[str, Any]]:
    return db.list_programs(coach_id)


def get_program_with_workouts(coach_id: str, program_id: int) -> Optional[dict[str, Any]]:
    program = db.get_program(program_id)
    if program is None or program["coach_id"] != coach_id:
        return None

    workouts = db.list_program_workouts(program_id)
    prescribed = db.list_prescribed_for_workouts([w["id"] for w in workouts])
    by_workout: dict[int, list[dict[str, Any]]] = {}
    for p in prescribed:
        p["exercise_name"] = p.get("exercise_name") or "Exercise"
        by_workout.setdefault(p["program_workout_id"], []).append(p)

    return {
        "program": program,
        "workouts": [{**w, "exercises": by_workout.get(w["id"], [])} for w in workouts],
    }


def update_program(
    coach_id: str,
    program_id: int,
    name: Optional[str] = None,
    description: Any = _UNSET,
) -> None:
    if name is not None and not _clean(name):
        raise ValidationError("Program name is required.")
    clear = description is not _UNSET and _clean(description) is None
    db.update_program_for_user(
        coach_id,
        program_id,
        _clean(name),
        None if description is _UNSET else _clean(description),
        clear_description=clear,
    )


def delete_program(coach_id: str, program_id: int) -> dict[str, int]:
    counts = db.delete_program_for_user(coach_id, program_id)
    logger.info("Deleted program %s (%s)", program_id, counts)
    return counts


def update_program_workout(
    coach_id: str,
    workout_id: int,
    name: Optional[str] = None,
    notes: Any = _UNSET,
) -> None:
    if name is not None and not _clean(name):
        raise ValidationError("Workout name is required.")
    clear = notes is not _UNSET and _clean(notes) is None
    db.update_program_workout_for_user(
        coach_id,
        workout_id,
        _clean(name),
        None if notes is _UNSET else _clean(notes),
        clear_notes=clear,
    )


def add_prescribed_exercise(
    coach_id: str,
    workout_id: int,
    exercise_id: int,
    sets: int = 3,
    reps: str = "10",
    intensity_value: Optional[float] = None,
    intensity_type: Optional[str] = None,
    rest_seconds: Optional[int] = None,
    notes: Optional[str] = None,
) -> int:
    if not 1 <= int(sets) <= MAX_SETS:
        raise ValidationError(f"Sets must be 1-{MAX_SETS}.")
    if rest_seconds is not None and not 0 <= int(rest_seconds) <= MAX_REST_SECONDS:
        raise ValidationError(f"Rest must be 0-{MAX_REST_SECONDS} seconds.")
    return db.add_prescribed_exercise_for_user(
        coach_id,
        workout_id,
        exercise_id,
        int(sets),
        _clean(reps) or "10",
        intensity_value,
        _clean(intensity_type),
        None if rest_seconds is None else int(rest_seconds),
        _clean(notes),
    )


def remove_prescribed_exercise(coach_id: str, prescribed_id: int) -> None:
    db.remove_prescribed_exercise_for_user(coach_id, prescribed_id)


# -----------------------------
# Assignment + schedule generation
# -----------------------------
def assign_program(coach_id: str, client_id: str, program_id: int, start_date: date | str) -> int:
    """
    Bind a program to a client and generate one dated workout log per slot:
      scheduled_date = start_date + (week - 1) * 7 + (day - 1) days
    Not idempotent: assigning twice yields two independent schedules.
    """
    start = to_date(start_date)
    slots = db.list_program_workouts(program_id)
    schedule = expand_schedule(start, [(s["id"], s["week_number"], s["day_number"]) for s in slots])

    assignment_id = db.create_assignment_for_user(coach_id, client_id, program_id, start.isoformat(), schedule)
    logger.info(
        "Assigned program %s to client %s from %s (%d workouts)",
        program_id, client_id, start.isoformat(), len(schedule),
    )
    return assignment_id


# -----------------------------
# Workout log store
# -----------------------------
def _empty_set(set_number: int) -> dict[str, Any]:
    return {"set_number": set_number, "reps_completed": None, "weight_kg": None, "rpe": None, "notes": None}


def get_workout_log(workout_log_id: int, requester_id: str) -> Optional[dict[str, Any]]:
    """
    Workout detail for the log-workout page, or None when missing or not
    visible to the requester. Every prescribed exercise carries exactly
    `sets` set logs; unsaved sets come back as empty placeholders.
    """
    log = db.get_workout_log(workout_log_id)
    if log is None or not db.can_access_client(requester_id, log["client_id"]):
        return None

    client = db.get_user(log["client_id"])
    prescribed = db.list_prescribed_for_workouts([log["program_workout_id"]])

    saved: dict[int, dict[int, dict[str, Any]]] = {}
    for s in db.list_set_logs(workout_log_id):
        per_exercise = saved.setdefault(s["prescribed_exercise_id"], {})
        per_exercise.setdefault(s["set_number"], {
            "set_number": s["set_number"],
            "reps_completed": s["reps_completed"],
            "weight_kg": s["weight_kg"],
            "rpe": s["rpe"],
            "notes": s["notes"],
        })

    exercises = []
    for p in prescribed:
        existing = saved.get(p["id"], {})
        exercises.append({
            "prescribed_id": p["id"],
            "exercise_id": p["exercise_id"],
            "exercise_name": p.get("exercise_name") or "Exercise",
            "sets": p["sets"],
            "reps": p["reps"],
            "intensity_value": p["intensity_value"],
            "intensity_type": p["intensity_type"],
            "rest_seconds": p["rest_seconds"],
            "notes": p["notes"],
            "set_logs": [existing.get(n) or _empty_set(n) for n in range(1, int(p["sets"]) + 1)],
        })

    detail = _log_summary(log)
    detail["program_id"] = log.get("program_id")
    detail["client_name"] = (client or {}).get("name") or "Client"
    detail["exercises"] = exercises
    return detail


def save_set_logs(workout_log_id: int, requester_id: str, entries: Sequence[dict[str, Any]]) -> int:
    rows = [
        {
            "prescribed_exercise_id": e["prescribed_exercise_id"],
            "set_number": e["set_number"],
            "reps_completed": e.get("reps_completed"),
            "weight_kg": e.get("weight_kg"),
            "rpe": e.get("rpe"),
            "notes": _clean(e.get("notes")),
        }
        for e in entries
    ]
    db.replace_set_logs_for_user(requester_id, workout_log_id, rows)
    return len(rows)


def complete_workout(
    workout_log_id: int,
    requester_id: str,
    notes: Any = _UNSET,
    now: Optional[datetime] = None,
) -> str:
    completed_at = (now or _utcnow()).isoformat()
    set_notes = notes is not _UNSET
    db.mark_completed_for_user(
        requester_id,
        workout_log_id,
        completed_at,
        _clean(notes) if set_notes else None,
        set_notes,
    )
    logger.info("Workout log %s completed by %s", workout_log_id, requester_id)
    return completed_at


# -----------------------------
# Schedule views
# -----------------------------
def list_workout_logs_for_client(coach_id: str, client_id: str, today: date | str) -> list[dict[str, Any]]:
    """Coach view: upcoming (earliest first) followed by past (most recent first)."""
    if not db.has_coach_link(coach_id, client_id):
        return []
    upcoming, past = partition_by_date(
        [_log_summary(r) for r in db.list_workout_logs_for_clients([client_id])], today
    )
    return upcoming + past


def todays_workouts(client_id: str, today: date | str) -> list[dict[str, Any]]:
    return [_log_summary(r) for r in db.list_workout_logs_on([client_id], to_date(today).isoformat())]


def workout_history(client_id: str, limit: int = 50) -> list[dict[str, Any]]:
    return [_log_summary(r) for r in db.list_completed_workout_logs([client_id], limit)]


def next_workout(client_id: str, today: date | str) -> Optional[dict[str, Any]]:
    return first_upcoming([_log_summary(r) for r in db.list_workout_logs_for_clients([client_id])], today)


def recent_activity_with_notes(client_id: str, limit: int = 5) -> list[dict[str, Any]]:
    return workout_history(client_id, limit)


def last_activity(client_id: str) -> Optional[str]:
    rows = db.list_completed_workout_logs([client_id], limit=1)
    return rows[0]["completed_at"] if rows else None


# -----------------------------
# Dashboards
# -----------------------------
def _latest_assignment_by_client(client_ids: Sequence[str]) -> pd.DataFrame:
    frame = pd.DataFrame(
        db.active_assignments_for_clients(client_ids),
        columns=["id", "client_id", "program_id", "start_date", "program_name", "duration_weeks"],
    )
    # rows arrive newest start_date first
    return frame.drop_duplicates(subset="client_id", keep="first").set_index("client_id")


def _last_completion_by_client(client_ids: Sequence[str]) -> dict[str, str]:
    frame = pd.DataFrame(db.list_completed_workout_logs(client_ids), columns=["client_id", "completed_at"])
    if frame.empty:
        return {}
    frame["ts"] = pd.to_datetime(frame["completed_at"], utc=True, format="ISO8601")
    latest = frame.sort_values("ts", ascending=False).drop_duplicates(subset="client_id", keep="first")
    return dict(zip(latest["client_id"], latest["completed_at"]))


def client_program_summary(client_id: str, today: date | str) -> Optional[dict[str, Any]]:
    latest = _latest_assignment_by_client([client_id])
    if client_id not in latest.index:
        return None
    row = latest.loc[client_id]
    total = max(1, int(row["duration_weeks"]) if pd.notna(row["duration_weeks"]) else 4)
    return {
        "program_name": row["program_name"] if pd.notna(row["program_name"]) else "Program",
        "current_week": current_week(row["start_date"], total, today),
        "total_weeks": total,
    }


def clients_with_progress(
    coach_id: str,
    today: date | str,
    now: Optional[datetime] = None,
    limit: int = 10,
) -> list[dict[str, Any]]:
    links = db.list_client_links(coach_id)
    client_ids = [link["client_id"] for link in links]
    if not client_ids:
        return []

    now = now or _utcnow()
    latest = _latest_assignment_by_client(client_ids)
    last_by_client = _last_completion_by_client(client_ids)

    out = []
    for link in links[:limit]:
        cid = link["client_id"]
        last_at = last_by_client.get(cid)
        row = {
            "id": cid,
            "name": link.get("name") or "Client",
            "program_name": None,
            "current_week": 0,
            "total_weeks": 0,
            "last_activity_at": last_at,
            "recent": is_recent(last_at, now),
        }
        if cid in latest.index:
            a = latest.loc[cid]
            total = max(1, int(a["duration_weeks"]) if pd.notna(a["duration_weeks"]) else 4)
            row["program_name"] = a["program_name"] if pd.notna(a["program_name"]) else "Program"
            row["current_week"] = current_week(a["start_date"], total, today)
            row["total_weeks"] = total
        out.append(row)
    return out


def coach_dashboard_stats(coach_id: str, today: date | str) -> dict[str, Any]:
    client_ids = [link["client_id"] for link in db.list_client_links(coach_id)]
    program_count = db.count_programs(coach_id)
    if not client_ids:
        return {"client_count": 0, "program_count": program_count, "completions_this_week": 0, "todays_scheduled": []}

    completed = pd.DataFrame(db.list_completed_workout_logs(client_ids), columns=["completed_at"])
    completions = 0
    if not completed.empty:
        week_start = pd.Timestamp(week_start_sunday(today).isoformat(), tz="UTC")
        ts = pd.to_datetime(completed["completed_at"], utc=True, format="ISO8601")
        completions = int((ts >= week_start).sum())

    names = db.user_names(client_ids)
    todays = [
        {**_log_summary(r), "client_name": names.get(r["client_id"]) or "Client"}
        for r in db.list_workout_logs_on(client_ids, to_date(today).isoformat())
    ]
    return {
        "client_count": len(client_ids),
        "program_count": program_count,
        "completions_this_week": completions,
        "todays_scheduled": todays,
    }


def recent_activity_for_coach(coach_id: str, limit: int = 15) -> list[dict[str, Any]]:
    client_ids = [link["client_id"] for link in db.list_client_links(coach_id)]
    rows = db.list_completed_workout_logs(client_ids, limit)
    names = db.user_names(sorted({r["client_id"] for r in rows}))
    return [{**_log_summary(r), "client_name": names.get(r["client_id"]) or "Client"} for r in rows]


# -----------------------------
# Clients + relationship
# -----------------------------
def list_clients(coach_id: str) -> list[dict[str, Any]]:
    return [
        {
            "id": link["client_id"],
            "name": link.get("name") or "Client",
            "email": link.get("email"),
            "status": link["status"],
            "joined_at": link["joined_at"],
        }
        for link in db.list_client_links(coach_id)
    ]


def get_client_with_assignments(coach_id: str, client_id: str) -> Optional[dict[str, Any]]:
    link = db.get_client_link(coach_id, client_id)
    if link is None:
        return None
    assignments = [
        {
            "id": a["id"],
            "client_id": a["client_id"],
            "program_id": a["program_id"],
            "program_name": a.get("program_name") or "Program",
            "start_date": a["start_date"],
            "status": a["status"],
            "created_at": a["created_at"],
        }
        for a in db.list_assignments_for_client(client_id)
    ]
    return {
        "client": {
            "id": client_id,
            "name": link.get("name") or "Client",
            "email": link.get("email"),
            "status": link["status"],
            "joined_at": link["joined_at"],
        },
        "assignments": assignments,
    }


def get_coach_for_client(client_id: str) -> Optional[dict[str, Any]]:
    return db.latest_coach_for_client(client_id)


def current_role(user_id: str) -> str:
    return "client" if db.is_client(user_id) else "coach"


def register_user(user_id: str, email: Optional[str], name: Optional[str]) -> None:
    db.upsert_user(user_id, _clean(email), _clean(name) or "User")


# -----------------------------
# Invitations
# -----------------------------
def create_invitation(coach_id: str, email: str) -> dict[str, Any]:
    normalized = (email or "").strip().lower()
    if not normalized:
        raise ValidationError("Email is required.")

    token = secrets.token_hex(INVITE_TOKEN_BYTES)
    db.insert_invitation(coach_id, normalized, token)
    logger.info("Coach %s invited %s", coach_id, normalized)

    link = build_invite_link(token)
    result = send_invite_email(normalized, link)
    return {"token": token, "link": link, "email_sent": bool(result.get("sent"))}


def get_invitation(token: str) -> Optional[dict[str, Any]]:
    return db.get_invitation_by_token(token)


def accept_invitation(token: str, new_user_id: str, now: Optional[datetime] = None) -> str:
    if not _clean(token):
        raise NotFoundError("Invalid or expired invite.")
    coach_id = db.consume_invitation(token, new_user_id, (now or _utcnow()).isoformat())
    logger.info("Client %s joined coach %s", new_user_id, coach_id)
    return coach_id


# -----------------------------
# Settings
# -----------------------------
def get_user_settings(user_id: str) -> dict[str, str]:
    return {"unit_preference": db.get_unit_preference(user_id) or "kg"}


def update_unit_preference(user_id: str, unit: str) -> None:
    unit_c = (_clean(unit) or "").lower()
    if unit_c not in db.UNIT_PREFERENCES:
        raise ValidationError("Unit must be 'kg' or 'lb'.")
    if db.set_unit_preference(user_id, unit_c) == 0:
        raise NotFoundError("User not found.")
