from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import seed_demo
import services
from auth import get_current_user
from errors import AuthorizationError, CoachLogError, DependencyError, NotFoundError, ValidationError

app = FastAPI(title="Coach Log API")

_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (DependencyError, 503),
)


@app.exception_handler(CoachLogError)
async def _coach_log_error(request: Request, exc: CoachLogError) -> JSONResponse:
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def _today(today: Optional[date]) -> date:
    # callers may pass their own calendar date; otherwise the server's UTC date
    return today or datetime.now(timezone.utc).date()


class ProfileRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None


class ExerciseCreateRequest(BaseModel):
    name: str
    category: str


class ProgramCreateRequest(BaseModel):
    name: str
    duration_weeks: int = 4
    days_per_week: int = 4
    description: Optional[str] = None


class ProgramUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ProgramWorkoutUpdateRequest(BaseModel):
    name: Optional[str] = None
    notes: Optional[str] = None


class PrescribedExerciseCreateRequest(BaseModel):
    exercise_id: int
    sets: int = Field(default=3, ge=1, le=services.MAX_SETS)
    reps: str = "10"
    intensity_value: Optional[float] = None
    intensity_type: Optional[str] = None
    rest_seconds: Optional[int] = Field(default=None, ge=0, le=services.MAX_REST_SECONDS)
    notes: Optional[str] = None


class AssignRequest(BaseModel):
    client_id: str
    start_date: date


class InvitationCreateRequest(BaseModel):
    email: str


class SetLogEntry(BaseModel):
    prescribed_exercise_id: int
    set_number: int = Field(ge=1)
    reps_completed: Optional[int] = None
    weight_kg: Optional[float] = None
    rpe: Optional[float] = Field(default=None, ge=1, le=10)
    notes: Optional[str] = None


class SaveSetLogsRequest(BaseModel):
    entries: list[SetLogEntry] = Field(default_factory=list)


class CompleteWorkoutRequest(BaseModel):
    notes: Optional[str] = None


class SettingsUpdateRequest(BaseModel):
    unit_preference: str


# -----------------------------
# Me
# -----------------------------
@app.put("/me")
def put_me(payload: ProfileRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    services.register_user(user_id, payload.email, payload.name)
    return {"status": "saved"}


@app.get("/me/role")
def get_me_role(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"role": services.current_role(user_id)}


@app.get("/me/coach")
def get_me_coach(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"coach": services.get_coach_for_client(user_id)}


@app.get("/me/today")
def get_me_today(today: Optional[date] = None, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"workouts": services.todays_workouts(user_id, _today(today))}


@app.get("/me/next")
def get_me_next(today: Optional[date] = None, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"workout": services.next_workout(user_id, _today(today))}


@app.get("/me/history")
def get_me_history(limit: int = 50, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"workouts": services.workout_history(user_id, limit)}


@app.get("/settings")
def get_settings(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return services.get_user_settings(user_id)


@app.put("/settings")
def put_settings(payload: SettingsUpdateRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    services.update_unit_preference(user_id, payload.unit_preference)
    return {"status": "saved"}


# -----------------------------
# Exercises
# -----------------------------
@app.get("/exercises")
def get_exercises(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"exercises": services.list_visible_exercises(user_id)}


@app.post("/exercises", status_code=201)
def post_exercise(payload: ExerciseCreateRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"exercise": services.create_exercise(user_id, payload.name, payload.category)}


# -----------------------------
# Programs
# -----------------------------
@app.get("/programs")
def get_programs(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"programs": services.list_programs(user_id)}


@app.post("/programs", status_code=201)
def post_program(payload: ProgramCreateRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    program = services.create_program(
        user_id,
        payload.name,
        payload.duration_weeks,
        payload.days_per_week,
        payload.description,
    )
    return {"program": program}


@app.get("/programs/{program_id}")
def get_program(program_id: int, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    detail = services.get_program_with_workouts(user_id, program_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Program not found")
    return detail


@app.patch("/programs/{program_id}")
def patch_program(
    program_id: int,
    payload: ProgramUpdateRequest,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    changes: dict[str, Any] = {"name": payload.name}
    if "description" in payload.model_fields_set:
        changes["description"] = payload.description
    services.update_program(user_id, program_id, **changes)
    return {"status": "saved"}


@app.delete("/programs/{program_id}")
def delete_program(program_id: int, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"deleted": services.delete_program(user_id, program_id)}


@app.post("/programs/{program_id}/assign", status_code=201)
def post_assign(
    program_id: int,
    payload: AssignRequest,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    assignment_id = services.assign_program(user_id, payload.client_id, program_id, payload.start_date)
    return {"assignment_id": assignment_id}


@app.patch("/program-workouts/{workout_id}")
def patch_program_workout(
    workout_id: int,
    payload: ProgramWorkoutUpdateRequest,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    changes: dict[str, Any] = {"name": payload.name}
    if "notes" in payload.model_fields_set:
        changes["notes"] = payload.notes
    services.update_program_workout(user_id, workout_id, **changes)
    return {"status": "saved"}


@app.post("/program-workouts/{workout_id}/exercises", status_code=201)
def post_prescribed_exercise(
    workout_id: int,
    payload: PrescribedExerciseCreateRequest,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    prescribed_id = services.add_prescribed_exercise(user_id, workout_id, **payload.model_dump())
    return {"prescribed_id": prescribed_id}


@app.delete("/prescribed-exercises/{prescribed_id}")
def delete_prescribed_exercise(prescribed_id: int, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    services.remove_prescribed_exercise(user_id, prescribed_id)
    return {"status": "deleted"}


# -----------------------------
# Clients + invitations
# -----------------------------
@app.get("/clients")
def get_clients(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return {"clients": services.list_clients(user_id)}


@app.post("/clients/demo", status_code=201)
def post_demo_client(user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    result = seed_demo.seed_demo_client(user_id)
    if not result["ok"]:
        raise HTTPException(status_code=409, detail=result["error"])
    return result


@app.get("/clients/{client_id}")
def get_client(client_id: str, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    detail = services.get_client_with_assignments(user_id, client_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return detail


@app.get("/clients/{client_id}/workouts")
def get_client_workouts(
    client_id: str,
    today: Optional[date] = None,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    return {"workouts": services.list_workout_logs_for_client(user_id, client_id, _today(today))}


@app.post("/invitations", status_code=201)
def post_invitation(payload: InvitationCreateRequest, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    return services.create_invitation(user_id, payload.email)


@app.get("/invitations/{token}")
def get_invitation(token: str) -> dict[str, Any]:
    invitation = services.get_invitation(token)
    if invitation is None:
        raise HTTPException(status_code=404, detail="Invitation not found")
    return {"coach_id": invitation["coach_id"], "email": invitation["email"]}


@app.post("/invitations/{token}/accept")
def post_accept_invitation(token: str, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    coach_id = services.accept_invitation(token, user_id)
    return {"coach_id": coach_id, "role": services.current_role(user_id)}


# -----------------------------
# Workouts
# -----------------------------
@app.get("/workouts/{workout_log_id}")
def get_workout(workout_log_id: int, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    detail = services.get_workout_log(workout_log_id, user_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Workout not found")
    return detail


@app.put("/workouts/{workout_log_id}/sets")
def put_workout_sets(
    workout_log_id: int,
    payload: SaveSetLogsRequest,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    saved = services.save_set_logs(workout_log_id, user_id, [e.model_dump() for e in payload.entries])
    return {"saved": saved}


@app.post("/workouts/{workout_log_id}/complete")
def post_complete_workout(
    workout_log_id: int,
    payload: Optional[CompleteWorkoutRequest] = None,
    user_id: str = Depends(get_current_user),
) -> dict[str, Any]:
    if payload is not None and "notes" in payload.model_fields_set:
        completed_at = services.complete_workout(workout_log_id, user_id, notes=payload.notes)
    else:
        completed_at = services.complete_workout(workout_log_id, user_id)
    return {"completed_at": completed_at}


# -----------------------------
# Dashboards
# -----------------------------
@app.get("/dashboard/coach")
def get_coach_dashboard(today: Optional[date] = None, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    day = _today(today)
    return {
        "stats": services.coach_dashboard_stats(user_id, day),
        "clients": services.clients_with_progress(user_id, day),
        "recent_activity": services.recent_activity_for_coach(user_id),
    }


@app.get("/dashboard/client")
def get_client_dashboard(today: Optional[date] = None, user_id: str = Depends(get_current_user)) -> dict[str, Any]:
    day = _today(today)
    return {
        "program": services.client_program_summary(user_id, day),
        "coach": services.get_coach_for_client(user_id),
        "today": services.todays_workouts(user_id, day),
        "next": services.next_workout(user_id, day),
        "recent": services.recent_activity_with_notes(user_id),
    }
