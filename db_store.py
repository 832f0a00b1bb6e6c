"""
db_store.py

SQLite persistence layer for Coach Log:
- Users (+ unit preference)
- Coach/client links and one-time invitations
- Exercise catalog (global + coach-owned)
- Programs: program_workouts (week x day slots) / prescribed_exercises
- Client assignments and their generated workout_logs / set_logs

Ownership is checked here, one predicate per entity, walked fresh on every
mutation (prescribed exercise -> slot -> program -> coach).

Multi-row writes run in a single transaction and roll back as a unit; a
failing statement surfaces as DependencyError.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from errors import AuthorizationError, DependencyError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# -----------------------------
# Database location
# -----------------------------
DB_DIR = os.environ.get("COACHLOG_DB_DIR", "data")
DB_PATH = os.environ.get("COACHLOG_DB_PATH", os.path.join(DB_DIR, "coach_log.db"))

EXERCISE_CATEGORIES = ("squat", "hinge", "push", "pull", "carry", "core", "accessory", "cardio", "other")
UNIT_PREFERENCES = ("kg", "lb")


def get_conn() -> sqlite3.Connection:
    directory = os.path.dirname(DB_PATH)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(DB_PATH, check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


@contextmanager
def _session(write: bool = False) -> Iterator[sqlite3.Cursor]:
    conn = get_conn()
    try:
        cur = conn.cursor()
        yield cur
        if write:
            conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        logger.error("Datastore call failed: %s", exc)
        raise DependencyError("The datastore could not complete the request.") from exc
    except OverflowError as exc:
        # integer too large for a SQLite INTEGER
        conn.rollback()
        raise ValidationError("A numeric value is out of range.") from exc
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _table_columns(cur: sqlite3.Cursor, table_name: str) -> List[str]:
    cur.execute(f"PRAGMA table_info({table_name})")
    return [r[1] for r in cur.fetchall()]


def _ensure_column(cur: sqlite3.Cursor, table: str, col: str, ddl: str) -> None:
    cols = _table_columns(cur, table)
    if col not in cols:
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {ddl}")


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _rows(cur: sqlite3.Cursor) -> List[Dict[str, Any]]:
    return [dict(r) for r in cur.fetchall()]


def _row(cur: sqlite3.Cursor) -> Optional[Dict[str, Any]]:
    r = cur.fetchone()
    return None if r is None else dict(r)


# -----------------------------
# Init / migrations
# -----------------------------
def init_db() -> None:
    with _session(write=True) as cur:
        # -----------------------------
        # Identity + relationships
        # -----------------------------
        cur.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,                  -- principal id from the identity provider
            email TEXT,
            name TEXT,
            role TEXT,                            -- informational only; see current_role()
            created_at TEXT DEFAULT (datetime('now'))
        )
        """)
        _ensure_column(cur, "users", "unit_preference", "unit_preference TEXT NOT NULL DEFAULT 'kg'")

        cur.execute("""
        CREATE TABLE IF NOT EXISTS coach_clients (
            coach_id TEXT NOT NULL,
            client_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            joined_at TEXT NOT NULL,
            PRIMARY KEY (coach_id, client_id)
        )
        """)

        cur.execute("""
        CREATE INDEX IF NOT EXISTS idx_coach_clients_client
        ON coach_clients(client_id, status)
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS coach_invitations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            coach_id TEXT NOT NULL,
            email TEXT NOT NULL,
            token TEXT NOT NULL UNIQUE,
            created_at TEXT DEFAULT (datetime('now'))
        )
        """)

        # -----------------------------
        # Exercise catalog
        # -----------------------------
        cur.execute("""
        CREATE TABLE IF NOT EXISTS exercises (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            coach_id TEXT,                        -- NULL = global
            name TEXT NOT NULL,
            category TEXT NOT NULL,               -- squat/hinge/push/pull/carry/core/accessory/cardio/other
            created_at TEXT DEFAULT (datetime('now'))
        )
        """)

        # =========================================================
        # Programs: templates / week x day slots / prescriptions
        # =========================================================
        cur.execute("""
        CREATE TABLE IF NOT EXISTS programs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            coach_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            duration_weeks INTEGER NOT NULL,      -- 1..52
            days_per_week INTEGER NOT NULL,       -- 1..7
            created_at TEXT DEFAULT (datetime('now')),
            updated_at TEXT DEFAULT (datetime('now'))
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS program_workouts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            program_id INTEGER NOT NULL,
            week_number INTEGER NOT NULL,         -- 1..duration_weeks
            day_number INTEGER NOT NULL,          -- 1..days_per_week
            name TEXT NOT NULL,
            notes TEXT,
            FOREIGN KEY (program_id) REFERENCES programs(id),
            UNIQUE(program_id, week_number, day_number)
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS prescribed_exercises (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            program_workout_id INTEGER NOT NULL,
            exercise_id INTEGER NOT NULL,
            sort_order INTEGER NOT NULL,
            sets INTEGER NOT NULL,
            reps TEXT NOT NULL,                   -- free text: "10", "8-12"
            intensity_value REAL,
            intensity_type TEXT,
            rest_seconds INTEGER,
            notes TEXT,
            FOREIGN KEY (program_workout_id) REFERENCES program_workouts(id),
            FOREIGN KEY (exercise_id) REFERENCES exercises(id),
            UNIQUE(program_workout_id, sort_order)
        )
        """)

        # =========================================================
        # Assignments and their generated schedule
        # =========================================================
        cur.execute("""
        CREATE TABLE IF NOT EXISTS client_assignments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id TEXT NOT NULL,
            program_id INTEGER NOT NULL,
            start_date TEXT NOT NULL,             -- YYYY-MM-DD
            status TEXT NOT NULL DEFAULT 'active',
            created_at TEXT DEFAULT (datetime('now')),
            FOREIGN KEY (program_id) REFERENCES programs(id)
        )
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS workout_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id TEXT NOT NULL,
            assignment_id INTEGER NOT NULL,
            program_workout_id INTEGER NOT NULL,
            scheduled_date TEXT NOT NULL,         -- YYYY-MM-DD
            completed_at TEXT,                    -- ISO timestamp, NULL until completed
            notes TEXT,
            FOREIGN KEY (assignment_id) REFERENCES client_assignments(id),
            FOREIGN KEY (program_workout_id) REFERENCES program_workouts(id)
        )
        """)

        cur.execute("""
        CREATE INDEX IF NOT EXISTS idx_workout_logs_client_date
        ON workout_logs(client_id, scheduled_date)
        """)

        cur.execute("""
        CREATE TABLE IF NOT EXISTS set_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            workout_log_id INTEGER NOT NULL,
            prescribed_exercise_id INTEGER NOT NULL,
            set_number INTEGER NOT NULL,
            reps_completed INTEGER,
            weight_kg REAL,
            rpe REAL,                             -- 1..10
            notes TEXT,
            FOREIGN KEY (workout_log_id) REFERENCES workout_logs(id),
            FOREIGN KEY (prescribed_exercise_id) REFERENCES prescribed_exercises(id)
        )
        """)

        cur.execute("""
        CREATE INDEX IF NOT EXISTS idx_set_logs_lookup
        ON set_logs(workout_log_id, prescribed_exercise_id, set_number)
        """)


# -----------------------------
# Users
# -----------------------------
def upsert_user(user_id: str, email: Optional[str], name: Optional[str], role: Optional[str] = None) -> None:
    with _session(write=True) as cur:
        cur.execute("""
            INSERT INTO users(id, email, name, role)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                email=excluded.email,
                name=excluded.name,
                role=COALESCE(excluded.role, users.role)
        """, (user_id, email, name, role))


def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("SELECT id, email, name, role, unit_preference FROM users WHERE id = ?", (user_id,))
        return _row(cur)


def user_names(user_ids: Sequence[str]) -> Dict[str, str]:
    if not user_ids:
        return {}
    ids = list(user_ids)
    with _session() as cur:
        cur.execute(f"SELECT id, name FROM users WHERE id IN ({_placeholders(ids)})", ids)
        return {r["id"]: r["name"] for r in cur.fetchall()}


def get_unit_preference(user_id: str) -> Optional[str]:
    with _session() as cur:
        cur.execute("SELECT unit_preference FROM users WHERE id = ?", (user_id,))
        row = cur.fetchone()
    return None if row is None else str(row[0])


def set_unit_preference(user_id: str, unit: str) -> int:
    with _session(write=True) as cur:
        cur.execute("UPDATE users SET unit_preference = ? WHERE id = ?", (unit, user_id))
        return cur.rowcount


# -----------------------------
# Coach / client links
# -----------------------------
def link_client(coach_id: str, client_id: str, joined_at: str) -> None:
    with _session(write=True) as cur:
        cur.execute("""
            INSERT OR IGNORE INTO coach_clients(coach_id, client_id, status, joined_at)
            VALUES (?, ?, 'active', ?)
        """, (coach_id, client_id, joined_at))


def _has_link(cur: sqlite3.Cursor, coach_id: str, client_id: str, active_only: bool) -> bool:
    status_clause = "AND status = 'active'" if active_only else ""
    cur.execute(f"""
        SELECT 1
        FROM coach_clients
        WHERE coach_id = ? AND client_id = ? {status_clause}
        LIMIT 1
    """, (coach_id, client_id))
    return cur.fetchone() is not None


def _can_access_client(cur: sqlite3.Cursor, user_id: str, client_id: str) -> bool:
    if user_id == client_id:
        return True
    return _has_link(cur, user_id, client_id, active_only=False)


def has_coach_link(coach_id: str, client_id: str) -> bool:
    with _session() as cur:
        return _has_link(cur, coach_id, client_id, active_only=False)


def is_active_client(coach_id: str, client_id: str) -> bool:
    with _session() as cur:
        return _has_link(cur, coach_id, client_id, active_only=True)


def can_access_client(user_id: str, client_id: str) -> bool:
    with _session() as cur:
        return _can_access_client(cur, user_id, client_id)


def list_client_links(coach_id: str) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT cc.client_id, cc.status, cc.joined_at, u.name, u.email
            FROM coach_clients cc
            LEFT JOIN users u ON u.id = cc.client_id
            WHERE cc.coach_id = ? AND cc.status = 'active'
            ORDER BY cc.joined_at ASC, cc.client_id ASC
        """, (coach_id,))
        return _rows(cur)


def get_client_link(coach_id: str, client_id: str) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT cc.client_id, cc.status, cc.joined_at, u.name, u.email
            FROM coach_clients cc
            LEFT JOIN users u ON u.id = cc.client_id
            WHERE cc.coach_id = ? AND cc.client_id = ?
        """, (coach_id, client_id))
        return _row(cur)


def latest_coach_for_client(client_id: str) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT u.id, u.name, u.email
            FROM coach_clients cc
            JOIN users u ON u.id = cc.coach_id
            WHERE cc.client_id = ? AND cc.status = 'active'
            ORDER BY cc.joined_at DESC
            LIMIT 1
        """, (client_id,))
        return _row(cur)


def is_client(user_id: str) -> bool:
    with _session() as cur:
        cur.execute("SELECT 1 FROM coach_clients WHERE client_id = ? LIMIT 1", (user_id,))
        return cur.fetchone() is not None


# -----------------------------
# Invitations
# -----------------------------
def insert_invitation(coach_id: str, email: str, token: str) -> int:
    with _session(write=True) as cur:
        cur.execute("""
            INSERT INTO coach_invitations(coach_id, email, token)
            VALUES (?, ?, ?)
        """, (coach_id, email, token))
        return int(cur.lastrowid)


def get_invitation_by_token(token: str) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT id, coach_id, email
            FROM coach_invitations
            WHERE token = ?
        """, (token,))
        return _row(cur)


def consume_invitation(token: str, client_id: str, joined_at: str) -> str:
    """
    Delete the invitation and link the client in one transaction.
    Returns the inviting coach id. Only the accept whose delete removed the
    row gets to link.
    """
    with _session(write=True) as cur:
        cur.execute("SELECT id, coach_id FROM coach_invitations WHERE token = ?", (token,))
        inv = cur.fetchone()
        if inv is None:
            raise NotFoundError("Invalid or expired invite.")
        cur.execute("DELETE FROM coach_invitations WHERE id = ?", (int(inv["id"]),))
        if cur.rowcount != 1:
            raise NotFoundError("Invalid or expired invite.")
        cur.execute("""
            INSERT OR IGNORE INTO coach_clients(coach_id, client_id, status, joined_at)
            VALUES (?, ?, 'active', ?)
        """, (inv["coach_id"], client_id, joined_at))
        return str(inv["coach_id"])


# -----------------------------
# Exercise catalog
# -----------------------------
def list_visible_exercises(coach_id: str) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT id, coach_id, name, category, created_at
            FROM exercises
            WHERE coach_id IS NULL OR coach_id = ?
            ORDER BY name ASC, id ASC
        """, (coach_id,))
        return _rows(cur)


def insert_exercise(coach_id: Optional[str], name: str, category: str) -> Dict[str, Any]:
    with _session(write=True) as cur:
        cur.execute("""
            INSERT INTO exercises(coach_id, name, category)
            VALUES (?, ?, ?)
        """, (coach_id, name, category))
        ex_id = int(cur.lastrowid)
        cur.execute("SELECT id, coach_id, name, category, created_at FROM exercises WHERE id = ?", (ex_id,))
        return _row(cur)


def ensure_global_exercise(name: str, category: str) -> int:
    with _session(write=True) as cur:
        cur.execute("SELECT id FROM exercises WHERE coach_id IS NULL AND name = ?", (name,))
        row = cur.fetchone()
        if row is not None:
            return int(row[0])
        cur.execute("INSERT INTO exercises(coach_id, name, category) VALUES (NULL, ?, ?)", (name, category))
        return int(cur.lastrowid)


def get_exercise(exercise_id: int) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("SELECT id, coach_id, name, category FROM exercises WHERE id = ?", (int(exercise_id),))
        return _row(cur)


# -----------------------------
# Programs
# -----------------------------
def create_program_with_slots(
    coach_id: str,
    name: str,
    description: Optional[str],
    duration_weeks: int,
    days_per_week: int,
    slots: Sequence[Tuple[int, int, str]],
) -> int:
    with _session(write=True) as cur:
        cur.execute("""
            INSERT INTO programs(coach_id, name, description, duration_weeks, days_per_week)
            VALUES (?, ?, ?, ?, ?)
        """, (coach_id, name, description, int(duration_weeks), int(days_per_week)))
        program_id = int(cur.lastrowid)
        cur.executemany("""
            INSERT INTO program_workouts(program_id, week_number, day_number, name)
            VALUES (?, ?, ?, ?)
        """, [(program_id, int(wk), int(day), slot_name) for wk, day, slot_name in slots])
        return program_id


def get_program(program_id: int) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT id, coach_id, name, description, duration_weeks, days_per_week, created_at, updated_at
            FROM programs
            WHERE id = ?
        """, (int(program_id),))
        return _row(cur)


def list_programs(coach_id: str) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT id, coach_id, name, description, duration_weeks, days_per_week, created_at, updated_at
            FROM programs
            WHERE coach_id = ?
            ORDER BY updated_at DESC, id DESC
        """, (coach_id,))
        return _rows(cur)


def count_programs(coach_id: str) -> int:
    with _session() as cur:
        cur.execute("SELECT COUNT(*) FROM programs WHERE coach_id = ?", (coach_id,))
        return int(cur.fetchone()[0])


def update_program(program_id: int, name: Optional[str], description: Optional[str], clear_description: bool = False) -> None:
    with _session(write=True) as cur:
        cur.execute("""
            UPDATE programs
            SET name = COALESCE(?, name),
                description = CASE WHEN ? THEN NULL ELSE COALESCE(?, description) END,
                updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
            WHERE id = ?
        """, (name, 1 if clear_description else 0, description, int(program_id)))


def list_program_workouts(program_id: int) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT id, program_id, week_number, day_number, name, notes
            FROM program_workouts
            WHERE program_id = ?
            ORDER BY week_number ASC, day_number ASC
        """, (int(program_id),))
        return _rows(cur)


def update_program_workout(workout_id: int, name: Optional[str], notes: Optional[str], clear_notes: bool = False) -> None:
    with _session(write=True) as cur:
        cur.execute("""
            UPDATE program_workouts
            SET name = COALESCE(?, name),
                notes = CASE WHEN ? THEN NULL ELSE COALESCE(?, notes) END
            WHERE id = ?
        """, (name, 1 if clear_notes else 0, notes, int(workout_id)))


def list_prescribed_for_workouts(workout_ids: Sequence[int]) -> List[Dict[str, Any]]:
    if not workout_ids:
        return []
    ids = [int(w) for w in workout_ids]
    with _session() as cur:
        cur.execute(f"""
            SELECT p.id, p.program_workout_id, p.exercise_id, p.sort_order, p.sets, p.reps,
                   p.intensity_value, p.intensity_type, p.rest_seconds, p.notes,
                   e.name AS exercise_name, e.category AS exercise_category
            FROM prescribed_exercises p
            LEFT JOIN exercises e ON e.id = p.exercise_id
            WHERE p.program_workout_id IN ({_placeholders(ids)})
            ORDER BY p.program_workout_id ASC, p.sort_order ASC
        """, ids)
        return _rows(cur)


def insert_prescribed_exercise(
    workout_id: int,
    exercise_id: int,
    sets: int,
    reps: str,
    intensity_value: Optional[float],
    intensity_type: Optional[str],
    rest_seconds: Optional[int],
    notes: Optional[str],
) -> int:
    with _session(write=True) as cur:
        cur.execute("""
            SELECT COALESCE(MAX(sort_order), -1) + 1
            FROM prescribed_exercises
            WHERE program_workout_id = ?
        """, (int(workout_id),))
        sort_order = int(cur.fetchone()[0])
        cur.execute("""
            INSERT INTO prescribed_exercises(
                program_workout_id, exercise_id, sort_order, sets, reps,
                intensity_value, intensity_type, rest_seconds, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            int(workout_id), int(exercise_id), sort_order, int(sets), reps,
            intensity_value, intensity_type, rest_seconds, notes,
        ))
        return int(cur.lastrowid)


def delete_prescribed_exercise(prescribed_id: int) -> None:
    with _session(write=True) as cur:
        cur.execute("DELETE FROM set_logs WHERE prescribed_exercise_id = ?", (int(prescribed_id),))
        cur.execute("DELETE FROM prescribed_exercises WHERE id = ?", (int(prescribed_id),))


def delete_program_cascade(program_id: int) -> Dict[str, int]:
    """
    Remove a program and everything hanging off it, children first:
      set_logs -> workout_logs -> prescribed_exercises -> program_workouts
      -> client_assignments -> programs
    """
    pid = int(program_id)
    counts: Dict[str, int] = {}
    with _session(write=True) as cur:
        cur.execute("""
            DELETE FROM set_logs
            WHERE workout_log_id IN (
                SELECT wl.id FROM workout_logs wl
                JOIN client_assignments ca ON ca.id = wl.assignment_id
                WHERE ca.program_id = ?
            )
            OR prescribed_exercise_id IN (
                SELECT p.id FROM prescribed_exercises p
                JOIN program_workouts w ON w.id = p.program_workout_id
                WHERE w.program_id = ?
            )
        """, (pid, pid))
        counts["set_logs"] = cur.rowcount
        cur.execute("""
            DELETE FROM workout_logs
            WHERE assignment_id IN (SELECT id FROM client_assignments WHERE program_id = ?)
               OR program_workout_id IN (SELECT id FROM program_workouts WHERE program_id = ?)
        """, (pid, pid))
        counts["workout_logs"] = cur.rowcount
        cur.execute("""
            DELETE FROM prescribed_exercises
            WHERE program_workout_id IN (SELECT id FROM program_workouts WHERE program_id = ?)
        """, (pid,))
        counts["prescribed_exercises"] = cur.rowcount
        cur.execute("DELETE FROM program_workouts WHERE program_id = ?", (pid,))
        counts["program_workouts"] = cur.rowcount
        cur.execute("DELETE FROM client_assignments WHERE program_id = ?", (pid,))
        counts["client_assignments"] = cur.rowcount
        cur.execute("DELETE FROM programs WHERE id = ?", (pid,))
        counts["programs"] = cur.rowcount
    return counts


# -----------------------------
# Ownership chain lookups
# -----------------------------
def _get_program_coach_id(cur: sqlite3.Cursor, program_id: int) -> Optional[str]:
    cur.execute("SELECT coach_id FROM programs WHERE id = ?", (int(program_id),))
    row = cur.fetchone()
    return None if row is None else str(row[0])


def _get_workout_coach_id(cur: sqlite3.Cursor, workout_id: int) -> Optional[str]:
    cur.execute("""
        SELECT p.coach_id
        FROM program_workouts w
        JOIN programs p ON p.id = w.program_id
        WHERE w.id = ?
    """, (int(workout_id),))
    row = cur.fetchone()
    return None if row is None else str(row[0])


def _get_prescribed_coach_id(cur: sqlite3.Cursor, prescribed_id: int) -> Optional[str]:
    cur.execute("""
        SELECT p.coach_id
        FROM prescribed_exercises x
        JOIN program_workouts w ON w.id = x.program_workout_id
        JOIN programs p ON p.id = w.program_id
        WHERE x.id = ?
    """, (int(prescribed_id),))
    row = cur.fetchone()
    return None if row is None else str(row[0])


def _get_workout_log_client_id(cur: sqlite3.Cursor, workout_log_id: int) -> Optional[str]:
    cur.execute("SELECT client_id FROM workout_logs WHERE id = ?", (int(workout_log_id),))
    row = cur.fetchone()
    return None if row is None else str(row[0])


def coach_owns_program(coach_id: str, program_id: int) -> bool:
    with _session() as cur:
        return _get_program_coach_id(cur, program_id) == coach_id


def _assert_program_owner(coach_id: str, program_id: int) -> None:
    with _session() as cur:
        owner = _get_program_coach_id(cur, program_id)
    if owner is None:
        raise NotFoundError("Program not found.")
    if owner != coach_id:
        raise AuthorizationError("You do not own this program.")


def _assert_workout_owner(coach_id: str, workout_id: int) -> None:
    with _session() as cur:
        owner = _get_workout_coach_id(cur, workout_id)
    if owner is None:
        raise NotFoundError("Workout not found.")
    if owner != coach_id:
        raise AuthorizationError("You do not own this workout.")


def _assert_prescribed_owner(coach_id: str, prescribed_id: int) -> None:
    with _session() as cur:
        owner = _get_prescribed_coach_id(cur, prescribed_id)
    if owner is None:
        raise NotFoundError("Prescribed exercise not found.")
    if owner != coach_id:
        raise AuthorizationError("You do not own this prescribed exercise.")


def _assert_active_client(coach_id: str, client_id: str) -> None:
    if not is_active_client(coach_id, client_id):
        raise AuthorizationError("Client is not an active client of this coach.")


def _assert_workout_log_access(user_id: str, workout_log_id: int) -> str:
    with _session() as cur:
        client_id = _get_workout_log_client_id(cur, workout_log_id)
        if client_id is None:
            raise NotFoundError("Workout not found.")
        ok = _can_access_client(cur, user_id, client_id)
    if not ok:
        raise AuthorizationError("You cannot access this workout.")
    return client_id


# -----------------------------
# Guarded program mutations
# -----------------------------
def update_program_for_user(
    coach_id: str,
    program_id: int,
    name: Optional[str],
    description: Optional[str],
    clear_description: bool = False,
) -> None:
    _assert_program_owner(coach_id, program_id)
    update_program(program_id, name, description, clear_description)


def delete_program_for_user(coach_id: str, program_id: int) -> Dict[str, int]:
    _assert_program_owner(coach_id, program_id)
    return delete_program_cascade(program_id)


def update_program_workout_for_user(
    coach_id: str,
    workout_id: int,
    name: Optional[str],
    notes: Optional[str],
    clear_notes: bool = False,
) -> None:
    _assert_workout_owner(coach_id, workout_id)
    update_program_workout(workout_id, name, notes, clear_notes)


def add_prescribed_exercise_for_user(
    coach_id: str,
    workout_id: int,
    exercise_id: int,
    sets: int,
    reps: str,
    intensity_value: Optional[float] = None,
    intensity_type: Optional[str] = None,
    rest_seconds: Optional[int] = None,
    notes: Optional[str] = None,
) -> int:
    _assert_workout_owner(coach_id, workout_id)
    ex = get_exercise(exercise_id)
    if ex is None or (ex["coach_id"] is not None and ex["coach_id"] != coach_id):
        raise NotFoundError("Exercise not found.")
    return insert_prescribed_exercise(
        workout_id, exercise_id, sets, reps, intensity_value, intensity_type, rest_seconds, notes
    )


def remove_prescribed_exercise_for_user(coach_id: str, prescribed_id: int) -> None:
    _assert_prescribed_owner(coach_id, prescribed_id)
    delete_prescribed_exercise(prescribed_id)


# -----------------------------
# Assignments
# -----------------------------
def create_assignment_with_logs(
    client_id: str,
    program_id: int,
    start_date: str,
    schedule: Sequence[Tuple[int, str]],
) -> int:
    """schedule: (program_workout_id, scheduled_date) pairs, one per slot."""
    with _session(write=True) as cur:
        cur.execute("""
            INSERT INTO client_assignments(client_id, program_id, start_date, status)
            VALUES (?, ?, ?, 'active')
        """, (client_id, int(program_id), start_date))
        assignment_id = int(cur.lastrowid)
        cur.executemany("""
            INSERT INTO workout_logs(client_id, assignment_id, program_workout_id, scheduled_date)
            VALUES (?, ?, ?, ?)
        """, [(client_id, assignment_id, int(slot_id), day) for slot_id, day in schedule])
        return assignment_id


def create_assignment_for_user(
    coach_id: str,
    client_id: str,
    program_id: int,
    start_date: str,
    schedule: Sequence[Tuple[int, str]],
) -> int:
    _assert_program_owner(coach_id, program_id)
    _assert_active_client(coach_id, client_id)
    return create_assignment_with_logs(client_id, program_id, start_date, schedule)


def list_assignments_for_client(client_id: str) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT a.id, a.client_id, a.program_id, a.start_date, a.status, a.created_at,
                   p.name AS program_name, p.duration_weeks
            FROM client_assignments a
            LEFT JOIN programs p ON p.id = a.program_id
            WHERE a.client_id = ?
            ORDER BY a.start_date DESC, a.id DESC
        """, (client_id,))
        return _rows(cur)


def active_assignments_for_clients(client_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not client_ids:
        return []
    ids = list(client_ids)
    with _session() as cur:
        cur.execute(f"""
            SELECT a.id, a.client_id, a.program_id, a.start_date,
                   p.name AS program_name, p.duration_weeks
            FROM client_assignments a
            LEFT JOIN programs p ON p.id = a.program_id
            WHERE a.client_id IN ({_placeholders(ids)}) AND a.status = 'active'
            ORDER BY a.start_date DESC, a.id DESC
        """, ids)
        return _rows(cur)


def count_workout_logs_for_assignment(assignment_id: int) -> int:
    with _session() as cur:
        cur.execute("SELECT COUNT(*) FROM workout_logs WHERE assignment_id = ?", (int(assignment_id),))
        return int(cur.fetchone()[0])


# -----------------------------
# Workout logs
# -----------------------------
_WORKOUT_LOG_SELECT = """
    SELECT wl.id, wl.client_id, wl.assignment_id, wl.program_workout_id,
           wl.scheduled_date, wl.completed_at, wl.notes,
           w.name AS program_workout_name,
           a.program_id, p.name AS program_name
    FROM workout_logs wl
    LEFT JOIN program_workouts w ON w.id = wl.program_workout_id
    LEFT JOIN client_assignments a ON a.id = wl.assignment_id
    LEFT JOIN programs p ON p.id = a.program_id
"""


def get_workout_log(workout_log_id: int) -> Optional[Dict[str, Any]]:
    with _session() as cur:
        cur.execute(_WORKOUT_LOG_SELECT + " WHERE wl.id = ?", (int(workout_log_id),))
        return _row(cur)


def list_workout_logs_for_clients(client_ids: Sequence[str]) -> List[Dict[str, Any]]:
    if not client_ids:
        return []
    ids = list(client_ids)
    with _session() as cur:
        cur.execute(
            _WORKOUT_LOG_SELECT
            + f" WHERE wl.client_id IN ({_placeholders(ids)}) ORDER BY wl.scheduled_date ASC, wl.id ASC",
            ids,
        )
        return _rows(cur)


def list_workout_logs_on(client_ids: Sequence[str], day: str) -> List[Dict[str, Any]]:
    if not client_ids:
        return []
    ids = list(client_ids)
    with _session() as cur:
        cur.execute(
            _WORKOUT_LOG_SELECT
            + f" WHERE wl.client_id IN ({_placeholders(ids)}) AND wl.scheduled_date = ? ORDER BY wl.id ASC",
            [*ids, day],
        )
        return _rows(cur)


def list_completed_workout_logs(client_ids: Sequence[str], limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if not client_ids:
        return []
    ids = list(client_ids)
    sql = (
        _WORKOUT_LOG_SELECT
        + f" WHERE wl.client_id IN ({_placeholders(ids)}) AND wl.completed_at IS NOT NULL"
        + " ORDER BY wl.completed_at DESC, wl.id DESC"
    )
    params: List[Any] = list(ids)
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    with _session() as cur:
        cur.execute(sql, params)
        return _rows(cur)


def mark_completed(workout_log_id: int, completed_at: str, notes: Optional[str], set_notes: bool) -> None:
    with _session(write=True) as cur:
        if set_notes:
            cur.execute(
                "UPDATE workout_logs SET completed_at = ?, notes = ? WHERE id = ?",
                (completed_at, notes, int(workout_log_id)),
            )
        else:
            cur.execute(
                "UPDATE workout_logs SET completed_at = ? WHERE id = ?",
                (completed_at, int(workout_log_id)),
            )


def mark_completed_for_user(
    user_id: str,
    workout_log_id: int,
    completed_at: str,
    notes: Optional[str] = None,
    set_notes: bool = False,
) -> str:
    client_id = _assert_workout_log_access(user_id, workout_log_id)
    mark_completed(workout_log_id, completed_at, notes, set_notes)
    return client_id


# -----------------------------
# Set logs
# -----------------------------
def list_set_logs(workout_log_id: int) -> List[Dict[str, Any]]:
    with _session() as cur:
        cur.execute("""
            SELECT prescribed_exercise_id, set_number, reps_completed, weight_kg, rpe, notes
            FROM set_logs
            WHERE workout_log_id = ?
            ORDER BY prescribed_exercise_id ASC, set_number ASC, id ASC
        """, (int(workout_log_id),))
        return _rows(cur)


def replace_set_logs(workout_log_id: int, entries: Sequence[Dict[str, Any]]) -> int:
    """Full replace: every prior set log for the workout goes, the given entries go in verbatim."""
    with _session(write=True) as cur:
        cur.execute("DELETE FROM set_logs WHERE workout_log_id = ?", (int(workout_log_id),))
        cur.executemany("""
            INSERT INTO set_logs(
                workout_log_id, prescribed_exercise_id, set_number,
                reps_completed, weight_kg, rpe, notes
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [
            (
                int(workout_log_id),
                int(e["prescribed_exercise_id"]),
                int(e["set_number"]),
                e.get("reps_completed"),
                e.get("weight_kg"),
                e.get("rpe"),
                e.get("notes"),
            )
            for e in entries
        ])
        return len(entries)


def prescribed_ids_for_workout_log(workout_log_id: int) -> List[int]:
    with _session() as cur:
        cur.execute("""
            SELECT p.id
            FROM workout_logs wl
            JOIN prescribed_exercises p ON p.program_workout_id = wl.program_workout_id
            WHERE wl.id = ?
        """, (int(workout_log_id),))
        return [int(r[0]) for r in cur.fetchall()]


def replace_set_logs_for_user(user_id: str, workout_log_id: int, entries: Sequence[Dict[str, Any]]) -> str:
    client_id = _assert_workout_log_access(user_id, workout_log_id)
    # entries may only target exercises prescribed in this log's own slot
    allowed = set(prescribed_ids_for_workout_log(workout_log_id))
    unknown = sorted({int(e["prescribed_exercise_id"]) for e in entries} - allowed)
    if unknown:
        raise ValidationError(f"Unknown prescribed exercise for this workout: {unknown[0]}.")
    replace_set_logs(workout_log_id, entries)
    return client_id
