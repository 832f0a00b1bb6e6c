import logging
from datetime import datetime, timezone

from db_store import (
    ensure_global_exercise,
    get_user,
    has_coach_link,
    init_db,
    link_client,
    upsert_user,
)

logger = logging.getLogger(__name__)

DEMO_CLIENT_ID = "seed-demo-client-1"
DEMO_CLIENT_EMAIL = "demo-client@coachlog.local"
DEMO_CLIENT_NAME = "Demo Client"

GLOBAL_EXERCISES = [
    ("Back Squat", "squat"),
    ("Front Squat", "squat"),
    ("Goblet Squat", "squat"),
    ("Bulgarian Split Squat", "squat"),
    ("Deadlift", "hinge"),
    ("Romanian Deadlift", "hinge"),
    ("Hip Thrust", "hinge"),
    ("Kettlebell Swing", "hinge"),
    ("Bench Press", "push"),
    ("Overhead Press", "push"),
    ("Push-Up", "push"),
    ("Dip", "push"),
    ("Pull-Up", "pull"),
    ("Barbell Row", "pull"),
    ("Lat Pulldown", "pull"),
    ("Face Pull", "pull"),
    ("Farmer's Carry", "carry"),
    ("Suitcase Carry", "carry"),
    ("Plank", "core"),
    ("Dead Bug", "core"),
    ("Pallof Press", "core"),
    ("Biceps Curl", "accessory"),
    ("Triceps Pushdown", "accessory"),
    ("Calf Raise", "accessory"),
    ("Rower", "cardio"),
    ("Assault Bike", "cardio"),
]


def seed() -> int:
    """
    Idempotent: exercises are matched on (global, name), so repeated runs
    do not duplicate the catalog.
    """
    init_db()
    for name, category in GLOBAL_EXERCISES:
        ensure_global_exercise(name, category)
    logger.info("Global exercise catalog seeded (%d entries)", len(GLOBAL_EXERCISES))
    return len(GLOBAL_EXERCISES)


def seed_demo_client(coach_id: str) -> dict:
    """Link a demo client to the coach, for trying the product before real clients join."""
    if get_user(DEMO_CLIENT_ID) is None:
        upsert_user(DEMO_CLIENT_ID, DEMO_CLIENT_EMAIL, DEMO_CLIENT_NAME, role="client")
    elif has_coach_link(coach_id, DEMO_CLIENT_ID):
        return {"ok": False, "error": "Demo client already added."}

    link_client(coach_id, DEMO_CLIENT_ID, datetime.now(timezone.utc).isoformat())
    return {"ok": True, "client_id": DEMO_CLIENT_ID}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed()
