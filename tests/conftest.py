"""
Test fixtures for coach-log.

Every test gets a fresh SQLite file; the identity provider and the email
API are never reached.
"""

from datetime import datetime, timezone
from typing import Dict

import pytest
from fastapi.testclient import TestClient

import api
import auth
import db_store
import services


COACH_ID = "coach-1"
OTHER_COACH_ID = "coach-2"
CLIENT_ID = "client-1"
OTHER_CLIENT_ID = "client-2"

JOINED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat()


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point the datastore at a throwaway file and create the schema."""
    monkeypatch.setattr(db_store, "DB_PATH", str(tmp_path / "coach_log_test.db"))
    db_store.init_db()
    return db_store.DB_PATH


@pytest.fixture(autouse=True)
def no_email(monkeypatch):
    """Invite emails are off unless a test turns them on."""
    monkeypatch.setattr("config.RESEND_API_KEY", None)


@pytest.fixture
def people() -> Dict[str, str]:
    """Two coaches, two clients; client-1 belongs to coach-1 only."""
    db_store.upsert_user(COACH_ID, "coach@example.com", "Coach One")
    db_store.upsert_user(OTHER_COACH_ID, "coach2@example.com", "Coach Two")
    db_store.upsert_user(CLIENT_ID, "client@example.com", "Client One")
    db_store.upsert_user(OTHER_CLIENT_ID, "client2@example.com", "Client Two")
    db_store.link_client(COACH_ID, CLIENT_ID, JOINED_AT)
    return {
        "coach": COACH_ID,
        "other_coach": OTHER_COACH_ID,
        "client": CLIENT_ID,
        "other_client": OTHER_CLIENT_ID,
    }


@pytest.fixture
def squat_id() -> int:
    return db_store.ensure_global_exercise("Back Squat", "squat")


@pytest.fixture
def program(people):
    """4 weeks x 3 days, owned by coach-1."""
    return services.create_program(COACH_ID, "Strength Block", 4, 3, "Base phase")


@pytest.fixture
def current_user():
    """Mutable holder for the principal the API sees; tests swap `value`."""
    class _Principal:
        value = COACH_ID

    return _Principal


@pytest.fixture
def client(current_user) -> TestClient:
    async def mock_get_current_user() -> str:
        return current_user.value

    api.app.dependency_overrides[auth.get_current_user] = mock_get_current_user
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()
