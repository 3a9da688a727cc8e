"""
Test fixtures for coachboard.

Service tests get their own throwaway SQLite file per test; route tests share
one TestClient whose database is reset before every test.
"""

import os
import tempfile
from datetime import date
from pathlib import Path

# Must be set before coachboard.settings is first read
_DB_DIR = Path(tempfile.mkdtemp(prefix="coachboard-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'api.db'}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from coachboard.db import create_tables, make_engine, make_sessionmaker
from coachboard.main import app
from coachboard.models import Athlete, Team, TeamAthlete
from coachboard.schemas import BlockSpec, ExerciseSpec, WorkoutSpec


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Sessionmaker bound to a fresh database file."""
    engine = make_engine(f"sqlite:///{tmp_path / 'coachboard.db'}")
    await create_tables(engine)
    yield make_sessionmaker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def roster(session):
    """Two athletes (X and Y) and a team containing Y."""
    session.add(Athlete(id="ath-x", name="Xavier"))
    session.add(Athlete(id="ath-y", name="Yasmin"))
    session.add(Team(id="team-a", name="Varsity"))
    session.add(TeamAthlete(team_id="team-a", athlete_id="ath-y"))
    await session.commit()
    return {"x": "ath-x", "y": "ath-y", "team": "team-a"}


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


@pytest.fixture
def template_spec() -> WorkoutSpec:
    """A 2-block / 5-exercise template."""
    return WorkoutSpec(
        id="tpl-1",
        name="Lower Body A",
        date=date(2024, 1, 1),
        blocks=[
            BlockSpec(
                id="tpl-1-b0",
                name="Warm-up",
                exercises=[
                    ExerciseSpec(id="tpl-1-e0", exercise_name="Goblet Squat", sets=2, reps="10"),
                    ExerciseSpec(id="tpl-1-e1", exercise_name="Glute Bridge", sets=2, reps="12", video_url="vid://bridge"),
                ],
            ),
            BlockSpec(
                id="tpl-1-b1",
                name="Superset A",
                exercises=[
                    ExerciseSpec(id="tpl-1-e2", exercise_name="Back Squat", sets=3, reps="8-10", weight="100kg"),
                    ExerciseSpec(id="tpl-1-e3", exercise_name="Romanian Deadlift", sets=3, reps="8", weight="80kg"),
                    ExerciseSpec(id="tpl-1-e4", exercise_name="Walking Lunge", sets=3, reps="12 each"),
                ],
            ),
        ],
    )


@pytest.fixture
def single_exercise_spec() -> WorkoutSpec:
    return WorkoutSpec(
        name="Bench Day",
        date=date(2024, 3, 4),
        blocks=[BlockSpec(name="Main", exercises=[ExerciseSpec(exercise_name="Bench Press", sets=3, reps="5")])],
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def api_client():
    """Shared TestClient; entering it runs the startup hook that creates tables."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client(api_client) -> TestClient:
    """TestClient on an emptied database."""
    resp = api_client.post("/reset-db", params={"confirm": True})
    assert resp.status_code == 200
    return api_client
