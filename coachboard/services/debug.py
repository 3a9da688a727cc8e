from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from ..db import get_session
from ..errors import NotFound
from ..models import Workout, WorkoutCompletion
from .completion import evaluate_exercise, workout_exercises

router = APIRouter()


@router.get("/debug/config")
async def debug_config() -> Dict[str, Any]:
    from ..settings import get_settings
    s = get_settings()
    return {
        "database_scheme": s.database_url.split(":", 1)[0],
        "max_recurring_weeks": s.max_recurring_weeks,
        "log_level": s.log_level,
    }


@router.get("/debug/completion/{workout_id}")
async def debug_completion(workout_id: str, athleteId: str) -> Dict[str, Any]:
    # Read-only: compares the stored marker with a fresh evaluation without touching either
    async with get_session() as session:
        exercises = await workout_exercises(session, workout_id)
        if not exercises:
            if await session.get(Workout, workout_id) is None:
                raise NotFound("Workout not found")
        statuses = {
            ex.id: (await evaluate_exercise(session, ex.id, workout_id, athleteId)).status
            for ex in exercises
        }
        marker = await session.get(WorkoutCompletion, (workout_id, athleteId))
    fresh = bool(statuses) and all(s == "completed" for s in statuses.values())
    stored = marker is not None
    return {
        "exercises": statuses,
        "fresh_complete": fresh,
        "marker_present": stored,
        "marker_completed_at": marker.completed_at.isoformat() if marker else None,
        "in_sync": fresh == stored,
    }
