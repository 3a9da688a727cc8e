from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from fastapi import APIRouter
from sqlalchemy import delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import get_session
from ..errors import NotFound
from ..models import Athlete, Block, BlockExercise, ExerciseSet, Workout, WorkoutCompletion
from ..schemas import CompletionStatus, StatusRecord

logger = logging.getLogger(__name__)

router = APIRouter()

_LEADING_INT = re.compile(r"^\s*(\d+)")


async def workout_exercises(session: AsyncSession, workout_id: str) -> List[BlockExercise]:
    """Every exercise of a workout, in block order then exercise order."""
    result = await session.exec(
        select(BlockExercise, Block)
        .where(BlockExercise.block_id == Block.id, Block.workout_id == workout_id)
        .order_by(Block.order_index, BlockExercise.order_index)
    )
    return [ex for ex, _block in result.all()]


def _parse_reps(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    m = _LEADING_INT.match(value)
    return int(m.group(1)) if m else None


def classify(completed: int, total: int) -> str:
    if total == 0 or completed == 0:
        return "not-started"
    if completed == total:
        return "completed"
    return "in-progress"


def summarize_sets(records: List[ExerciseSet]) -> StatusRecord:
    total = len(records)
    completed = sum(1 for r in records if r.completed)

    reps_values = [r.reps.strip() for r in records if r.reps and r.reps.strip()]
    distinct = set(reps_values)
    reps_vary = len(distinct) > 1
    common_reps = reps_values[0] if len(distinct) == 1 else None

    min_reps = max_reps = None
    if reps_vary:
        numbers = [n for n in (_parse_reps(v) for v in reps_values) if n is not None]
        if numbers:
            min_reps, max_reps = min(numbers), max(numbers)

    return StatusRecord(
        status=classify(completed, total),
        completed_sets=completed,
        total_sets=total,
        reps_vary=reps_vary,
        common_reps=common_reps,
        min_reps=min_reps,
        max_reps=max_reps,
    )


async def evaluate_exercise(
    session: AsyncSession, exercise_id: str, workout_id: str, athlete_id: str
) -> StatusRecord:
    # Counts persisted sets, not BlockExercise.sets: athletes add and remove sets freely
    result = await session.exec(
        select(ExerciseSet)
        .where(
            ExerciseSet.block_exercise_id == exercise_id,
            ExerciseSet.workout_id == workout_id,
            ExerciseSet.athlete_id == athlete_id,
        )
        .order_by(ExerciseSet.set_number)
    )
    return summarize_sets(list(result.all()))


async def get_completion_status(
    session: AsyncSession, workout_id: str, athlete_id: str
) -> CompletionStatus:
    if await session.get(Workout, workout_id) is None:
        raise NotFound("Workout not found")
    if await session.get(Athlete, athlete_id) is None:
        raise NotFound("Athlete not found")

    status: Dict[str, StatusRecord] = {}
    for exercise in await workout_exercises(session, workout_id):
        status[exercise.exercise_name] = await evaluate_exercise(
            session, exercise.id, workout_id, athlete_id
        )
    return status


async def evaluate_workout(session: AsyncSession, workout_id: str, athlete_id: str) -> bool:
    """Recompute the completion marker for one (workout, athlete) pair.

    Runs inside the caller's transaction; the caller commits.
    """
    exercises = await workout_exercises(session, workout_id)
    complete = bool(exercises)
    for exercise in exercises:
        record = await evaluate_exercise(session, exercise.id, workout_id, athlete_id)
        if record.status != "completed":
            complete = False
            break

    marker = await session.get(WorkoutCompletion, (workout_id, athlete_id))
    if complete:
        if marker is None:
            session.add(WorkoutCompletion(workout_id=workout_id, athlete_id=athlete_id, completed_at=datetime.utcnow()))
            logger.info("[coachboard] completion: workout %s complete for athlete %s", workout_id, athlete_id)
    else:
        # Missing row is fine here
        await session.execute(
            delete(WorkoutCompletion).where(
                WorkoutCompletion.workout_id == workout_id,
                WorkoutCompletion.athlete_id == athlete_id,
            )
        )
        if marker is not None:
            logger.info("[coachboard] completion: workout %s no longer complete for athlete %s", workout_id, athlete_id)
    await session.flush()
    return complete


async def athletes_with_sets(session: AsyncSession, workout_id: str) -> List[str]:
    result = await session.exec(
        select(ExerciseSet.athlete_id).where(ExerciseSet.workout_id == workout_id).distinct()
    )
    return list(result.all())


async def rebuild_completions(session: AsyncSession, athlete_id: Optional[str] = None) -> int:
    """Rebuild every completion marker from set records; returns the number of complete pairs."""
    pairs_q = select(ExerciseSet.workout_id, ExerciseSet.athlete_id).distinct()
    markers_q = select(WorkoutCompletion)
    if athlete_id:
        pairs_q = pairs_q.where(ExerciseSet.athlete_id == athlete_id)
        markers_q = markers_q.where(WorkoutCompletion.athlete_id == athlete_id)

    pairs: Set[Tuple[str, str]] = {(w, a) for w, a in (await session.exec(pairs_q)).all()}
    # Markers without any backing set records are stale by definition
    for marker in (await session.exec(markers_q)).all():
        if (marker.workout_id, marker.athlete_id) not in pairs:
            await session.delete(marker)

    complete = 0
    for workout_id, athlete in sorted(pairs):
        if await evaluate_workout(session, workout_id, athlete):
            complete += 1
    await session.commit()
    logger.info("[coachboard] completion: rebuilt %d pairs, %d complete", len(pairs), complete)
    return complete


async def list_completed_workouts(session: AsyncSession, athlete_id: str) -> Dict[str, bool]:
    result = await session.exec(
        select(WorkoutCompletion.workout_id).where(WorkoutCompletion.athlete_id == athlete_id)
    )
    return {workout_id: True for workout_id in result.all()}


@router.get("/workouts/completions")
async def completions(athleteId: str) -> Dict[str, bool]:
    async with get_session() as session:
        return await list_completed_workouts(session, athleteId)


@router.post("/workouts/completions/rebuild")
async def rebuild(athleteId: Optional[str] = None) -> Dict[str, int]:
    async with get_session() as session:
        complete = await rebuild_completions(session, athleteId)
    return {"complete": complete}


@router.get("/workouts/{workout_id}/completion")
async def completion_status(workout_id: str, athleteId: str) -> Dict[str, dict]:
    async with get_session() as session:
        status = await get_completion_status(session, workout_id, athleteId)
    return {name: record.model_dump(by_alias=True) for name, record in status.items()}
