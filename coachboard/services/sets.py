from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from sqlalchemy import delete, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import get_session
from ..errors import InvalidInput, NotFound
from ..models import Athlete, Block, BlockExercise, ExerciseNote, ExerciseSet, SetWriteSequence, Workout
from ..schemas import NoteRequest, SaveSetsRequest, SaveSetsResult, SetEntry
from .completion import evaluate_workout

logger = logging.getLogger(__name__)

router = APIRouter()


def set_record_id(exercise_id: str, athlete_id: str, set_number: int) -> str:
    return f"{exercise_id}_{athlete_id}_{set_number}"


def _triple(exercise_id: str, workout_id: str, athlete_id: str):
    return (
        ExerciseSet.block_exercise_id == exercise_id,
        ExerciseSet.workout_id == workout_id,
        ExerciseSet.athlete_id == athlete_id,
    )


async def ensure_exercise_in_workout(session: AsyncSession, workout_id: str, exercise_id: str) -> BlockExercise:
    if await session.get(Workout, workout_id) is None:
        raise NotFound("Workout not found")
    exercise = await session.get(BlockExercise, exercise_id)
    if exercise is None:
        raise NotFound("Exercise not found")
    block = await session.get(Block, exercise.block_id)
    if block is None or block.workout_id != workout_id:
        raise NotFound("Exercise not found in this workout")
    return exercise


def validate_set_numbers(sets: List[SetEntry]) -> None:
    numbers = sorted(s.set for s in sets)
    if numbers != list(range(1, len(sets) + 1)):
        raise InvalidInput("Set numbers must be contiguous starting at 1")


async def _accept_sequence(
    session: AsyncSession, exercise_id: str, workout_id: str, athlete_id: str, sequence: Optional[int]
) -> bool:
    """Advance the write-intent token; False when the write is older than the last applied one.

    The token is claimed with an insert-if-absent followed by a conditional
    update, so the first statement of the save already holds the database
    write lock and concurrent saves for the same triple are serialized.
    """
    if sequence is None:
        return True
    now = datetime.utcnow()
    await session.execute(
        sqlite_insert(SetWriteSequence)
        .values(
            block_exercise_id=exercise_id,
            workout_id=workout_id,
            athlete_id=athlete_id,
            last_sequence=sequence,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["block_exercise_id", "workout_id", "athlete_id"])
    )
    result = await session.execute(
        update(SetWriteSequence)
        .where(
            SetWriteSequence.block_exercise_id == exercise_id,
            SetWriteSequence.workout_id == workout_id,
            SetWriteSequence.athlete_id == athlete_id,
            SetWriteSequence.last_sequence <= sequence,
        )
        .values(last_sequence=sequence, updated_at=now)
    )
    return result.rowcount == 1


async def get_sets(session: AsyncSession, workout_id: str, exercise_id: str, athlete_id: str) -> List[ExerciseSet]:
    result = await session.exec(
        select(ExerciseSet).where(*_triple(exercise_id, workout_id, athlete_id)).order_by(ExerciseSet.set_number)
    )
    return list(result.all())


async def save_sets(
    session: AsyncSession,
    workout_id: str,
    exercise_id: str,
    athlete_id: str,
    sets: List[SetEntry],
    sequence: Optional[int] = None,
) -> SaveSetsResult:
    """Replace every set record of (exercise, workout, athlete) in one transaction.

    The workout's completion marker is re-evaluated before the commit, so a
    caller that sees this return also sees a consistent marker.
    """
    await ensure_exercise_in_workout(session, workout_id, exercise_id)
    if await session.get(Athlete, athlete_id) is None:
        raise NotFound("Athlete not found")
    validate_set_numbers(sets)

    if not await _accept_sequence(session, exercise_id, workout_id, athlete_id, sequence):
        logger.debug(
            "[coachboard] sets: stale write seq=%s ignored for %s/%s/%s", sequence, workout_id, exercise_id, athlete_id
        )
        # Nothing written, report the marker as it stands
        complete = await evaluate_workout(session, workout_id, athlete_id)
        await session.commit()
        return SaveSetsResult(
            applied=False, sequence=sequence, workout_complete=complete, message="Stale write ignored"
        )

    stamped = await session.exec(
        select(ExerciseSet.set_number, ExerciseSet.completed_at).where(
            *_triple(exercise_id, workout_id, athlete_id), ExerciseSet.completed == True  # noqa: E712
        )
    )
    previous = {number: completed_at for number, completed_at in stamped.all()}
    await session.execute(delete(ExerciseSet).where(*_triple(exercise_id, workout_id, athlete_id)))

    now = datetime.utcnow()
    for entry in sets:
        completed_at = None
        if entry.completed:
            # Stamp only on the transition to completed
            completed_at = previous.get(entry.set) or now
        session.add(
            ExerciseSet(
                id=set_record_id(exercise_id, athlete_id, entry.set),
                block_exercise_id=exercise_id,
                workout_id=workout_id,
                athlete_id=athlete_id,
                set_number=entry.set,
                weight=entry.weight or None,
                reps=entry.reps or None,
                completed=entry.completed,
                completed_at=completed_at,
            )
        )
    await session.flush()

    complete = await evaluate_workout(session, workout_id, athlete_id)
    await session.commit()
    logger.info(
        "[coachboard] sets: saved %d sets for %s/%s/%s (complete=%s)",
        len(sets), workout_id, exercise_id, athlete_id, complete,
    )
    return SaveSetsResult(applied=True, sequence=sequence, workout_complete=complete, message="Sets saved successfully")


async def save_note(session: AsyncSession, workout_id: str, exercise_id: str, athlete_id: str, notes: str) -> ExerciseNote:
    await ensure_exercise_in_workout(session, workout_id, exercise_id)
    note_id = f"{exercise_id}_{workout_id}_{athlete_id}"
    note = await session.get(ExerciseNote, note_id)
    if note is None:
        note = ExerciseNote(id=note_id, block_exercise_id=exercise_id, workout_id=workout_id, athlete_id=athlete_id)
    note.notes = notes
    note.updated_at = datetime.utcnow()
    session.add(note)
    await session.commit()
    return note


async def get_note(session: AsyncSession, workout_id: str, exercise_id: str, athlete_id: str) -> str:
    note = await session.get(ExerciseNote, f"{exercise_id}_{workout_id}_{athlete_id}")
    return note.notes if note is not None else ""


@router.post("/workouts/{workout_id}/exercises/{exercise_id}/sets")
async def post_sets(workout_id: str, exercise_id: str, body: SaveSetsRequest) -> Dict[str, Any]:
    async with get_session() as session:
        result = await save_sets(session, workout_id, exercise_id, body.athlete_id, body.sets, body.sequence)
    return result.model_dump(by_alias=True)


@router.get("/workouts/{workout_id}/exercises/{exercise_id}/sets")
async def read_sets(workout_id: str, exercise_id: str, athleteId: str) -> List[Dict[str, Any]]:
    async with get_session() as session:
        records = await get_sets(session, workout_id, exercise_id, athleteId)
    return [
        {"set": r.set_number, "weight": r.weight or "", "reps": r.reps or "", "completed": r.completed}
        for r in records
    ]


@router.post("/workouts/{workout_id}/exercises/{exercise_id}/notes")
async def post_notes(workout_id: str, exercise_id: str, body: NoteRequest) -> Dict[str, Any]:
    async with get_session() as session:
        await save_note(session, workout_id, exercise_id, body.athlete_id, body.notes)
    return {"success": True, "message": "Notes saved successfully"}


@router.get("/workouts/{workout_id}/exercises/{exercise_id}/notes")
async def read_notes(workout_id: str, exercise_id: str, athleteId: str) -> Dict[str, str]:
    async with get_session() as session:
        notes = await get_note(session, workout_id, exercise_id, athleteId)
    return {"notes": notes}
