from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Set

from fastapi import APIRouter
from sqlalchemy import delete, or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import get_session
from ..errors import InvalidInput, NotFound
from ..models import (
    Athlete,
    Block,
    BlockExercise,
    ExerciseNote,
    ExerciseSet,
    SetWriteSequence,
    Team,
    TeamAthlete,
    Workout,
    WorkoutCompletion,
)
from ..schemas import AssignRequest, BlockSpec, CopyRecurringRequest, CopyRequest, ExerciseSpec, WorkoutSpec
from ..settings import get_settings
from .completion import athletes_with_sets, evaluate_workout
from .schedule import recurring_dates, validate_pattern, weekday_name
from .templates import IdFactory, instantiate

logger = logging.getLogger(__name__)

router = APIRouter()


async def _check_owner(session: AsyncSession, athlete_id: Optional[str], team_id: Optional[str]) -> None:
    if athlete_id and team_id:
        raise InvalidInput("A workout belongs to an athlete or a team, not both")
    if athlete_id and await session.get(Athlete, athlete_id) is None:
        raise NotFound("Athlete not found")
    if team_id and await session.get(Team, team_id) is None:
        raise NotFound("Team not found")


def _add_structure(session: AsyncSession, workout_id: str, blocks: List[BlockSpec]) -> None:
    for block_index, block in enumerate(blocks):
        session.add(Block(id=block.id, workout_id=workout_id, name=block.name, order_index=block_index))
        for exercise_index, ex in enumerate(block.exercises):
            session.add(
                BlockExercise(
                    id=ex.id,
                    block_id=block.id,
                    exercise_name=ex.exercise_name,
                    sets=ex.sets,
                    reps=ex.reps,
                    weight=ex.weight or None,
                    video_url=ex.video_url or None,
                    order_index=exercise_index,
                )
            )


def persist_workout(session: AsyncSession, spec: WorkoutSpec) -> None:
    """Stage a fully identified workout tree; the caller commits."""
    session.add(
        Workout(id=spec.id, name=spec.name, date=spec.date, athlete_id=spec.athlete_id, team_id=spec.team_id)
    )
    _add_structure(session, spec.id, spec.blocks)


async def load_workout(session: AsyncSession, workout_id: str) -> Optional[WorkoutSpec]:
    workout = await session.get(Workout, workout_id)
    if workout is None:
        return None

    blocks = (
        await session.exec(select(Block).where(Block.workout_id == workout_id).order_by(Block.order_index))
    ).all()
    specs: List[BlockSpec] = []
    for block in blocks:
        exercises = (
            await session.exec(
                select(BlockExercise).where(BlockExercise.block_id == block.id).order_by(BlockExercise.order_index)
            )
        ).all()
        specs.append(
            BlockSpec(
                id=block.id,
                name=block.name,
                exercises=[
                    ExerciseSpec(
                        id=ex.id,
                        exercise_name=ex.exercise_name,
                        sets=ex.sets,
                        reps=ex.reps,
                        weight=ex.weight,
                        video_url=ex.video_url,
                    )
                    for ex in exercises
                ],
            )
        )
    return WorkoutSpec(
        id=workout.id,
        name=workout.name,
        date=workout.date,
        athlete_id=workout.athlete_id,
        team_id=workout.team_id,
        blocks=specs,
    )


async def get_workout(session: AsyncSession, workout_id: str) -> WorkoutSpec:
    spec = await load_workout(session, workout_id)
    if spec is None:
        raise NotFound("Workout not found")
    return spec


async def list_workouts(
    session: AsyncSession,
    athlete_id: Optional[str] = None,
    team_id: Optional[str] = None,
    templates_only: bool = False,
) -> List[WorkoutSpec]:
    query = select(Workout)
    if templates_only:
        query = query.where(Workout.athlete_id == None, Workout.team_id == None)  # noqa: E711
    else:
        if athlete_id:
            # Direct assignments plus workouts rolled out to the athlete's teams
            team_ids = (
                await session.exec(select(TeamAthlete.team_id).where(TeamAthlete.athlete_id == athlete_id))
            ).all()
            if team_ids:
                query = query.where(or_(Workout.athlete_id == athlete_id, Workout.team_id.in_(team_ids)))
            else:
                query = query.where(Workout.athlete_id == athlete_id)
        if team_id:
            query = query.where(Workout.team_id == team_id)
    query = query.order_by(Workout.date.desc(), Workout.created_at.desc())

    workouts = (await session.exec(query)).all()
    return [await get_workout(session, w.id) for w in workouts]


async def create_workout(session: AsyncSession, spec: WorkoutSpec) -> WorkoutSpec:
    """Store ``spec`` as a new workout; identifiers are always freshly issued."""
    if not spec.name:
        raise InvalidInput("Name and date are required")
    await _check_owner(session, spec.athlete_id, spec.team_id)
    created = instantiate(spec, date=spec.date, athlete_id=spec.athlete_id, team_id=spec.team_id)
    persist_workout(session, created)
    await session.commit()
    logger.info("[coachboard] workouts: created %s (%s) on %s", created.id, created.name, created.date)
    return created


async def update_workout(session: AsyncSession, workout_id: str, spec: WorkoutSpec) -> WorkoutSpec:
    """Replace a workout's header and block tree.

    Exercise ids that already belong to this workout are kept so athletes'
    logged sets survive a reorder or rename; everything else gets new ids.
    """
    workout = await session.get(Workout, workout_id)
    if workout is None:
        raise NotFound("Workout not found")
    if not spec.name:
        raise InvalidInput("Name and date are required")
    await _check_owner(session, spec.athlete_id, spec.team_id)

    existing = await load_workout(session, workout_id)
    known_blocks = {b.id for b in existing.blocks}
    known_exercises = {ex.id for b in existing.blocks for ex in b.exercises}

    ids = IdFactory(reserved=existing.identifiers())
    used: Set[str] = set()

    def keep_or_issue(candidate: Optional[str], known: Set[str], prefix: str) -> str:
        # A known id is kept once; a repeat of it in the body becomes a new row
        if candidate in known and candidate not in used:
            used.add(candidate)
            return candidate
        return ids.new_id(prefix)

    blocks: List[BlockSpec] = []
    for block in spec.blocks:
        block_id = keep_or_issue(block.id, known_blocks, "block")
        blocks.append(
            BlockSpec(
                id=block_id,
                name=block.name,
                exercises=[
                    ex.model_copy(update={"id": keep_or_issue(ex.id, known_exercises, "ex")})
                    for ex in block.exercises
                ],
            )
        )
    kept = {ex.id for b in blocks for ex in b.exercises}
    removed = list(known_exercises - kept)

    if removed:
        await session.execute(delete(ExerciseSet).where(ExerciseSet.block_exercise_id.in_(removed)))
        await session.execute(delete(ExerciseNote).where(ExerciseNote.block_exercise_id.in_(removed)))
        await session.execute(delete(SetWriteSequence).where(SetWriteSequence.block_exercise_id.in_(removed)))
    await _delete_structure(session, workout_id)

    workout.name = spec.name
    workout.date = spec.date
    workout.athlete_id = spec.athlete_id or None
    workout.team_id = spec.team_id or None
    session.add(workout)
    _add_structure(session, workout_id, blocks)
    await session.flush()

    # Structure changed, so every athlete's marker may have changed too
    for athlete_id in await athletes_with_sets(session, workout_id):
        await evaluate_workout(session, workout_id, athlete_id)
    # Markers whose sets were all removed above
    await session.execute(
        delete(WorkoutCompletion).where(
            WorkoutCompletion.workout_id == workout_id,
            WorkoutCompletion.athlete_id.not_in(select(ExerciseSet.athlete_id).where(ExerciseSet.workout_id == workout_id)),
        )
    )
    await session.commit()
    return await get_workout(session, workout_id)


async def _delete_structure(session: AsyncSession, workout_id: str) -> None:
    block_ids = select(Block.id).where(Block.workout_id == workout_id)
    await session.execute(delete(BlockExercise).where(BlockExercise.block_id.in_(block_ids)))
    await session.execute(delete(Block).where(Block.workout_id == workout_id))


async def drop_execution_state(
    session: AsyncSession, workout_id: str, keep_athlete_id: Optional[str] = None
) -> None:
    """Delete set records, notes, sequence tokens and markers of a workout.

    With ``keep_athlete_id`` that athlete's state is left in place.
    """
    for model in (ExerciseSet, ExerciseNote, SetWriteSequence, WorkoutCompletion):
        query = delete(model).where(model.workout_id == workout_id)
        if keep_athlete_id:
            query = query.where(model.athlete_id != keep_athlete_id)
        await session.execute(query)


async def purge_workout(session: AsyncSession, workout: Workout) -> None:
    """Stage removal of a workout and everything hanging off it; the caller commits."""
    await drop_execution_state(session, workout.id)
    await _delete_structure(session, workout.id)
    await session.delete(workout)


async def delete_workout(session: AsyncSession, workout_id: str) -> None:
    workout = await session.get(Workout, workout_id)
    if workout is None:
        raise NotFound("Workout not found")
    await purge_workout(session, workout)
    await session.commit()
    logger.info("[coachboard] workouts: deleted %s", workout_id)


async def _load_sources(session: AsyncSession, source_ids: List[str]) -> List[WorkoutSpec]:
    if not source_ids:
        raise InvalidInput("At least one source workout is required")
    sources: List[WorkoutSpec] = []
    for source_id in source_ids:
        spec = await load_workout(session, source_id)
        if spec is None:
            raise NotFound(f"Workout {source_id} not found")
        sources.append(spec)
    return sources


async def copy_recurring(
    session: AsyncSession,
    source_ids: List[str],
    target_athlete_id: str,
    start: date,
    weekdays: List[int],
    weeks: int,
) -> List[WorkoutSpec]:
    """Copy each source workout onto every date of a weekly pattern.

    Everything is validated and loaded before the first row is staged, and
    the whole batch commits at once.
    """
    max_weeks = get_settings().max_recurring_weeks
    validate_pattern(weekdays, weeks, max_weeks)
    if await session.get(Athlete, target_athlete_id) is None:
        raise NotFound("Athlete not found")
    sources = await _load_sources(session, source_ids)

    dates = recurring_dates(start, weekdays, weeks, max_weeks)
    ids = IdFactory()
    created: List[WorkoutSpec] = []
    for source in sources:
        for day in dates:
            copy = instantiate(source, date=day, athlete_id=target_athlete_id, ids=ids)
            persist_workout(session, copy)
            created.append(copy)
    await session.commit()
    logger.info(
        "[coachboard] copy: %d workouts x %d dates (%s, %d weeks from %s) -> athlete %s",
        len(sources), len(dates), ",".join(weekday_name(d) for d in sorted(set(weekdays))), weeks, start, target_athlete_id,
    )
    return created


async def copy_workouts(
    session: AsyncSession, source_ids: List[str], target_athlete_id: str, day: date
) -> List[WorkoutSpec]:
    if await session.get(Athlete, target_athlete_id) is None:
        raise NotFound("Athlete not found")
    sources = await _load_sources(session, source_ids)
    ids = IdFactory()
    created = [instantiate(source, date=day, athlete_id=target_athlete_id, ids=ids) for source in sources]
    for copy in created:
        persist_workout(session, copy)
    await session.commit()
    logger.info("[coachboard] copy: %d workouts -> athlete %s on %s", len(created), target_athlete_id, day)
    return created


async def move_workouts(
    session: AsyncSession, source_ids: List[str], target_athlete_id: str, day: date
) -> List[WorkoutSpec]:
    """Reassign workouts in place; ids are preserved.

    Sets, notes and completion markers logged by anyone other than the new
    owner are dropped, since the workout no longer appears in their lists.
    """
    if await session.get(Athlete, target_athlete_id) is None:
        raise NotFound("Athlete not found")
    await _load_sources(session, source_ids)
    for source_id in source_ids:
        workout = await session.get(Workout, source_id)
        await drop_execution_state(session, source_id, keep_athlete_id=target_athlete_id)
        workout.athlete_id = target_athlete_id
        workout.team_id = None
        workout.date = day
        session.add(workout)
    await session.commit()
    logger.info("[coachboard] move: %d workouts -> athlete %s on %s", len(source_ids), target_athlete_id, day)
    return [await get_workout(session, source_id) for source_id in source_ids]


async def assign_template(
    session: AsyncSession,
    workout_id: str,
    day: date,
    athlete_id: Optional[str] = None,
    team_id: Optional[str] = None,
    name: Optional[str] = None,
) -> WorkoutSpec:
    source = await get_workout(session, workout_id)
    await _check_owner(session, athlete_id, team_id)
    copy = instantiate(source, date=day, athlete_id=athlete_id, team_id=team_id, name=name)
    persist_workout(session, copy)
    await session.commit()
    return copy


def _dump(spec: WorkoutSpec) -> Dict[str, Any]:
    return spec.model_dump(mode="json", by_alias=True)


@router.get("/workouts")
async def read_workouts(
    athleteId: Optional[str] = None, teamId: Optional[str] = None, templatesOnly: bool = False
) -> List[Dict[str, Any]]:
    async with get_session() as session:
        workouts = await list_workouts(session, athleteId, teamId, templatesOnly)
    return [_dump(w) for w in workouts]


@router.post("/workouts", status_code=201)
async def post_workout(body: WorkoutSpec) -> Dict[str, Any]:
    async with get_session() as session:
        created = await create_workout(session, body)
    return _dump(created)


@router.post("/workouts/copy-recurring", status_code=201)
async def post_copy_recurring(body: CopyRecurringRequest) -> List[Dict[str, Any]]:
    async with get_session() as session:
        created = await copy_recurring(
            session, body.source_workout_ids, body.target_athlete_id, body.start_date, body.weekdays, body.week_count
        )
    return [_dump(w) for w in created]


@router.post("/workouts/copy", status_code=201)
async def post_copy(body: CopyRequest) -> List[Dict[str, Any]]:
    async with get_session() as session:
        created = await copy_workouts(session, body.source_workout_ids, body.target_athlete_id, body.date)
    return [_dump(w) for w in created]


@router.post("/workouts/move")
async def post_move(body: CopyRequest) -> List[Dict[str, Any]]:
    async with get_session() as session:
        moved = await move_workouts(session, body.source_workout_ids, body.target_athlete_id, body.date)
    return [_dump(w) for w in moved]


@router.get("/workouts/{workout_id}")
async def read_workout(workout_id: str) -> Dict[str, Any]:
    async with get_session() as session:
        return _dump(await get_workout(session, workout_id))


@router.put("/workouts/{workout_id}")
async def put_workout(workout_id: str, body: WorkoutSpec) -> Dict[str, Any]:
    async with get_session() as session:
        return _dump(await update_workout(session, workout_id, body))


@router.delete("/workouts/{workout_id}", status_code=204)
async def remove_workout(workout_id: str) -> None:
    async with get_session() as session:
        await delete_workout(session, workout_id)


@router.post("/workouts/{workout_id}/assign", status_code=201)
async def post_assign(workout_id: str, body: AssignRequest) -> Dict[str, Any]:
    async with get_session() as session:
        copy = await assign_template(session, workout_id, body.date, body.athlete_id, body.team_id, body.name)
    return _dump(copy)
