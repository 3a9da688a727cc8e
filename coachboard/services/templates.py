from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional, Set

from ..errors import InvalidInput
from ..schemas import BlockSpec, ExerciseSpec, WorkoutSpec


class IdFactory:
    """Issues identifiers that never repeat and never hit a reserved id.

    Share one factory across a batch of instantiations so ids stay unique
    across every workout produced in that batch.
    """

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._taken: Set[str] = set(reserved)

    def reserve(self, ids: Iterable[str]) -> None:
        self._taken.update(ids)

    def new_id(self, prefix: str) -> str:
        while True:
            candidate = f"{prefix}_{uuid.uuid4().hex}"
            if candidate not in self._taken:
                self._taken.add(candidate)
                return candidate


def clone_exercise(exercise: ExerciseSpec, ids: IdFactory) -> ExerciseSpec:
    return ExerciseSpec(
        id=ids.new_id("ex"),
        exercise_name=exercise.exercise_name,
        sets=exercise.sets,
        reps=exercise.reps,
        weight=exercise.weight,
        video_url=exercise.video_url,
    )


def clone_block(block: BlockSpec, ids: IdFactory) -> BlockSpec:
    return BlockSpec(
        id=ids.new_id("block"),
        name=block.name,
        exercises=[clone_exercise(ex, ids) for ex in block.exercises],
    )


def instantiate(
    source: WorkoutSpec,
    *,
    date: date,
    athlete_id: Optional[str] = None,
    team_id: Optional[str] = None,
    name: Optional[str] = None,
    ids: Optional[IdFactory] = None,
) -> WorkoutSpec:
    """Deep-copy ``source`` into a new workout for ``athlete_id``/``team_id``.

    Set records, notes and completion markers are never carried over; the
    copy always starts untouched. Passing neither owner yields a template.
    """
    if athlete_id and team_id:
        raise InvalidInput("A workout belongs to an athlete or a team, not both")

    if ids is None:
        ids = IdFactory()
    ids.reserve(source.identifiers())

    return WorkoutSpec(
        id=ids.new_id("wk"),
        name=name or source.name,
        date=date,
        athlete_id=athlete_id or None,
        team_id=team_id or None,
        blocks=[clone_block(block, ids) for block in source.blocks],
    )
