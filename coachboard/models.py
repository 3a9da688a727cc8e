from __future__ import annotations

from datetime import date as date_type, datetime
from typing import Optional

from sqlmodel import SQLModel, Field


class Athlete(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    email: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Team(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TeamAthlete(SQLModel, table=True):
    team_id: str = Field(foreign_key="team.id", primary_key=True)
    athlete_id: str = Field(foreign_key="athlete.id", primary_key=True, index=True)


class Workout(SQLModel, table=True):
    # Template iff athlete_id and team_id are both None
    id: str = Field(primary_key=True)
    name: str
    date: date_type = Field(index=True)
    athlete_id: Optional[str] = Field(default=None, foreign_key="athlete.id", index=True)
    team_id: Optional[str] = Field(default=None, foreign_key="team.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_template(self) -> bool:
        return self.athlete_id is None and self.team_id is None


class Block(SQLModel, table=True):
    id: str = Field(primary_key=True)
    workout_id: str = Field(foreign_key="workout.id", index=True)
    name: str
    order_index: int


class BlockExercise(SQLModel, table=True):
    id: str = Field(primary_key=True)
    block_id: str = Field(foreign_key="block.id", index=True)
    exercise_name: str
    sets: int
    reps: str
    weight: Optional[str] = None
    video_url: Optional[str] = None
    order_index: int


class ExerciseSet(SQLModel, table=True):
    id: str = Field(primary_key=True)
    block_exercise_id: str = Field(foreign_key="blockexercise.id", index=True)
    workout_id: str = Field(foreign_key="workout.id", index=True)
    athlete_id: str = Field(foreign_key="athlete.id", index=True)
    set_number: int
    weight: Optional[str] = None
    reps: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None


class SetWriteSequence(SQLModel, table=True):
    """Last applied write-intent sequence per (exercise, workout, athlete)."""

    block_exercise_id: str = Field(primary_key=True)
    workout_id: str = Field(primary_key=True)
    athlete_id: str = Field(primary_key=True)
    last_sequence: int
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class WorkoutCompletion(SQLModel, table=True):
    # Derived from ExerciseSet rows, rebuildable at any time
    workout_id: str = Field(foreign_key="workout.id", primary_key=True)
    athlete_id: str = Field(foreign_key="athlete.id", primary_key=True, index=True)
    completed_at: datetime = Field(default_factory=datetime.utcnow)


class ExerciseNote(SQLModel, table=True):
    id: str = Field(primary_key=True)
    block_exercise_id: str = Field(foreign_key="blockexercise.id", index=True)
    workout_id: str = Field(foreign_key="workout.id")
    athlete_id: str = Field(foreign_key="athlete.id")
    notes: str = ""
    updated_at: datetime = Field(default_factory=datetime.utcnow)
