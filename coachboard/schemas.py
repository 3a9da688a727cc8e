from __future__ import annotations

from datetime import date as date_type
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExerciseSpec(ApiModel):
    id: Optional[str] = None
    exercise_name: str
    sets: int = Field(ge=0)
    reps: str
    weight: Optional[str] = None
    video_url: Optional[str] = None


class BlockSpec(ApiModel):
    id: Optional[str] = None
    name: str
    exercises: List[ExerciseSpec] = []


class WorkoutSpec(ApiModel):
    id: Optional[str] = None
    name: str
    date: date_type
    athlete_id: Optional[str] = None
    team_id: Optional[str] = None
    blocks: List[BlockSpec] = []

    def identifiers(self) -> set[str]:
        ids = {self.id} if self.id else set()
        for block in self.blocks:
            if block.id:
                ids.add(block.id)
            ids.update(ex.id for ex in block.exercises if ex.id)
        return ids

    def exercise_count(self) -> int:
        return sum(len(b.exercises) for b in self.blocks)


class SetEntry(ApiModel):
    set: int
    weight: str = ""
    reps: str = ""
    completed: bool = False


class SaveSetsRequest(ApiModel):
    athlete_id: str
    sets: List[SetEntry]
    sequence: Optional[int] = None


class SaveSetsResult(ApiModel):
    success: bool = True
    applied: bool
    sequence: Optional[int] = None
    workout_complete: bool
    message: str


ExerciseStatusName = Literal["not-started", "in-progress", "completed"]


class StatusRecord(ApiModel):
    status: ExerciseStatusName
    completed_sets: int
    total_sets: int
    reps_vary: bool = False
    common_reps: Optional[str] = None
    min_reps: Optional[int] = None
    max_reps: Optional[int] = None


CompletionStatus = Dict[str, StatusRecord]


class CopyRecurringRequest(ApiModel):
    source_workout_ids: List[str]
    target_athlete_id: str
    start_date: date_type
    weekdays: List[int]
    week_count: int


class CopyRequest(ApiModel):
    source_workout_ids: List[str]
    target_athlete_id: str
    date: date_type


class AssignRequest(ApiModel):
    date: date_type
    athlete_id: Optional[str] = None
    team_id: Optional[str] = None
    name: Optional[str] = None


class NoteRequest(ApiModel):
    athlete_id: str
    notes: str = ""


class AthleteIn(ApiModel):
    id: Optional[str] = None
    name: str
    email: Optional[str] = None


class AthleteOut(ApiModel):
    id: str
    name: str
    email: Optional[str] = None
    team_ids: List[str] = []


class TeamIn(ApiModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None


class TeamOut(ApiModel):
    id: str
    name: str
    description: Optional[str] = None
    athlete_ids: List[str] = []


class AthleteUpdate(ApiModel):
    name: Optional[str] = None
    email: Optional[str] = None


class TeamUpdate(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
