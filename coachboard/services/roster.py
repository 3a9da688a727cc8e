from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter
from sqlalchemy import delete
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..db import get_session
from ..errors import InvalidInput, NotFound
from ..models import Athlete, ExerciseNote, ExerciseSet, SetWriteSequence, Team, TeamAthlete, Workout, WorkoutCompletion
from ..schemas import AthleteIn, AthleteOut, AthleteUpdate, TeamIn, TeamOut, TeamUpdate
from .workouts import purge_workout

logger = logging.getLogger(__name__)

router = APIRouter()


async def create_athlete(session: AsyncSession, body: AthleteIn) -> AthleteOut:
    athlete_id = body.id or uuid.uuid4().hex
    if await session.get(Athlete, athlete_id) is not None:
        raise InvalidInput(f"Athlete {athlete_id} already exists")
    session.add(Athlete(id=athlete_id, name=body.name, email=body.email))
    await session.commit()
    return AthleteOut(id=athlete_id, name=body.name, email=body.email)


async def get_athlete(session: AsyncSession, athlete_id: str) -> AthleteOut:
    athlete = await session.get(Athlete, athlete_id)
    if athlete is None:
        raise NotFound("Athlete not found")
    team_ids = (await session.exec(select(TeamAthlete.team_id).where(TeamAthlete.athlete_id == athlete_id))).all()
    return AthleteOut(id=athlete.id, name=athlete.name, email=athlete.email, team_ids=list(team_ids))


async def list_athletes(session: AsyncSession) -> List[AthleteOut]:
    athletes = (await session.exec(select(Athlete).order_by(Athlete.name))).all()
    return [await get_athlete(session, a.id) for a in athletes]


async def update_athlete(session: AsyncSession, athlete_id: str, body: AthleteUpdate) -> AthleteOut:
    athlete = await session.get(Athlete, athlete_id)
    if athlete is None:
        raise NotFound("Athlete not found")
    # Only fields present in the body are touched
    changes = body.model_dump(exclude_unset=True)
    if "name" in changes and not changes["name"]:
        raise InvalidInput("Name cannot be empty")
    for field, value in changes.items():
        setattr(athlete, field, value)
    session.add(athlete)
    await session.commit()
    return await get_athlete(session, athlete_id)


async def delete_athlete(session: AsyncSession, athlete_id: str) -> None:
    """Remove an athlete with their memberships, own workouts and everything they logged."""
    athlete = await session.get(Athlete, athlete_id)
    if athlete is None:
        raise NotFound("Athlete not found")

    owned = (await session.exec(select(Workout).where(Workout.athlete_id == athlete_id))).all()
    for workout in owned:
        await purge_workout(session, workout)
    # State logged against team workouts and templates
    for model in (ExerciseSet, ExerciseNote, SetWriteSequence, WorkoutCompletion):
        await session.execute(delete(model).where(model.athlete_id == athlete_id))
    await session.execute(delete(TeamAthlete).where(TeamAthlete.athlete_id == athlete_id))
    await session.delete(athlete)
    await session.commit()
    logger.info("[coachboard] roster: deleted athlete %s and %d workouts", athlete_id, len(owned))


async def create_team(session: AsyncSession, body: TeamIn) -> TeamOut:
    team_id = body.id or uuid.uuid4().hex
    if await session.get(Team, team_id) is not None:
        raise InvalidInput(f"Team {team_id} already exists")
    session.add(Team(id=team_id, name=body.name, description=body.description))
    await session.commit()
    return TeamOut(id=team_id, name=body.name, description=body.description)


async def get_team(session: AsyncSession, team_id: str) -> TeamOut:
    team = await session.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")
    athlete_ids = (await session.exec(select(TeamAthlete.athlete_id).where(TeamAthlete.team_id == team_id))).all()
    return TeamOut(id=team.id, name=team.name, description=team.description, athlete_ids=list(athlete_ids))


async def list_teams(session: AsyncSession) -> List[TeamOut]:
    teams = (await session.exec(select(Team).order_by(Team.name))).all()
    return [await get_team(session, t.id) for t in teams]


async def update_team(session: AsyncSession, team_id: str, body: TeamUpdate) -> TeamOut:
    team = await session.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")
    changes = body.model_dump(exclude_unset=True)
    if "name" in changes and not changes["name"]:
        raise InvalidInput("Name cannot be empty")
    for field, value in changes.items():
        setattr(team, field, value)
    session.add(team)
    await session.commit()
    return await get_team(session, team_id)


async def delete_team(session: AsyncSession, team_id: str) -> None:
    """Remove a team, its memberships and the workouts rolled out to it."""
    team = await session.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")

    owned = (await session.exec(select(Workout).where(Workout.team_id == team_id))).all()
    for workout in owned:
        await purge_workout(session, workout)
    await session.execute(delete(TeamAthlete).where(TeamAthlete.team_id == team_id))
    await session.delete(team)
    await session.commit()
    logger.info("[coachboard] roster: deleted team %s and %d workouts", team_id, len(owned))


async def add_member(session: AsyncSession, team_id: str, athlete_id: str) -> TeamOut:
    if await session.get(Team, team_id) is None:
        raise NotFound("Team not found")
    if await session.get(Athlete, athlete_id) is None:
        raise NotFound("Athlete not found")
    if await session.get(TeamAthlete, (team_id, athlete_id)) is None:
        session.add(TeamAthlete(team_id=team_id, athlete_id=athlete_id))
        await session.commit()
    return await get_team(session, team_id)


async def remove_member(session: AsyncSession, team_id: str, athlete_id: str) -> TeamOut:
    await session.execute(
        delete(TeamAthlete).where(TeamAthlete.team_id == team_id, TeamAthlete.athlete_id == athlete_id)
    )
    await session.commit()
    return await get_team(session, team_id)


@router.get("/athletes")
async def read_athletes() -> List[Dict[str, Any]]:
    async with get_session() as session:
        return [a.model_dump(by_alias=True) for a in await list_athletes(session)]


@router.post("/athletes", status_code=201)
async def post_athlete(body: AthleteIn) -> Dict[str, Any]:
    async with get_session() as session:
        return (await create_athlete(session, body)).model_dump(by_alias=True)


@router.get("/athletes/{athlete_id}")
async def read_athlete(athlete_id: str) -> Dict[str, Any]:
    async with get_session() as session:
        return (await get_athlete(session, athlete_id)).model_dump(by_alias=True)


@router.get("/teams")
async def read_teams() -> List[Dict[str, Any]]:
    async with get_session() as session:
        return [t.model_dump(by_alias=True) for t in await list_teams(session)]


@router.post("/teams", status_code=201)
async def post_team(body: TeamIn) -> Dict[str, Any]:
    async with get_session() as session:
        return (await create_team(session, body)).model_dump(by_alias=True)


@router.post("/teams/{team_id}/athletes/{athlete_id}")
async def post_member(team_id: str, athlete_id: str) -> Dict[str, Any]:
    async with get_session() as session:
        return (await add_member(session, team_id, athlete_id)).model_dump(by_alias=True)


@router.delete("/teams/{team_id}/athletes/{athlete_id}")
async def delete_member(team_id: str, athlete_id: str) -> Dict[str, Any]:
    async with get_session() as session:
        return (await remove_member(session, team_id, athlete_id)).model_dump(by_alias=True)


@router.put("/athletes/{athlete_id}")
async def put_athlete(athlete_id: str, body: AthleteUpdate) -> Dict[str, Any]:
    async with get_session() as session:
        return (await update_athlete(session, athlete_id, body)).model_dump(by_alias=True)


@router.delete("/athletes/{athlete_id}", status_code=204)
async def remove_athlete(athlete_id: str) -> None:
    async with get_session() as session:
        await delete_athlete(session, athlete_id)


@router.put("/teams/{team_id}")
async def put_team(team_id: str, body: TeamUpdate) -> Dict[str, Any]:
    async with get_session() as session:
        return (await update_team(session, team_id, body)).model_dump(by_alias=True)


@router.delete("/teams/{team_id}", status_code=204)
async def remove_team(team_id: str) -> None:
    async with get_session() as session:
        await delete_team(session, team_id)
