from datetime import date, datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlmodel import Session, select

from kickoff.database import get_session
from kickoff.models.group import TournamentGroup
from kickoff.models.tournament import Tournament
from kickoff.services.errors import ConfigurationError
from kickoff.services.fixture_types import TOURNAMENT_PENDING
from kickoff.services.stage_orchestrator import load_groups, tournament_config, tournament_team_ids

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    start_date: date
    field_count: int = Field(default=1, gt=0)
    match_duration_minutes: int = Field(default=40, gt=0)
    break_duration_minutes: int = Field(default=10, ge=0)
    daily_start_time: str = "09:00"
    daily_end_time: str = "17:00"
    lunch_break_start: str = "12:00"
    lunch_break_duration_minutes: int = Field(default=60, ge=0)
    utc_offset_minutes: int = 180
    extra_time_enabled: bool = False
    penalty_shootout_enabled: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    start_date: date
    status: str
    field_count: int
    match_duration_minutes: int
    break_duration_minutes: int
    daily_start_time: str
    daily_end_time: str
    lunch_break_start: str
    lunch_break_duration_minutes: int
    utc_offset_minutes: int
    extra_time_enabled: bool
    penalty_shootout_enabled: bool
    created_at: datetime
    updated_at: datetime


class GroupPayload(BaseModel):
    name: str
    team_ids: List[int]


class GroupsUpdate(BaseModel):
    groups: List[GroupPayload]


class GroupResponse(BaseModel):
    name: str
    team_ids: List[int]


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a tournament. The scheduling window is validated up front."""
    tournament = Tournament(**tournament_data.model_dump())
    try:
        tournament_config(tournament).validate()
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return get_tournament_or_404(session, tournament_id)


@router.get("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse])
def get_groups(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return [GroupResponse(name=g.name, team_ids=g.team_ids) for g in load_groups(session, tournament_id)]


@router.put("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse])
def replace_groups(tournament_id: int, payload: GroupsUpdate, session: Session = Depends(get_session)):
    """
    Replace the ordered group list.

    Only while the tournament is pending; delete the fixture first otherwise.
    Every team must belong to the tournament and appear in at most one group.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    if tournament.status != TOURNAMENT_PENDING:
        raise HTTPException(
            status_code=409,
            detail=f"Groups can only change while the tournament is pending (status: {tournament.status})",
        )

    known = set(tournament_team_ids(session, tournament_id))
    seen_names = set()
    seen_teams = set()
    for group in payload.groups:
        name = group.name.strip()
        if not name:
            raise HTTPException(status_code=422, detail="Group name is required")
        if name in seen_names:
            raise HTTPException(status_code=422, detail=f"Duplicate group name: {name}")
        seen_names.add(name)
        for team_id in group.team_ids:
            if team_id not in known:
                raise HTTPException(status_code=422, detail=f"Team {team_id} does not belong to this tournament")
            if team_id in seen_teams:
                raise HTTPException(status_code=422, detail=f"Team {team_id} is listed in more than one group")
            seen_teams.add(team_id)

    existing = session.exec(select(TournamentGroup).where(TournamentGroup.tournament_id == tournament_id)).all()
    for row in existing:
        session.delete(row)
    session.flush()

    for position, group in enumerate(payload.groups):
        session.add(
            TournamentGroup(
                tournament_id=tournament_id,
                name=group.name.strip(),
                position=position,
                team_ids=list(group.team_ids),
            )
        )
    session.commit()

    return [GroupResponse(name=g.name, team_ids=g.team_ids) for g in load_groups(session, tournament_id)]
