"""
Team API Routes
Teams are registered per tournament and then placed into groups.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from kickoff.database import get_session
from kickoff.models.team import Team
from kickoff.routes.tournaments import get_tournament_or_404

router = APIRouter()


class TeamCreateRequest(BaseModel):
    name: str
    short_name: Optional[str] = None


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    short_name: Optional[str] = None
    created_at: datetime


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def get_teams(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(select(Team).where(Team.tournament_id == tournament_id).order_by(Team.id)).all()


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(tournament_id: int, team_data: TeamCreateRequest, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)

    name = team_data.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="Team name is required")

    existing = session.exec(select(Team).where(Team.tournament_id == tournament_id, Team.name == name)).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Team '{name}' already exists in this tournament")

    team = Team(tournament_id=tournament_id, name=name, short_name=team_data.short_name)
    session.add(team)
    session.commit()
    session.refresh(team)
    return team
