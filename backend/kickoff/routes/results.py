"""
Result entry: match status and score. No schedule mutation.
Entering a score marks the match completed, which is what standings and
the knockout completion gate read.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from kickoff.database import get_session
from kickoff.models.match import Match
from kickoff.models.tournament import Tournament
from kickoff.routes.schedule import MatchResponse, match_response
from kickoff.routes.tournaments import get_tournament_or_404
from kickoff.services.fixture_types import MATCH_COMPLETED, MATCH_STATUSES, STAGE_GROUP

router = APIRouter()


class MatchResultUpdate(BaseModel):
    status: Optional[str] = None
    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    # Totals after extra time, regulation goals included
    home_extra_time_score: Optional[int] = Field(default=None, ge=0)
    away_extra_time_score: Optional[int] = Field(default=None, ge=0)
    home_penalties: Optional[int] = Field(default=None, ge=0)
    away_penalties: Optional[int] = Field(default=None, ge=0)


def _validate_result(match: Match, tournament: Tournament, payload: MatchResultUpdate) -> None:
    if payload.status is not None and payload.status not in MATCH_STATUSES:
        raise HTTPException(status_code=422, detail=f"Invalid status: {payload.status}")
    if (payload.home_score is None) != (payload.away_score is None):
        raise HTTPException(status_code=422, detail="home_score and away_score must be given together")
    if (payload.home_extra_time_score is None) != (payload.away_extra_time_score is None):
        raise HTTPException(
            status_code=422, detail="home_extra_time_score and away_extra_time_score must be given together"
        )
    if (payload.home_penalties is None) != (payload.away_penalties is None):
        raise HTTPException(status_code=422, detail="home_penalties and away_penalties must be given together")

    home = payload.home_score if payload.home_score is not None else match.home_score
    away = payload.away_score if payload.away_score is not None else match.away_score

    extra_home = payload.home_extra_time_score
    extra_away = payload.away_extra_time_score
    if extra_home is not None:
        if not tournament.extra_time_enabled:
            raise HTTPException(status_code=422, detail="This tournament does not play extra time")
        if match.stage == STAGE_GROUP:
            raise HTTPException(status_code=422, detail="Group-stage matches have no extra time")
        if home is None or home != away:
            raise HTTPException(status_code=422, detail="Extra time only follows a level score")
        if extra_home < home or extra_away < away:
            raise HTTPException(status_code=422, detail="Extra-time totals cannot be lower than the regulation score")
    elif payload.home_score is None and match.home_extra_time_score is not None:
        extra_home, extra_away = match.home_extra_time_score, match.away_extra_time_score

    if payload.home_penalties is not None:
        if match.stage == STAGE_GROUP:
            raise HTTPException(status_code=422, detail="Group-stage matches have no penalty shoot-out")
        if home is None or home != away:
            raise HTTPException(status_code=422, detail="Penalties only apply to a level score")
        if extra_home is not None and extra_home != extra_away:
            raise HTTPException(status_code=422, detail="Penalties only apply when extra time ends level")


@router.patch("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchResponse)
def update_match_result(
    tournament_id: int,
    match_id: int,
    payload: MatchResultUpdate,
    session: Session = Depends(get_session),
):
    """Update match status and/or score. Match must belong to the tournament."""
    tournament = get_tournament_or_404(session, tournament_id)

    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Match not found")

    _validate_result(match, tournament, payload)

    if payload.home_score is not None:
        match.home_score = payload.home_score
        match.away_score = payload.away_score
        # A new regulation score invalidates earlier tie-breaks
        match.home_extra_time_score = None
        match.away_extra_time_score = None
        match.home_penalties = None
        match.away_penalties = None
    if payload.home_extra_time_score is not None:
        match.home_extra_time_score = payload.home_extra_time_score
        match.away_extra_time_score = payload.away_extra_time_score
        match.home_penalties = None
        match.away_penalties = None
    if payload.home_penalties is not None:
        match.home_penalties = payload.home_penalties
        match.away_penalties = payload.away_penalties

    if payload.status is not None:
        match.status = payload.status
    elif payload.home_score is not None:
        match.status = MATCH_COMPLETED

    session.add(match)
    session.commit()
    session.refresh(match)
    return match_response(match, tournament)
