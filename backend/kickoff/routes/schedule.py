"""
Fixture API Routes
Group-stage fixture, knockout stages, placement finals and read models.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from kickoff.database import get_session
from kickoff.models.match import Match
from kickoff.routes.tournaments import get_tournament_or_404
from kickoff.services.errors import PrecedingStageIncompleteError, SchedulingError
from kickoff.services.fixture_types import PLACEMENT_STAGES, PlacementFinalEntry, PlacementSide
from kickoff.services.stage_orchestrator import (
    compute_standings,
    create_placement_finals,
    delete_fixture,
    delete_placement_finals,
    generate_group_stage,
    generate_knockout_stage,
    load_match_rows,
    local_kickoff,
    preview_bracket,
    utc_kickoff,
)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    stage: str
    group_name: Optional[str] = None
    home_team_id: int
    away_team_id: int
    scheduled_at: Optional[datetime] = None  # UTC
    local_kickoff: Optional[datetime] = None  # tournament wall-clock
    field_number: Optional[int] = None
    status: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    home_penalties: Optional[int] = None
    away_penalties: Optional[int] = None
    home_extra_time_score: Optional[int] = None
    away_extra_time_score: Optional[int] = None
    label: Optional[str] = None
    home_source_group: Optional[str] = None
    home_source_rank: Optional[int] = None
    away_source_group: Optional[str] = None
    away_source_rank: Optional[int] = None
    is_degraded: bool = False


class PlacementSidePayload(BaseModel):
    team_id: int
    rank: int = Field(ge=1)
    group: str


class PlacementFinalPayload(BaseModel):
    stage: str
    label: str
    home: PlacementSidePayload
    away: PlacementSidePayload
    date: datetime  # naive = tournament local time
    field: int = Field(ge=1)


class PlacementFinalsRequest(BaseModel):
    finals: List[PlacementFinalPayload]


def match_response(match: Match, tournament) -> MatchResponse:
    response = MatchResponse.model_validate(match)
    response.scheduled_at = utc_kickoff(match)
    response.local_kickoff = local_kickoff(match, tournament)
    return response


def scheduling_http_error(e: SchedulingError) -> HTTPException:
    """409 while the preceding stage is still open, 400 for every other engine error"""
    status_code = 409 if isinstance(e, PrecedingStageIncompleteError) else 400
    return HTTPException(status_code=status_code, detail=str(e))


# ============================================================================
# Stage generation
# ============================================================================


@router.post("/tournaments/{tournament_id}/fixtures")
def create_fixture(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """
    Generate (or regenerate) the round-robin group stage.

    Replaces every existing match of the tournament and returns the fixture
    summary: kick-off times, daily capacity, days used and any matches that
    had to be placed without the rest gap.
    """
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        return generate_group_stage(session, tournament).to_dict()
    except SchedulingError as e:
        raise scheduling_http_error(e)


@router.delete("/tournaments/{tournament_id}/fixtures")
def remove_fixture(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    tournament = get_tournament_or_404(session, tournament_id)
    deleted = delete_fixture(session, tournament)
    return {"tournament_id": tournament_id, "matches_deleted": deleted, "tournament_status": tournament.status}


@router.post("/tournaments/{tournament_id}/knockout/{stage}")
def create_knockout_stage(tournament_id: int, stage: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Generate quarter_final, semi_final or final once the preceding stage is finished."""
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        return generate_knockout_stage(session, tournament, stage).to_dict()
    except SchedulingError as e:
        raise scheduling_http_error(e)


# ============================================================================
# Placement finals
# ============================================================================


@router.post("/tournaments/{tournament_id}/placement-finals")
def create_placement_final_matches(
    tournament_id: int, payload: PlacementFinalsRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    tournament = get_tournament_or_404(session, tournament_id)
    entries = [
        PlacementFinalEntry(
            stage=final.stage,
            label=final.label,
            home=PlacementSide(team_id=final.home.team_id, rank=final.home.rank, group=final.home.group),
            away=PlacementSide(team_id=final.away.team_id, rank=final.away.rank, group=final.away.group),
            date=final.date,
            field=final.field,
        )
        for final in payload.finals
    ]
    try:
        return create_placement_finals(session, tournament, entries).to_dict()
    except SchedulingError as e:
        raise scheduling_http_error(e)


@router.get("/tournaments/{tournament_id}/placement-finals", response_model=List[MatchResponse])
def get_placement_finals(tournament_id: int, session: Session = Depends(get_session)):
    tournament = get_tournament_or_404(session, tournament_id)
    return [match_response(m, tournament) for m in load_match_rows(session, tournament_id, PLACEMENT_STAGES)]


@router.delete("/tournaments/{tournament_id}/placement-finals")
def remove_placement_finals(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    tournament = get_tournament_or_404(session, tournament_id)
    return {"tournament_id": tournament_id, "matches_deleted": delete_placement_finals(session, tournament)}


# ============================================================================
# Read models
# ============================================================================


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def get_matches(
    tournament_id: int,
    stage: Optional[str] = Query(default=None),
    session: Session = Depends(get_session),
):
    """All matches of the tournament in kick-off then field order, optionally for one stage."""
    tournament = get_tournament_or_404(session, tournament_id)
    rows = load_match_rows(session, tournament_id, [stage] if stage else None)
    unscheduled = datetime.min.replace(tzinfo=timezone.utc)
    rows.sort(key=lambda m: (m.scheduled_at is None, utc_kickoff(m) or unscheduled, m.field_number or 0, m.id))
    return [match_response(m, tournament) for m in rows]


@router.get("/tournaments/{tournament_id}/standings")
def get_standings(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, List[Dict[str, Any]]]:
    tournament = get_tournament_or_404(session, tournament_id)
    standings = compute_standings(session, tournament)
    return {group: [entry.to_dict() for entry in table] for group, table in standings.items()}


@router.get("/tournaments/{tournament_id}/bracket-preview")
def get_bracket_preview(tournament_id: int, session: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    """Quarter-final placeholders (A #1 vs B #2, ...) with current projected teams."""
    tournament = get_tournament_or_404(session, tournament_id)
    try:
        return preview_bracket(session, tournament)
    except SchedulingError as e:
        raise scheduling_http_error(e)
