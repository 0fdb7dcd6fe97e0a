"""
Stage Orchestrator Service

Runs one fixture stage end to end for a stored tournament:
1. Check the tournament status allows the stage (StageMachine)
2. Convert rows to engine inputs (TournamentConfig, Groups, ScheduledMatches)
3. Run the engine (raises before anything is written)
4. Replace: delete the stage and every later stage, insert the new matches
5. Advance the tournament status
6. Single commit

Regenerating a stage leaves no orphan matches from the previous run.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from kickoff.models import Match, Team, Tournament, TournamentGroup
from kickoff.services.bracket_builder import (
    ResultResolver,
    bracket_preview,
    build_knockout_stage,
    build_placement_finals,
    make_result_resolver,
)
from kickoff.services.errors import ConfigurationError
from kickoff.services.fixture_types import (
    KNOCKOUT_STAGES,
    PLACEMENT_STAGES,
    STAGE_GROUP,
    Group,
    PlacementFinalEntry,
    Placeholder,
    ScheduledMatch,
    Score,
    StageBuild,
    StandingEntry,
    TournamentConfig,
)
from kickoff.services.round_robin import build_group_stage
from kickoff.services.slot_allocator import to_local
from kickoff.services.stage_machine import StageMachine, replaced_stages
from kickoff.services.standings import calculate_all_standings

logger = logging.getLogger(__name__)

# ============================================================================
# Response Models
# ============================================================================


class StageResult:
    """Outcome of one stage generation"""

    def __init__(self, tournament_id: int, stage: str):
        self.tournament_id = tournament_id
        self.stage = stage
        self.tournament_status: Optional[str] = None
        self.matches_created = 0
        self.matches_deleted = 0
        self.replaced_stages: List[str] = []
        self.summary: Dict[str, Any] = {}
        self.warnings: List[Dict[str, Any]] = []

    def to_dict(self):
        return {
            "status": "success",
            "tournament_id": self.tournament_id,
            "stage": self.stage,
            "tournament_status": self.tournament_status,
            "matches_created": self.matches_created,
            "matches_deleted": self.matches_deleted,
            "replaced_stages": self.replaced_stages,
            "summary": self.summary,
            "warnings": self.warnings,
        }


# ============================================================================
# Row <-> engine conversion
# ============================================================================


def tournament_config(tournament: Tournament) -> TournamentConfig:
    return TournamentConfig(
        field_count=tournament.field_count,
        match_duration_minutes=tournament.match_duration_minutes,
        break_duration_minutes=tournament.break_duration_minutes,
        start_date=tournament.start_date,
        daily_start_time=tournament.daily_start_time,
        daily_end_time=tournament.daily_end_time,
        lunch_break_start=tournament.lunch_break_start,
        lunch_break_duration_minutes=tournament.lunch_break_duration_minutes,
        utc_offset_minutes=tournament.utc_offset_minutes,
    )


def result_resolver(tournament: Tournament) -> ResultResolver:
    """Extra-time and shoot-out scores count only when the tournament plays them."""
    return make_result_resolver(
        extra_time=tournament.extra_time_enabled,
        penalties=tournament.penalty_shootout_enabled,
    )


def load_groups(session: Session, tournament_id: int) -> List[Group]:
    rows = session.exec(
        select(TournamentGroup)
        .where(TournamentGroup.tournament_id == tournament_id)
        .order_by(TournamentGroup.position, TournamentGroup.id)
    ).all()
    return [Group(name=row.name, team_ids=list(row.team_ids or [])) for row in rows]


def load_match_rows(session: Session, tournament_id: int, stages: Optional[Sequence[str]] = None) -> List[Match]:
    query = select(Match).where(Match.tournament_id == tournament_id)
    if stages is not None:
        query = query.where(Match.stage.in_(list(stages)))
    return list(session.exec(query.order_by(Match.id)).all())


def match_from_row(row: Match) -> ScheduledMatch:
    score = None
    if row.home_score is not None and row.away_score is not None:
        score = Score(
            home=row.home_score,
            away=row.away_score,
            home_penalties=row.home_penalties,
            away_penalties=row.away_penalties,
            home_extra_time=row.home_extra_time_score,
            away_extra_time=row.away_extra_time_score,
        )
    return ScheduledMatch(
        id=row.id,
        stage=row.stage,
        group_name=row.group_name,
        home_team_id=row.home_team_id,
        away_team_id=row.away_team_id,
        scheduled_at=utc_kickoff(row),
        field_number=row.field_number,
        status=row.status,
        score=score,
        label=row.label,
        home_source=_placeholder(row.home_source_group, row.home_source_rank),
        away_source=_placeholder(row.away_source_group, row.away_source_rank),
        is_degraded=row.is_degraded,
    )


def _placeholder(group: Optional[str], rank: Optional[int]) -> Optional[Placeholder]:
    if group is None or rank is None:
        return None
    return Placeholder(group, rank)


def utc_kickoff(row: Match) -> Optional[datetime]:
    """Kick-off as aware UTC. SQLite hands timestamps back without tzinfo."""
    if row.scheduled_at is None:
        return None
    if row.scheduled_at.tzinfo is None:
        return row.scheduled_at.replace(tzinfo=timezone.utc)
    return row.scheduled_at.astimezone(timezone.utc)


def match_to_row(match: ScheduledMatch, tournament_id: int) -> Match:
    scheduled_at = match.scheduled_at
    if scheduled_at is not None and scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
    elif scheduled_at is not None:
        scheduled_at = scheduled_at.astimezone(timezone.utc)
    return Match(
        tournament_id=tournament_id,
        stage=match.stage,
        group_name=match.group_name,
        home_team_id=match.home_team_id,
        away_team_id=match.away_team_id,
        scheduled_at=scheduled_at,
        field_number=match.field_number,
        status=match.status,
        label=match.label,
        home_source_group=match.home_source.group if match.home_source else None,
        home_source_rank=match.home_source.rank if match.home_source else None,
        away_source_group=match.away_source.group if match.away_source else None,
        away_source_rank=match.away_source.rank if match.away_source else None,
        is_degraded=match.is_degraded,
    )


# ============================================================================
# Persistence
# ============================================================================


def _replace_stage(session: Session, tournament: Tournament, build: StageBuild, machine: StageMachine) -> StageResult:
    """Delete replaced stages, insert the build, advance status. One commit."""
    result = StageResult(tournament.id, build.stage)
    stages = replaced_stages(build.stage)

    try:
        stale = load_match_rows(session, tournament.id, stages)
        stale_stages = {row.stage for row in stale}
        for row in stale:
            session.delete(row)
        session.flush()

        for match in build.matches:
            session.add(match_to_row(match, tournament.id))

        tournament.status = machine.advance(build.stage)
        session.add(tournament)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Generating %s for tournament %s failed, transaction rolled back", build.stage, tournament.id)
        raise

    session.refresh(tournament)
    result.tournament_status = tournament.status
    result.matches_created = len(build.matches)
    result.matches_deleted = len(stale)
    result.replaced_stages = [s for s in stages if s in stale_stages]
    result.warnings = [w.to_dict() for w in build.warnings]
    logger.info(
        "Tournament %s: %s written (%d created, %d replaced), status %s",
        tournament.id,
        build.stage,
        result.matches_created,
        result.matches_deleted,
        tournament.status,
    )
    return result


# ============================================================================
# Stage operations
# ============================================================================


def generate_group_stage(session: Session, tournament: Tournament) -> StageResult:
    """Round-robin fixture for all groups. Replaces every existing match."""
    machine = StageMachine(tournament.status)
    machine.require(STAGE_GROUP)

    config = tournament_config(tournament)
    groups = load_groups(session, tournament.id)
    if not groups:
        raise ConfigurationError(f"Tournament {tournament.id} has no groups")

    build = build_group_stage(config, groups)
    result = _replace_stage(session, tournament, build, machine)
    result.summary = fixture_summary(config, build)
    return result


def generate_knockout_stage(session: Session, tournament: Tournament, stage: str) -> StageResult:
    if stage not in KNOCKOUT_STAGES:
        raise ConfigurationError(f"Knockout stage must be one of {', '.join(KNOCKOUT_STAGES)}, got {stage!r}")

    machine = StageMachine(tournament.status)
    machine.require(stage)

    config = tournament_config(tournament)
    groups = load_groups(session, tournament.id)
    existing = [match_from_row(row) for row in load_match_rows(session, tournament.id)]

    build = build_knockout_stage(stage, config, groups, existing, result_resolver(tournament))
    result = _replace_stage(session, tournament, build, machine)
    result.summary = {
        "slots_generated": build.slots_generated,
        "matches": [m.to_dict() for m in build.matches],
    }
    return result


def create_placement_finals(
    session: Session, tournament: Tournament, entries: Sequence[PlacementFinalEntry]
) -> StageResult:
    """Persist operator-chosen placement finals, replacing any previous set."""
    machine = StageMachine(tournament.status)
    machine.require(PLACEMENT_STAGES[0])

    config = tournament_config(tournament)
    groups = load_groups(session, tournament.id)
    existing = [match_from_row(row) for row in load_match_rows(session, tournament.id)]

    build = build_placement_finals(entries, config, groups, existing)
    result = _replace_stage(session, tournament, build, machine)
    result.stage = "placement_finals"
    result.summary = {"matches": [m.to_dict() for m in build.matches]}
    return result


def delete_placement_finals(session: Session, tournament: Tournament) -> int:
    rows = load_match_rows(session, tournament.id, PLACEMENT_STAGES)
    try:
        for row in rows:
            session.delete(row)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Deleting placement finals for tournament %s failed", tournament.id)
        raise
    return len(rows)


def delete_fixture(session: Session, tournament: Tournament) -> int:
    """Drop every match and reset the tournament to pending."""
    rows = load_match_rows(session, tournament.id)
    try:
        for row in rows:
            session.delete(row)
        tournament.status = StageMachine(tournament.status).reset()
        session.add(tournament)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Deleting fixture for tournament %s failed", tournament.id)
        raise
    logger.info("Tournament %s: fixture deleted (%d matches)", tournament.id, len(rows))
    return len(rows)


# ============================================================================
# Read models
# ============================================================================


def compute_standings(session: Session, tournament: Tournament) -> Dict[str, List[StandingEntry]]:
    groups = load_groups(session, tournament.id)
    matches = [match_from_row(row) for row in load_match_rows(session, tournament.id, [STAGE_GROUP])]
    return calculate_all_standings(groups, matches)


def preview_bracket(session: Session, tournament: Tournament) -> List[Dict[str, Any]]:
    groups = load_groups(session, tournament.id)
    matches = [match_from_row(row) for row in load_match_rows(session, tournament.id, [STAGE_GROUP])]
    return bracket_preview(groups, matches)


def fixture_summary(config: TournamentConfig, build: StageBuild) -> Dict[str, Any]:
    """Kick-off times, daily capacity and days used for a scheduled stage."""
    kickoffs = config.daily_kickoff_minutes()
    local_days = {
        to_local(m.scheduled_at, config.utc_offset_minutes).date() for m in build.matches if m.scheduled_at
    }
    return {
        "total_matches": len(build.matches),
        "slots_generated": build.slots_generated,
        "kickoff_times": [f"{minutes // 60:02d}:{minutes % 60:02d}" for minutes in kickoffs],
        "matches_per_day": len(kickoffs) * config.field_count,
        "days_used": len(local_days),
        "degraded_count": sum(1 for m in build.matches if m.is_degraded),
        "daily_schedule": {
            "start_time": config.daily_start_time,
            "end_time": config.daily_end_time,
            "lunch_break_start": config.lunch_break_start,
            "lunch_break_duration_minutes": config.lunch_break_duration_minutes,
            "match_duration_minutes": config.match_duration_minutes,
            "break_duration_minutes": config.break_duration_minutes,
            "field_count": config.field_count,
            "utc_offset_minutes": config.utc_offset_minutes,
        },
    }


def tournament_team_ids(session: Session, tournament_id: int) -> List[int]:
    return list(session.exec(select(Team.id).where(Team.tournament_id == tournament_id)).all())


def local_kickoff(match: Match, tournament: Tournament) -> Optional[datetime]:
    """Stored UTC kick-off as tournament wall-clock time."""
    if match.scheduled_at is None:
        return None
    return to_local(match.scheduled_at, tournament.utc_offset_minutes)
