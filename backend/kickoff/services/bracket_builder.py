"""
Knockout Bracket Builder

Derives knockout pairings from group standings and preceding results, then
schedules them with the slot allocator.

Quarter-finals: groups are paired in order (A-B, C-D, ...). Each pair gives
    A1 vs B2, B1 vs A2
Semi-finals: quarter-final winners in generation order, w1 vs w2, w3 vs w4
Final: the two semi-final winners
Placement finals: operator-supplied pairings, validated against standings

Winners come from a ResultResolver. The default only accepts a strictly
higher regulation score; ties are never guessed. make_result_resolver adds
extra time and penalty shoot-outs as tie-breaks.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from kickoff.services.errors import ConfigurationError, InsufficientQualifiersError
from kickoff.services.fixture_types import (
    MATCH_COMPLETED,
    PLACEMENT_STAGES,
    STAGE_FINAL,
    STAGE_QUARTER_FINAL,
    STAGE_SEMI_FINAL,
    BracketMatch,
    Group,
    MatchResult,
    PlacementFinalEntry,
    Placeholder,
    ScheduledMatch,
    StageBuild,
    StandingEntry,
    TeamId,
    TournamentConfig,
)
from kickoff.services.slot_allocator import allocate_matches, to_local, to_utc
from kickoff.services.stage_machine import PRECEDING_STAGE, check_preceding_stage
from kickoff.services.standings import calculate_all_standings

logger = logging.getLogger(__name__)

QUALIFIERS_PER_GROUP = 2
SEMI_FINAL_ENTRANTS = 4
FINAL_ENTRANTS = 2

# Quarter-final winners must halve to exactly one final: 4 groups -> 4 QF -> 2 SF -> 1 final
KNOCKOUT_GROUP_COUNT = SEMI_FINAL_ENTRANTS

# Stages played one match at a time on field 1
SINGLE_FIELD_STAGES = frozenset({STAGE_SEMI_FINAL, STAGE_FINAL})

ResultResolver = Callable[[ScheduledMatch], MatchResult]

StandingsByGroup = Mapping[str, Sequence[StandingEntry]]


# =============================================================================
# Match results
# =============================================================================

NO_RESULT = MatchResult(winner_id=None, loser_id=None, is_decisive=False)


def _decided_by(match: ScheduledMatch, home: int, away: int) -> MatchResult:
    if home > away:
        return MatchResult(winner_id=match.home_team_id, loser_id=match.away_team_id, is_decisive=True)
    if away > home:
        return MatchResult(winner_id=match.away_team_id, loser_id=match.home_team_id, is_decisive=True)
    return NO_RESULT


def result_of(match: ScheduledMatch) -> MatchResult:
    """Winner by regulation score. Draws, cancellations and missing scores are not decisive."""
    if match.status != MATCH_COMPLETED or match.score is None:
        return NO_RESULT
    return _decided_by(match, match.score.home, match.score.away)


def make_result_resolver(extra_time: bool = False, penalties: bool = False) -> ResultResolver:
    """
    Resolver for a tournament's tie-break rules.

    A level regulation score goes to the extra-time score when `extra_time`
    is set and one was recorded, then to the shoot-out when `penalties` is
    set. A level score with no applicable tie-break stays undecided.
    """

    def resolve(match: ScheduledMatch) -> MatchResult:
        result = result_of(match)
        if result.is_decisive or match.status != MATCH_COMPLETED or match.score is None:
            return result
        score = match.score
        if extra_time and score.has_extra_time:
            result = _decided_by(match, score.home_extra_time, score.away_extra_time)
            if result.is_decisive:
                return result
        if penalties and score.has_shootout:
            return _decided_by(match, score.home_penalties, score.away_penalties)
        return NO_RESULT

    return resolve


result_with_shootout = make_result_resolver(penalties=True)


def stage_winners(matches: Iterable[ScheduledMatch], resolver: ResultResolver = result_of) -> List[TeamId]:
    """Winners in match order. Raises InsufficientQualifiersError on any undecided match."""
    winners: List[TeamId] = []
    undecided: List[str] = []
    for match in matches:
        result = resolver(match)
        if not result.is_decisive:
            undecided.append(f"{match.home_team_id} vs {match.away_team_id} ({match.status})")
            continue
        winners.append(result.winner_id)
    if undecided:
        raise InsufficientQualifiersError(
            f"{len(undecided)} match(es) have no decisive result: {', '.join(undecided)}"
        )
    return winners


# =============================================================================
# Quarter-finals
# =============================================================================


def plan_quarter_finals(group_names: Sequence[str]) -> List[BracketMatch]:
    """
    Placeholder quarter-final bracket for groups paired in order.

    Works before any result exists. The group count must reduce to one
    final through the semi-finals; any other count is rejected.
    """
    if len(group_names) != KNOCKOUT_GROUP_COUNT:
        raise InsufficientQualifiersError(
            f"Knockout bracket needs exactly {KNOCKOUT_GROUP_COUNT} groups "
            f"({KNOCKOUT_GROUP_COUNT} quarter-finals -> {SEMI_FINAL_ENTRANTS // 2} semi-finals -> 1 final), "
            f"got {len(group_names)}"
        )

    bracket: List[BracketMatch] = []
    for i in range(0, len(group_names), 2):
        group_a, group_b = group_names[i], group_names[i + 1]
        a1, a2 = Placeholder(group_a, 1), Placeholder(group_a, 2)
        b1, b2 = Placeholder(group_b, 1), Placeholder(group_b, 2)
        bracket.append(BracketMatch(stage=STAGE_QUARTER_FINAL, home=a1, away=b2, home_source=a1, away_source=b2))
        bracket.append(BracketMatch(stage=STAGE_QUARTER_FINAL, home=b1, away=a2, home_source=b1, away_source=a2))
    return bracket


def _lookup_placeholder(placeholder: Placeholder, standings_by_group: StandingsByGroup) -> TeamId:
    table = standings_by_group.get(placeholder.group)
    if table is None:
        raise InsufficientQualifiersError(f"No standings for group {placeholder.group}")
    for entry in table:
        if entry.rank == placeholder.rank:
            return entry.team_id
    raise InsufficientQualifiersError(
        f"Group {placeholder.group} has {len(table)} ranked teams; rank {placeholder.rank} is missing"
    )


def resolve_bracket(bracket: Iterable[BracketMatch], standings_by_group: StandingsByGroup) -> List[BracketMatch]:
    """Replace (group, rank) placeholders with team ids from the standings."""
    resolved: List[BracketMatch] = []
    for item in bracket:
        home = item.home
        away = item.away
        if isinstance(home, Placeholder):
            home = _lookup_placeholder(home, standings_by_group)
        if isinstance(away, Placeholder):
            away = _lookup_placeholder(away, standings_by_group)
        resolved.append(
            BracketMatch(
                stage=item.stage,
                home=home,
                away=away,
                home_source=item.home_source,
                away_source=item.away_source,
            )
        )
    return resolved


def build_quarter_final_pairings(
    group_names: Sequence[str], standings_by_group: StandingsByGroup
) -> List[ScheduledMatch]:
    """Unscheduled quarter-finals: two qualifiers per group, crossed between paired groups."""
    bracket = plan_quarter_finals(group_names)
    for name in group_names:
        table = standings_by_group.get(name, [])
        if len(table) < QUALIFIERS_PER_GROUP:
            raise InsufficientQualifiersError(
                f"Group {name} has {len(table)} teams; {QUALIFIERS_PER_GROUP} qualifiers are required"
            )

    bracket = resolve_bracket(bracket, standings_by_group)
    return [
        ScheduledMatch(
            stage=item.stage,
            home_team_id=item.home,
            away_team_id=item.away,
            home_source=item.home_source,
            away_source=item.away_source,
        )
        for item in bracket
    ]


# =============================================================================
# Semi-finals and final
# =============================================================================


def _pair_winners(stage: str, winners: List[TeamId]) -> List[ScheduledMatch]:
    return [
        ScheduledMatch(stage=stage, home_team_id=winners[i], away_team_id=winners[i + 1])
        for i in range(0, len(winners), 2)
    ]


def build_semi_final_pairings(
    quarter_finals: Sequence[ScheduledMatch], resolver: ResultResolver = result_of
) -> List[ScheduledMatch]:
    winners = stage_winners(quarter_finals, resolver)
    if len(winners) != SEMI_FINAL_ENTRANTS:
        raise InsufficientQualifiersError(
            f"Semi-finals need {SEMI_FINAL_ENTRANTS} quarter-final winners, got {len(winners)}"
        )
    return _pair_winners(STAGE_SEMI_FINAL, winners)


def build_final_pairing(
    semi_finals: Sequence[ScheduledMatch], resolver: ResultResolver = result_of
) -> List[ScheduledMatch]:
    winners = stage_winners(semi_finals, resolver)
    if len(winners) != FINAL_ENTRANTS:
        raise InsufficientQualifiersError(
            f"The final needs {FINAL_ENTRANTS} semi-final winners, got {len(winners)}"
        )
    return _pair_winners(STAGE_FINAL, winners)


# =============================================================================
# Scheduling anchor
# =============================================================================


def knockout_anchor(preceding: Sequence[ScheduledMatch], config: TournamentConfig) -> date:
    """
    Day after the last match of the preceding stage, in tournament local time.

    Falls back to the configured start date if nothing was scheduled.
    """
    kickoffs = [m.scheduled_at for m in preceding if m.scheduled_at is not None]
    if not kickoffs:
        return config.start_date
    last = max(_as_utc(k) for k in kickoffs)
    return to_local(last, config.utc_offset_minutes).date() + timedelta(days=1)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


# =============================================================================
# Stage entry points
# =============================================================================


def build_knockout_stage(
    stage: str,
    config: TournamentConfig,
    groups: Sequence[Group],
    existing_matches: Sequence[ScheduledMatch],
    resolver: ResultResolver = result_of,
) -> StageBuild:
    """
    Compute and schedule one knockout stage.

    `existing_matches` is every match currently stored for the tournament.
    Raises before producing anything if the config is invalid, the preceding
    stage is not finished, or the bracket cannot be filled.
    """
    if stage not in (STAGE_QUARTER_FINAL, STAGE_SEMI_FINAL, STAGE_FINAL):
        raise ValueError(f"Not a knockout stage: {stage}")

    config.validate()
    check_preceding_stage(stage, existing_matches)
    preceding = [m for m in existing_matches if m.stage == PRECEDING_STAGE[stage]]

    if stage == STAGE_QUARTER_FINAL:
        standings = calculate_all_standings(groups, preceding)
        pairings = build_quarter_final_pairings([g.name for g in groups], standings)
    elif stage == STAGE_SEMI_FINAL:
        pairings = build_semi_final_pairings(preceding, resolver)
    else:
        pairings = build_final_pairing(preceding, resolver)

    field_count = 1 if stage in SINGLE_FIELD_STAGES else config.field_count
    anchor = knockout_anchor(preceding, config)
    allocation = allocate_matches(pairings, config, anchor=anchor, field_count=field_count)

    logger.info(
        "Built %s: %d matches from %s, starting %s on %d field(s)",
        stage,
        len(pairings),
        PRECEDING_STAGE[stage],
        anchor.isoformat(),
        field_count,
    )
    return StageBuild(
        stage=stage,
        matches=allocation.matches,
        warnings=list(allocation.warnings),
        slots_generated=len(allocation.slots),
    )


def build_placement_finals(
    entries: Sequence[PlacementFinalEntry],
    config: TournamentConfig,
    groups: Sequence[Group],
    existing_matches: Sequence[ScheduledMatch],
) -> StageBuild:
    """
    Operator-chosen placement finals, persisted exactly as given.

    The group stage must be finished. Each side's team must have a standings
    row; date and field are taken verbatim (naive dates are tournament local time).
    """
    config.validate()
    if not entries:
        raise ConfigurationError("At least one placement final is required")
    check_preceding_stage(PLACEMENT_STAGES[0], existing_matches)

    group_matches = [m for m in existing_matches if m.stage == PRECEDING_STAGE[PLACEMENT_STAGES[0]]]
    standings = calculate_all_standings(groups, group_matches)
    known: Dict[TeamId, StandingEntry] = {}
    for table in standings.values():
        for entry in table:
            known[entry.team_id] = entry

    matches: List[ScheduledMatch] = []
    for entry in entries:
        if entry.stage not in PLACEMENT_STAGES:
            raise ConfigurationError(
                f"Placement stage must be one of {', '.join(PLACEMENT_STAGES)}, got {entry.stage!r}"
            )
        if not 1 <= entry.field <= config.field_count:
            raise ConfigurationError(f"Field {entry.field} is outside 1..{config.field_count}")
        if entry.home.team_id == entry.away.team_id:
            raise ConfigurationError(f"{entry.label}: a team cannot play itself")
        for side in (entry.home, entry.away):
            if side.team_id not in known:
                raise InsufficientQualifiersError(f"{entry.label}: team {side.team_id} has no standings entry")

        matches.append(
            ScheduledMatch(
                stage=entry.stage,
                home_team_id=entry.home.team_id,
                away_team_id=entry.away.team_id,
                scheduled_at=_placement_kickoff(entry.date, config),
                field_number=entry.field,
                label=entry.label,
                home_source=Placeholder(entry.home.group, entry.home.rank),
                away_source=Placeholder(entry.away.group, entry.away.rank),
            )
        )
    return StageBuild(stage=PLACEMENT_STAGES[0], matches=matches)


def _placement_kickoff(moment: datetime, config: TournamentConfig) -> datetime:
    if moment.tzinfo is None:
        return to_utc(moment, config.utc_offset_minutes)
    return moment.astimezone(timezone.utc)


def bracket_preview(groups: Sequence[Group], existing_matches: Optional[Sequence[ScheduledMatch]] = None) -> List[Dict]:
    """
    Quarter-final bracket as placeholders, with team ids filled in for the
    current standings. Safe to call while the group stage is running.
    """
    standings = calculate_all_standings(groups, existing_matches or [])
    preview = []
    for item in plan_quarter_finals([g.name for g in groups]):
        preview.append(
            {
                "stage": item.stage,
                "home": item.home.label,
                "away": item.away.label,
                "projected_home_team_id": _projected(item.home, standings),
                "projected_away_team_id": _projected(item.away, standings),
            }
        )
    return preview


def _projected(placeholder: Placeholder, standings: StandingsByGroup) -> Optional[TeamId]:
    try:
        return _lookup_placeholder(placeholder, standings)
    except InsufficientQualifiersError:
        return None
