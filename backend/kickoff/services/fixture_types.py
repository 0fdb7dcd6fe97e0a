"""
Fixture Engine Value Types

In-memory inputs and outputs of the scheduling engine. Nothing here touches
the database; the stage orchestrator converts rows to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Union

from kickoff.services.errors import ConfigurationError

TeamId = Union[int, str]

# =============================================================================
# Stages and statuses
# =============================================================================

STAGE_GROUP = "group"
STAGE_QUARTER_FINAL = "quarter_final"
STAGE_SEMI_FINAL = "semi_final"
STAGE_FINAL = "final"

PLACEMENT_STAGES = ("gold_final", "silver_final", "bronze_final", "prestige_final")
KNOCKOUT_STAGES = (STAGE_QUARTER_FINAL, STAGE_SEMI_FINAL, STAGE_FINAL)
ALL_STAGES = (STAGE_GROUP,) + KNOCKOUT_STAGES + PLACEMENT_STAGES

MATCH_SCHEDULED = "scheduled"
MATCH_IN_PROGRESS = "in_progress"
MATCH_COMPLETED = "completed"
MATCH_CANCELLED = "cancelled"

MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_IN_PROGRESS, MATCH_COMPLETED, MATCH_CANCELLED)
TERMINAL_STATUSES = frozenset({MATCH_COMPLETED, MATCH_CANCELLED})

TOURNAMENT_PENDING = "pending"
TOURNAMENT_GROUP_STAGE = "group_stage"
TOURNAMENT_KNOCKOUT_STAGE = "knockout_stage"
TOURNAMENT_COMPLETED = "completed"

TOURNAMENT_STATUSES = (
    TOURNAMENT_PENDING,
    TOURNAMENT_GROUP_STAGE,
    TOURNAMENT_KNOCKOUT_STAGE,
    TOURNAMENT_COMPLETED,
)


def _parse_clock(value: str, field_name: str) -> time:
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError):
        raise ConfigurationError(f"{field_name} must be an 'HH:MM' string, got {value!r}")


def _minutes_of_day(t: time) -> int:
    return t.hour * 60 + t.minute


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class TournamentConfig:
    """Scheduling parameters. Immutable for one scheduling run."""

    field_count: int
    match_duration_minutes: int
    break_duration_minutes: int
    start_date: date
    daily_start_time: str = "09:00"
    daily_end_time: str = "17:00"
    lunch_break_start: str = "12:00"
    lunch_break_duration_minutes: int = 60
    utc_offset_minutes: int = 0

    @property
    def slot_interval_minutes(self) -> int:
        return self.match_duration_minutes + self.break_duration_minutes

    def validate(self) -> None:
        """
        Raise ConfigurationError unless the config can produce slots.

        Checks field count, durations, clock strings and that a single day
        yields at least one kick-off time.
        """
        if self.field_count is None or self.field_count <= 0:
            raise ConfigurationError(f"field_count must be > 0, got {self.field_count}")
        if self.match_duration_minutes is None or self.match_duration_minutes <= 0:
            raise ConfigurationError(f"match_duration_minutes must be > 0, got {self.match_duration_minutes}")
        if self.break_duration_minutes is None or self.break_duration_minutes < 0:
            raise ConfigurationError(f"break_duration_minutes must be >= 0, got {self.break_duration_minutes}")
        if self.lunch_break_duration_minutes is None or self.lunch_break_duration_minutes < 0:
            raise ConfigurationError(
                f"lunch_break_duration_minutes must be >= 0, got {self.lunch_break_duration_minutes}"
            )
        if self.slot_interval_minutes <= 0:
            raise ConfigurationError("slot interval (match + break duration) must be > 0")
        if not isinstance(self.start_date, date):
            raise ConfigurationError(f"start_date must be a date, got {self.start_date!r}")

        if not self.daily_kickoff_minutes():
            raise ConfigurationError(
                f"Daily window {self.daily_start_time}-{self.daily_end_time} "
                f"(lunch {self.lunch_break_start} +{self.lunch_break_duration_minutes}m) yields no slots"
            )

    def daily_kickoff_minutes(self) -> List[int]:
        """
        Kick-off times of one day as minutes from midnight.

        Morning run: daily start up to (not including) lunch start or daily end.
        Afternoon run: lunch end up to (not including) daily end. The afternoon
        never starts before daily start, nor while the last morning slot
        (match + break) is still running.
        """
        start = _minutes_of_day(_parse_clock(self.daily_start_time, "daily_start_time"))
        end = _minutes_of_day(_parse_clock(self.daily_end_time, "daily_end_time"))
        lunch = _minutes_of_day(_parse_clock(self.lunch_break_start, "lunch_break_start"))
        interval = self.slot_interval_minutes

        kickoffs: List[int] = []
        t = start
        while t < lunch and t < end:
            kickoffs.append(t)
            t += interval

        t = max(lunch + self.lunch_break_duration_minutes, start)
        if kickoffs:
            t = max(t, kickoffs[-1] + interval)
        while t < end:
            kickoffs.append(t)
            t += interval
        return kickoffs

    def daily_start_clock(self) -> time:
        return _parse_clock(self.daily_start_time, "daily_start_time")


# =============================================================================
# Teams, groups, matches
# =============================================================================


@dataclass
class Group:
    """Round-robin group. Team order decides home/away in generated pairings."""

    name: str
    team_ids: List[TeamId]


@dataclass
class Score:
    home: int
    away: int
    home_penalties: Optional[int] = None
    away_penalties: Optional[int] = None
    # Totals after extra time, regulation goals included
    home_extra_time: Optional[int] = None
    away_extra_time: Optional[int] = None

    @property
    def has_extra_time(self) -> bool:
        return self.home_extra_time is not None and self.away_extra_time is not None

    @property
    def has_shootout(self) -> bool:
        return self.home_penalties is not None and self.away_penalties is not None


@dataclass(frozen=True)
class Placeholder:
    """Unresolved bracket side: the team finishing `rank` in `group`."""

    group: str
    rank: int

    @property
    def label(self) -> str:
        return f"{self.group} #{self.rank}"


@dataclass
class ScheduledMatch:
    stage: str
    home_team_id: TeamId
    away_team_id: TeamId
    group_name: Optional[str] = None
    scheduled_at: Optional[datetime] = None  # UTC, timezone-aware
    field_number: Optional[int] = None
    status: str = MATCH_SCHEDULED
    score: Optional[Score] = None
    label: Optional[str] = None
    home_source: Optional[Placeholder] = None
    away_source: Optional[Placeholder] = None
    is_degraded: bool = False
    id: Optional[int] = None

    @property
    def team_ids(self) -> tuple:
        return (self.home_team_id, self.away_team_id)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "stage": self.stage,
            "group": self.group_name,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "date": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "field": self.field_number,
            "status": self.status,
        }
        if self.label:
            result["label"] = self.label
        if self.is_degraded:
            result["degraded"] = True
        return result


@dataclass
class StandingEntry:
    team_id: TeamId
    group: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    rank: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "group": self.group,
            "played": self.played,
            "won": self.won,
            "drawn": self.drawn,
            "lost": self.lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
            "rank": self.rank,
        }


BracketSide = Union[TeamId, Placeholder]


@dataclass
class BracketMatch:
    """Knockout pairing before persistence; sides may still be placeholders."""

    stage: str
    home: BracketSide
    away: BracketSide
    home_source: Optional[Placeholder] = None
    away_source: Optional[Placeholder] = None

    @property
    def is_resolved(self) -> bool:
        return not isinstance(self.home, Placeholder) and not isinstance(self.away, Placeholder)


@dataclass(frozen=True)
class MatchResult:
    winner_id: Optional[TeamId]
    loser_id: Optional[TeamId]
    is_decisive: bool


@dataclass
class PlacementSide:
    team_id: TeamId
    rank: int
    group: str


@dataclass
class PlacementFinalEntry:
    """Operator-chosen crossover/placement final."""

    stage: str
    label: str
    home: PlacementSide
    away: PlacementSide
    date: datetime
    field: int


@dataclass
class StageBuild:
    """Engine output for one stage, ready for replace-persistence."""

    stage: str
    matches: List[ScheduledMatch] = field(default_factory=list)
    warnings: List[Any] = field(default_factory=list)
    slots_generated: int = 0
