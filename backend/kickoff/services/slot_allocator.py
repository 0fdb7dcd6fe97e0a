"""
Time-Slot Allocator - greedy (slot, field) assignment with a rest gap

Pipeline:
1. Generate kick-off slots day by day until slot capacity covers every match
2. Rest-respecting greedy pass (a team never plays in two adjacent slots)
3. Fallback pass for leftovers: fill free field capacity, rest gap ignored,
   each such placement flagged degraded
4. Convert local wall-clock kick-offs to UTC with the configured offset

Deterministic: same inputs, same output. No I/O.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from kickoff.services.errors import ConfigurationError, DegradedSchedulingWarning
from kickoff.services.fixture_types import ScheduledMatch, TeamId, TournamentConfig

logger = logging.getLogger(__name__)

# A team's consecutive slot indices must differ by at least this much
MIN_SLOT_GAP = 2

# team_id -> index of the last slot the team was placed in
TeamLastSlot = Dict[TeamId, int]


@dataclass(frozen=True)
class Slot:
    index: int
    local_start: datetime  # naive, tournament wall-clock

    @property
    def day(self) -> date:
        return self.local_start.date()


@dataclass
class SlotAssignment:
    match: ScheduledMatch
    slot: Slot
    field_number: int
    degraded: bool = False


@dataclass
class AllocationResult:
    assignments: List[SlotAssignment] = field(default_factory=list)
    slots: List[Slot] = field(default_factory=list)
    warnings: List[DegradedSchedulingWarning] = field(default_factory=list)
    field_count: int = 0

    @property
    def matches(self) -> List[ScheduledMatch]:
        return [a.match for a in self.assignments]

    @property
    def degraded_count(self) -> int:
        return sum(1 for a in self.assignments if a.degraded)

    @property
    def days_used(self) -> int:
        return len({a.slot.day for a in self.assignments})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slots_generated": len(self.slots),
            "field_count": self.field_count,
            "matches_scheduled": len(self.assignments),
            "degraded_count": self.degraded_count,
            "days_used": self.days_used,
            "warnings": [w.to_dict() for w in self.warnings],
        }


# ============================================================================
# Slot generation
# ============================================================================


def generate_slots(
    config: TournamentConfig,
    match_count: int,
    anchor: Optional[Union[date, datetime]] = None,
    field_count: Optional[int] = None,
) -> List[Slot]:
    """
    Ordered kick-off slots, generated whole days at a time.

    Starts on `anchor` (date, or datetime to skip earlier kick-offs that day),
    else on config.start_date. Stops after the first day on which
    len(slots) * field_count >= match_count.
    """
    config.validate()
    fields = field_count if field_count is not None else config.field_count
    if fields <= 0:
        raise ConfigurationError(f"field_count must be > 0, got {fields}")

    if match_count <= 0:
        return []

    day_kickoffs = config.daily_kickoff_minutes()

    not_before: Optional[datetime] = None
    if isinstance(anchor, datetime):
        current_day = anchor.date()
        not_before = anchor.replace(tzinfo=None)
    elif anchor is not None:
        current_day = anchor
    else:
        current_day = config.start_date

    slots: List[Slot] = []
    while len(slots) * fields < match_count:
        midnight = datetime.combine(current_day, datetime.min.time())
        for minutes in day_kickoffs:
            local_start = midnight + timedelta(minutes=minutes)
            if not_before is not None and local_start < not_before:
                continue
            slots.append(Slot(index=len(slots), local_start=local_start))
        current_day += timedelta(days=1)

    logger.debug(
        "Generated %d slots (%d fields) for %d matches, last day %s",
        len(slots),
        fields,
        match_count,
        current_day - timedelta(days=1),
    )
    return slots


def to_utc(local_start: datetime, utc_offset_minutes: int) -> datetime:
    """Wall-clock kick-off to an aware UTC timestamp."""
    return (local_start - timedelta(minutes=utc_offset_minutes)).replace(tzinfo=timezone.utc)


def to_local(utc_moment: datetime, utc_offset_minutes: int) -> datetime:
    """Aware (or naive UTC) timestamp back to naive wall-clock time."""
    if utc_moment.tzinfo is not None:
        utc_moment = utc_moment.astimezone(timezone.utc).replace(tzinfo=None)
    return utc_moment + timedelta(minutes=utc_offset_minutes)


# ============================================================================
# Assignment passes
# ============================================================================


def rest_respected(last_slots: TeamLastSlot, match: ScheduledMatch, slot_index: int) -> bool:
    """True if neither team played within MIN_SLOT_GAP - 1 slots before slot_index."""
    for team_id in match.team_ids:
        last = last_slots.get(team_id)
        if last is not None and last > slot_index - MIN_SLOT_GAP:
            return False
    return True


def greedy_pass(
    slots: List[Slot],
    unscheduled: List[ScheduledMatch],
    field_count: int,
    last_slots: Optional[TeamLastSlot] = None,
) -> Tuple[List[SlotAssignment], List[ScheduledMatch]]:
    """
    Walk slots chronologically; in each, take up to field_count still-open
    matches (in original order) whose teams both rested for a slot.

    Returns (assignments, matches left over).
    """
    last_slots = {} if last_slots is None else last_slots
    queue = list(unscheduled)
    assignments: List[SlotAssignment] = []

    for slot in slots:
        if not queue:
            break
        fields_used = 0
        remaining: List[ScheduledMatch] = []
        for match in queue:
            if fields_used < field_count and rest_respected(last_slots, match, slot.index):
                fields_used += 1
                assignments.append(SlotAssignment(match=match, slot=slot, field_number=fields_used))
                for team_id in match.team_ids:
                    last_slots[team_id] = slot.index
            else:
                remaining.append(match)
        queue = remaining

    return assignments, queue


def fallback_pass(
    slots: List[Slot],
    leftovers: List[ScheduledMatch],
    field_count: int,
    existing: List[SlotAssignment],
) -> List[SlotAssignment]:
    """Place leftovers into free field capacity in slot order, ignoring rest. All degraded."""
    used: Dict[int, int] = {}
    for assignment in existing:
        used[assignment.slot.index] = used.get(assignment.slot.index, 0) + 1

    queue = list(leftovers)
    placed: List[SlotAssignment] = []
    for slot in slots:
        while queue and used.get(slot.index, 0) < field_count:
            used[slot.index] = used.get(slot.index, 0) + 1
            placed.append(
                SlotAssignment(match=queue.pop(0), slot=slot, field_number=used[slot.index], degraded=True)
            )
        if not queue:
            break

    if queue:
        # generate_slots guarantees capacity; reaching here means the slot list was cut short
        raise ConfigurationError(f"{len(queue)} matches do not fit into {len(slots)} slots x {field_count} fields")
    return placed


# ============================================================================
# Entry point
# ============================================================================


def allocate_matches(
    matches: List[ScheduledMatch],
    config: TournamentConfig,
    anchor: Optional[Union[date, datetime]] = None,
    field_count: Optional[int] = None,
) -> AllocationResult:
    """
    Give every match one (kick-off, field) slot.

    Mutates each match's scheduled_at (UTC), field_number and is_degraded and
    returns them, in chronological then field order, inside an AllocationResult.

    Raises:
        ConfigurationError: invalid config, before any slot is generated
    """
    config.validate()
    fields = field_count if field_count is not None else config.field_count

    slots = generate_slots(config, len(matches), anchor=anchor, field_count=fields)
    assignments, leftovers = greedy_pass(slots, matches, fields)

    result = AllocationResult(slots=slots, field_count=fields)
    if leftovers:
        logger.warning(
            "%d of %d matches could not be scheduled with the rest gap; placing them without it",
            len(leftovers),
            len(matches),
        )
        relaxed = fallback_pass(slots, leftovers, fields, assignments)
        for assignment in relaxed:
            result.warnings.append(
                DegradedSchedulingWarning(
                    home_team_id=assignment.match.home_team_id,
                    away_team_id=assignment.match.away_team_id,
                    slot_index=assignment.slot.index,
                    field_number=assignment.field_number,
                )
            )
        assignments = assignments + relaxed

    assignments.sort(key=lambda a: (a.slot.index, a.field_number))
    for assignment in assignments:
        assignment.match.scheduled_at = to_utc(assignment.slot.local_start, config.utc_offset_minutes)
        assignment.match.field_number = assignment.field_number
        assignment.match.is_degraded = assignment.degraded

    result.assignments = assignments
    return result
