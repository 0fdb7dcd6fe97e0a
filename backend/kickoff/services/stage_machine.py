"""
Tournament Stage Machine

Single place for the tournament status lifecycle and the stage completion gate:

    pending -> group_stage -> knockout_stage -> completed

Every stage generator goes through here:
- require(stage): the current status allows generating that stage
- check_preceding_stage(stage, matches): the previous stage is fully terminal
- replaced_stages(stage): stages whose matches a (re)generation wipes
- advance(stage): status after the stage was written
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from kickoff.services.errors import InvalidStageTransitionError, PrecedingStageIncompleteError
from kickoff.services.fixture_types import (
    ALL_STAGES,
    PLACEMENT_STAGES,
    STAGE_FINAL,
    STAGE_GROUP,
    STAGE_QUARTER_FINAL,
    STAGE_SEMI_FINAL,
    TERMINAL_STATUSES,
    TOURNAMENT_COMPLETED,
    TOURNAMENT_GROUP_STAGE,
    TOURNAMENT_KNOCKOUT_STAGE,
    TOURNAMENT_PENDING,
    TOURNAMENT_STATUSES,
    ScheduledMatch,
)

# Bracket chain; placement finals hang off the group stage
STAGE_CHAIN: Tuple[str, ...] = (STAGE_GROUP, STAGE_QUARTER_FINAL, STAGE_SEMI_FINAL, STAGE_FINAL)

PRECEDING_STAGE: Dict[str, str] = {
    STAGE_QUARTER_FINAL: STAGE_GROUP,
    STAGE_SEMI_FINAL: STAGE_QUARTER_FINAL,
    STAGE_FINAL: STAGE_SEMI_FINAL,
}
for _placement in PLACEMENT_STAGES:
    PRECEDING_STAGE[_placement] = STAGE_GROUP

STATUS_RANK: Dict[str, int] = {status: i for i, status in enumerate(TOURNAMENT_STATUSES)}

# Statuses from which each stage may be (re)generated
ALLOWED_FROM: Dict[str, FrozenSet[str]] = {
    STAGE_GROUP: frozenset(TOURNAMENT_STATUSES),
    STAGE_QUARTER_FINAL: frozenset({TOURNAMENT_GROUP_STAGE, TOURNAMENT_KNOCKOUT_STAGE, TOURNAMENT_COMPLETED}),
    STAGE_SEMI_FINAL: frozenset({TOURNAMENT_KNOCKOUT_STAGE, TOURNAMENT_COMPLETED}),
    STAGE_FINAL: frozenset({TOURNAMENT_KNOCKOUT_STAGE, TOURNAMENT_COMPLETED}),
}
for _placement in PLACEMENT_STAGES:
    ALLOWED_FROM[_placement] = frozenset({TOURNAMENT_GROUP_STAGE, TOURNAMENT_KNOCKOUT_STAGE, TOURNAMENT_COMPLETED})

STATUS_AFTER: Dict[str, str] = {
    STAGE_GROUP: TOURNAMENT_GROUP_STAGE,
    STAGE_QUARTER_FINAL: TOURNAMENT_KNOCKOUT_STAGE,
    STAGE_SEMI_FINAL: TOURNAMENT_KNOCKOUT_STAGE,
    STAGE_FINAL: TOURNAMENT_COMPLETED,
}


def is_placement_stage(stage: str) -> bool:
    return stage in PLACEMENT_STAGES


def replaced_stages(stage: str) -> Tuple[str, ...]:
    """
    Stages wiped when `stage` is (re)generated: the stage itself and every
    later stage that was derived from it.
    """
    if is_placement_stage(stage):
        return PLACEMENT_STAGES
    if stage not in STAGE_CHAIN:
        raise ValueError(f"Unknown stage: {stage}")
    later = STAGE_CHAIN[STAGE_CHAIN.index(stage):]
    if stage == STAGE_GROUP:
        return later + PLACEMENT_STAGES
    return later


def check_preceding_stage(stage: str, matches: Iterable[ScheduledMatch]) -> None:
    """
    Raise PrecedingStageIncompleteError unless the stage before `stage` has
    at least one match and every one of them is completed or cancelled.

    `matches` may hold any stages; only the preceding stage is looked at.
    """
    preceding = PRECEDING_STAGE.get(stage)
    if preceding is None:
        return
    relevant = [m for m in matches if m.stage == preceding]
    pending = [m for m in relevant if m.status not in TERMINAL_STATUSES]
    if not relevant or pending:
        raise PrecedingStageIncompleteError(
            stage=stage,
            preceding_stage=preceding,
            pending_count=len(pending),
            total_count=len(relevant),
        )


class StageMachine:
    """Guarded status transitions for one tournament."""

    def __init__(self, status: Optional[str] = None):
        status = status or TOURNAMENT_PENDING
        if status not in STATUS_RANK:
            raise ValueError(f"Unknown tournament status: {status}")
        self.status = status

    def can_generate(self, stage: str) -> bool:
        return self.status in ALLOWED_FROM.get(stage, frozenset())

    def require(self, stage: str) -> None:
        if stage not in ALL_STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        if not self.can_generate(stage):
            allowed: List[str] = sorted(ALLOWED_FROM[stage], key=STATUS_RANK.get)
            raise InvalidStageTransitionError(self.status, stage, allowed)

    def next_status(self, stage: str) -> str:
        """
        Status once `stage` is written.

        Chain stages set their own status (regenerating an earlier stage moves
        the status back, since later stages were wiped). Placement finals only
        ever move the status forward to knockout_stage.
        """
        if is_placement_stage(stage):
            if STATUS_RANK[self.status] < STATUS_RANK[TOURNAMENT_KNOCKOUT_STAGE]:
                return TOURNAMENT_KNOCKOUT_STAGE
            return self.status
        return STATUS_AFTER[stage]

    def advance(self, stage: str) -> str:
        self.require(stage)
        self.status = self.next_status(stage)
        return self.status

    def reset(self) -> str:
        """Fixture deleted: back to pending from any status."""
        self.status = TOURNAMENT_PENDING
        return self.status
