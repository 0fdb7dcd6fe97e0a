"""
Scheduling engine errors.

Hard errors are raised before anything is written. DegradedSchedulingWarning
is the one non-fatal kind: it is returned inside allocation metadata, never raised.
"""

from typing import Any, Dict, List, Optional


class SchedulingError(Exception):
    """Base exception for fixture scheduling and bracket progression"""

    pass


class ConfigurationError(SchedulingError):
    """Invalid field count, non-positive durations or a degenerate daily window"""

    pass


class PrecedingStageIncompleteError(SchedulingError):
    """Stage generation requested while the previous stage still has open matches"""

    def __init__(self, stage: str, preceding_stage: str, pending_count: int, total_count: int):
        self.stage = stage
        self.preceding_stage = preceding_stage
        self.pending_count = pending_count
        self.total_count = total_count
        if total_count == 0:
            message = f"Cannot generate {stage}: no {preceding_stage} matches exist"
        else:
            message = (
                f"Cannot generate {stage}: {pending_count} of {total_count} "
                f"{preceding_stage} matches are not completed or cancelled"
            )
        super().__init__(message)


class InsufficientQualifiersError(SchedulingError):
    """Standings, group pairing or preceding results cannot fill the requested bracket"""

    pass


class InvalidStageTransitionError(SchedulingError):
    """Tournament status does not allow the requested stage transition"""

    def __init__(self, current_status: str, stage: str, allowed: Optional[List[str]] = None):
        self.current_status = current_status
        self.stage = stage
        self.allowed = allowed or []
        super().__init__(
            f"Cannot generate {stage} while tournament status is '{current_status}'"
            + (f" (allowed: {', '.join(self.allowed)})" if self.allowed else "")
        )


class DegradedSchedulingWarning(UserWarning):
    """A match was placed without the minimum rest gap for one of its teams"""

    def __init__(self, home_team_id: Any, away_team_id: Any, slot_index: int, field_number: int):
        self.home_team_id = home_team_id
        self.away_team_id = away_team_id
        self.slot_index = slot_index
        self.field_number = field_number
        super().__init__(
            f"{home_team_id} vs {away_team_id} placed in slot {slot_index} "
            f"(field {field_number}) without the minimum rest gap"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": "REST_GAP_RELAXED",
            "message": str(self),
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "slot_index": self.slot_index,
            "field_number": self.field_number,
        }
