import pytest

from kickoff.services.errors import InvalidStageTransitionError, PrecedingStageIncompleteError
from kickoff.services.fixture_types import (
    MATCH_CANCELLED,
    MATCH_COMPLETED,
    MATCH_IN_PROGRESS,
    PLACEMENT_STAGES,
    STAGE_FINAL,
    STAGE_GROUP,
    STAGE_QUARTER_FINAL,
    STAGE_SEMI_FINAL,
    ScheduledMatch,
)
from kickoff.services.stage_machine import StageMachine, check_preceding_stage, replaced_stages


def _match(stage, status):
    return ScheduledMatch(stage=stage, home_team_id=1, away_team_id=2, status=status)


def test_happy_path_transitions():
    machine = StageMachine()

    assert machine.status == "pending"
    assert machine.advance(STAGE_GROUP) == "group_stage"
    assert machine.advance(STAGE_QUARTER_FINAL) == "knockout_stage"
    assert machine.advance(STAGE_SEMI_FINAL) == "knockout_stage"
    assert machine.advance(STAGE_FINAL) == "completed"


@pytest.mark.parametrize(
    "status,stage",
    [
        ("pending", STAGE_QUARTER_FINAL),
        ("pending", STAGE_FINAL),
        ("group_stage", STAGE_SEMI_FINAL),
        ("group_stage", STAGE_FINAL),
        ("pending", "gold_final"),
    ],
)
def test_illegal_transitions_rejected(status, stage):
    machine = StageMachine(status)

    with pytest.raises(InvalidStageTransitionError) as exc_info:
        machine.advance(stage)

    assert machine.status == status
    assert exc_info.value.current_status == status


def test_regenerating_group_stage_moves_status_back():
    machine = StageMachine("completed")

    assert machine.advance(STAGE_GROUP) == "group_stage"


def test_placement_finals_never_move_status_backwards():
    assert StageMachine("group_stage").advance("silver_final") == "knockout_stage"
    assert StageMachine("completed").advance("bronze_final") == "completed"


def test_reset_from_any_status():
    assert StageMachine("completed").reset() == "pending"


def test_unknown_stage_and_status():
    with pytest.raises(ValueError):
        StageMachine("paused")
    with pytest.raises(ValueError):
        StageMachine().require("round_of_16")


def test_replaced_stages_cover_downstream():
    assert replaced_stages(STAGE_GROUP) == (STAGE_GROUP, STAGE_QUARTER_FINAL, STAGE_SEMI_FINAL, STAGE_FINAL) + PLACEMENT_STAGES
    assert replaced_stages(STAGE_SEMI_FINAL) == (STAGE_SEMI_FINAL, STAGE_FINAL)
    assert replaced_stages("prestige_final") == PLACEMENT_STAGES


def test_preceding_stage_gate():
    done = [_match(STAGE_GROUP, MATCH_COMPLETED), _match(STAGE_GROUP, MATCH_CANCELLED)]
    check_preceding_stage(STAGE_QUARTER_FINAL, done)

    with pytest.raises(PrecedingStageIncompleteError) as exc_info:
        check_preceding_stage(STAGE_QUARTER_FINAL, done + [_match(STAGE_GROUP, MATCH_IN_PROGRESS)])
    assert (exc_info.value.pending_count, exc_info.value.total_count) == (1, 3)

    with pytest.raises(PrecedingStageIncompleteError, match="no quarter_final matches"):
        check_preceding_stage(STAGE_SEMI_FINAL, done)


def test_group_stage_has_no_gate():
    check_preceding_stage(STAGE_GROUP, [])
