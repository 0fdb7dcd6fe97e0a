from datetime import date
from itertools import combinations

import pytest

from kickoff.services.errors import ConfigurationError
from kickoff.services.fixture_types import STAGE_GROUP, Group, TournamentConfig
from kickoff.services.round_robin import (
    build_group_stage,
    generate_group_matches,
    generate_round_robin,
    rr_match_count,
)


def _config(**overrides):
    values = dict(field_count=2, match_duration_minutes=40, break_duration_minutes=10, start_date=date(2026, 6, 1))
    values.update(overrides)
    return TournamentConfig(**values)


@pytest.mark.parametrize("team_count", [2, 3, 4, 5, 6])
def test_every_pair_plays_exactly_once(team_count):
    teams = list(range(1, team_count + 1))
    matches = generate_group_matches(Group("A", teams))

    pairs = [frozenset(m.team_ids) for m in matches]
    assert len(matches) == rr_match_count(team_count) == team_count * (team_count - 1) // 2
    assert len(set(pairs)) == len(pairs)
    assert set(pairs) == {frozenset(p) for p in combinations(teams, 2)}
    assert all(m.home_team_id != m.away_team_id for m in matches)


def test_lower_index_team_is_home_in_generation_order():
    matches = generate_group_matches(Group("A", ["x", "y", "z"]))

    assert [(m.home_team_id, m.away_team_id) for m in matches] == [("x", "y"), ("x", "z"), ("y", "z")]
    assert all(m.stage == STAGE_GROUP and m.group_name == "A" for m in matches)


def test_small_groups_produce_no_matches():
    assert rr_match_count(0) == 0
    assert rr_match_count(1) == 0
    assert generate_group_matches(Group("A", [7])) == []


def test_duplicate_team_rejected():
    with pytest.raises(ConfigurationError):
        generate_group_matches(Group("A", [1, 2, 1]))


def test_groups_concatenate_in_order():
    matches = generate_round_robin([Group("A", [1, 2]), Group("B", [3, 4, 5])])

    assert [m.group_name for m in matches] == ["A", "B", "B", "B"]


def test_build_group_stage_schedules_every_match():
    build = build_group_stage(_config(), [Group("A", [1, 2, 3, 4]), Group("B", [5, 6, 7, 8])])

    assert build.stage == STAGE_GROUP
    assert len(build.matches) == 12
    assert all(m.scheduled_at is not None and m.field_number in (1, 2) for m in build.matches)
    assert build.slots_generated == 9
    assert build.warnings == []


def test_build_group_stage_without_pairs_rejected():
    with pytest.raises(ConfigurationError):
        build_group_stage(_config(), [Group("A", [1]), Group("B", [])])
