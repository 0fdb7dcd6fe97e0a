"""
Knockout bracket: quarter-final crossover pairing, winner progression,
scheduling anchor and operator-chosen placement finals.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from kickoff.services.bracket_builder import (
    bracket_preview,
    build_final_pairing,
    build_knockout_stage,
    build_placement_finals,
    build_quarter_final_pairings,
    build_semi_final_pairings,
    knockout_anchor,
    make_result_resolver,
    plan_quarter_finals,
    resolve_bracket,
    result_of,
    result_with_shootout,
    stage_winners,
)
from kickoff.services.errors import (
    ConfigurationError,
    InsufficientQualifiersError,
    PrecedingStageIncompleteError,
)
from kickoff.services.fixture_types import (
    MATCH_CANCELLED,
    MATCH_COMPLETED,
    STAGE_FINAL,
    STAGE_QUARTER_FINAL,
    STAGE_SEMI_FINAL,
    Group,
    PlacementFinalEntry,
    PlacementSide,
    Placeholder,
    ScheduledMatch,
    Score,
    StandingEntry,
    TournamentConfig,
)
from kickoff.services.round_robin import build_group_stage
from kickoff.services.slot_allocator import to_local

START = date(2026, 6, 1)


def _config(**overrides):
    values = dict(field_count=2, match_duration_minutes=40, break_duration_minutes=10, start_date=START)
    values.update(overrides)
    return TournamentConfig(**values)


def _table(group, *team_ids):
    return [StandingEntry(team_id=t, group=group, rank=i + 1) for i, t in enumerate(team_ids)]


def _complete(matches, home_goals=1, away_goals=0):
    for match in matches:
        match.status = MATCH_COMPLETED
        match.score = Score(home_goals, away_goals)
    return matches


@pytest.fixture
def four_groups():
    return [
        Group("A", ["a1", "a2"]),
        Group("B", ["b1", "b2"]),
        Group("C", ["c1", "c2"]),
        Group("D", ["d1", "d2"]),
    ]


@pytest.fixture
def finished_group_stage(four_groups):
    build = build_group_stage(_config(), four_groups)
    return _complete(build.matches)


# ============================================================================
# Quarter-final pairing
# ============================================================================


def test_quarter_final_placeholders_cross_paired_groups():
    bracket = plan_quarter_finals(["A", "B", "C", "D"])

    assert [(m.home.label, m.away.label) for m in bracket] == [
        ("A #1", "B #2"),
        ("B #1", "A #2"),
        ("C #1", "D #2"),
        ("D #1", "C #2"),
    ]
    assert all(m.stage == STAGE_QUARTER_FINAL and not m.is_resolved for m in bracket)


@pytest.mark.parametrize("names", [[], ["A"], ["A", "B"], ["A", "B", "C"], list("ABCDEF"), list("ABCDEFGH")])
def test_group_count_without_single_final_rejected(names):
    with pytest.raises(InsufficientQualifiersError):
        plan_quarter_finals(names)


def test_quarter_finals_resolved_from_standings():
    standings = {
        "A": _table("A", 11, 12, 13),
        "B": _table("B", 21, 22, 23),
        "C": _table("C", 31, 32),
        "D": _table("D", 41, 42),
    }

    matches = build_quarter_final_pairings(["A", "B", "C", "D"], standings)

    assert [(m.home_team_id, m.away_team_id) for m in matches] == [(11, 22), (21, 12), (31, 42), (41, 32)]
    assert matches[0].home_source == Placeholder("A", 1)
    assert matches[0].away_source == Placeholder("B", 2)


def test_group_with_one_team_cannot_qualify_two():
    standings = {
        "A": _table("A", 1, 2),
        "B": _table("B", 3),
        "C": _table("C", 5, 6),
        "D": _table("D", 7, 8),
    }

    with pytest.raises(InsufficientQualifiersError):
        build_quarter_final_pairings(["A", "B", "C", "D"], standings)


def test_unresolvable_placeholder_rejected():
    bracket = plan_quarter_finals(["A", "B", "C", "D"])

    with pytest.raises(InsufficientQualifiersError):
        resolve_bracket(bracket, {"A": _table("A", 1, 2)})


def test_bracket_preview_projects_current_leaders(four_groups):
    preview = bracket_preview(four_groups, [])

    assert preview[0]["home"] == "A #1"
    assert preview[0]["projected_home_team_id"] == "a1"
    assert preview[0]["projected_away_team_id"] == "b2"


# ============================================================================
# Winners
# ============================================================================


def _knockout(home, away, score=None, status=MATCH_COMPLETED, stage=STAGE_QUARTER_FINAL):
    return ScheduledMatch(stage=stage, home_team_id=home, away_team_id=away, status=status, score=score)


def test_result_of_uses_regulation_score():
    assert result_of(_knockout(1, 2, Score(0, 2))).winner_id == 2
    assert not result_of(_knockout(1, 2, Score(1, 1, 5, 4))).is_decisive
    assert not result_of(_knockout(1, 2, Score(3, 0), status=MATCH_CANCELLED)).is_decisive
    assert not result_of(_knockout(1, 2)).is_decisive


def test_shootout_settles_level_score():
    result = result_with_shootout(_knockout(1, 2, Score(1, 1, 4, 5)))

    assert (result.winner_id, result.loser_id, result.is_decisive) == (2, 1, True)
    assert not result_with_shootout(_knockout(1, 2, Score(1, 1))).is_decisive


def test_extra_time_settles_level_score_before_penalties():
    resolver = make_result_resolver(extra_time=True, penalties=True)

    after_extra_time = resolver(_knockout(1, 2, Score(1, 1, home_extra_time=2, away_extra_time=1)))
    level_after_extra_time = resolver(_knockout(1, 2, Score(1, 1, 3, 4, home_extra_time=2, away_extra_time=2)))

    assert (after_extra_time.winner_id, after_extra_time.loser_id) == (1, 2)
    assert level_after_extra_time.winner_id == 2
    assert not resolver(_knockout(1, 2, Score(1, 1, home_extra_time=1, away_extra_time=1))).is_decisive


def test_extra_time_ignored_unless_enabled():
    match = _knockout(1, 2, Score(0, 0, home_extra_time=0, away_extra_time=1))

    assert not result_of(match).is_decisive
    assert not make_result_resolver(penalties=True)(match).is_decisive
    assert make_result_resolver(extra_time=True)(match).winner_id == 2


def test_tied_knockout_match_blocks_progression():
    matches = [_knockout(1, 2, Score(2, 0)), _knockout(3, 4, Score(1, 1))]

    with pytest.raises(InsufficientQualifiersError):
        stage_winners(matches)


def test_semi_finals_pair_winners_in_order():
    quarter_finals = [
        _knockout(1, 2, Score(1, 0)),
        _knockout(3, 4, Score(0, 1)),
        _knockout(5, 6, Score(2, 2, 3, 1)),
        _knockout(7, 8, Score(0, 3)),
    ]

    semi_finals = build_semi_final_pairings(quarter_finals, result_with_shootout)

    assert [(m.home_team_id, m.away_team_id) for m in semi_finals] == [(1, 4), (5, 8)]
    assert all(m.stage == STAGE_SEMI_FINAL for m in semi_finals)


def test_semi_finals_need_four_winners():
    with pytest.raises(InsufficientQualifiersError):
        build_semi_final_pairings([_knockout(1, 2, Score(1, 0)), _knockout(3, 4, Score(1, 0))])


def test_final_needs_two_winners():
    semi_finals = [_knockout(1, 4, Score(2, 1), stage=STAGE_SEMI_FINAL)]

    with pytest.raises(InsufficientQualifiersError):
        build_final_pairing(semi_finals)


# ============================================================================
# Stage builds
# ============================================================================


def test_knockout_anchor_is_day_after_last_preceding_match():
    config = _config(utc_offset_minutes=180)
    late = ScheduledMatch(
        stage="group",
        home_team_id=1,
        away_team_id=2,
        scheduled_at=datetime(2026, 6, 2, 22, 0, tzinfo=timezone.utc),  # 01:00 local on 3 June
    )

    assert knockout_anchor([late], config) == date(2026, 6, 4)
    assert knockout_anchor([], config) == START


def test_quarter_finals_scheduled_on_next_day(four_groups, finished_group_stage):
    config = _config()

    build = build_knockout_stage(STAGE_QUARTER_FINAL, config, four_groups, finished_group_stage)

    assert [(m.home_team_id, m.away_team_id) for m in build.matches] == [
        ("a1", "b2"),
        ("b1", "a2"),
        ("c1", "d2"),
        ("d1", "c2"),
    ]
    days = {to_local(m.scheduled_at, config.utc_offset_minutes).date() for m in build.matches}
    assert days == {START + timedelta(days=1)}
    assert {m.field_number for m in build.matches} == {1, 2}


def test_knockout_rejected_while_group_match_open(four_groups, finished_group_stage):
    finished_group_stage[-1].status = "scheduled"

    with pytest.raises(PrecedingStageIncompleteError) as exc_info:
        build_knockout_stage(STAGE_QUARTER_FINAL, _config(), four_groups, finished_group_stage)

    assert exc_info.value.pending_count == 1
    assert exc_info.value.total_count == 4


def test_full_bracket_through_final(four_groups, finished_group_stage):
    config = _config()
    quarter_finals = _complete(
        build_knockout_stage(STAGE_QUARTER_FINAL, config, four_groups, finished_group_stage).matches
    )

    semi_build = build_knockout_stage(
        STAGE_SEMI_FINAL, config, four_groups, finished_group_stage + quarter_finals
    )
    semi_finals = _complete(semi_build.matches, 0, 2)

    assert [(m.home_team_id, m.away_team_id) for m in semi_finals] == [("a1", "b1"), ("c1", "d1")]
    assert [m.field_number for m in semi_finals] == [1, 1]
    assert semi_finals[0].scheduled_at < semi_finals[1].scheduled_at

    final_build = build_knockout_stage(
        STAGE_FINAL, config, four_groups, finished_group_stage + quarter_finals + semi_finals
    )

    assert len(final_build.matches) == 1
    final = final_build.matches[0]
    assert (final.stage, final.home_team_id, final.away_team_id, final.field_number) == (STAGE_FINAL, "b1", "d1", 1)


def test_semi_final_without_quarter_finals_rejected(four_groups, finished_group_stage):
    with pytest.raises(PrecedingStageIncompleteError):
        build_knockout_stage(STAGE_SEMI_FINAL, _config(), four_groups, finished_group_stage)


@pytest.mark.parametrize("group_names", ["AB", "ABCDEFGH"])
def test_quarter_finals_need_bracket_that_reaches_one_final(group_names):
    groups = [Group(name, [f"{name.lower()}1", f"{name.lower()}2"]) for name in group_names]
    group_stage = _complete(build_group_stage(_config(), groups).matches)

    with pytest.raises(InsufficientQualifiersError):
        build_knockout_stage(STAGE_QUARTER_FINAL, _config(), groups, group_stage)


# ============================================================================
# Placement finals
# ============================================================================


def _placement(stage="gold_final", home=("a1", 1, "A"), away=("b1", 1, "B"), field=1):
    return PlacementFinalEntry(
        stage=stage,
        label="Gold Final",
        home=PlacementSide(*home),
        away=PlacementSide(*away),
        date=datetime(2026, 6, 5, 15, 0),
        field=field,
    )


def test_placement_final_persisted_as_given(four_groups, finished_group_stage):
    config = _config(utc_offset_minutes=180)

    build = build_placement_finals([_placement()], config, four_groups, finished_group_stage)

    match = build.matches[0]
    assert (match.stage, match.home_team_id, match.away_team_id, match.field_number) == ("gold_final", "a1", "b1", 1)
    assert match.scheduled_at == datetime(2026, 6, 5, 12, 0, tzinfo=timezone.utc)
    assert match.label == "Gold Final"
    assert match.home_source == Placeholder("A", 1)


@pytest.mark.parametrize(
    "entry",
    [
        _placement(stage="wooden_spoon"),
        _placement(field=3),
        _placement(away=("a1", 1, "A")),
    ],
)
def test_invalid_placement_final_rejected(four_groups, finished_group_stage, entry):
    with pytest.raises(ConfigurationError):
        build_placement_finals([entry], _config(), four_groups, finished_group_stage)


def test_placement_final_team_must_have_standings(four_groups, finished_group_stage):
    with pytest.raises(InsufficientQualifiersError):
        build_placement_finals([_placement(away=("zz", 1, "B"))], _config(), four_groups, finished_group_stage)
