"""
Group Standings Calculator

Aggregates completed group-stage results into a ranked table.

Ordering: points desc, goal difference desc, goals for desc. Anything still
tied keeps the group's team-list order (stable sort, no head-to-head).
"""

from typing import Dict, Iterable, List

from kickoff.services.fixture_types import (
    MATCH_COMPLETED,
    STAGE_GROUP,
    Group,
    ScheduledMatch,
    StandingEntry,
    TeamId,
)

POINTS_WIN = 3
POINTS_DRAW = 1


def standings_sort_key(entry: StandingEntry):
    return (-entry.points, -entry.goal_difference, -entry.goals_for)


def _counts_toward_table(match: ScheduledMatch, group: Group) -> bool:
    if match.stage != STAGE_GROUP or match.status != MATCH_COMPLETED:
        return False
    if match.score is None:
        return False
    if match.group_name is not None and match.group_name != group.name:
        return False
    return True


def calculate_group_standings(group: Group, matches: Iterable[ScheduledMatch]) -> List[StandingEntry]:
    """
    Build the ranked table for one group.

    Every team in the group gets a row, including teams with no results yet.
    Matches that are not completed group matches with a score are skipped, as
    are matches involving a team outside the group.
    """
    table: Dict[TeamId, StandingEntry] = {}
    for team_id in group.team_ids:
        table[team_id] = StandingEntry(team_id=team_id, group=group.name)

    for match in matches:
        if not _counts_toward_table(match, group):
            continue
        home = table.get(match.home_team_id)
        away = table.get(match.away_team_id)
        if home is None or away is None:
            continue

        home_goals = match.score.home
        away_goals = match.score.away

        home.played += 1
        away.played += 1
        home.goals_for += home_goals
        home.goals_against += away_goals
        away.goals_for += away_goals
        away.goals_against += home_goals

        if home_goals > away_goals:
            home.won += 1
            home.points += POINTS_WIN
            away.lost += 1
        elif home_goals < away_goals:
            away.won += 1
            away.points += POINTS_WIN
            home.lost += 1
        else:
            home.drawn += 1
            away.drawn += 1
            home.points += POINTS_DRAW
            away.points += POINTS_DRAW

    ranked = sorted(table.values(), key=standings_sort_key)
    for position, entry in enumerate(ranked):
        entry.rank = position + 1
    return ranked


def calculate_all_standings(
    groups: Iterable[Group], matches: Iterable[ScheduledMatch]
) -> Dict[str, List[StandingEntry]]:
    """Standings for every group, keyed by group name, in group order."""
    match_list = list(matches)
    return {group.name: calculate_group_standings(group, match_list) for group in groups}
