"""
Round-Robin Match Generator

One match per unordered pair of teams in a group. Pairs come from nested
iteration i < j over the group's team list; the lower-index team is home.
"""

import logging
from typing import Iterable, List, Sequence

from kickoff.services.errors import ConfigurationError
from kickoff.services.fixture_types import STAGE_GROUP, Group, ScheduledMatch, StageBuild, TournamentConfig
from kickoff.services.slot_allocator import allocate_matches

logger = logging.getLogger(__name__)


def rr_match_count(team_count: int) -> int:
    """Return number of round-robin matches in a group: C(n, 2) = n*(n-1)/2."""
    if team_count < 2:
        return 0
    return (team_count * (team_count - 1)) // 2


def generate_group_matches(group: Group) -> List[ScheduledMatch]:
    """Unscheduled group-stage matches for one group, in generation order."""
    if len(set(group.team_ids)) != len(group.team_ids):
        raise ConfigurationError(f"Group {group.name} lists a team more than once")

    teams = group.team_ids
    matches: List[ScheduledMatch] = []
    for i in range(len(teams)):
        for j in range(i + 1, len(teams)):
            matches.append(
                ScheduledMatch(
                    stage=STAGE_GROUP,
                    group_name=group.name,
                    home_team_id=teams[i],
                    away_team_id=teams[j],
                )
            )
    return matches


def generate_round_robin(groups: Iterable[Group]) -> List[ScheduledMatch]:
    """All group-stage matches, group by group in the given group order."""
    matches: List[ScheduledMatch] = []
    for group in groups:
        matches.extend(generate_group_matches(group))
    return matches


def build_group_stage(config: TournamentConfig, groups: Sequence[Group]) -> StageBuild:
    """
    Generate and schedule the whole group stage.

    Raises:
        ConfigurationError: invalid config, or the groups produce no matches
    """
    config.validate()
    matches = generate_round_robin(groups)
    if not matches:
        raise ConfigurationError("No group-stage matches: every group needs at least two teams")

    allocation = allocate_matches(matches, config)
    logger.info(
        "Built group stage: %d matches across %d groups in %d slots (%d degraded)",
        len(matches),
        len(groups),
        len(allocation.slots),
        allocation.degraded_count,
    )
    return StageBuild(
        stage=STAGE_GROUP,
        matches=allocation.matches,
        warnings=list(allocation.warnings),
        slots_generated=len(allocation.slots),
    )
