from kickoff.models.group import TournamentGroup
from kickoff.models.match import Match
from kickoff.models.team import Team
from kickoff.models.tournament import Tournament

__all__ = [
    "Tournament",
    "TournamentGroup",
    "Team",
    "Match",
]
