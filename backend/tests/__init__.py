# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from kickoff.models.group import TournamentGroup  # noqa: F401
from kickoff.models.match import Match  # noqa: F401
from kickoff.models.team import Team  # noqa: F401
from kickoff.models.tournament import Tournament  # noqa: F401
