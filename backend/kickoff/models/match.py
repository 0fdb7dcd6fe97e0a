from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from kickoff.models.tournament import Tournament


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage: str = Field(index=True)  # group | quarter_final | semi_final | final | <placement>_final
    group_name: Optional[str] = Field(default=None)  # group stage only

    home_team_id: int = Field(foreign_key="team.id")
    away_team_id: int = Field(foreign_key="team.id")

    scheduled_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))  # UTC
    field_number: Optional[int] = Field(default=None)
    status: str = Field(default="scheduled")  # scheduled | in_progress | completed | cancelled

    home_score: Optional[int] = Field(default=None)
    away_score: Optional[int] = Field(default=None)
    home_penalties: Optional[int] = Field(default=None)
    away_penalties: Optional[int] = Field(default=None)
    home_extra_time_score: Optional[int] = Field(default=None)  # totals after extra time
    away_extra_time_score: Optional[int] = Field(default=None)

    # Placement finals: display label and where each side came from
    label: Optional[str] = Field(default=None)
    home_source_group: Optional[str] = Field(default=None)
    home_source_rank: Optional[int] = Field(default=None)
    away_source_group: Optional[str] = Field(default=None)
    away_source_rank: Optional[int] = Field(default=None)

    # Placed by the rest-relaxed fallback pass
    is_degraded: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
