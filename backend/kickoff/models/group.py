from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from kickoff.models.tournament import Tournament


class TournamentGroup(SQLModel, table=True):
    """Round-robin group. `position` orders groups; `team_ids` order decides home/away."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_group_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str  # "A", "B", ...
    position: int = Field(default=0)
    team_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="groups")
