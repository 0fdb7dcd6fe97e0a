from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from kickoff.models.group import TournamentGroup
    from kickoff.models.match import Match
    from kickoff.models.team import Team


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    start_date: date
    status: str = Field(default="pending")  # pending | group_stage | knockout_stage | completed

    # Scheduling configuration (converted to TournamentConfig by the stage orchestrator)
    field_count: int = Field(default=1)
    match_duration_minutes: int = Field(default=40)
    break_duration_minutes: int = Field(default=10)
    daily_start_time: str = Field(default="09:00")  # "HH:MM" local
    daily_end_time: str = Field(default="17:00")
    lunch_break_start: str = Field(default="12:00")
    lunch_break_duration_minutes: int = Field(default=60)
    utc_offset_minutes: int = Field(default=180)  # local = UTC + offset

    extra_time_enabled: bool = Field(default=False)
    penalty_shootout_enabled: bool = Field(default=False)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)},
    )

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    groups: List["TournamentGroup"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
