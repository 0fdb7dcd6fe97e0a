"""
Database wiring: one engine per process, chosen by KICKOFF_DATABASE_URL
(or DATABASE_URL), defaulting to a SQLite file next to the working directory.
"""

import os
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from dotenv import load_dotenv
from sqlalchemy.engine import Engine, make_url
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///./kickoff.db"


def database_url() -> str:
    return os.getenv("KICKOFF_DATABASE_URL") or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() in ("true", "1", "yes")


def build_engine(url: str, echo: bool = False, **kwargs: Any) -> Engine:
    """
    Engine for `url`.

    SQLite connections are shared with FastAPI's worker threads, and a file
    database gets its parent directory created.
    """
    parsed = make_url(url)
    connect_args: Dict[str, Any] = {}
    if parsed.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, connect_args=connect_args, **kwargs)


engine: Engine = build_engine(database_url(), echo=_env_flag("SQL_ECHO"))


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def init_db(bind: Optional[Engine] = None) -> None:
    """Create every kickoff table on `bind` (the app engine by default)."""
    # Registers Tournament, Team, TournamentGroup and Match on SQLModel.metadata
    import kickoff.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
