from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from macrocal.shared.config import Config


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for *database_url*.

    SQLite connections are opened with ``check_same_thread=False`` because the
    reconciliation engine dispatches updates from worker threads, each with
    its own session.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        echo=echo,
    )


engine = build_engine(Config.DATABASE_URL)
