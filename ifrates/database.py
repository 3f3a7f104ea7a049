"""
Database setup using SQLAlchemy.

We create:
- an Engine bound to the DATABASE_URL from config
- a SessionLocal factory for cycle/request sessions
- a Base class to declare ORM models

`make_session_factory` builds the same pair for another URL, which is how
tests get an isolated in-memory SQLite store.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from ifrates.config import settings

# Base class for all ORM models
Base = declarative_base()


def make_session_factory(database_url: str):
    """Create an engine for `database_url` and a session factory bound to it."""
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # One shared connection, otherwise every session sees an empty DB.
            kwargs["poolclass"] = StaticPool

    engine = create_engine(
        database_url,
        future=True,
        echo=False,  # set True if you want to see SQL in the logs
        connect_args=connect_args,
        **kwargs,
    )
    factory = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        future=True,
    )
    return engine, factory


# Engine and session factory for the configured database
engine, SessionLocal = make_session_factory(settings.database_url)
