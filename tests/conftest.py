"""Shared fixtures."""

import os

# Keep the module-level engine off the working directory.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import pytest

from ifrates.config import Settings
from ifrates.database import Base, make_session_factory
from ifrates.store import InMemoryColumnStore, SqlColumnStore


@pytest.fixture
def config() -> Settings:
    return Settings(_env_file=None, min_delta_seconds=5, max_delta_seconds=600)


@pytest.fixture
def t0() -> datetime:
    return datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def memory_store() -> InMemoryColumnStore:
    return InMemoryColumnStore()


@pytest.fixture
def sql_engine_and_factory():
    engine, factory = make_session_factory("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine, factory
    engine.dispose()


@pytest.fixture
def sql_store(sql_engine_and_factory) -> SqlColumnStore:
    _, factory = sql_engine_and_factory
    return SqlColumnStore(factory)
