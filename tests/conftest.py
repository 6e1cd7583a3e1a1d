# conftest.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from eamodel.bulk import BulkOperations
from eamodel.config import EngineSettings
from eamodel.engine import MetaModelEngine
from eamodel.storage import Base, MetaModelStore

PROJECT_ID = 1
OTHER_PROJECT_ID = 2


# Custom test markers
def pytest_configure(config):
    """Configure custom markers."""
    markers = [
        "scenario: end-to-end walkthroughs across several components",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


class TickingClock:
    """Deterministic clock: every call returns a time one second after the previous one."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.current = start
        self.calls = 0

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        self.calls += 1
        return self.current


class FrozenClock:
    """Clock that always returns the same instant."""

    def __init__(self, instant: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.instant = instant

    def __call__(self) -> datetime:
        return self.instant


@pytest.fixture
def db_engine():
    """Create an in-memory SQLite engine shared by every session of a test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(db_engine):
    return MetaModelStore(sessionmaker(bind=db_engine), db_engine)


@pytest.fixture
def session(store):
    """Create a database session."""
    session, _ = store.get_session()
    yield session
    session.close()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def settings():
    return EngineSettings(database_url="sqlite:///:memory:", default_page_size=20, max_page_size=100)


@pytest.fixture
def engine(store, clock, settings):
    """Provide a fresh engine over an empty store."""
    return MetaModelEngine(store, clock=clock, settings=settings)


@pytest.fixture
def bulk(engine):
    return BulkOperations(engine)


def node_payload(kind: str, name: str, project_id: int = PROJECT_ID, actor: str = "alice", **extra: Any) -> Dict[str, Any]:
    """Minimal valid creation payload for a kind."""
    payload: Dict[str, Any] = {"project_id": project_id, "name": name, "created_by": actor}
    if kind == "capability":
        payload["level"] = 1
    elif kind == "requirement":
        payload["requirement_type"] = "functional"
    payload.update(extra)
    return payload


@pytest.fixture
def make_node(engine):
    """Create a node and return its id."""
    def _make(kind: str, name: str, project_id: int = PROJECT_ID, actor: str = "alice", **extra: Any) -> int:
        return engine.create_node(kind, node_payload(kind, name, project_id, actor, **extra)).id
    return _make
