"""
Pytest configuration and fixtures

Every test gets its own in-memory SQLite database. Engine components open
their own sessions from `session_factory`, exactly like in production, so
tests never hold a session open across a service call:

    seed(...)      -> add, commit, refresh, close
    service call   -> opens and closes its own session
    load(...)      -> fresh session to read back what was written
"""
import os
import sys

import pytest

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Must be set before core.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"

from core.database import Base, build_engine, build_session_factory  # noqa: E402
import models  # noqa: E402,F401  (registers tables)
from services.engine import GoalEngine, get_goal_engine  # noqa: E402


@pytest.fixture
def db_engine():
    """Fresh schema per test; dropped afterwards."""
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture
def goal_engine(session_factory):
    return GoalEngine(session_factory)


@pytest.fixture
def seed(session_factory):
    """Persist objects and return them detached with server defaults loaded."""
    def _seed(*objects):
        with session_factory() as db:
            db.add_all(objects)
            db.commit()
            for obj in objects:
                db.refresh(obj)
        return objects[0] if len(objects) == 1 else objects
    return _seed


@pytest.fixture
def load(session_factory):
    """Read a row back through a fresh session."""
    def _load(model, ident):
        with session_factory() as db:
            return db.get(model, ident)
    return _load


@pytest.fixture
def query_all(session_factory):
    def _query_all(model, *criteria):
        with session_factory() as db:
            return db.query(model).filter(*criteria).all()
    return _query_all


@pytest.fixture
def client(goal_engine):
    """TestClient whose routes use the per-test engine."""
    from fastapi.testclient import TestClient
    from main import app

    app.dependency_overrides[get_goal_engine] = lambda: goal_engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

