# tests/conftest.py

from datetime import date, datetime
from typing import Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from cadence.db.config import create_db_engine, get_session
from cadence.db.init import init_db
from cadence.main import app
from cadence.middleware.auth import create_access_token
from cadence.models.task import Task
from cadence.models.user import User
from cadence.utils.metrics import metrics_collector


@pytest.fixture()
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_db_engine("sqlite:///:memory:", poolclass=StaticPool)
    init_db(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics_collector.reset()
    yield
    metrics_collector.reset()


@pytest.fixture()
def user(session: Session) -> User:
    user = User(id="user-1", email="ada@example.com", name="Ada", timezone="UTC")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def other_user(session: Session) -> User:
    user = User(id="user-2", email="grace@example.com", name="Grace", timezone="Pacific/Auckland")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture()
def make_task(session: Session, user: User) -> Callable[..., Task]:
    """
    Persist a task. Recurrence columns are passed as-is, so tests can also
    store legacy or malformed rule data.
    """
    def _make(**fields) -> Task:
        fields.setdefault("user_id", user.id)
        fields.setdefault("name", "Task")
        fields.setdefault("created_at", datetime(2024, 1, 1, 8, 0))
        fields.setdefault("updated_at", datetime(2024, 1, 1, 8, 0))
        task = Task(**fields)
        session.add(task)
        session.commit()
        session.refresh(task)
        return task

    return _make


@pytest.fixture()
def weekly_monday_template(make_task) -> Task:
    """Every Monday, first due Monday 2024-01-01."""
    return make_task(
        name="Weekly review",
        due_date=date(2024, 1, 1),
        recurrence_type="weekly",
        recurrence_weekdays=[1],
    )


@pytest.fixture()
def client(session: Session):
    """TestClient whose requests share the test's session."""
    app.dependency_overrides[get_session] = lambda: session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}
