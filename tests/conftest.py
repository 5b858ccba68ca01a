"""Pytest fixtures and configuration for Cortex tests."""

import pytest
from datetime import date, datetime
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from cortex.database.database import Base
from cortex.database.conditional_repository import ConditionalRepository
from cortex.database.repository import TaskRepository
from cortex.models.conditional import (
    CreateConditionalInput,
    OutcomeAction,
    OutcomeInput,
    OutcomeType,
)
from cortex.models.task import TaskScope
from cortex.models.task_factory import create_task_base


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0)


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture
def other_user_id():
    return "other-user-456"


@pytest.fixture(scope="function")
def db_session(test_user_id, other_user_id):
    """Create a database session for testing.

    Uses an in-memory SQLite database that is created fresh for each test,
    with two users already present (required for foreign key constraints).
    """
    from cortex.database.models import UserDB

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    now = datetime.utcnow()
    for user_id, email in ((test_user_id, "test@example.com"), (other_user_id, "other@example.com")):
        session.add(UserDB(id=user_id, email=email, name="Test User", created_at=now, updated_at=now))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def task_repository(db_session: Session):
    """Create a TaskRepository instance for testing."""
    return TaskRepository(db_session)


@pytest.fixture
def conditional_repository(db_session: Session):
    """Create a ConditionalRepository instance for testing."""
    return ConditionalRepository(db_session)


@pytest.fixture
def clock():
    """Deterministic clock for resolution timestamps."""
    return lambda: FIXED_NOW


@pytest.fixture
def grant_outcomes():
    """Outcomes of the 'Grant decision' conditional."""
    return [
        OutcomeInput(label="Grant approved", type=OutcomeType.SUCCESS, action=OutcomeAction.ACTIVATE),
        OutcomeInput(
            label="Decision delayed", type=OutcomeType.DELAYED, action=OutcomeAction.POSTPONE, postpone_days=14
        ),
        OutcomeInput(label="Grant rejected", type=OutcomeType.FAILED, action=OutcomeAction.SWITCH_FALLBACK),
    ]


@pytest.fixture
def make_conditional(conditional_repository, test_user_id, grant_outcomes):
    """Factory creating a conditional (defaults to 'Grant decision')."""

    def _make(user_id=None, **overrides):
        data = {
            "title": "Grant decision",
            "expected_date": date(2025, 3, 15),
            "outcomes": grant_outcomes,
            "fallback_postpone_days": 30,
            **overrides,
        }
        return conditional_repository.create(user_id or test_user_id, CreateConditionalInput(**data))

    return _make


@pytest.fixture
def make_task(task_repository, test_user_id):
    """Factory creating a day-scope task (optionally blocked by a conditional)."""

    def _make(title="Buy equipment", scope=TaskScope.DAY, scope_key="2025-03-10", user_id=None, **overrides):
        task = create_task_base(
            user_id=user_id or test_user_id,
            title=title,
            scope=scope,
            scope_key=scope_key,
            **overrides,
        )
        return task_repository.create(task)

    return _make


@pytest.fixture
def outcome_for():
    """Return the first outcome of a conditional with the given action."""

    def _find(conditional, action):
        return next(o for o in conditional.outcomes if o.action == action)

    return _find


@pytest.fixture
def test_user(test_user_id):
    """Create a test user object."""
    from cortex.models.user import User
    now = datetime.utcnow()
    return User(id=test_user_id, email="test@example.com", name="Test User", created_at=now, updated_at=now)


@pytest.fixture
def test_client(db_session: Session, test_user):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from cortex.api.app import app
    from cortex.database.database import get_db
    from cortex.auth.dependencies import get_current_user

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
