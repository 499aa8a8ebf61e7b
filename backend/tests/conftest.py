"""
Test configuration and fixtures for Team Tasks tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users, teams, lists and tasks
"""

import os
import sys
import logging
from typing import Callable, Dict, Generator

import pytest

# Keep the app's own engine away from any real database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
from auth.security import hash_password, create_access_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PASSWORD = "password123"


@pytest.fixture(autouse=True)
def no_outbound_email(monkeypatch):
    """Make sure no test ever reaches the real email API."""
    monkeypatch.delenv("BREVO_API_KEY", raising=False)
    monkeypatch.delenv("BREVO_SENDER_EMAIL", raising=False)


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_user(db: Session, email: str, first_name: str = None, last_name: str = None) -> models.User:
    user = models.User(
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        first_name=first_name,
        last_name=last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def owner_user(test_db: Session) -> models.User:
    """User that founds the test team."""
    return _create_user(test_db, "owner@example.com", "Olive", "Owner")


@pytest.fixture(scope="function")
def member_user(test_db: Session) -> models.User:
    """User that joins the test team as MEMBER."""
    return _create_user(test_db, "member@example.com", "Max", "Member")


@pytest.fixture(scope="function")
def outsider_user(test_db: Session) -> models.User:
    """User that belongs to no team."""
    return _create_user(test_db, "outsider@example.com")


@pytest.fixture(scope="function")
def auth_headers_for() -> Callable[[models.User], Dict[str, str]]:
    """
    Return a helper building Authorization headers with a real JWT for a user.

    Example:
        headers = auth_headers_for(owner_user)
    """
    def _headers(user: models.User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture(scope="function")
def team(test_db: Session, owner_user: models.User, member_user: models.User) -> models.Team:
    """
    Create a test team: owner_user as OWNER, member_user as MEMBER.
    """
    logger.debug("Creating test team")
    team = models.Team(
        name="Test Team",
        description="A team for testing",
        created_by_user_id=owner_user.id
    )
    test_db.add(team)
    test_db.commit()
    test_db.refresh(team)

    test_db.add_all([
        models.TeamMember(team_id=team.id, user_id=owner_user.id, role=models.TeamRole.OWNER),
        models.TeamMember(team_id=team.id, user_id=member_user.id, role=models.TeamRole.MEMBER),
    ])
    test_db.commit()

    logger.info(f"Created test team with ID: {team.id}")
    return team


@pytest.fixture(scope="function")
def personal_list(test_db: Session, owner_user: models.User) -> models.TaskList:
    """
    Create a personal list owned by owner_user.
    """
    task_list = models.TaskList(name="Personal List", owner_user_id=owner_user.id, team_id=None)
    test_db.add(task_list)
    test_db.commit()
    test_db.refresh(task_list)
    return task_list


@pytest.fixture(scope="function")
def team_list(test_db: Session, team: models.Team) -> models.TaskList:
    """
    Create a list owned by the test team.
    """
    task_list = models.TaskList(name="Team List", owner_user_id=None, team_id=team.id)
    test_db.add(task_list)
    test_db.commit()
    test_db.refresh(task_list)
    return task_list


@pytest.fixture(scope="function")
def make_task(test_db: Session) -> Callable[..., models.Task]:
    """
    Return a helper that inserts a task directly into a list.
    """
    def _make(task_list: models.TaskList, title: str = "Task", **fields) -> models.Task:
        fields.setdefault("priority", models.TaskPriority.MEDIUM)
        fields.setdefault("status", models.TaskStatus.TODO)
        task = models.Task(list_id=task_list.id, title=title, **fields)
        test_db.add(task)
        test_db.commit()
        test_db.refresh(task)
        return task

    return _make
