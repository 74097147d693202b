"""
Test configuration and fixtures for the constructpro test suite.
"""
from datetime import date
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from constructpro import main
from constructpro.app.db.database import init_db, make_engine
from constructpro.app.db.db_writer import create_project
from constructpro.app.db.models import TaskModel, TaskStatus
from constructpro.app.security import User
from constructpro.main import app, get_current_user, get_db


def make_task(task_id, start, end, depends_on=(), status=TaskStatus.NOT_STARTED, **extra) -> TaskModel:
    return TaskModel(
        id=task_id,
        name=extra.pop("name", f"Task {task_id}"),
        start_date=start,
        end_date=end,
        status=status,
        depends_on=list(depends_on),
        **extra,
    )


@pytest.fixture
def test_db(tmp_path):
    """Create a test SQLite database and override get_db dependency.

    Returns a generator function so tests can do: db = next(test_db())
    """
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield override_get_db
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db_session(test_db):
    gen = test_db()
    db = next(gen)
    yield db
    gen.close()


@pytest.fixture(autouse=True)
def reset_session_state():
    """Gesture controllers and unlocked PINs are process-wide; isolate tests."""
    main._GESTURES.clear()
    main._UNLOCKED_PROJECTS.clear()
    yield
    main._GESTURES.clear()
    main._UNLOCKED_PROJECTS.clear()


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return User(
        id="usr-1",
        username="testuser",
        hashed_password="$2b$12$test.hash",
        role="editor",
    )


@pytest.fixture
def viewer_user():
    return User(
        id="usr-2",
        username="viewer",
        hashed_password="$2b$12$test.hash",
        role="viewer",
    )


@pytest.fixture
def authenticated_client(mock_user, test_db):
    """Create a test client with authenticated user."""
    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def viewer_client(viewer_user, test_db):
    """Test client authenticated as a read-only user."""
    app.dependency_overrides[get_current_user] = lambda: viewer_user
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    """Create a test client."""
    return TestClient(app)


@pytest.fixture
def project_id(db_session, mock_user):
    """An unlocked project owned by the mock user."""
    return create_project(db_session, "Casa Norte", mock_user.id).id


@pytest.fixture
def today():
    return date(2024, 8, 7)


@pytest.fixture
def mock_requests():
    """Mock requests for Supabase REST calls."""
    with patch("constructpro.app.db.supabase_store.requests.get") as mock_get, \
         patch("constructpro.app.db.supabase_store.requests.post") as mock_post, \
         patch("constructpro.app.db.supabase_store.requests.delete") as mock_delete:

        # Default successful response
        mock_response = Mock()
        mock_response.ok = True
        mock_response.status_code = 200
        mock_response.json.return_value = []
        mock_response.raise_for_status.return_value = None

        mock_get.return_value = mock_response
        mock_post.return_value = mock_response
        mock_delete.return_value = mock_response

        yield {
            "get": mock_get,
            "post": mock_post,
            "delete": mock_delete,
            "response": mock_response,
        }
