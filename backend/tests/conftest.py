"""Pytest fixtures — SQLite database recreated for every test."""
from datetime import datetime

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from danceapp.database import Base, get_db
from danceapp.main import app

# Import all models so they register with Base.metadata
from danceapp.models.user import User                                  # noqa: F401
from danceapp.models.workspace import Workspace, WorkspaceMember, WorkspaceRole
from danceapp.models.event import Event, EventOrganizer                # noqa: F401
from danceapp.models.attendee import Attendee                          # noqa: F401
from danceapp.models.attendance_history import AttendanceHistory       # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session for direct service-level tests."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_engine):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def parse_dt(value: str) -> datetime:
    """Parse an API timestamp ("Z" suffix included)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ---------------------------------------------------------------------------
# API helpers: return the JSON response dict
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, email: str = "dancer@example.com",
                     first_name: str = "Test", last_name: str = "Dancer") -> dict:
    """Helper — POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_workspace(client: TestClient, creator_id: int, slug: str = "salsa-studio",
                          name: str = "Salsa Studio") -> dict:
    """Helper — POST /api/workspaces and return response JSON."""
    resp = client.post("/api/workspaces/", json={
        "name": name,
        "slug": slug,
        "created_by_id": creator_id,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def add_test_member(client: TestClient, workspace_id: int, user_id: int, role: str = "STUDENT") -> dict:
    """Helper — POST /api/workspaces/{id}/members and return response JSON."""
    resp = client.post(f"/api/workspaces/{workspace_id}/members", json={
        "user_id": user_id,
        "role": role,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Session helpers for service-level tests
# ---------------------------------------------------------------------------
def make_user(db, email: str = "dancer@example.com", is_super_admin: bool = False) -> User:
    user = User(email=email, first_name="Test", last_name="Dancer", is_super_admin=is_super_admin)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_workspace(db, owner: User, slug: str = "salsa-studio") -> Workspace:
    workspace = Workspace(name="Salsa Studio", slug=slug, created_by_id=owner.id)
    db.add(workspace)
    db.flush()
    db.add(WorkspaceMember(workspace_id=workspace.id, user_id=owner.id, role=WorkspaceRole.owner))
    db.commit()
    db.refresh(workspace)
    return workspace


def make_member(db, workspace: Workspace, user: User, role: WorkspaceRole = WorkspaceRole.student) -> None:
    db.add(WorkspaceMember(workspace_id=workspace.id, user_id=user.id, role=role))
    db.commit()
