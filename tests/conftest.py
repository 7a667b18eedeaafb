"""
Pytest fixtures for CivicSync tests.

Every test gets a fresh in-memory SQLite database shared by the test session,
the request sessions and the background tasks.
"""

import os
from collections.abc import Iterator

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from civicsync import models  # noqa: F401,E402
from civicsync.core.config import settings  # noqa: E402
from civicsync.core.ratelimit import limiter  # noqa: E402
from civicsync.core.security import make_token  # noqa: E402
from civicsync.db import session as db_session  # noqa: E402
from civicsync.db.base import Base  # noqa: E402
from civicsync.db.session import get_db  # noqa: E402
from civicsync.main import app  # noqa: E402
from civicsync.models.user import User, UserRole  # noqa: E402
from civicsync.services import issue_store  # noqa: E402


@pytest.fixture
def session_factory(monkeypatch, tmp_path) -> Iterator[sessionmaker]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    # background tasks and jobs open their own sessions
    monkeypatch.setattr(db_session, "SessionLocal", factory)
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "public_base_url", "http://testserver")
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "smtp_host", None)
    monkeypatch.setattr(settings, "resend_api_key", None)
    monkeypatch.setattr(settings, "vapid_private_key", None)

    yield factory

    engine.dispose()


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory) -> Iterator[TestClient]:
    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    limiter.enabled = True


def _user(db: Session, email: str, name: str, role: UserRole) -> User:
    user = User(email=email, name=name, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def reporter(db) -> User:
    return _user(db, "rita@example.com", "Rita Reporter", UserRole.citizen)


@pytest.fixture
def citizen(db) -> User:
    return _user(db, "carl@example.com", "Carl Citizen", UserRole.citizen)


@pytest.fixture
def staff(db) -> User:
    return _user(db, "sam@city.gov", "Sam Staff", UserRole.municipal_staff)


@pytest.fixture
def admin(db) -> User:
    return _user(db, "ada@city.gov", "Ada Admin", UserRole.admin)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id, user.role.value)}"}


def issue_data(**overrides) -> dict:
    data = {
        "title": "Pothole on Main St",
        "description": "Deep pothole near the bus stop on Main St.",
        "category": "Road & Transportation",
        "priority": "high",
        "location": {
            "address": "12 Main St",
            "city": "Springfield",
            "state": "IL",
            "zip_code": "62701",
            "coordinates": [-89.6501, 39.7817],
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def make_issue(db, reporter):
    def _make(reporter_id: int | None = None, lng: float = -89.6501, lat: float = 39.7817, **overrides):
        data = issue_data(**overrides)
        data["location"] = {**data["location"], "coordinates": [lng, lat]}
        return issue_store.create_issue(db, data, [], reporter_id=reporter_id or reporter.id)

    return _make


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def new_issue_data():
    return issue_data
