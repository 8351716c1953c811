"""Shared fixtures: per-test SQLite database, service helpers and API client."""

import os

# Settings are read at import time; point the default engine at SQLite
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("API_KEY", "test-api-key")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from letsmeet.config import settings
from letsmeet.db.database import Base, build_engine
from letsmeet.db import models  # noqa: F401
from letsmeet.dependencies import get_db
from letsmeet.main import app
from letsmeet.services.user_service import user_service
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.application_service import application_service
from letsmeet.timeutils import utcnow


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'letsmeet.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    """Create a completed profile with a given starting score."""
    def _make_user(user_id, score=None, nickname=None):
        return user_service.complete_profile(
            db,
            user_id,
            nickname or user_id,
            initial_score=score
        )
    return _make_user


@pytest.fixture
def make_meeting(db):
    """Create an open meeting one week from now."""
    def _make_meeting(host_id, max_participants=4, interests=None, days_ahead=7, **kwargs):
        return meeting_service.create_meeting(
            db,
            host_id=host_id,
            title=kwargs.pop("title", "Evening run"),
            meeting_date=kwargs.pop("meeting_date", utcnow() + timedelta(days=days_ahead)),
            location=kwargs.pop("location", "Han river park"),
            max_participants=max_participants,
            interests=interests or [],
            **kwargs
        )
    return _make_meeting


@pytest.fixture
def make_past_meeting(db):
    """Create a meeting that has already taken place (created back in time)."""
    def _make_past_meeting(host_id, max_participants=4, hours_ago=5):
        now = utcnow()
        return meeting_service.create_meeting(
            db,
            host_id=host_id,
            title="Past brunch",
            meeting_date=now - timedelta(hours=hours_ago),
            location="Cafe",
            max_participants=max_participants,
            now=now - timedelta(days=3)
        )
    return _make_past_meeting


@pytest.fixture
def approved_participant(db):
    """Apply and approve a user in one step."""
    def _approve(meeting, user_id):
        application = application_service.apply(db, meeting.id, user_id)
        return application_service.approve(db, application.id, meeting.host_id)
    return _approve


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Gateway headers for a verified principal."""
    def _auth(user_id):
        return {"X-User-Id": user_id, "X-API-Key": settings.API_KEY}
    return _auth
