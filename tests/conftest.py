"""Shared fixtures: in-memory database, seeded catalogs, fake Resend API, API client."""

from datetime import date

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import get_db, init_db
from gamification import seed_achievements, seed_rewards
from main import app, get_email_sender, get_today
from models import User, WaterLog
from notifications import EmailSender

TODAY = date(2026, 3, 4)


class FakeResend:
    """Stands in for https://api.resend.com/emails through httpx.MockTransport."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"message": "boom"})
        return httpx.Response(self.status_code, json={"id": f"email_{len(self.requests)}"})


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_achievements(session)
    seed_rewards(session)
    yield session
    session.close()


@pytest.fixture
def resend():
    return FakeResend()


@pytest.fixture
def sender(resend):
    return EmailSender(api_key="re_test", transport=httpx.MockTransport(resend.handler))


@pytest.fixture
def set_today():
    """Moves the API's notion of "today" (UTC) to another date."""

    def _set(day: date):
        app.dependency_overrides[get_today] = lambda: day

    return _set


@pytest.fixture
def client(session_factory, db, sender, set_today):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: sender
    set_today(TODAY)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    user = User(id="user_1", email="ana@example.com", name="Ana", notification_email="ana@example.com")
    db.add(user)
    db.commit()
    return user


def add_record(db, user, day: date, glasses: int, target: int = 8) -> WaterLog:
    record = WaterLog(user_id=user.id, date=day, glasses=glasses, target=target, completed=glasses >= target)
    db.add(record)
    db.commit()
    return record
