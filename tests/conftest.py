# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")

from league_tracker.core.security import create_access_token
from league_tracker.db.session import Base
from league_tracker.db.session import get_db as app_get_session
from league_tracker.main import app as fastapi_app
from league_tracker.models import (
    Game,
    GamePlatform,
    RegistrationStatus,
    Tracker,
    TrackerRegistration,
    User,
)

TEST_DB_URL = "sqlite://"
GUILD_ID = "100000000000000001"

_USER_IDS = count(200000000000000001)


def trn_url(username: str, platform: str = "steam") -> str:
    """Return a well-formed TRN profile URL."""
    return (
        "https://rocketleague.tracker.network/rocket-league/profile/"
        f"{platform}/{username}/overview"
    )


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory handed to workers that open their own sessions."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory that persists users."""

    def _make(username: str = "player", **fields: object) -> User:
        user = User(id=str(next(_USER_IDS)), username=username, **fields)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    """Create and return the primary test user."""
    return make_user("TestPlayer", global_name="Test Player")


@pytest.fixture()
def admin_user(make_user: Callable[..., User]) -> User:
    """Create and return a user acting as guild admin."""
    return make_user("GuildAdmin")


@pytest.fixture()
def auth_token(test_user: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_auth_token(admin_user: User) -> dict[str, str]:
    token = create_access_token(admin_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_registration(db_session: Session) -> Callable[..., TrackerRegistration]:
    """Return a factory that persists registrations directly, bypassing the service."""

    def _make(
        user: User,
        username: str = "testuser",
        status: RegistrationStatus = RegistrationStatus.PENDING,
        guild_id: str = GUILD_ID,
        created_at: datetime | None = None,
        **fields: object,
    ) -> TrackerRegistration:
        values: dict[str, object] = {
            "url": trn_url(username),
            "game": Game.ROCKET_LEAGUE,
            "platform": GamePlatform.STEAM,
            "username": username,
        }
        values.update(fields)
        registration = TrackerRegistration(
            user_id=user.id, guild_id=guild_id, status=status, **values
        )
        if created_at is not None:
            registration.created_at = created_at
        db_session.add(registration)
        db_session.commit()
        return registration

    return _make


@pytest.fixture()
def make_tracker(db_session: Session) -> Callable[..., Tracker]:
    """Return a factory that persists trackers directly."""

    def _make(user: User, username: str = "owned", **fields: object) -> Tracker:
        tracker = Tracker(
            url=trn_url(username),
            game=Game.ROCKET_LEAGUE,
            platform=GamePlatform.STEAM,
            username=username,
            user_id=user.id,
            **fields,
        )
        db_session.add(tracker)
        db_session.commit()
        return tracker

    return _make
