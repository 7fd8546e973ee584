# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ephemera.core.settings import Settings
from ephemera.db.session import create_tables, drop_tables, enable_sqlite_foreign_keys
from ephemera.main import create_app
from ephemera.models import Device, Space
from ephemera.repositories.lifecycle import LifecycleStore
from ephemera.repositories.space_repo import SpaceRepository
from ephemera.services.escalation import EscalationCoordinator
from ephemera.services.identity import FingerprintSignals, IdentityService
from ephemera.services.moderation import ContentModerationService
from ephemera.services.posting import PostingService

TEST_DB_URL = "sqlite://"
ADMIN_TOKEN = "admin-secret-token"
START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

_DEVICE_COUNTER = count(1)


class FakeClock:
    """Controllable replacement for ``utcnow``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture()
def engine() -> Iterator[Engine]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    create_tables(engine)
    try:
        yield engine
    finally:
        drop_tables(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture()
def test_settings() -> Settings:
    """Isolated settings that ignore the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        fingerprint_salt="test-fingerprint-salt",
        admin_token=ADMIN_TOKEN,
        cron_secret=None,
        max_posts_per_hour=5,
        default_flag_threshold=3,
        log_level="WARNING",
    )


@pytest.fixture()
def store(db_session: Session, test_settings: Settings, clock: FakeClock) -> LifecycleStore:
    return LifecycleStore(db_session, test_settings, clock)


@pytest.fixture()
def identity(db_session: Session, test_settings: Settings, clock: FakeClock) -> IdentityService:
    return IdentityService(db_session, test_settings, clock)


@pytest.fixture()
def spaces(db_session: Session, test_settings: Settings, clock: FakeClock) -> SpaceRepository:
    return SpaceRepository(db_session, test_settings, clock)


@pytest.fixture()
def moderation(test_settings: Settings) -> ContentModerationService:
    return ContentModerationService(test_settings)


@pytest.fixture()
def coordinator(
    store: LifecycleStore,
    identity: IdentityService,
    spaces: SpaceRepository,
    test_settings: Settings,
) -> EscalationCoordinator:
    return EscalationCoordinator(store, identity, spaces, test_settings)


@pytest.fixture()
def posting(
    store: LifecycleStore,
    identity: IdentityService,
    moderation: ContentModerationService,
    test_settings: Settings,
) -> PostingService:
    return PostingService(store, identity, moderation, test_settings)


@pytest.fixture()
def space(spaces: SpaceRepository) -> Space:
    return spaces.create("test-wall", "Test Wall", ttl_hours=24, flag_threshold=3)


@pytest.fixture()
def make_device(identity: IdentityService) -> Callable[..., Device]:
    def _make_device(**overrides: str) -> Device:
        signals = {
            "user_agent": f"pytest-agent/{next(_DEVICE_COUNTER)}",
            "language": "en-US",
            "platform": "Linux",
        }
        signals.update(overrides)
        return identity.resolve(FingerprintSignals(**signals))

    return _make_device


@pytest.fixture()
def device(make_device: Callable[..., Device]) -> Device:
    return make_device()


@pytest.fixture()
def app(
    test_settings: Settings,
    session_factory: sessionmaker[Session],
    clock: FakeClock,
) -> FastAPI:
    return create_app(test_settings, session_factory, clock)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    # Not entered as a context manager: the startup hook would launch the
    # timer sweep against the shared in-memory connection.
    yield TestClient(app, base_url="http://testserver")


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Token": ADMIN_TOKEN}
