"""
Pytest configuration and fixtures for ChittyContext tests.

This module provides shared fixtures for stores, repositories, the API
application and a controllable clock.
"""

from datetime import UTC, datetime, timedelta
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from chittycontext.api.app import create_app
from chittycontext.config import Settings
from chittycontext.db.connection import create_db_engine, create_session_factory, init_db
from chittycontext.db.repositories import (
    AuditRepository,
    ContextRepository,
    MessageRepository,
    PatternRepository,
)
from chittycontext.store import InMemoryKeyValueStore, SqlKeyValueStore
from chittycontext.tasks import InMemoryTaskChannel

USER_CHITTY_ID = "01-U-SYS-0001-0-0000-S-X"
OTHER_USER_CHITTY_ID = "01-U-SYS-0099-0-0000-S-X"
ADMIN_CHITTY_ID = "01-A-SYS-0002-0-0000-S-X"
SERVICE_CHITTY_ID = "01-S-API-0003-0-0000-S-X"


class FakeClock:
    """Manually advanced clock in epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def as_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.now, tz=UTC)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryKeyValueStore:
    """In-memory store driven by the fake clock."""
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def channel() -> InMemoryTaskChannel:
    return InMemoryTaskChannel()


@pytest.fixture
def context_repo(store, channel) -> ContextRepository:
    return ContextRepository(store, channel)


@pytest.fixture
def audit_repo(store, channel) -> AuditRepository:
    return AuditRepository(store, channel)


@pytest.fixture
def message_repo(store) -> MessageRepository:
    return MessageRepository(store)


@pytest.fixture
def pattern_repo(store) -> PatternRepository:
    return PatternRepository(store)


@pytest.fixture
def test_engine():
    """Create a test database engine using SQLite in-memory."""
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> sessionmaker[Session]:
    return create_session_factory(test_engine)


@pytest.fixture
def sql_clock() -> Generator[list[datetime], None, None]:
    """Mutable single-item holder for the SQL store's current time."""
    yield [datetime(2025, 1, 1, tzinfo=UTC)]


@pytest.fixture
def sql_store(session_factory, sql_clock) -> SqlKeyValueStore:
    return SqlKeyValueStore(session_factory, clock=lambda: sql_clock[0])


def advance(holder: list[datetime], seconds: float) -> None:
    holder[0] = holder[0] + timedelta(seconds=seconds)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        allow_anonymous=False,
        enable_audit_log=True,
        rate_limit_max_requests=1000,
        rate_limit_window_seconds=60,
        log_console_enabled=False,
        log_file_enabled=False,
    )


@pytest.fixture
def api_store() -> InMemoryKeyValueStore:
    """Store for API tests, on the real clock."""
    return InMemoryKeyValueStore()


@pytest.fixture
def app(test_settings, api_store, channel):
    return create_app(settings=test_settings, store=api_store, channel=channel)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client running the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-Chitty-ID": USER_CHITTY_ID}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Chitty-ID": ADMIN_CHITTY_ID}
