"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from kcbot.database.models import Base
from kcbot.services.tracking_service import track_message


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def seed_messages(
    engine: Engine,
    platform: str,
    user_id: str,
    display_name: str,
    lengths: list[int],
    day: date | None = None,
) -> None:
    """Track one message per entry in *lengths* for a user on *day*."""
    for length in lengths:
        track_message(engine, platform, user_id, display_name, length, today=day)


class FakeClock:
    """Manually advanced monotonic clock for rate-limiter tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTasks:
    """TaskRunner stand-in that keeps spawned coroutines for inspection."""

    def __init__(self) -> None:
        self.spawned: list[tuple[str | None, object]] = []

    def spawn(self, coro, name=None):
        self.spawned.append((name, coro))

    async def drain(self, timeout=None):
        for _, coro in self.spawned:
            coro.close()

    def close_all(self) -> None:
        for _, coro in self.spawned:
            coro.close()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all kcbot tables.

    StaticPool keeps one connection so worker threads used by ``run_db``
    see the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tasks():
    runner = RecordingTasks()
    yield runner
    runner.close_all()


@pytest.fixture
def api(db_engine, tasks):
    """(TestClient, app) wired to the SQLite engine with fresh limiters."""
    from fastapi.testclient import TestClient

    from kcbot.api.deps import get_command_processor, get_config, get_engine
    from kcbot.api.main import create_app
    from kcbot.config import BotConfig
    from kcbot.engine.rate_limit import RateLimiterRegistry

    app = create_app(limiters=RateLimiterRegistry(), tasks=tasks)
    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: BotConfig()
    app.dependency_overrides[get_command_processor] = lambda: None

    yield TestClient(app, raise_server_exceptions=False), app

    app.dependency_overrides.clear()


@pytest.fixture
def client(api):
    return api[0]
