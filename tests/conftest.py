# tests/conftest.py

from __future__ import annotations

import os

# Must be set before jobqueue.settings is imported anywhere.
os.environ.setdefault("JOBQUEUE_SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import jobqueue.db.models  # noqa: F401  (registers tables on Base.metadata)
from jobqueue.db.session import Base
from jobqueue.health.monitor import HealthMonitor
from jobqueue.tasks.registry import TaskRegistry
from jobqueue.worker.dispatcher import Dispatcher


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture()
async def engine(tmp_path: Path):
    """
    File-backed SQLite per test.

    A file rather than :memory: so concurrent dispatcher invocations get
    separate connections onto the same database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jobs.sqlite3'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture()
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture()
def dispatcher(session_factory, registry, clock) -> Dispatcher:
    return Dispatcher(session_factory=session_factory, registry=registry, concurrency=4, clock=clock)


@pytest.fixture()
def monitor(clock) -> HealthMonitor:
    return HealthMonitor(clock=clock)
