"""Shared fixtures: a file-backed SQLite state store and a fake UTC clock."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from turnkeeper.storage.sql import SqlThinkingStateStore


class FakeUtcClock:
    """Manually advanced wall clock for TTL tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock()


@pytest_asyncio.fixture
async def sql_store(tmp_path, utc_clock):
    """Function-scoped SQL store on a fresh SQLite file, 1h TTL."""
    store = SqlThinkingStateStore(
        f"sqlite+aiosqlite:///{tmp_path}/state.db",
        ttl=timedelta(hours=1),
        clock=utc_clock,
    )
    await store.create_tables()
    yield store
    await store.close()
