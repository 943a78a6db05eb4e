"""
Shared fixtures: an in-memory SQLite session table, a controllable
clock, and a dedicated record pool per test.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from sessionstore.core.config import SQLiteConfig
from sessionstore.session.dao import SessionDao
from sessionstore.storage.pool import RecordPool
from sessionstore.storage.sqlite import SQLiteExecutor
from sessionstore.tests.helpers import SESSION_DDL, FakeClock


@pytest_asyncio.fixture
async def executor():
    opened = SQLiteExecutor.open(SQLiteConfig())
    assert opened.is_ok()
    ex = opened.unwrap()
    ex.connection.execute(SESSION_DDL)
    yield ex
    await ex.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(10_000.0)


@pytest.fixture
def pool() -> RecordPool:
    return RecordPool(max_idle=8)


@pytest.fixture
def dao(executor, pool, clock) -> SessionDao:
    return SessionDao.new("session", executor, pool=pool, clock=clock).unwrap()
