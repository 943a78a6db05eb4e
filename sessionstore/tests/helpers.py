"""
Test doubles: the session table DDL, a controllable clock, and
stand-ins for an executor and an asyncpg pool that return canned results.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, Err
from sessionstore.storage.protocols import ParamStyle, Row, ScannableRow

SESSION_DDL = """
    CREATE TABLE session (
        session_id BLOB PRIMARY KEY NOT NULL,
        contents BLOB NOT NULL,
        last_active INTEGER NOT NULL,
        expiration INTEGER NOT NULL DEFAULT 0
    )
"""


class FakeClock:
    """Callable clock returning a settable Unix time."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class ScriptedExecutor:
    """
    Executor double that returns canned results and records calls.

    ``row_values`` of None means the query matched nothing.
    """

    def __init__(
        self,
        *,
        error: Optional[StorageError] = None,
        row_values: Optional[Sequence[Any]] = None,
        affected: int = 1,
    ) -> None:
        self.error = error
        self.row_values = row_values
        self.affected = affected
        self.calls: list[tuple[str, tuple[Any, ...], Optional[float]]] = []
        self.closed = False

    @property
    def paramstyle(self) -> ParamStyle:
        return ParamStyle.NUMERIC

    async def execute(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[int, StorageError]:
        self.calls.append((statement, params, timeout))
        if self.error is not None:
            return Err(self.error)
        return Ok(self.affected)

    async def query_row(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[Row, StorageError]:
        self.calls.append((statement, params, timeout))
        if self.error is not None:
            return Err(self.error)
        return Ok(ScannableRow(self.row_values))

    async def close(self) -> None:
        self.closed = True


class StubPgPool:
    """
    Stand-in for an asyncpg pool.

    ``error`` is raised by every statement; otherwise execute returns
    ``status`` and fetchrow returns ``record`` (a mapping, or None for
    no match). ``connect_error`` is raised by the connectivity check.
    """

    def __init__(
        self,
        *,
        status: str = "UPDATE 1",
        record: Optional[dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        connect_error: Optional[BaseException] = None,
    ) -> None:
        self.status = status
        self.record = record
        self.error = error
        self.connect_error = connect_error
        self.calls: list[tuple[str, tuple[Any, ...], Optional[float]]] = []
        self.closed = False
        self.terminated = False

    async def execute(self, statement: str, *params: Any, timeout: Optional[float] = None) -> str:
        self.calls.append((statement, params, timeout))
        if self.error is not None:
            raise self.error
        return self.status

    async def fetchrow(self, statement: str, *params: Any, timeout: Optional[float] = None):
        self.calls.append((statement, params, timeout))
        if self.error is not None:
            raise self.error
        return self.record

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[StubPgPool]:
        if self.connect_error is not None:
            raise self.connect_error
        yield self

    def get_size(self) -> int:
        return 1

    def get_idle_size(self) -> int:
        return 1

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True
