"""
SQLite Executor: Embedded Backing Store

Runs session statements against a single sqlite3 connection:
- Autocommit, so every statement is its own atomic transaction
- WAL mode and busy timeout for file databases
- Statement calls serialized by a lock and dispatched to a worker
  thread so the event loop never blocks on disk I/O

Thread Safety:
- One connection, opened with check_same_thread=False
- All access goes through _lock, taken on the worker thread only

Deadlines:
- A per-call timeout is enforced on the worker thread: it bounds the
  wait for _lock, and a progress handler aborts a statement still
  running when it expires. An aborted statement is rolled back, so
  STORAGE_TIMEOUT always means nothing was written.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from typing import Any, Callable, Optional, TypeVar

from sessionstore.core import constants as C
from sessionstore.core.config import SQLiteConfig
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, Err
from sessionstore.storage.protocols import ParamStyle, Row, ScannableRow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _DeadlineExceeded(Exception):
    """A per-call deadline passed before the statement committed."""


class SQLiteExecutor:
    """
    QueryExecutor over the standard library sqlite3 module.

    Usage:
        result = SQLiteExecutor.open(SQLiteConfig(path="sessions.db"))
        executor = result.unwrap()
        rows = await executor.execute(stmt, b"sid")
    """

    __slots__ = ("_config", "_conn", "_lock", "_closed")

    FILE_PRAGMAS = (
        "PRAGMA journal_mode = WAL",
        "PRAGMA synchronous = NORMAL",
    )

    def __init__(self, config: SQLiteConfig, conn: sqlite3.Connection) -> None:
        self._config = config
        self._conn = conn
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, config: SQLiteConfig) -> Result[SQLiteExecutor, StorageError]:
        """Open the database file (or an in-memory database)."""
        try:
            conn = sqlite3.connect(
                config.path,
                timeout=config.busy_timeout_ms / C.SECOND_MS,
                check_same_thread=False,
                isolation_level=None,
            )
            conn.execute(f"PRAGMA busy_timeout = {int(config.busy_timeout_ms)}")
            if not config.in_memory:
                for pragma in cls.FILE_PRAGMAS:
                    conn.execute(pragma)
        except sqlite3.Error as e:
            logger.error("SQLite open failed", extra={"path": config.path, "error": type(e).__name__})
            return Err(StorageError.connection_failed(config.path, cause=e))

        logger.info("SQLite executor opened", extra={"path": config.path})
        return Ok(cls(config, conn))

    @property
    def paramstyle(self) -> ParamStyle:
        return ParamStyle.QMARK_NUMBERED

    @property
    def connection(self) -> sqlite3.Connection:
        """Underlying connection, for schema setup outside the access layer."""
        return self._conn

    async def execute(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[int, StorageError]:
        def run() -> int:
            cursor = self._conn.execute(statement, params)
            try:
                return cursor.rowcount
            finally:
                cursor.close()

        return await self._call("execute", run, timeout)

    async def query_row(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[Row, StorageError]:
        def run() -> Row:
            cursor = self._conn.execute(statement, params)
            try:
                values = cursor.fetchone()
            finally:
                cursor.close()
            return ScannableRow(None if values is None else tuple(values))

        return await self._call("query_row", run, timeout)

    async def _call(
        self,
        operation: str,
        fn: Callable[[], T],
        timeout: Optional[float],
    ) -> Result[T, StorageError]:
        if self._closed:
            return Err(StorageError.query_failed(
                operation, cause=RuntimeError("executor is closed"),
            ))

        start = time.monotonic()
        try:
            value = await asyncio.to_thread(self._run, fn, start, timeout)
            return Ok(value)
        except _DeadlineExceeded as e:
            elapsed_ms = int((time.monotonic() - start) * C.SECOND_MS)
            return Err(StorageError.timeout(operation, elapsed_ms, cause=e))
        except sqlite3.IntegrityError as e:
            table, constraint = _parse_integrity_error(e)
            return Err(StorageError.constraint_violation(
                constraint=constraint, table=table, cause=e,
            ))
        except sqlite3.Error as e:
            return Err(StorageError.query_failed(operation, cause=e))

    def _run(self, fn: Callable[[], T], start: float, timeout: Optional[float]) -> T:
        """
        Worker-thread body. The deadline covers waiting for the lock and
        running the statement; a statement cut off by the progress
        handler is rolled back, so a timeout never leaves a write behind.
        """
        if not self._lock.acquire(timeout=-1 if timeout is None else max(timeout, 0.0)):
            raise _DeadlineExceeded("lock wait")
        try:
            if self._closed:
                raise sqlite3.ProgrammingError("executor is closed")
            if timeout is None:
                return fn()

            deadline = start + timeout
            self._conn.set_progress_handler(
                lambda: time.monotonic() >= deadline, C.SQLITE_PROGRESS_STEPS,
            )
            try:
                return fn()
            except sqlite3.OperationalError:
                if time.monotonic() >= deadline:
                    raise _DeadlineExceeded("statement interrupted") from None
                raise
            finally:
                self._conn.set_progress_handler(None, 0)
        finally:
            self._lock.release()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self._close_locked)
        logger.info("SQLite executor closed", extra={"path": self._config.path})

    def _close_locked(self) -> None:
        with self._lock:
            self._conn.close()

    async def __aenter__(self) -> SQLiteExecutor:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _parse_integrity_error(error: sqlite3.IntegrityError) -> tuple[str, str]:
    # "UNIQUE constraint failed: session.session_id" -> ("session", "session.session_id")
    message = str(error)
    if ":" not in message:
        return "", message
    constraint = message.split(":", 1)[1].strip()
    table = constraint.split(".", 1)[0] if "." in constraint else ""
    return table, constraint
