"""
Session Access Layer: Record-Level Operations on the Session Table

Repository over a single session table with:
- fetch_by_session_id: pooled single-row read
- count_sessions: advisory row count
- update_by_session_id / insert: content writes
- delete_by_session_id / delete_expired_sessions: removal and GC sweep
- regenerate: in-place identifier rotation

Design:
- All fallible methods return Result types (no exceptions)
- Statements are built once at construction, identifiers always bound
- Expiration is a timedelta in memory and whole seconds in the table
- No in-process locks: each call is one request to the executor and
  row-level atomicity belongs to the store. A fetch followed by an
  update is two round trips, so an update racing a delete or a sweep
  legitimately reports 0 rows.
- No retries; transient failures surface to the caller immediately
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Callable, Optional

from sessionstore.core.config import SessionStoreConfig
from sessionstore.core.errors import SessionStoreError, StorageError
from sessionstore.core.types import (
    Result, Ok, Err,
    duration_to_seconds,
    seconds_to_duration,
)
from sessionstore.storage.pool import RecordPool, SessionRecord, get_default_pool
from sessionstore.storage.postgres import PostgresExecutor
from sessionstore.storage.protocols import QueryExecutor, as_bytes, as_int
from sessionstore.storage.sqlite import SQLiteExecutor
from sessionstore.storage.statements import SessionStatements

logger = logging.getLogger(__name__)


class SessionDao:
    """
    Data access object for one session table.

    Usage:
        dao = SessionDao.new("session", executor).unwrap()

        await dao.insert(sid, b"payload", now, timedelta(minutes=30))

        async with dao.fetched(sid) as result:
            record = result.unwrap()
            if record.found:
                ...
    """

    __slots__ = ("_executor", "_statements", "_pool", "_clock", "_query_timeout")

    def __init__(
        self,
        statements: SessionStatements,
        executor: QueryExecutor,
        pool: Optional[RecordPool] = None,
        clock: Callable[[], float] = time.time,
        query_timeout: Optional[float] = None,
    ) -> None:
        self._executor = executor
        self._statements = statements
        self._pool = pool if pool is not None else get_default_pool()
        self._clock = clock
        self._query_timeout = query_timeout

    @classmethod
    def new(
        cls,
        table_name: str,
        executor: QueryExecutor,
        *,
        pool: Optional[RecordPool] = None,
        clock: Callable[[], float] = time.time,
        query_timeout: Optional[float] = None,
    ) -> Result[SessionDao, SessionStoreError]:
        """
        Bind an already-reachable executor to a session table.

        Statements are rendered here, once, in the executor's
        placeholder style.
        """
        statements = SessionStatements.build(table_name, executor.paramstyle)
        if statements.is_err():
            return statements

        return Ok(cls(
            statements.unwrap(),
            executor,
            pool=pool,
            clock=clock,
            query_timeout=query_timeout,
        ))

    @classmethod
    async def connect(
        cls,
        config: SessionStoreConfig,
        *,
        pool: Optional[RecordPool] = None,
    ) -> Result[SessionDao, SessionStoreError]:
        """
        Open the configured backend and bind it to the configured table.

        Connection failures are returned, never raised.
        """
        validation = config.validate()
        if validation.is_err():
            return validation

        if config.backend == "postgres":
            opened = await PostgresExecutor.create(config.postgres)
        else:
            opened = SQLiteExecutor.open(config.sqlite)
        if opened.is_err():
            return opened

        executor = opened.unwrap()
        dao = cls.new(
            config.table_name,
            executor,
            pool=pool if pool is not None else RecordPool(config.record_pool.max_idle),
            query_timeout=config.query_timeout_seconds,
        )
        if dao.is_err():
            await executor.close()
        return dao

    @property
    def table_name(self) -> str:
        return self._statements.table_name

    @property
    def statements(self) -> SessionStatements:
        return self._statements

    @property
    def pool(self) -> RecordPool:
        return self._pool

    # =========================================================================
    # READS
    # =========================================================================

    async def fetch_by_session_id(
        self,
        session_id: bytes,
    ) -> Result[SessionRecord, StorageError]:
        """
        Load one session into a pooled record.

        A missing session is not an error: the result is Ok with an
        empty record (``record.found`` is False). Hand the record back
        with release() when done, or use fetched().
        """
        record = self._pool.acquire()

        result = await self._executor.query_row(
            self._statements.get_by_session_id,
            session_id,
            timeout=self._query_timeout,
        )
        if result.is_err():
            self._pool.release(record)
            return result

        scanned = result.unwrap().scan(as_bytes, as_bytes, as_int, as_int)
        if scanned.is_err():
            if scanned.error.is_no_rows:
                return Ok(record)
            self._pool.release(record)
            return scanned

        sid, contents, last_active, expiration = scanned.unwrap()
        record.session_id = sid
        record.contents = contents
        record.last_active = last_active
        record.expiration = seconds_to_duration(expiration)
        return Ok(record)

    def release(self, record: SessionRecord) -> None:
        """Return a fetched record to the pool (its fields are cleared)."""
        self._pool.release(record)

    @asynccontextmanager
    async def fetched(
        self,
        session_id: bytes,
    ) -> AsyncIterator[Result[SessionRecord, StorageError]]:
        """fetch_by_session_id whose record is released when the block exits."""
        result = await self.fetch_by_session_id(session_id)
        try:
            yield result
        finally:
            if result.is_ok():
                self._pool.release(result.unwrap())

    async def count_sessions(self) -> int:
        """
        Number of rows in the table, best effort.

        Any failure yields 0, so "store unreachable" and "no sessions"
        are indistinguishable here. Use for diagnostics only.
        """
        result = await self._executor.query_row(
            self._statements.count_sessions,
            timeout=self._query_timeout,
        )
        scanned = result.flat_map(lambda row: row.scan(as_int))
        if scanned.is_err():
            logger.warning(
                "Session count unavailable, reporting 0",
                extra={"table": self.table_name, "error": scanned.error.to_dict()},
            )
            return 0
        return scanned.unwrap()[0]

    # =========================================================================
    # WRITES
    # =========================================================================

    async def update_by_session_id(
        self,
        session_id: bytes,
        contents: bytes,
        last_active: int,
        expiration: timedelta,
    ) -> Result[int, StorageError]:
        """
        Overwrite contents, last_active and expiration of one session.

        Ok(0) means the session does not exist (or was deleted
        concurrently). Expiration is truncated to whole seconds.
        """
        return await self._exec(
            self._statements.update_by_session_id,
            contents,
            last_active,
            duration_to_seconds(expiration),
            session_id,
        )

    async def delete_by_session_id(self, session_id: bytes) -> Result[int, StorageError]:
        """Delete at most one session."""
        return await self._exec(self._statements.delete_by_session_id, session_id)

    async def delete_expired_sessions(self) -> Result[int, StorageError]:
        """
        Garbage-collection sweep.

        Deletes every row with last_active + expiration <= now, except
        rows with expiration 0, which never expire. ``now`` is stamped
        once per call.
        """
        now = int(self._clock())
        result = await self._exec(self._statements.delete_expired_sessions, now)
        if result.is_ok():
            logger.debug(
                "Expired sessions swept",
                extra={"table": self.table_name, "deleted": result.unwrap(), "now": now},
            )
        return result

    async def insert(
        self,
        session_id: bytes,
        contents: bytes,
        last_active: int,
        expiration: timedelta,
    ) -> Result[int, StorageError]:
        """
        Create a session row.

        An existing identifier is a constraint violation and is returned
        as Err, never ignored.
        """
        return await self._exec(
            self._statements.insert,
            session_id,
            contents,
            last_active,
            duration_to_seconds(expiration),
        )

    async def regenerate(
        self,
        old_id: bytes,
        new_id: bytes,
        last_active: int,
        expiration: timedelta,
    ) -> Result[int, StorageError]:
        """
        Rename a session in place and refresh its timing.

        Ok(0) means old_id does not exist; no row is created under
        new_id in that case.
        """
        return await self._exec(
            self._statements.regenerate,
            new_id,
            last_active,
            duration_to_seconds(expiration),
            old_id,
        )

    async def _exec(self, statement: str, *params: object) -> Result[int, StorageError]:
        result = await self._executor.execute(
            statement,
            *params,
            timeout=self._query_timeout,
        )
        if result.is_err():
            logger.warning(
                "Session statement failed",
                extra={"table": self.table_name, "error": result.error.to_dict()},
            )
        return result

    async def close(self) -> None:
        """Close the underlying executor."""
        await self._executor.close()

    async def __aenter__(self) -> SessionDao:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
