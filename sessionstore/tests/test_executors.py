"""
Unit Tests: Executors and Row Scanning

Tests:
    - ScannableRow conversions and the no-rows sentinel
    - SQLiteExecutor statement execution and error mapping
    - Per-call deadlines and shutdown on SQLite
    - PostgresExecutor against a stand-in asyncpg pool
    - Postgres command status parsing
"""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import timedelta

import asyncpg
import pytest

from sessionstore.core.config import PostgresConfig, SQLiteConfig
from sessionstore.core.errors import ErrorCode
from sessionstore.session.dao import SessionDao
from sessionstore.storage.postgres import PostgresExecutor, affected_rows
from sessionstore.storage.protocols import (
    ParamStyle,
    QueryExecutor,
    Row,
    ScannableRow,
    as_bytes,
    as_int,
)
from sessionstore.storage.sqlite import SQLiteExecutor
from sessionstore.tests.helpers import StubPgPool


class TestScannableRow:
    """Tests for ScannableRow.scan."""

    def test_scan_converts_in_order(self):
        row = ScannableRow(("sid", memoryview(b"data"), 10, None))
        values = row.scan(as_bytes, as_bytes, as_int, as_int).unwrap()
        assert values == (b"sid", b"data", 10, 0)

    def test_no_rows_sentinel(self):
        row = ScannableRow(None)
        assert row.empty
        result = row.scan(as_bytes)
        assert result.is_err()
        assert result.error.is_no_rows

    def test_arity_mismatch(self):
        result = ScannableRow((1, 2)).scan(as_int)
        assert result.error.code is ErrorCode.STORAGE_SCAN_FAILED

    def test_conversion_failure(self):
        result = ScannableRow((3.5,)).scan(as_int)
        assert result.error.code is ErrorCode.STORAGE_SCAN_FAILED
        assert isinstance(result.error.cause, TypeError)

    def test_is_a_row(self):
        assert isinstance(ScannableRow(None), Row)


class TestConverters:
    """Tests for as_bytes / as_int."""

    def test_as_bytes(self):
        assert as_bytes(None) == b""
        assert as_bytes(bytearray(b"x")) == b"x"
        assert as_bytes("é") == "é".encode("utf-8")
        with pytest.raises(TypeError):
            as_bytes(12)

    def test_as_int(self):
        assert as_int(None) == 0
        assert as_int(7) == 7
        with pytest.raises(TypeError):
            as_int(True)
        with pytest.raises(TypeError):
            as_int("7")


class TestSQLiteExecutor:
    """Tests for SQLiteExecutor."""

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, executor):
        assert isinstance(executor, QueryExecutor)
        assert executor.paramstyle is ParamStyle.QMARK_NUMBERED

    @pytest.mark.asyncio
    async def test_execute_returns_affected_rows(self, executor):
        insert = "INSERT INTO session VALUES (?1, ?2, ?3, ?4)"
        assert (await executor.execute(insert, b"a", b"", 1, 0)).unwrap() == 1
        assert (await executor.execute(insert, b"b", b"", 1, 0)).unwrap() == 1

        deleted = await executor.execute("DELETE FROM session WHERE last_active=?1", 1)
        assert deleted.unwrap() == 2

    @pytest.mark.asyncio
    async def test_query_row_first_row_and_no_rows(self, executor):
        await executor.execute("INSERT INTO session VALUES (?1, ?2, ?3, ?4)", b"a", b"c", 5, 6)

        row = (await executor.query_row(
            "SELECT session_id, last_active FROM session WHERE session_id=?1", b"a",
        )).unwrap()
        assert row.scan(as_bytes, as_int).unwrap() == (b"a", 5)

        missing = (await executor.query_row(
            "SELECT session_id FROM session WHERE session_id=?1", b"zz",
        )).unwrap()
        assert missing.scan(as_bytes).error.is_no_rows

    @pytest.mark.asyncio
    async def test_unique_violation_maps_to_constraint_error(self, executor):
        insert = "INSERT INTO session VALUES (?1, ?2, ?3, ?4)"
        await executor.execute(insert, b"a", b"", 1, 0)
        result = await executor.execute(insert, b"a", b"", 1, 0)
        assert result.error.code is ErrorCode.STORAGE_CONSTRAINT_VIOLATION
        assert result.error.context["table"] == "session"

    @pytest.mark.asyncio
    async def test_bad_statement_maps_to_query_failed(self, executor):
        result = await executor.execute("DELETE FROM missing_table")
        assert result.error.code is ErrorCode.STORAGE_QUERY_FAILED

    @pytest.mark.asyncio
    async def test_closed_executor_fails(self):
        executor = SQLiteExecutor.open(SQLiteConfig()).unwrap()
        await executor.close()
        await executor.close()
        result = await executor.query_row("SELECT 1")
        assert result.error.code is ErrorCode.STORAGE_QUERY_FAILED

    @pytest.mark.asyncio
    async def test_file_database_uses_wal(self, tmp_path):
        path = tmp_path / "sessions.db"
        async with SQLiteExecutor.open(SQLiteConfig(path=str(path))).unwrap() as executor:
            row = (await executor.query_row("PRAGMA journal_mode")).unwrap()
            assert row.scan(str).unwrap() == ("wal",)
        assert path.exists()

    @pytest.mark.asyncio
    async def test_deadline_while_waiting_for_lock(self, executor):
        insert = "INSERT INTO session VALUES (?1, ?2, ?3, ?4)"
        executor._lock.acquire()
        try:
            result = await executor.execute(insert, b"a", b"", 1, 0, timeout=0.05)
        finally:
            executor._lock.release()

        assert result.error.code is ErrorCode.STORAGE_TIMEOUT
        count = (await executor.query_row("SELECT count(*) FROM session")).unwrap()
        assert count.scan(as_int).unwrap() == (0,)
        assert (await executor.execute(insert, b"a", b"", 1, 0)).unwrap() == 1

    @pytest.mark.asyncio
    async def test_deadline_aborts_running_statement(self, executor):
        slow_insert = (
            "WITH RECURSIVE c(x) AS "
            "(SELECT 1 UNION ALL SELECT x + 1 FROM c WHERE x < 200000000) "
            "INSERT INTO session (session_id, contents, last_active, expiration) "
            "SELECT ?1, ?2, count(*), 0 FROM c"
        )
        started = time.monotonic()
        result = await executor.execute(slow_insert, b"a", b"", timeout=0.05)

        assert result.error.code is ErrorCode.STORAGE_TIMEOUT
        assert time.monotonic() - started < 5
        row = (await executor.query_row(
            "SELECT session_id FROM session WHERE session_id=?1", b"a",
        )).unwrap()
        assert row.empty

    @pytest.mark.asyncio
    async def test_statement_within_deadline_completes(self, executor):
        insert = "INSERT INTO session VALUES (?1, ?2, ?3, ?4)"
        assert (await executor.execute(insert, b"a", b"", 1, 0, timeout=5)).unwrap() == 1

        bad = await executor.execute("DELETE FROM missing_table", timeout=5)
        assert bad.error.code is ErrorCode.STORAGE_QUERY_FAILED

    @pytest.mark.asyncio
    async def test_close_waits_off_the_event_loop(self):
        executor = SQLiteExecutor.open(SQLiteConfig()).unwrap()
        lock = executor._lock
        lock.acquire()
        releaser = threading.Timer(0.3, lock.release)
        releaser.start()
        try:
            closing = asyncio.create_task(executor.close())
            started = time.monotonic()
            await asyncio.sleep(0.01)
            assert time.monotonic() - started < 0.2
            assert not closing.done()
            await closing
        finally:
            releaser.join()

        result = await executor.query_row("SELECT 1")
        assert result.error.code is ErrorCode.STORAGE_QUERY_FAILED


class TestAffectedRows:
    """Tests for Postgres command status parsing."""

    @pytest.mark.parametrize("status, expected", [
        ("UPDATE 3", 3),
        ("DELETE 0", 0),
        ("INSERT 0 1", 1),
        ("SELECT 1", 1),
        ("CREATE TABLE", 0),
        ("", 0),
    ])
    def test_parses_trailing_count(self, status, expected):
        assert affected_rows(status) == expected


def pg_executor(pool: StubPgPool, **overrides) -> PostgresExecutor:
    return PostgresExecutor(PostgresConfig(**overrides), pool)


class TestPostgresExecutor:
    """Tests for PostgresExecutor against a stand-in asyncpg pool."""

    @pytest.mark.asyncio
    async def test_execute_parses_status_and_forwards_timeout(self):
        pool = StubPgPool(status="DELETE 3")
        executor = pg_executor(pool)

        result = await executor.execute("DELETE FROM session WHERE session_id=$1", b"a", timeout=1.5)

        assert result.unwrap() == 3
        assert pool.calls == [("DELETE FROM session WHERE session_id=$1", (b"a",), 1.5)]
        assert executor.paramstyle is ParamStyle.NUMERIC
        assert executor.stats.total_queries == 1

    @pytest.mark.asyncio
    async def test_query_row_scans_record(self):
        record = {"session_id": b"a", "contents": b"c", "last_active": 5, "expiration": 30}
        executor = pg_executor(StubPgPool(record=record))

        row = (await executor.query_row("SELECT ...", b"a")).unwrap()
        assert row.scan(as_bytes, as_bytes, as_int, as_int).unwrap() == (b"a", b"c", 5, 30)

    @pytest.mark.asyncio
    async def test_missing_row_is_no_rows_sentinel(self):
        executor = pg_executor(StubPgPool(record=None))
        row = (await executor.query_row("SELECT ...", b"zz")).unwrap()
        assert row.scan(as_bytes).error.is_no_rows

    @pytest.mark.asyncio
    async def test_unique_violation_maps_to_constraint_error(self):
        error = asyncpg.UniqueViolationError("duplicate key value")
        error.constraint_name = "session_pkey"
        error.table_name = "session"
        executor = pg_executor(StubPgPool(error=error))

        result = await executor.execute("INSERT ...", b"a", b"", 1, 0)

        assert result.error.code is ErrorCode.STORAGE_CONSTRAINT_VIOLATION
        assert result.error.context == {"constraint": "session_pkey", "table": "session"}
        assert result.error.cause is error
        assert executor.stats.failed_queries == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        asyncio.TimeoutError(),
        asyncpg.QueryCanceledError("canceling statement due to statement timeout"),
    ])
    async def test_deadline_maps_to_timeout(self, error):
        executor = pg_executor(StubPgPool(error=error))
        result = await executor.query_row("SELECT ...", b"a", timeout=0.01)
        assert result.error.code is ErrorCode.STORAGE_TIMEOUT

    @pytest.mark.asyncio
    async def test_lost_connection_maps_to_connection_failed(self):
        executor = pg_executor(StubPgPool(error=ConnectionResetError()), host="db")
        result = await executor.execute("DELETE ...", b"a")
        assert result.error.code is ErrorCode.STORAGE_CONNECTION_FAILED
        assert result.error.context["target"] == "db:5432"

    @pytest.mark.asyncio
    async def test_other_driver_errors_do_not_quote_values(self):
        error = asyncpg.DataError("invalid input: expected str, got bytes b'sid-secret'")
        executor = pg_executor(StubPgPool(error=error))

        result = await executor.execute("UPDATE ...", b"sid-secret")

        assert result.error.code is ErrorCode.STORAGE_QUERY_FAILED
        assert "sid-secret" not in str(result.error)
        assert result.error.cause is error

    @pytest.mark.asyncio
    async def test_text_columns_bind_bytes_as_str(self):
        pool = StubPgPool(record={"session_id": "a", "contents": "c", "last_active": 5, "expiration": 0})
        executor = pg_executor(pool, text_columns=True)

        await executor.execute("UPDATE ...", b"c", 7, 30, memoryview(b"a"))
        row = (await executor.query_row("SELECT ...", b"a")).unwrap()

        assert pool.calls[0][1] == ("c", 7, 30, "a")
        assert pool.calls[1][1] == ("a",)
        assert row.scan(as_bytes, as_bytes, as_int, as_int).unwrap() == (b"a", b"c", 5, 0)

    @pytest.mark.asyncio
    async def test_text_columns_reject_non_utf8(self):
        pool = StubPgPool()
        executor = pg_executor(pool, text_columns=True)

        result = await executor.execute("DELETE ...", b"\xff\xfe")

        assert result.error.code is ErrorCode.STORAGE_QUERY_FAILED
        assert pool.calls == []

    @pytest.mark.asyncio
    async def test_bytes_bound_unchanged_by_default(self):
        pool = StubPgPool()
        await pg_executor(pool).execute("DELETE ...", b"a")
        assert pool.calls[0][1] == (b"a",)

    @pytest.mark.asyncio
    async def test_duplicate_insert_through_dao_is_error(self):
        error = asyncpg.UniqueViolationError("duplicate key value")
        dao = SessionDao.new("session", pg_executor(StubPgPool(error=error))).unwrap()

        result = await dao.insert(b"s1", b"a", 1000, timedelta(seconds=30))

        assert result.error.code is ErrorCode.STORAGE_CONSTRAINT_VIOLATION

    @pytest.mark.asyncio
    async def test_close(self):
        pool = StubPgPool()
        executor = pg_executor(pool)
        await executor.close()
        await executor.close()
        assert pool.closed


class TestPostgresCreate:
    """Tests for PostgresExecutor.create."""

    @pytest.mark.asyncio
    async def test_create_checks_connectivity(self, monkeypatch):
        pool = StubPgPool()
        captured = {}

        async def create_pool(**kwargs):
            captured.update(kwargs)
            return pool

        monkeypatch.setattr(asyncpg, "create_pool", create_pool)
        result = await PostgresExecutor.create(PostgresConfig(query_timeout_ms=2500))

        assert result.is_ok()
        assert pool.calls[0][0] == "SELECT 1"
        assert captured["command_timeout"] == 2.5

    @pytest.mark.asyncio
    async def test_unreachable_server_is_connection_failed(self, monkeypatch):
        async def create_pool(**kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(asyncpg, "create_pool", create_pool)
        result = await PostgresExecutor.create(PostgresConfig(host="db", port=6543))

        assert result.error.code is ErrorCode.STORAGE_CONNECTION_FAILED
        assert result.error.context["target"] == "db:6543"

    @pytest.mark.asyncio
    async def test_failed_check_terminates_pool(self, monkeypatch):
        pool = StubPgPool(connect_error=asyncpg.InvalidPasswordError("bad password"))

        async def create_pool(**kwargs):
            return pool

        monkeypatch.setattr(asyncpg, "create_pool", create_pool)
        result = await PostgresExecutor.create(PostgresConfig())

        assert result.error.code is ErrorCode.STORAGE_CONNECTION_FAILED
        assert pool.terminated
