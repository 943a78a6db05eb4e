"""
Postgres Executor: asyncpg Connection Pool

Provides the production QueryExecutor with:
- Async connection pooling with min/max bounds
- Prepared statement caching for the seven hot statements
- Per-request deadlines propagated to asyncpg
- Connectivity validation at creation time

Design:
- Uses asyncpg for async PostgreSQL access
- Each statement runs in autocommit, so it is atomic at row level
- Affected-row counts come from the command status tag ("UPDATE 3")

Complexity:
- Connection acquire: O(1) amortized
- Query execution: O(query complexity)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import asyncpg

from sessionstore.core import constants as C
from sessionstore.core.config import PostgresConfig
from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, Err
from sessionstore.storage.protocols import ParamStyle, Row, ScannableRow

logger = logging.getLogger(__name__)


@dataclass
class ExecutorStats:
    """Connection pool statistics for observability."""

    total_connections: int = 0
    idle_connections: int = 0
    total_queries: int = 0
    failed_queries: int = 0
    avg_query_time_ns: float = 0.0


class PostgresExecutor:
    """
    PostgreSQL statement executor for the session access layer.

    Thread Safety: All operations are coroutine-safe.

    Usage:
        result = await PostgresExecutor.create(config)
        if result.is_err():
            ...
        async with result.unwrap() as executor:
            rows = await executor.execute(stmt, sid)
    """

    __slots__ = ("_config", "_pool", "_stats", "_closed")

    def __init__(self, config: PostgresConfig, pool: asyncpg.Pool) -> None:
        self._config = config
        self._pool = pool
        self._stats = ExecutorStats()
        self._closed = False

    @classmethod
    async def create(cls, config: PostgresConfig) -> Result[PostgresExecutor, StorageError]:
        """
        Factory method to create and initialize the executor.

        Establishes the connection pool and validates connectivity.
        """
        pool: Optional[asyncpg.Pool] = None
        try:
            pool = await asyncpg.create_pool(
                host=config.host,
                port=config.port,
                database=config.database,
                user=config.user,
                password=config.password,
                ssl=config.ssl_mode,
                min_size=config.pool_min,
                max_size=config.pool_max,
                timeout=config.conn_timeout_ms / C.SECOND_MS,
                command_timeout=config.query_timeout_ms / C.SECOND_MS,
                statement_cache_size=C.PG_STATEMENT_CACHE_SIZE,
            )
            async with pool.acquire() as conn:
                await conn.execute("SELECT 1")
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            if pool is not None:
                pool.terminate()
            logger.error(
                "Postgres executor initialization failed",
                extra={"host": config.host, "port": config.port, "error": type(e).__name__},
            )
            return Err(StorageError.connection_failed(
                config.host,
                config.port,
                cause=e,
            ))

        logger.info(
            "Postgres executor initialized",
            extra={
                "host": config.host,
                "port": config.port,
                "pool_size": f"{config.pool_min}-{config.pool_max}",
            },
        )
        return Ok(cls(config, pool))

    @property
    def paramstyle(self) -> ParamStyle:
        return ParamStyle.NUMERIC

    async def execute(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[int, StorageError]:
        start = time.monotonic_ns()
        try:
            status = await self._pool.execute(statement, *self._bind(params), timeout=timeout)
        except Exception as e:
            return Err(self._failure("execute", start, e))

        self._record(start)
        return Ok(affected_rows(status))

    async def query_row(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[Row, StorageError]:
        start = time.monotonic_ns()
        try:
            record = await self._pool.fetchrow(statement, *self._bind(params), timeout=timeout)
        except Exception as e:
            return Err(self._failure("query_row", start, e))

        self._record(start)
        return Ok(ScannableRow(None if record is None else tuple(record.values())))

    def _bind(self, params: tuple[Any, ...]) -> tuple[Any, ...]:
        """
        Adapt byte parameters to the column type.

        asyncpg's text codec rejects bytes, so with text_columns set
        identifiers and contents are sent as UTF-8 strings. Values read
        back as str are turned into bytes again by as_bytes.
        """
        if not self._config.text_columns:
            return params
        return tuple(
            bytes(p).decode("utf-8") if isinstance(p, (bytes, bytearray, memoryview)) else p
            for p in params
        )

    def _failure(self, operation: str, start_ns: int, error: Exception) -> StorageError:
        self._stats.failed_queries += 1
        elapsed_ms = (time.monotonic_ns() - start_ns) // C.NS_PER_MS

        if isinstance(error, asyncpg.UniqueViolationError):
            return StorageError.constraint_violation(
                constraint=error.constraint_name or "unique",
                table=error.table_name or "",
                cause=error,
            )
        if isinstance(error, (asyncio.TimeoutError, asyncpg.QueryCanceledError)):
            return StorageError.timeout(operation, int(elapsed_ms), cause=error)
        if isinstance(error, (OSError, asyncpg.exceptions.ConnectionDoesNotExistError)):
            return StorageError.connection_failed(
                self._config.host,
                self._config.port,
                cause=error,
            )
        return StorageError.query_failed(operation, cause=error)

    def _record(self, start_ns: int) -> None:
        """Update running statistics."""
        elapsed = time.monotonic_ns() - start_ns
        self._stats.total_queries += 1
        # Exponential moving average for query time
        alpha = 0.1
        self._stats.avg_query_time_ns = (
            alpha * elapsed +
            (1 - alpha) * self._stats.avg_query_time_ns
        )

    @property
    def stats(self) -> ExecutorStats:
        """Get current connection pool statistics."""
        self._stats.total_connections = self._pool.get_size()
        self._stats.idle_connections = self._pool.get_idle_size()
        return self._stats

    async def close(self) -> None:
        """Close connection pool and release resources."""
        if self._closed:
            return
        self._closed = True
        await self._pool.close()
        logger.info("Postgres executor closed")

    async def __aenter__(self) -> PostgresExecutor:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def affected_rows(status: str) -> int:
    """
    Parse the affected-row count from a command status tag.

    "UPDATE 3" -> 3, "DELETE 0" -> 0, "INSERT 0 1" -> 1.
    Tags without a trailing count report 0.
    """
    _, _, tail = status.rpartition(" ")
    try:
        return int(tail)
    except ValueError:
        return 0
