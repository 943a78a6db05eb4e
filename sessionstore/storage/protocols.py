"""
Query Executor Protocol: The Narrow Storage Boundary

The session access layer talks to the backing store only through
this interface:

- QueryExecutor.execute: run a parameterized statement, return affected rows
- QueryExecutor.query_row: run a parameterized query, return one scannable row
- Row.scan: ordered conversion of the row's columns into typed values

A row handle is returned even when nothing matched; scanning it yields
Err(StorageError) with code STORAGE_NO_ROWS, which callers distinguish
from real failures through ``error.is_no_rows``.

Design Principles:
    - Zero-exception control flow via Result[T, E] monad
    - Async-first for non-blocking I/O
    - Protocol classes for structural subtyping
    - Executors never retry; the caller owns retry policy
"""

from __future__ import annotations

from abc import abstractmethod
from enum import Enum
from typing import (
    Any,
    Callable,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from sessionstore.core.errors import StorageError
from sessionstore.core.types import Result, Ok, Err


# =============================================================================
# PARAMETER STYLE
# =============================================================================
class ParamStyle(Enum):
    """
    Placeholder syntax understood by a driver.

    Both styles are positional and 1-based so one statement shape
    serves every backend.
    """
    NUMERIC = "$"          # asyncpg / PostgreSQL: $1, $2
    QMARK_NUMBERED = "?"   # sqlite3: ?1, ?2

    def placeholder(self, position: int) -> str:
        """Render the placeholder for a 1-based parameter position."""
        return f"{self.value}{position}"


# =============================================================================
# ROW PROTOCOL
# =============================================================================
Converter = Callable[[Any], Any]


@runtime_checkable
class Row(Protocol):
    """A single query result that can be scanned into typed values."""

    @abstractmethod
    def scan(self, *converters: Converter) -> Result[tuple[Any, ...], StorageError]:
        """
        Convert each column in order with the matching converter.

        Returns:
            Ok(values): One converted value per converter
            Err(StorageError): STORAGE_NO_ROWS if nothing matched,
                STORAGE_SCAN_FAILED on arity or conversion failure
        """
        ...


class ScannableRow:
    """
    Row handle produced by the bundled executors.

    Holds the raw column values of the first matching row, or None
    when the query matched nothing.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Sequence[Any]]) -> None:
        self._values = values

    @property
    def empty(self) -> bool:
        return self._values is None

    def scan(self, *converters: Converter) -> Result[tuple[Any, ...], StorageError]:
        if self._values is None:
            return Err(StorageError.no_rows())

        if len(converters) != len(self._values):
            return Err(StorageError.scan_failed(
                f"expected {len(self._values)} destinations, got {len(converters)}",
            ))

        try:
            return Ok(tuple(
                convert(value) for convert, value in zip(converters, self._values)
            ))
        except (TypeError, ValueError) as e:
            return Err(StorageError.scan_failed(str(e), cause=e))

    def __repr__(self) -> str:
        if self._values is None:
            return "ScannableRow(<no rows>)"
        return f"ScannableRow({len(self._values)} columns)"


# =============================================================================
# EXECUTOR PROTOCOL
# =============================================================================
@runtime_checkable
class QueryExecutor(Protocol):
    """
    Opaque statement executor over an already-reachable store.

    ``timeout`` is a per-request deadline in seconds. Implementations
    propagate it to their driver and report expiry as STORAGE_TIMEOUT.
    """

    @property
    def paramstyle(self) -> ParamStyle:
        """Placeholder style statements must be rendered in."""
        ...

    @abstractmethod
    async def execute(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[int, StorageError]:
        """Execute a statement and return the affected-row count."""
        ...

    @abstractmethod
    async def query_row(
        self,
        statement: str,
        *params: Any,
        timeout: Optional[float] = None,
    ) -> Result[Row, StorageError]:
        """Execute a query and return a handle on its first row."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the executor."""
        ...


# =============================================================================
# COLUMN CONVERTERS
# =============================================================================
def as_bytes(value: Any) -> bytes:
    """
    Column converter for opaque byte columns.

    Drivers hand back bytes, memoryview or (for TEXT columns) str.
    NULL scans as empty.
    """
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"cannot scan {type(value).__name__} into bytes")


def as_int(value: Any) -> int:
    """Column converter for integer columns; NULL scans as 0."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"cannot scan {type(value).__name__} into int")
    return value
