"""
Session Store Errors

Failures travel as values inside Err(...), not as raised exceptions.
The classes still derive from Exception so a caller that prefers
raising can do ``raise result.error``.

Every error records:
- code: stable ErrorCode for branching
- message: operator-facing text, never containing session identifiers
  or contents
- error_id / timestamp_ns: correlation with log lines
- cause: the driver exception, if any
- context: small dict of structured fields (table, operation, ...)

Usage:
    result = await dao.insert(sid, contents, now, ttl)
    match result:
        case Ok(rows):
            ...
        case Err(error) if error.code is ErrorCode.STORAGE_CONSTRAINT_VIOLATION:
            ...
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


class ErrorCode(Enum):
    """
    Stable numeric codes.

    1xxx come from the backing store or its driver,
    9xxx from this package's own setup.
    """

    STORAGE_CONNECTION_FAILED = 1001
    STORAGE_TIMEOUT = 1002
    STORAGE_CONSTRAINT_VIOLATION = 1003
    STORAGE_QUERY_FAILED = 1004
    STORAGE_NO_ROWS = 1005
    STORAGE_SCAN_FAILED = 1006

    INTERNAL_CONFIGURATION_ERROR = 9002


@dataclass
class SessionStoreError(Exception):
    """Root of the error hierarchy."""

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp_ns: int = field(default_factory=time.time_ns)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def with_context(self, **fields: Any) -> SessionStoreError:
        """Copy of this error with extra context fields; id and class are kept."""
        return replace(self, context={**self.context, **fields})

    def to_dict(self) -> dict[str, Any]:
        """Flat form for the ``error`` field of a log line; never quotes the driver."""
        data: dict[str, Any] = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_ns": self.timestamp_ns,
            "context": dict(self.context),
        }
        if self.cause is not None:
            data["cause"] = type(self.cause).__name__
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.name}, {self.message!r})"


@dataclass
class StorageError(SessionStoreError):
    """
    Anything the executor reports.

    ``no_rows`` is not a failure: it is the sentinel a single-row
    query returns when nothing matched. Check ``is_no_rows`` before
    treating a StorageError as fatal.
    """

    @property
    def is_no_rows(self) -> bool:
        return self.code is ErrorCode.STORAGE_NO_ROWS

    @classmethod
    def connection_failed(
        cls,
        target: str,
        port: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """The store could not be reached or opened."""
        where = target if port is None else f"{target}:{port}"
        return cls(
            code=ErrorCode.STORAGE_CONNECTION_FAILED,
            message=f"Cannot reach session store at {where}",
            cause=cause,
            context={"target": where},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        duration_ms: int,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """The per-request deadline passed before the store answered."""
        return cls(
            code=ErrorCode.STORAGE_TIMEOUT,
            message=f"{operation} exceeded its deadline ({duration_ms}ms)",
            cause=cause,
            context={"operation": operation, "duration_ms": duration_ms},
        )

    @classmethod
    def constraint_violation(
        cls,
        constraint: str,
        table: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """A write collided with an existing session_id."""
        return cls(
            code=ErrorCode.STORAGE_CONSTRAINT_VIOLATION,
            message=f"{table or 'session table'} rejected the write ({constraint})",
            cause=cause,
            context={"constraint": constraint, "table": table},
        )

    @classmethod
    def query_failed(
        cls,
        operation: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """
        Any other statement failure.

        Driver messages can quote bound values, so only the exception
        type reaches the message; the exception itself stays on ``cause``.
        """
        detail = "" if cause is None else f" ({type(cause).__name__})"
        return cls(
            code=ErrorCode.STORAGE_QUERY_FAILED,
            message=f"{operation} failed{detail}",
            cause=cause,
            context={"operation": operation},
        )

    @classmethod
    def no_rows(cls) -> StorageError:
        return cls(code=ErrorCode.STORAGE_NO_ROWS, message="no matching row")

    @classmethod
    def scan_failed(
        cls,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> StorageError:
        """A row did not fit the requested column converters."""
        return cls(
            code=ErrorCode.STORAGE_SCAN_FAILED,
            message=f"cannot scan row: {reason}",
            cause=cause,
            context={"reason": reason},
        )


@dataclass
class ConfigurationError(SessionStoreError):
    """Rejected settings: bad environment values or an unusable table name."""

    @classmethod
    def invalid_value(
        cls,
        name: str,
        value: Any,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"{name}: {reason}",
            cause=cause,
            context={"name": name, "value": str(value)[:100], "reason": reason},
        )

    @classmethod
    def missing_value(cls, name: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"{name} is required",
            context={"name": name},
        )
