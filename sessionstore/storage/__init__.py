"""
Storage module: executor boundary, statements, and record pooling.

Provides:
- QueryExecutor / Row: the narrow interface the access layer depends on
- PostgresExecutor: asyncpg-backed production executor
- SQLiteExecutor: sqlite3-backed embedded executor
- SessionStatements: the seven statements, rendered once per table
- RecordPool / SessionRecord: reusable row containers
"""

from sessionstore.storage.protocols import (
    ParamStyle,
    QueryExecutor,
    Row,
    ScannableRow,
    as_bytes,
    as_int,
)
from sessionstore.storage.statements import SessionStatements
from sessionstore.storage.pool import (
    PoolStats,
    RecordPool,
    SessionRecord,
    get_default_pool,
)
from sessionstore.storage.sqlite import SQLiteExecutor
from sessionstore.storage.postgres import (
    ExecutorStats,
    PostgresExecutor,
)

__all__ = [
    "ParamStyle",
    "QueryExecutor",
    "Row",
    "ScannableRow",
    "as_bytes",
    "as_int",
    "SessionStatements",
    "PoolStats",
    "RecordPool",
    "SessionRecord",
    "get_default_pool",
    "SQLiteExecutor",
    "ExecutorStats",
    "PostgresExecutor",
]
