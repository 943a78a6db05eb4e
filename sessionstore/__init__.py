"""
Session Store: Persistence Core for Server-Side Sessions

Manages session records (identifier, serialized contents, last-active
timestamp, expiration) in a SQL table under concurrent access from many
request-handling workers.

Architecture:
    ┌──────────────────────────────────────────────┐
    │           session manager (caller)           │
    └──────────────────────┬───────────────────────┘
                           │ bytes in, Result out
    ┌──────────────────────▼───────────────────────┐
    │  SessionDao                                  │
    │  fetch / count / update / delete /           │
    │  delete_expired / insert / regenerate        │
    │        │                        │            │
    │  SessionStatements         RecordPool        │
    └────────┼─────────────────────────────────────┘
             │ QueryExecutor
    ┌────────▼──────────┐   ┌────────────────────┐
    │ PostgresExecutor  │   │  SQLiteExecutor    │
    │ (asyncpg)         │   │  (sqlite3)         │
    └───────────────────┘   └────────────────────┘

Usage:
    from sessionstore import SessionDao, SessionStoreConfig

    config = SessionStoreConfig.from_env().unwrap()
    dao = (await SessionDao.connect(config)).unwrap()
    await dao.insert(b"sid", b"payload", now, timedelta(minutes=30))
"""

from sessionstore.core import (
    Result,
    Ok,
    Err,
    ErrorCode,
    SessionStoreError,
    StorageError,
    ConfigurationError,
    SessionStoreConfig,
    duration_to_seconds,
    seconds_to_duration,
)
from sessionstore.storage import (
    ParamStyle,
    QueryExecutor,
    Row,
    SessionStatements,
    RecordPool,
    SessionRecord,
    get_default_pool,
    SQLiteExecutor,
    PostgresExecutor,
)
from sessionstore.session import SessionDao

__version__ = "1.0.0"

__all__ = [
    "Result",
    "Ok",
    "Err",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "ConfigurationError",
    "SessionStoreConfig",
    "duration_to_seconds",
    "seconds_to_duration",
    "ParamStyle",
    "QueryExecutor",
    "Row",
    "SessionStatements",
    "RecordPool",
    "SessionRecord",
    "get_default_pool",
    "SQLiteExecutor",
    "PostgresExecutor",
    "SessionDao",
    "__version__",
]
