"""
Configuration Management for the Session Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides (SESSIONSTORE_*).

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional

from sessionstore.core import constants as C
from sessionstore.core.errors import ConfigurationError
from sessionstore.core.types import Result, Ok, Err

BACKENDS: frozenset[str] = frozenset({"postgres", "sqlite"})
LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Plain or schema-qualified identifier: "session", "app.session"
_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def validate_table_name(table_name: str) -> Result[str, ConfigurationError]:
    """
    Check that a table name is safe to interpolate into statement text.

    The name is the only value ever formatted into SQL, so it must be a
    plain identifier, optionally schema-qualified.
    """
    if not table_name:
        return Err(ConfigurationError.missing_value("table_name"))
    if len(table_name) > C.TABLE_NAME_MAX_LEN:
        return Err(ConfigurationError.invalid_value(
            "table_name", table_name,
            f"must be at most {C.TABLE_NAME_MAX_LEN} characters",
        ))
    if not _TABLE_NAME_RE.match(table_name):
        return Err(ConfigurationError.invalid_value(
            "table_name", table_name,
            "must be an identifier, optionally schema-qualified",
        ))
    return Ok(table_name)


@dataclass(frozen=True)
class PostgresConfig:
    """PostgreSQL backend configuration."""

    host: str = "localhost"
    port: int = C.PG_DEFAULT_PORT
    database: str = "sessions"
    user: str = "sessions"
    password: str = ""
    pool_min: int = C.PG_POOL_MIN
    pool_max: int = C.PG_POOL_MAX
    conn_timeout_ms: int = C.PG_CONN_TIMEOUT_MS
    query_timeout_ms: int = C.PG_QUERY_TIMEOUT_MS
    ssl_mode: str = "prefer"
    # session_id/contents are TEXT/VARCHAR rather than BYTEA
    text_columns: bool = False


@dataclass(frozen=True)
class SQLiteConfig:
    """SQLite backend configuration."""

    path: str = C.SQLITE_MEMORY_PATH
    busy_timeout_ms: int = C.SQLITE_BUSY_TIMEOUT_MS

    @property
    def in_memory(self) -> bool:
        return self.path == C.SQLITE_MEMORY_PATH


@dataclass(frozen=True)
class RecordPoolConfig:
    """Session record pool sizing."""

    max_idle: int = C.RECORD_POOL_MAX_IDLE


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class SessionStoreConfig:
    """Root configuration for the session store."""

    table_name: str = C.DEFAULT_TABLE_NAME
    backend: str = "postgres"
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    record_pool: RecordPoolConfig = field(default_factory=RecordPoolConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def query_timeout_seconds(self) -> Optional[float]:
        """Per-request deadline handed to the executor."""
        if self.backend == "postgres":
            return self.postgres.query_timeout_ms / C.SECOND_MS
        return None

    @classmethod
    def from_env(cls) -> Result[SessionStoreConfig, ConfigurationError]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with SESSIONSTORE_.
        Example: SESSIONSTORE_TABLE, SESSIONSTORE_PG_HOST
        """
        env = _EnvReader(C.ENV_PREFIX)
        try:
            postgres = PostgresConfig(
                host=env.get_str("PG_HOST", "localhost"),
                port=env.get_int("PG_PORT", C.PG_DEFAULT_PORT),
                database=env.get_str("PG_DATABASE", "sessions"),
                user=env.get_str("PG_USER", "sessions"),
                password=env.get_str("PG_PASSWORD", ""),
                pool_min=env.get_int("PG_POOL_MIN", C.PG_POOL_MIN),
                pool_max=env.get_int("PG_POOL_MAX", C.PG_POOL_MAX),
                conn_timeout_ms=env.get_int("PG_CONN_TIMEOUT_MS", C.PG_CONN_TIMEOUT_MS),
                query_timeout_ms=env.get_int("PG_QUERY_TIMEOUT_MS", C.PG_QUERY_TIMEOUT_MS),
                ssl_mode=env.get_str("PG_SSL_MODE", "prefer"),
                text_columns=env.get_bool("PG_TEXT_COLUMNS", False),
            )

            sqlite = SQLiteConfig(
                path=env.get_str("SQLITE_PATH", C.SQLITE_MEMORY_PATH),
                busy_timeout_ms=env.get_int("SQLITE_BUSY_TIMEOUT_MS", C.SQLITE_BUSY_TIMEOUT_MS),
            )

            observability = ObservabilityConfig(
                log_level=env.get_str("LOG_LEVEL", "INFO").upper(),
                log_json=env.get_bool("LOG_JSON", True),
            )

            return Ok(cls(
                table_name=env.get_str("TABLE", C.DEFAULT_TABLE_NAME),
                backend=env.get_str("BACKEND", "postgres").lower(),
                postgres=postgres,
                sqlite=sqlite,
                record_pool=RecordPoolConfig(
                    max_idle=env.get_int("RECORD_POOL_MAX_IDLE", C.RECORD_POOL_MAX_IDLE),
                ),
                observability=observability,
            ))
        except ValueError as e:
            return Err(ConfigurationError.invalid_value(
                name=env.last_key,
                value=env.last_value,
                reason="not a valid number or flag",
                cause=e,
            ))

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        table = validate_table_name(self.table_name)
        if table.is_err():
            return table
        if self.backend not in BACKENDS:
            return Err(ConfigurationError.invalid_value(
                "backend", self.backend, f"expected one of {sorted(BACKENDS)}",
            ))
        if self.postgres.pool_min < 1:
            return Err(ConfigurationError.invalid_value(
                "postgres.pool_min", self.postgres.pool_min, "must be >= 1",
            ))
        if self.postgres.pool_min > self.postgres.pool_max:
            return Err(ConfigurationError.invalid_value(
                "postgres.pool_min", self.postgres.pool_min, "cannot exceed pool_max",
            ))
        if self.postgres.conn_timeout_ms <= 0 or self.postgres.query_timeout_ms <= 0:
            return Err(ConfigurationError.invalid_value(
                "postgres timeouts",
                (self.postgres.conn_timeout_ms, self.postgres.query_timeout_ms),
                "must be positive",
            ))
        if self.record_pool.max_idle < 0:
            return Err(ConfigurationError.invalid_value(
                "record_pool.max_idle", self.record_pool.max_idle, "must be >= 0",
            ))
        if self.observability.log_level not in LOG_LEVELS:
            return Err(ConfigurationError.invalid_value(
                "observability.log_level",
                self.observability.log_level,
                f"expected one of {sorted(LOG_LEVELS)}",
            ))
        return Ok(None)


class _EnvReader:
    """Typed environment lookups that remember the last key read."""

    __slots__ = ("_prefix", "last_key", "last_value")

    _TRUTHY = frozenset({"1", "true", "yes", "on"})
    _FALSY = frozenset({"0", "false", "no", "off"})

    def __init__(self, prefix: str) -> None:
        self._prefix = prefix
        self.last_key = ""
        self.last_value: Optional[str] = None

    def _get(self, key: str) -> Optional[str]:
        self.last_key = self._prefix + key
        self.last_value = os.getenv(self.last_key)
        return self.last_value

    def get_str(self, key: str, default: str) -> str:
        value = self._get(key)
        return default if value is None else value

    def get_int(self, key: str, default: int) -> int:
        value = self._get(key)
        return default if value is None else int(value)

    def get_bool(self, key: str, default: bool) -> bool:
        value = self._get(key)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in self._TRUTHY:
            return True
        if lowered in self._FALSY:
            return False
        raise ValueError(f"invalid boolean {value!r}")
