"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the session store:
- Result/Either monads for zero-exception control flow
- Expiration duration conversions (timedelta <-> whole seconds)
- Error hierarchy with stable error codes
- Configuration management with validation
"""

from sessionstore.core.types import (
    Result,
    Ok,
    Err,
    ZERO_DURATION,
    duration_to_seconds,
    seconds_to_duration,
)
from sessionstore.core.errors import (
    ErrorCode,
    SessionStoreError,
    StorageError,
    ConfigurationError,
)
from sessionstore.core.config import (
    SessionStoreConfig,
    PostgresConfig,
    SQLiteConfig,
    RecordPoolConfig,
    ObservabilityConfig,
    validate_table_name,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "ZERO_DURATION",
    "duration_to_seconds",
    "seconds_to_duration",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "ConfigurationError",
    "SessionStoreConfig",
    "PostgresConfig",
    "SQLiteConfig",
    "RecordPoolConfig",
    "ObservabilityConfig",
    "validate_table_name",
]
