"""
System-Wide Constants for the Session Store

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

NS_PER_MS: Final[int] = 1_000_000

# =============================================================================
# TABLE
# =============================================================================
DEFAULT_TABLE_NAME: Final[str] = "session"
TABLE_NAME_MAX_LEN: Final[int] = 127

# =============================================================================
# POSTGRESQL BACKEND
# =============================================================================
PG_DEFAULT_PORT: Final[int] = 5432
PG_POOL_MIN: Final[int] = 2
PG_POOL_MAX: Final[int] = 20
PG_CONN_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
PG_QUERY_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
PG_STATEMENT_CACHE_SIZE: Final[int] = 100

# =============================================================================
# SQLITE BACKEND
# =============================================================================
SQLITE_MEMORY_PATH: Final[str] = ":memory:"
SQLITE_BUSY_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
# VM instructions between deadline checks while a statement runs
SQLITE_PROGRESS_STEPS: Final[int] = 1000

# =============================================================================
# RECORD POOL
# =============================================================================
RECORD_POOL_MAX_IDLE: Final[int] = 1024

# =============================================================================
# ENVIRONMENT
# =============================================================================
ENV_PREFIX: Final[str] = "SESSIONSTORE_"
