"""
Record Pool: Reusable Session Record Containers

Every fetch needs a record to scan into. Allocating one per request
churns the allocator on the hot path, so records are recycled through a
bounded free list.

Guarantees:
- acquire() always returns a record in its zero state
- release() resets the record BEFORE it re-enters the free list, so a
  caller can never observe a previous occupant's data
- acquire()/release() are safe from any number of threads or tasks; the
  lock guards only O(1) list operations and never waits on I/O
- a record released twice is only pooled once

Complexity:
- acquire: O(1)
- release: O(1)
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterator

from sessionstore.core import constants as C
from sessionstore.core.types import ZERO_DURATION


@dataclass(slots=True)
class SessionRecord:
    """
    One row of the session table.

    ``found`` distinguishes an absent session (empty identifier)
    from a present session whose contents happen to be empty.
    """

    session_id: bytes = b""
    contents: bytes = b""
    last_active: int = 0
    expiration: timedelta = field(default=ZERO_DURATION)

    @property
    def found(self) -> bool:
        return bool(self.session_id)

    @property
    def never_expires(self) -> bool:
        return self.expiration == ZERO_DURATION

    def reset(self) -> None:
        """Clear every field to its zero value."""
        self.session_id = b""
        self.contents = b""
        self.last_active = 0
        self.expiration = ZERO_DURATION

    def __repr__(self) -> str:
        # Identifiers and contents stay out of logs and tracebacks
        return (
            f"SessionRecord(found={self.found}, "
            f"contents={len(self.contents)}B, "
            f"last_active={self.last_active}, "
            f"expiration={self.expiration})"
        )


@dataclass
class PoolStats:
    """Record pool counters for observability."""

    allocated: int = 0
    reused: int = 0
    released: int = 0
    discarded: int = 0
    idle: int = 0


class RecordPool:
    """
    Thread-safe free list of SessionRecord containers.

    Usage:
        pool = RecordPool()
        with pool.borrowed() as record:
            ...  # record is reset and returned on every exit path
    """

    __slots__ = ("_max_idle", "_free", "_idle_ids", "_lock", "_stats")

    def __init__(self, max_idle: int = C.RECORD_POOL_MAX_IDLE) -> None:
        if max_idle < 0:
            raise ValueError(f"max_idle must be >= 0, got {max_idle}")
        self._max_idle = max_idle
        self._free: list[SessionRecord] = []
        self._idle_ids: set[int] = set()
        self._lock = threading.Lock()
        self._stats = PoolStats()

    @property
    def max_idle(self) -> int:
        return self._max_idle

    def acquire(self) -> SessionRecord:
        """Take a zeroed record, reusing an idle one when available."""
        with self._lock:
            if self._free:
                record = self._free.pop()
                self._idle_ids.discard(id(record))
                self._stats.reused += 1
                return record
            self._stats.allocated += 1
        return SessionRecord()

    def release(self, record: SessionRecord) -> None:
        """Reset the record, then return it to the free list."""
        record.reset()
        with self._lock:
            key = id(record)
            if key in self._idle_ids:
                return
            self._stats.released += 1
            if len(self._free) >= self._max_idle:
                self._stats.discarded += 1
                return
            self._free.append(record)
            self._idle_ids.add(key)

    @contextmanager
    def borrowed(self) -> Iterator[SessionRecord]:
        """Acquire a record for the duration of a block."""
        record = self.acquire()
        try:
            yield record
        finally:
            self.release(record)

    @property
    def stats(self) -> PoolStats:
        """Snapshot of pool counters."""
        with self._lock:
            return PoolStats(
                allocated=self._stats.allocated,
                reused=self._stats.reused,
                released=self._stats.released,
                discarded=self._stats.discarded,
                idle=len(self._free),
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._free)


_default_pool = RecordPool()


def get_default_pool() -> RecordPool:
    """Process-wide pool shared by every SessionDao that is not given its own."""
    return _default_pool
