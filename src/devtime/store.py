"""Pulse storage backends for devtime.

The aggregation code never branches on backend type: it only talks to the
PulseStore protocol. SqlitePulseStore is the relational backend,
MemoryPulseStore the ephemeral one used for tests and storeless runs.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, NamedTuple, Protocol

from devtime.models import Pulse, PulseFilters

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS heartbeats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    tool TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    activity_type TEXT NOT NULL,
    project TEXT,
    file TEXT,
    language TEXT,
    branch TEXT,
    machine_id TEXT,
    is_write INTEGER,
    lines INTEGER,
    cursor_line INTEGER,
    tokens_in INTEGER,
    tokens_out INTEGER,
    session_id TEXT
);

CREATE INDEX IF NOT EXISTS idx_heartbeats_user_timestamp ON heartbeats(user_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_heartbeats_user_project ON heartbeats(user_id, project);
CREATE INDEX IF NOT EXISTS idx_heartbeats_user_tool ON heartbeats(user_id, tool);
"""

PULSE_COLUMNS = (
    "tool",
    "timestamp",
    "activity_type",
    "project",
    "file",
    "language",
    "branch",
    "machine_id",
    "is_write",
    "lines",
    "cursor_line",
    "tokens_in",
    "tokens_out",
    "session_id",
)

INSERT_BATCH_SIZE = 500

# Pulses older than this are dropped by the in-memory store on every write
DEFAULT_RETENTION_MS = 7 * 24 * 60 * 60 * 1000


class StoreError(Exception):
    """Base exception for pulse store misuse."""

    pass


class StoreClosedError(StoreError):
    """Raised when a closed store is used."""

    def __init__(self, dialect: str) -> None:
        super().__init__(f"{dialect} pulse store is closed")


class PulseStore(Protocol):
    """Capability every pulse backend provides."""

    dialect: str

    def store_pulses(self, pulses: Sequence[Pulse], user_id: str) -> int: ...

    def get_pulses(
        self,
        user_id: str,
        start_time: int,
        end_time: int,
        filters: PulseFilters | None = None,
    ) -> list[Pulse]: ...

    def close(self) -> None: ...


def _row_to_pulse(row: sqlite3.Row) -> Pulse:
    data: dict[str, Any] = {column: row[column] for column in PULSE_COLUMNS}
    if data["is_write"] is not None:
        data["is_write"] = bool(data["is_write"])
    return Pulse.model_validate(data)


class SqlitePulseStore:
    """SQLite-backed pulse store.

    Not thread-safe. Each thread should have its own SqlitePulseStore instance.
    """

    dialect = "sqlite"

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._closed = False
        self._init_schema()

    def __enter__(self) -> SqlitePulseStore:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        if not self._closed:
            self._conn.close()
            self._closed = True

    def _init_schema(self) -> None:
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosedError(self.dialect)

    @classmethod
    def open(cls, path: Path) -> SqlitePulseStore:
        """Open or create a database at the given path."""
        conn = sqlite3.connect(path)
        conn.row_factory = sqlite3.Row
        return cls(conn)

    @classmethod
    def open_in_memory(cls) -> SqlitePulseStore:
        """Create an in-memory database for testing."""
        conn = sqlite3.connect(":memory:")
        conn.row_factory = sqlite3.Row
        return cls(conn)

    def store_pulses(self, pulses: Sequence[Pulse], user_id: str) -> int:
        """Insert pulses for a user. Returns the number of rows written.

        Inserts run in batches inside a single transaction.
        """
        self._check_open()
        if not pulses:
            return 0

        placeholders = ", ".join("?" * (len(PULSE_COLUMNS) + 1))
        query = f"INSERT INTO heartbeats (user_id, {', '.join(PULSE_COLUMNS)}) VALUES ({placeholders})"
        rows = [
            (
                user_id,
                pulse.tool,
                pulse.timestamp,
                pulse.activity_type,
                pulse.project,
                pulse.file,
                pulse.language,
                pulse.branch,
                pulse.machine_id,
                None if pulse.is_write is None else int(pulse.is_write),
                pulse.lines,
                pulse.cursor_line,
                pulse.tokens_in,
                pulse.tokens_out,
                pulse.session_id,
            )
            for pulse in pulses
        ]

        with self._conn:  # Commits on success, rolls back the whole write on error
            for i in range(0, len(rows), INSERT_BATCH_SIZE):
                self._conn.executemany(query, rows[i : i + INSERT_BATCH_SIZE])

        logger.debug("Stored %d pulses for user %s", len(rows), user_id)
        return len(rows)

    def get_pulses(
        self,
        user_id: str,
        start_time: int,
        end_time: int,
        filters: PulseFilters | None = None,
    ) -> list[Pulse]:
        """Query a user's pulses with start_time <= timestamp <= end_time.

        Args:
            user_id: Owner of the pulses.
            start_time: Epoch milliseconds (inclusive lower bound)
            end_time: Epoch milliseconds (inclusive upper bound)
            filters: Optional exact project/tool match

        Returns:
            Pulses ordered by timestamp ascending.
        """
        self._check_open()
        query = (
            f"SELECT {', '.join(PULSE_COLUMNS)} FROM heartbeats"
            " WHERE user_id = ? AND timestamp >= ? AND timestamp <= ?"
        )
        params: list[str | int] = [user_id, start_time, end_time]

        if filters is not None and filters.project:
            query += " AND project = ?"
            params.append(filters.project)
        if filters is not None and filters.tool:
            query += " AND tool = ?"
            params.append(filters.tool)

        query += " ORDER BY timestamp ASC, id ASC"

        cursor = self._conn.execute(query, params)
        return [_row_to_pulse(row) for row in cursor.fetchall()]

    def count_pulses(self, user_id: str | None = None) -> int:
        """Count stored pulses, for one user or overall."""
        self._check_open()
        if user_id is None:
            cursor = self._conn.execute("SELECT COUNT(*) FROM heartbeats")
        else:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM heartbeats WHERE user_id = ?", (user_id,)
            )
        return cursor.fetchone()[0]


class StoredPulse(NamedTuple):
    id: str
    user_id: str
    pulse: Pulse


def _now_ms() -> int:
    return int(time.time() * 1000)


class MemoryPulseStore:
    """In-process pulse store keyed by user id.

    Every write drops pulses whose timestamp is at or before
    ``now - retention_ms``. Safe to share between threads.
    """

    dialect = "memory"

    def __init__(
        self,
        *,
        retention_ms: int = DEFAULT_RETENTION_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._retention_ms = retention_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._pulses: dict[str, list[StoredPulse]] = {}
        self._closed = False

    def __enter__(self) -> MemoryPulseStore:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._pulses.clear()
            self._closed = True

    def clear(self) -> None:
        """Drop every stored pulse for every user."""
        with self._lock:
            self._pulses.clear()

    def store_pulses(self, pulses: Sequence[Pulse], user_id: str) -> int:
        with self._lock:
            if self._closed:
                raise StoreClosedError(self.dialect)

            existing = self._pulses.get(user_id, [])
            added = [
                StoredPulse(id=f"{user_id}-{pulse.timestamp}-{i}", user_id=user_id, pulse=pulse)
                for i, pulse in enumerate(pulses)
            ]
            cutoff = self._clock() - self._retention_ms
            kept = [item for item in existing + added if item.pulse.timestamp > cutoff]

            evicted = len(existing) + len(added) - len(kept)
            if evicted:
                logger.info("Evicted %d pulses older than retention for user %s", evicted, user_id)
            self._pulses[user_id] = kept

        return len(added)

    def get_pulses(
        self,
        user_id: str,
        start_time: int,
        end_time: int,
        filters: PulseFilters | None = None,
    ) -> list[Pulse]:
        """Return a user's pulses within [start_time, end_time], oldest first."""
        with self._lock:
            if self._closed:
                raise StoreClosedError(self.dialect)
            stored = list(self._pulses.get(user_id, []))

        matched = [
            item.pulse
            for item in stored
            if start_time <= item.pulse.timestamp <= end_time
            and (filters is None or filters.matches(item.pulse))
        ]
        return sorted(matched, key=lambda p: p.timestamp)


def create_store(
    db_path: Path | None = None,
    *,
    retention_ms: int = DEFAULT_RETENTION_MS,
) -> PulseStore:
    """Open the SQLite store at db_path, or an in-memory store when no path is given."""
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return SqlitePulseStore.open(db_path)
    return MemoryPulseStore(retention_ms=retention_ms)
