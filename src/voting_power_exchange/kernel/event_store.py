"""
SQLite Event Store - Append-only audit log of exchanges and cap changes

The event store is the durable source of truth for the exchange's own state:
- consumed nonces (NonceConsumed) rebuild the replay guard
- cap updates (VotingPowerCapSet) rebuild the cap policy
- settlements (VotingPowerReceived) form the exchange history

Events of one command are appended in a single transaction, so a request is
either fully recorded or not recorded at all.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from voting_power_exchange.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from voting_power_exchange.kernel.events import Event
from voting_power_exchange.kernel.logging import get_logger
from voting_power_exchange.kernel.metrics import (
    events_appended_total,
    events_loaded_total,
    stream_version_conflicts_total,
)
from voting_power_exchange.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

_COLUMNS = (
    "event_id, stream_id, stream_type, version, "
    "command_id, event_type, occurred_at, actor_id, payload_json"
)


class SQLiteEventStore:
    """
    SQLite-based event store with append-only semantics

    Schema:
    - events table with an autoincrement position (global replay order)
    - Unique constraint: (stream_id, version)
    - Indices: stream_id, event_type, command_id

    Replay order is the insertion position, not the timestamp: two cap
    updates inside the same millisecond must replay in the order they
    were accepted.
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        """Create tables and indices if they don't exist"""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    position INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL UNIQUE,
                    stream_id TEXT NOT NULL,
                    stream_type TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    command_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    occurred_at TEXT NOT NULL,
                    actor_id TEXT,
                    payload_json TEXT NOT NULL,

                    UNIQUE(stream_id, version)
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_stream ON events(stream_id, version)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_events_command ON events(command_id)"
            )

            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that is always closed on exit"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @retry_on_sqlite_lock()
    def append(
        self,
        stream_id: str,
        expected_version: int,
        events: list[Event],
    ) -> list[Event]:
        """
        Append events to a stream with optimistic locking

        Args:
            stream_id: Aggregate identifier
            expected_version: Expected current stream version
            events: Events to append (sequential versions, same command_id)

        Returns:
            The appended events, or the previously stored events if this
            command_id was already recorded on the stream. Callers that
            must not repeat side effects compare the returned event ids
            with their own.

        Raises:
            StreamVersionConflict: If stream version doesn't match expected
            CommandIdempotencyViolation: If a racing writer recorded the command
                but its events cannot be read back
            EventStoreError: On other database errors
        """
        if not events:
            return []

        command_id = events[0].command_id
        existing = [
            e for e in self._get_events_by_command_id(command_id) if e.stream_id == stream_id
        ]
        if existing:
            logger.info(
                "Command already recorded, returning stored events",
                command_id=command_id,
                stream_id=stream_id,
            )
            return existing

        with self._connect() as conn:
            try:
                current_version = self._get_stream_version(conn, stream_id)
                if current_version != expected_version:
                    raise StreamVersionConflict(stream_id, expected_version, current_version)

                conn.executemany(
                    f"INSERT INTO events ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            event.event_id,
                            event.stream_id,
                            event.stream_type,
                            event.version,
                            event.command_id,
                            event.event_type,
                            event.occurred_at.isoformat(),
                            event.actor_id,
                            json.dumps(event.payload),
                        )
                        for event in events
                    ],
                )
                conn.commit()

            except StreamVersionConflict:
                stream_version_conflicts_total.labels(
                    stream_type=events[0].stream_type
                ).inc()
                raise

            except sqlite3.IntegrityError as e:
                conn.rollback()
                error_msg = str(e).lower()

                if "stream_id" in error_msg and "version" in error_msg:
                    stream_version_conflicts_total.labels(
                        stream_type=events[0].stream_type
                    ).inc()
                    current = self._get_stream_version(conn, stream_id)
                    raise StreamVersionConflict(stream_id, expected_version, current) from e

                stored = self._get_events_by_command_id(command_id)
                if stored:
                    return stored
                if "event_id" in error_msg:
                    raise CommandIdempotencyViolation(command_id) from e
                raise EventStoreError(f"Failed to append events: {e}") from e

            except sqlite3.OperationalError:
                conn.rollback()
                raise

            except sqlite3.Error as e:
                conn.rollback()
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in events:
            events_appended_total.labels(
                stream_type=event.stream_type, event_type=event.event_type
            ).inc()
        logger.debug(
            "Events appended",
            stream_id=stream_id,
            count=len(events),
            version=events[-1].version,
        )
        return events

    @retry_on_sqlite_lock()
    def load_stream(self, stream_id: str) -> list[Event]:
        """
        Load all events for a stream in version order

        Returns:
            List of events (empty if the stream doesn't exist)
        """
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE stream_id = ? ORDER BY version ASC",
                (stream_id,),
            )
            events = [self._row_to_event(row) for row in cursor.fetchall()]

        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

    @retry_on_sqlite_lock()
    def load_all_events(self, limit: int | None = None) -> list[Event]:
        """
        Load every event in append order (for projection rebuilding)

        Args:
            limit: Maximum number of events to return, or None for all
        """
        query = f"SELECT {_COLUMNS} FROM events ORDER BY position ASC"
        params: tuple = ()
        if limit:
            query += " LIMIT ?"
            params = (limit,)

        with self._connect() as conn:
            events = [self._row_to_event(row) for row in conn.execute(query, params)]

        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events

    @retry_on_sqlite_lock()
    def load_events_after(self, position: int) -> tuple[list[Event], int]:
        """
        Load events appended after a global position

        Lets a long-running reader catch up with writes made by other
        processes sharing the database.

        Args:
            position: Last position already seen (0 for the start of the log)

        Returns:
            (events in append order, position of the last returned event or
            the given position if there are none)
        """
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT position, {_COLUMNS} FROM events WHERE position > ? ORDER BY position ASC",
                (position,),
            ).fetchall()

        events = [self._row_to_event(row) for row in rows]
        for event in events:
            events_loaded_total.labels(stream_type=event.stream_type).inc()
        return events, (rows[-1]["position"] if rows else position)

    @retry_on_sqlite_lock()
    def query_events(
        self,
        *,
        stream_id: str | None = None,
        stream_type: str | None = None,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """
        Query events by stream, stream type and/or event type

        Returns:
            Matching events in append order
        """
        conditions = []
        params: list = []

        if stream_id:
            conditions.append("stream_id = ?")
            params.append(stream_id)
        if stream_type:
            conditions.append("stream_type = ?")
            params.append(stream_type)
        if event_type:
            conditions.append("event_type = ?")
            params.append(event_type)

        where_clause = " AND ".join(conditions) if conditions else "1=1"
        query = f"SELECT {_COLUMNS} FROM events WHERE {where_clause} ORDER BY position ASC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        with self._connect() as conn:
            return [self._row_to_event(row) for row in conn.execute(query, params)]

    def get_stream_version(self, stream_id: str) -> int:
        """Current version of a stream (0 if it doesn't exist)"""
        with self._connect() as conn:
            return self._get_stream_version(conn, stream_id)

    def _get_stream_version(self, conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute(
            "SELECT MAX(version) FROM events WHERE stream_id = ?",
            (stream_id,),
        ).fetchone()
        return row[0] if row[0] is not None else 0

    def _get_events_by_command_id(self, command_id: str) -> list[Event]:
        with self._connect() as conn:
            cursor = conn.execute(
                f"SELECT {_COLUMNS} FROM events WHERE command_id = ? ORDER BY position ASC",
                (command_id,),
            )
            return [self._row_to_event(row) for row in cursor.fetchall()]

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=row["event_id"],
            stream_id=row["stream_id"],
            stream_type=row["stream_type"],
            version=row["version"],
            command_id=row["command_id"],
            event_type=row["event_type"],
            occurred_at=datetime.fromisoformat(row["occurred_at"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload_json"]),
        )

    def count_events(self) -> int:
        """Total number of events in store"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        """Total number of distinct streams"""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
