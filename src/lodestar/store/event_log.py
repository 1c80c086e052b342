"""Event log - append-only audit trail of engine decisions."""

import json
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from lodestar.contracts.events import EngineEvent, EventKind


class EventLogWriter:
    """Single-writer append-only event log.

    Invariants:
    - Events within a stream have monotonically increasing seq
    - Events are never deleted or modified
    - Event order is deterministic (stream_id, seq)
    """

    def __init__(self, db_path: Path | str):
        """Initialize event log.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Sequence counters per stream, seeded from the log on first use
        self._seq_counters: dict[str, int] = {}

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._conn() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS engine_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    stream_id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    ts_monotonic REAL NOT NULL,
                    ts_wall TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    payload_json TEXT NOT NULL,
                    schema_version INTEGER NOT NULL DEFAULT 1,
                    UNIQUE(stream_id, seq)
                );

                CREATE INDEX IF NOT EXISTS idx_engine_events_stream
                    ON engine_events(stream_id);
                CREATE INDEX IF NOT EXISTS idx_engine_events_kind
                    ON engine_events(kind);
            """)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with automatic commit/rollback."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def next_seq(self, stream_id: str) -> int:
        """Get next sequence number for a stream."""
        if stream_id not in self._seq_counters:
            with self._conn() as conn:
                row = conn.execute(
                    "SELECT MAX(seq) FROM engine_events WHERE stream_id = ?",
                    (stream_id,),
                ).fetchone()
            self._seq_counters[stream_id] = row[0] + 1 if row[0] is not None else 0
        seq = self._seq_counters[stream_id]
        self._seq_counters[stream_id] = seq + 1
        return seq

    def append(self, event: EngineEvent) -> None:
        """Append an event to the log. Events are immutable once written."""
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO engine_events
                    (stream_id, seq, ts_monotonic, ts_wall,
                     kind, payload_json, schema_version)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.stream_id,
                    event.seq,
                    event.ts_monotonic,
                    event.ts_wall.isoformat(),
                    event.kind.value,
                    json.dumps(event.payload, default=str),
                    event.schema_version,
                ),
            )

    def emit(
        self, stream_id: str, kind: EventKind, payload: dict[str, Any] | None = None
    ) -> EngineEvent:
        """Build and append an event with the next seq for its stream."""
        event = EngineEvent(
            stream_id=stream_id,
            seq=self.next_seq(stream_id),
            ts_monotonic=time.monotonic(),
            kind=kind,
            payload=payload or {},
        )
        self.append(event)
        return event

    # ─────────────────────────────────────────────────────────────────────
    # Query Methods
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> EngineEvent:
        return EngineEvent(
            stream_id=row["stream_id"],
            seq=row["seq"],
            ts_monotonic=row["ts_monotonic"],
            ts_wall=datetime.fromisoformat(row["ts_wall"]),
            kind=EventKind(row["kind"]),
            payload=json.loads(row["payload_json"]),
            schema_version=row["schema_version"],
        )

    def replay_stream(self, stream_id: str) -> Iterator[EngineEvent]:
        """Replay all events for a stream.

        Yields:
            Events in sequence order
        """
        with self._conn() as conn:
            cursor = conn.execute(
                """
                SELECT stream_id, seq, ts_monotonic, ts_wall,
                       kind, payload_json, schema_version
                FROM engine_events
                WHERE stream_id = ?
                ORDER BY seq
                """,
                (stream_id,),
            )
            for row in cursor:
                yield self._row_to_event(row)

    def get_events_by_kind(self, kind: EventKind, limit: int = 100) -> list[EngineEvent]:
        """Get the most recent events of a kind across all streams."""
        with self._conn() as conn:
            cursor = conn.execute(
                """
                SELECT stream_id, seq, ts_monotonic, ts_wall,
                       kind, payload_json, schema_version
                FROM engine_events
                WHERE kind = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (kind.value, limit),
            )
            return [self._row_to_event(row) for row in cursor]

    def count_events(self, stream_id: str | None = None) -> int:
        """Count events, optionally filtered by stream."""
        with self._conn() as conn:
            if stream_id:
                cursor = conn.execute(
                    "SELECT COUNT(*) FROM engine_events WHERE stream_id = ?",
                    (stream_id,),
                )
            else:
                cursor = conn.execute("SELECT COUNT(*) FROM engine_events")
            return cursor.fetchone()[0]
