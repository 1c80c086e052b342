"""SQLite-backed repository.

Records are stored as pydantic JSON with the columns needed for lookups
pulled out beside them. Calls are short and synchronous, so each async
method runs its transaction to completion without yielding.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator

from lodestar.contracts import (
    OPEN_STATUSES,
    Intervention,
    InterventionStatus,
    PerformanceMetricSample,
    RiskAssessment,
    RiskCategory,
    StudentSignalProfile,
    SupportTicket,
)
from lodestar.store.repository import (
    DuplicateActiveInterventionError,
    InterventionMutation,
    NotFoundError,
    RepositoryError,
)

logger = logging.getLogger(__name__)

_OPEN_SQL = ", ".join(f"'{s.value}'" for s in OPEN_STATUSES)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class SQLiteRepository:
    """Repository implementation on a single SQLite file.

    Invariants:
    - At most one open intervention per (student_id, category), enforced by a
      partial unique index so concurrent writers cannot both succeed
    - Assessments and metric samples are insert-only
    - Every intervention update bumps its version inside one IMMEDIATE
      transaction
    """

    def __init__(self, db_path: Path | str, timeout: float = 30.0):
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._conn() as conn:
            conn.executescript(f"""
                CREATE TABLE IF NOT EXISTS student_profiles (
                    student_id TEXT PRIMARY KEY,
                    updated_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );

                -- Append-only
                CREATE TABLE IF NOT EXISTS risk_assessments (
                    id TEXT PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    overall_level INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS interventions (
                    id TEXT PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    category TEXT NOT NULL,
                    status TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    data TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS support_tickets (
                    id TEXT PRIMARY KEY,
                    intervention_id TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    status TEXT NOT NULL,
                    description TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS intervention_levels (
                    student_id TEXT PRIMARY KEY,
                    level INTEGER NOT NULL CHECK (level BETWEEN 1 AND 5),
                    updated_at TEXT NOT NULL
                );

                -- Append-only
                CREATE TABLE IF NOT EXISTS metric_samples (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    intervention_id TEXT NOT NULL,
                    metric_name TEXT NOT NULL,
                    value_before REAL NOT NULL,
                    value_after REAL NOT NULL,
                    timestamp TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_assessments_student
                    ON risk_assessments(student_id, created_at);
                CREATE INDEX IF NOT EXISTS idx_interventions_student
                    ON interventions(student_id, created_at);
                CREATE UNIQUE INDEX IF NOT EXISTS idx_interventions_open
                    ON interventions(student_id, category)
                    WHERE status IN ({_OPEN_SQL});
                CREATE INDEX IF NOT EXISTS idx_tickets_intervention
                    ON support_tickets(intervention_id);
                CREATE INDEX IF NOT EXISTS idx_samples_intervention
                    ON metric_samples(intervention_id, timestamp);
            """)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with automatic commit/rollback."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            logger.error(f"Cannot open repository at {self.db_path}: {e}")
            raise RepositoryError(f"Cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Repository operation failed: {e}")
            raise RepositoryError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ─────────────────────────────────────────────────────────────────────
    # Profiles
    # ─────────────────────────────────────────────────────────────────────

    async def save_profile(self, profile: StudentSignalProfile) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO student_profiles (student_id, updated_at, data)
                VALUES (?, ?, ?)
                ON CONFLICT(student_id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    data = excluded.data
                """,
                (profile.student_id, _iso(profile.updated_at), profile.model_dump_json()),
            )

    async def get_profile(self, student_id: str) -> StudentSignalProfile | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT data FROM student_profiles WHERE student_id = ?",
                (student_id,),
            ).fetchone()
        return StudentSignalProfile.model_validate_json(row["data"]) if row else None

    async def list_student_ids(self) -> list[str]:
        with self._conn() as conn:
            cursor = conn.execute("SELECT student_id FROM student_profiles ORDER BY student_id")
            return [row[0] for row in cursor]

    # ─────────────────────────────────────────────────────────────────────
    # Assessments
    # ─────────────────────────────────────────────────────────────────────

    async def append_assessment(self, assessment: RiskAssessment) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO risk_assessments (id, student_id, overall_level, created_at, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    assessment.id,
                    assessment.student_id,
                    int(assessment.overall_risk_level),
                    _iso(assessment.created_at),
                    assessment.model_dump_json(),
                ),
            )

    async def latest_assessment(self, student_id: str) -> RiskAssessment | None:
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT data FROM risk_assessments
                WHERE student_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (student_id,),
            ).fetchone()
        return RiskAssessment.model_validate_json(row["data"]) if row else None

    async def list_assessments(
        self, student_id: str | None = None, since: datetime | None = None
    ) -> list[RiskAssessment]:
        """List assessments oldest first."""
        clauses, params = [], []
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(student_id)
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(_iso(since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._conn() as conn:
            cursor = conn.execute(
                f"SELECT data FROM risk_assessments {where} ORDER BY created_at, rowid",
                params,
            )
            return [RiskAssessment.model_validate_json(row["data"]) for row in cursor]

    # ─────────────────────────────────────────────────────────────────────
    # Interventions
    # ─────────────────────────────────────────────────────────────────────

    async def create_intervention(self, intervention: Intervention) -> Intervention:
        """Insert an intervention unless an open one exists for its key.

        Raises:
            DuplicateActiveInterventionError: If the (student, category) slot is taken
        """
        with self._conn() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO interventions
                        (id, student_id, category, status, version,
                         created_at, updated_at, data)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        intervention.id,
                        intervention.student_id,
                        intervention.category.value,
                        intervention.status.value,
                        intervention.version,
                        _iso(intervention.created_at),
                        _iso(intervention.updated_at),
                        intervention.model_dump_json(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateActiveInterventionError(
                    intervention.student_id, intervention.category
                ) from e
        return intervention

    async def get_intervention(self, intervention_id: str) -> Intervention:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT data FROM interventions WHERE id = ?",
                (intervention_id,),
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Intervention {intervention_id} not found")
        return Intervention.model_validate_json(row["data"])

    async def find_open_intervention(
        self, student_id: str, category: RiskCategory
    ) -> Intervention | None:
        with self._conn() as conn:
            row = conn.execute(
                f"""
                SELECT data FROM interventions
                WHERE student_id = ? AND category = ? AND status IN ({_OPEN_SQL})
                """,
                (student_id, category.value),
            ).fetchone()
        return Intervention.model_validate_json(row["data"]) if row else None

    async def list_interventions(
        self,
        student_id: str | None = None,
        statuses: Iterable[InterventionStatus] | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[Intervention]:
        """List interventions newest first."""
        clauses, params = [], []
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(student_id)
        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            clauses.append(f"status IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        if since is not None:
            clauses.append("created_at >= ?")
            params.append(_iso(since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT ?"
            params.append(limit)

        with self._conn() as conn:
            cursor = conn.execute(
                f"""
                SELECT data FROM interventions {where}
                ORDER BY created_at DESC, rowid DESC {limit_sql}
                """,
                params,
            )
            return [Intervention.model_validate_json(row["data"]) for row in cursor]

    async def update_intervention(
        self, intervention_id: str, mutate: InterventionMutation
    ) -> Intervention:
        """Apply mutate() to the stored intervention in one transaction.

        mutate receives the current record and returns the new one, or None
        to leave it unchanged. The write is guarded by the version column.

        Raises:
            NotFoundError: If the intervention does not exist
            RepositoryError: If the version check fails
        """
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT data FROM interventions WHERE id = ?",
                (intervention_id,),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"Intervention {intervention_id} not found")

            current = Intervention.model_validate_json(row["data"])
            updated = mutate(current.model_copy(deep=True))
            if updated is None:
                return current

            updated = updated.model_copy(
                update={
                    "version": current.version + 1,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            cursor = conn.execute(
                """
                UPDATE interventions
                SET status = ?, version = ?, updated_at = ?, data = ?
                WHERE id = ? AND version = ?
                """,
                (
                    updated.status.value,
                    updated.version,
                    _iso(updated.updated_at),
                    updated.model_dump_json(),
                    intervention_id,
                    current.version,
                ),
            )
            if cursor.rowcount != 1:
                raise RepositoryError(f"Concurrent update lost on {intervention_id}")
        return updated

    # ─────────────────────────────────────────────────────────────────────
    # Tickets
    # ─────────────────────────────────────────────────────────────────────

    async def create_ticket(self, ticket: SupportTicket) -> SupportTicket:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO support_tickets
                    (id, intervention_id, priority, status, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    ticket.id,
                    ticket.intervention_id,
                    ticket.priority.value,
                    ticket.status,
                    ticket.description,
                    _iso(ticket.created_at),
                ),
            )
        return ticket

    async def list_tickets(self, intervention_id: str | None = None) -> list[SupportTicket]:
        with self._conn() as conn:
            if intervention_id is not None:
                cursor = conn.execute(
                    "SELECT * FROM support_tickets WHERE intervention_id = ? ORDER BY created_at",
                    (intervention_id,),
                )
            else:
                cursor = conn.execute("SELECT * FROM support_tickets ORDER BY created_at")
            return [
                SupportTicket(
                    id=row["id"],
                    intervention_id=row["intervention_id"],
                    priority=row["priority"],
                    status=row["status"],
                    description=row["description"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in cursor
            ]

    # ─────────────────────────────────────────────────────────────────────
    # Metric samples
    # ─────────────────────────────────────────────────────────────────────

    async def record_metric_samples(self, samples: Iterable[PerformanceMetricSample]) -> int:
        rows = [
            (s.intervention_id, s.metric_name, s.value_before, s.value_after, _iso(s.timestamp))
            for s in samples
        ]
        with self._conn() as conn:
            conn.executemany(
                """
                INSERT INTO metric_samples
                    (intervention_id, metric_name, value_before, value_after, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    async def list_metric_samples(self, intervention_id: str) -> list[PerformanceMetricSample]:
        with self._conn() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM metric_samples
                WHERE intervention_id = ?
                ORDER BY timestamp, id
                """,
                (intervention_id,),
            )
            return [
                PerformanceMetricSample(
                    intervention_id=row["intervention_id"],
                    metric_name=row["metric_name"],
                    value_before=row["value_before"],
                    value_after=row["value_after"],
                    timestamp=datetime.fromisoformat(row["timestamp"]),
                )
                for row in cursor
            ]

    # ─────────────────────────────────────────────────────────────────────
    # Intervention levels
    # ─────────────────────────────────────────────────────────────────────

    async def get_intervention_level(self, student_id: str) -> int | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT level FROM intervention_levels WHERE student_id = ?",
                (student_id,),
            ).fetchone()
        return row["level"] if row else None

    async def update_intervention_level(
        self, student_id: str, compute: Callable[[int | None], int]
    ) -> int:
        """Read-modify-write a student's level; the result is clamped to 1..5."""
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT level FROM intervention_levels WHERE student_id = ?",
                (student_id,),
            ).fetchone()
            level = max(1, min(5, int(compute(row["level"] if row else None))))
            conn.execute(
                """
                INSERT INTO intervention_levels (student_id, level, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(student_id) DO UPDATE SET
                    level = excluded.level,
                    updated_at = excluded.updated_at
                """,
                (student_id, level, _iso(datetime.now(timezone.utc))),
            )
        return level
