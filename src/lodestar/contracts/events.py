"""Engine audit events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    """All event kinds the engine records.

    Organized by component for clarity.
    """

    # ─────────────────────────────────────────────────────────────────────
    # Assessment
    # ─────────────────────────────────────────────────────────────────────
    SIGNALS_COLLECTED = "signals_collected"
    RISK_ASSESSED = "risk_assessed"

    # ─────────────────────────────────────────────────────────────────────
    # Planning
    # ─────────────────────────────────────────────────────────────────────
    INTERVENTION_CREATED = "intervention_created"
    INTERVENTION_SKIPPED = "intervention_skipped"
    PLAN_FAILED = "plan_failed"

    # ─────────────────────────────────────────────────────────────────────
    # Tracking + Scaling
    # ─────────────────────────────────────────────────────────────────────
    PROGRESS_TRACKED = "progress_tracked"
    STATUS_CHANGED = "status_changed"
    ESCALATION_CREATED = "escalation_created"
    LEVEL_SCALED = "level_scaled"

    # ─────────────────────────────────────────────────────────────────────
    # Sweep + Daemon
    # ─────────────────────────────────────────────────────────────────────
    SWEEP_STARTED = "sweep_started"
    SWEEP_COMPLETED = "sweep_completed"
    STUDENT_FAILED = "student_failed"
    DAEMON_TICK = "daemon_tick"

    ERROR = "error"


class EngineEvent(BaseModel):
    """Immutable audit event.

    - stream_id: student id, or "sweep"/"daemon" for batch events
    - seq: monotonically increasing within a stream for one writer
    - ts_monotonic: time.monotonic() for duration calculations
    - ts_wall: wall clock time for display
    """

    stream_id: str = Field(description="Student id or batch stream name")
    seq: int = Field(ge=0, description="Sequence number within stream")
    ts_monotonic: float = Field(description="time.monotonic() timestamp")
    ts_wall: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Wall clock timestamp",
    )
    kind: EventKind
    payload: dict[str, Any] = Field(default_factory=dict)
    schema_version: int = Field(default=1, description="Schema version for migrations")

    model_config = {"frozen": True}


# ─────────────────────────────────────────────────────────────────────────────
# Payload reference (documentation only)
# ─────────────────────────────────────────────────────────────────────────────

"""
RISK_ASSESSED:
    assessment_id: str
    overall: str
    trigger_set: list[str]
    low_confidence: list[str]

INTERVENTION_CREATED:
    intervention_id: str
    category: str
    risk_level: str

INTERVENTION_SKIPPED / PLAN_FAILED:
    category: str
    reason: str

STATUS_CHANGED:
    intervention_id: str
    from: str
    to: str

ESCALATION_CREATED:
    intervention_id: str
    ticket_id: str

LEVEL_SCALED:
    from: int
    to: int
    rule: str

SWEEP_COMPLETED:
    succeeded: int
    failed: int
    cancelled: bool
    total_time_ms: int
"""
