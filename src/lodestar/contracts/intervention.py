"""Intervention contracts - plans, lifecycle status, progress, and tickets."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from lodestar.contracts.risk import RiskCategory, RiskLevel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InterventionStatus(str, Enum):
    """Lifecycle status of an intervention.

    ACTIVE -> IN_PROGRESS -> {SUCCESSFUL | NEEDS_ADJUSTMENT | CRITICAL_REVIEW}
    NEEDS_ADJUSTMENT loops back into tracking; SUCCESSFUL and
    CRITICAL_REVIEW are terminal.
    """

    ACTIVE = "ACTIVE"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESSFUL = "SUCCESSFUL"
    NEEDS_ADJUSTMENT = "NEEDS_ADJUSTMENT"
    CRITICAL_REVIEW = "CRITICAL_REVIEW"

    @property
    def is_terminal(self) -> bool:
        return self in (InterventionStatus.SUCCESSFUL, InterventionStatus.CRITICAL_REVIEW)

    @property
    def is_open(self) -> bool:
        return not self.is_terminal


OPEN_STATUSES: tuple[InterventionStatus, ...] = tuple(s for s in InterventionStatus if s.is_open)


class InterventionType(str, Enum):
    ACADEMIC_SUPPORT = "ACADEMIC_SUPPORT"
    EMOTIONAL_SUPPORT = "EMOTIONAL_SUPPORT"
    SKILL_DEVELOPMENT = "SKILL_DEVELOPMENT"
    CAREER_GUIDANCE = "CAREER_GUIDANCE"
    ATTENDANCE_SUPPORT = "ATTENDANCE_SUPPORT"
    BEHAVIORAL_SUPPORT = "BEHAVIORAL_SUPPORT"
    FINANCIAL_AID = "FINANCIAL_AID"
    SOCIAL_INTEGRATION = "SOCIAL_INTEGRATION"


# Declared one-to-one mapping between risk categories and intervention types
CATEGORY_INTERVENTION_TYPES: dict[RiskCategory, InterventionType] = {
    RiskCategory.ACADEMIC: InterventionType.ACADEMIC_SUPPORT,
    RiskCategory.EMOTIONAL: InterventionType.EMOTIONAL_SUPPORT,
    RiskCategory.SKILL_DEVELOPMENT: InterventionType.SKILL_DEVELOPMENT,
    RiskCategory.CAREER_PREPARATION: InterventionType.CAREER_GUIDANCE,
    RiskCategory.ATTENDANCE: InterventionType.ATTENDANCE_SUPPORT,
    RiskCategory.BEHAVIORAL: InterventionType.BEHAVIORAL_SUPPORT,
    RiskCategory.FINANCIAL: InterventionType.FINANCIAL_AID,
    RiskCategory.SOCIAL_EMOTIONAL: InterventionType.SOCIAL_INTEGRATION,
}

INTERVENTION_TYPE_CATEGORIES: dict[InterventionType, RiskCategory] = {
    t: c for c, t in CATEGORY_INTERVENTION_TYPES.items()
}


class Milestone(BaseModel):
    name: str
    completed: bool = False
    completed_at: datetime | None = None


class ProgressSnapshot(BaseModel):
    """One point-in-time measurement of an intervention's advancement.

    Out-of-range inputs are clamped, never rejected.
    """

    intervention_id: str
    timestamp: datetime = Field(default_factory=_now)
    progress_percentage: float = Field(default=0.0, description="0-100")
    effectiveness_score: float = Field(default=0.0, description="0-1")
    current_phase: str = ""
    milestones: list[Milestone] = Field(default_factory=list)
    status: InterventionStatus = InterventionStatus.IN_PROGRESS
    analysis: str = ""

    model_config = {"frozen": True}

    @field_validator("progress_percentage", mode="before")
    @classmethod
    def _clamp_progress(cls, value: float) -> float:
        return _clamp(value, 0.0, 100.0)

    @field_validator("effectiveness_score", mode="before")
    @classmethod
    def _clamp_effectiveness(cls, value: float) -> float:
        return _clamp(value, 0.0, 1.0)


def _clamp(value, low: float, high: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return low
    if number != number:  # NaN
        return low
    return max(low, min(high, number))


class Intervention(BaseModel):
    """A tracked remediation plan for one student and one risk category."""

    id: str = Field(default_factory=lambda: f"iv_{uuid.uuid4().hex[:12]}")
    student_id: str
    category: RiskCategory
    intervention_type: InterventionType
    risk_level_at_creation: RiskLevel
    strategic_objectives: list[str] = Field(default_factory=list)
    action_steps: list[str] = Field(default_factory=list)
    support_mechanisms: list[str] = Field(default_factory=list)
    expected_outcomes: list[str] = Field(default_factory=list)
    description: str = ""
    expected_duration_weeks: int = 12
    assigned_role: str = "unassigned"
    intensity_level: int = Field(default=3, ge=1, le=5)
    status: InterventionStatus = InterventionStatus.ACTIVE
    escalation_pending: bool = Field(
        default=False,
        description="Reached CRITICAL_REVIEW but the ticket is not recorded yet",
    )
    progress_history: list[ProgressSnapshot] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    version: int = Field(default=0, description="Bumped on every committed update")

    @property
    def latest_snapshot(self) -> ProgressSnapshot | None:
        return self.progress_history[-1] if self.progress_history else None

    @property
    def effectiveness_score(self) -> float | None:
        snapshot = self.latest_snapshot
        return snapshot.effectiveness_score if snapshot else None

    @property
    def progress_percentage(self) -> float:
        snapshot = self.latest_snapshot
        return snapshot.progress_percentage if snapshot else 0.0


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SupportTicket(BaseModel):
    """Escalation work item raised when an intervention needs urgent review."""

    id: str = Field(default_factory=lambda: f"tk_{uuid.uuid4().hex[:12]}")
    intervention_id: str
    priority: TicketPriority = TicketPriority.HIGH
    status: str = "URGENT_REVIEW"
    description: str = ""
    created_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}
