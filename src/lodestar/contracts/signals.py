"""Student signal contracts - the per-student profile the scorer reads."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class PerformanceTrend(str, Enum):
    """Qualitative direction of a student's recent performance."""

    IMPROVING = "IMPROVING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class AcademicSignals(BaseModel):
    gpa: float | None = Field(default=None, ge=0.0, description="0.0-4.0 scale")
    failed_courses: int | None = Field(default=None, ge=0)
    study_habits: str | None = None
    learning_style: str | None = None


class AttendanceSignals(BaseModel):
    total_absences: int | None = Field(default=None, ge=0)
    consecutive_absences: int | None = Field(default=None, ge=0)
    absence_patterns: str | None = None


class BehavioralSignals(BaseModel):
    disciplinary_incidents: int | None = Field(default=None, ge=0)
    behavioral_patterns: str | None = None
    peer_interactions: str | None = None


class SocialEmotionalSignals(BaseModel):
    social_engagement: float | None = Field(
        default=None, ge=0.0, le=100.0, description="Engagement score 0-100"
    )
    wellbeing_indicators: list[str] = Field(default_factory=list)


class FinancialSignals(BaseModel):
    stress_level: float | None = Field(
        default=None, ge=0.0, le=10.0, description="Self-reported stress 0-10"
    )
    scholarship_status: str | None = None
    employment_status: str | None = None


class PerformanceAnalytics(BaseModel):
    """Inputs for the adaptive scaler."""

    trend: PerformanceTrend = PerformanceTrend.STABLE
    potential_index: float = Field(default=0.5, description="Capacity for improvement 0-1")

    @field_validator("potential_index", mode="before")
    @classmethod
    def _clamp_potential(cls, value: float) -> float:
        return max(0.0, min(1.0, float(value)))


# Profile section name -> model, in the order sources are merged
PROFILE_SECTIONS: dict[str, type[BaseModel]] = {
    "academic": AcademicSignals,
    "attendance": AttendanceSignals,
    "behavioral": BehavioralSignals,
    "social_emotional": SocialEmotionalSignals,
    "financial": FinancialSignals,
    "performance": PerformanceAnalytics,
}


class StudentSignalProfile(BaseModel):
    """Everything the engine knows about one student's current situation."""

    student_id: str
    grade_level: str | None = None
    academic: AcademicSignals = Field(default_factory=AcademicSignals)
    attendance: AttendanceSignals = Field(default_factory=AttendanceSignals)
    behavioral: BehavioralSignals = Field(default_factory=BehavioralSignals)
    social_emotional: SocialEmotionalSignals = Field(default_factory=SocialEmotionalSignals)
    financial: FinancialSignals = Field(default_factory=FinancialSignals)
    performance: PerformanceAnalytics = Field(default_factory=PerformanceAnalytics)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
