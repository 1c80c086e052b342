"""Lodestar contracts - typed schemas shared by every engine component."""

from lodestar.contracts.events import EngineEvent, EventKind
from lodestar.contracts.risk import (
    CATEGORY_PRIORITY_ORDER,
    RiskAssessment,
    RiskCategory,
    RiskLevel,
    category_rank,
)
from lodestar.contracts.signals import (
    AcademicSignals,
    AttendanceSignals,
    BehavioralSignals,
    FinancialSignals,
    PerformanceAnalytics,
    PerformanceTrend,
    SocialEmotionalSignals,
    StudentSignalProfile,
)
from lodestar.contracts.intervention import (
    CATEGORY_INTERVENTION_TYPES,
    INTERVENTION_TYPE_CATEGORIES,
    OPEN_STATUSES,
    Intervention,
    InterventionStatus,
    InterventionType,
    Milestone,
    ProgressSnapshot,
    SupportTicket,
    TicketPriority,
)
from lodestar.contracts.effectiveness import (
    EffectivenessReport,
    MetricImpact,
    PerformanceMetricSample,
    ScalingRecommendation,
)
from lodestar.contracts.insight import (
    EffectivenessAnalysisResult,
    InsightKind,
    InsightRequest,
    InterventionPlanResult,
    RiskAnalysisResult,
)

__all__ = [
    # Events
    "EngineEvent",
    "EventKind",
    # Risk
    "CATEGORY_PRIORITY_ORDER",
    "RiskAssessment",
    "RiskCategory",
    "RiskLevel",
    "category_rank",
    # Signals
    "AcademicSignals",
    "AttendanceSignals",
    "BehavioralSignals",
    "FinancialSignals",
    "PerformanceAnalytics",
    "PerformanceTrend",
    "SocialEmotionalSignals",
    "StudentSignalProfile",
    # Interventions
    "CATEGORY_INTERVENTION_TYPES",
    "INTERVENTION_TYPE_CATEGORIES",
    "OPEN_STATUSES",
    "Intervention",
    "InterventionStatus",
    "InterventionType",
    "Milestone",
    "ProgressSnapshot",
    "SupportTicket",
    "TicketPriority",
    # Effectiveness
    "EffectivenessReport",
    "MetricImpact",
    "PerformanceMetricSample",
    "ScalingRecommendation",
    # Insight
    "EffectivenessAnalysisResult",
    "InsightKind",
    "InsightRequest",
    "InterventionPlanResult",
    "RiskAnalysisResult",
]
