"""Effectiveness and scaling contracts."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from lodestar.contracts.signals import PerformanceTrend


class PerformanceMetricSample(BaseModel):
    """Before/after measurement of one metric for one intervention."""

    intervention_id: str
    metric_name: str
    value_before: float
    value_after: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}


class MetricImpact(BaseModel):
    metric_name: str
    improvement_percent: float | None = Field(
        default=None,
        description="(after-before)/before*100; None when the baseline is not positive",
    )
    absolute_change: float = 0.0
    improvement_ratio: float | None = Field(
        default=None,
        description="Improvement ratio clamped to [0, 1]",
    )
    excluded: bool = False


class EffectivenessReport(BaseModel):
    intervention_id: str | None = None
    effectiveness_score: float = Field(default=0.0, ge=0.0, le=1.0)
    impacts: dict[str, MetricImpact] = Field(default_factory=dict)
    excluded_metrics: list[str] = Field(default_factory=list)
    recommended_adjustments: list[str] = Field(default_factory=list)


class ScalingRecommendation(BaseModel):
    student_id: str | None = None
    current_level: int = Field(ge=1, le=5)
    recommended_level: int = Field(ge=1, le=5)
    trend: PerformanceTrend
    potential_index: float
    recent_effectiveness: float | None = None
    rule: str = Field(description="Name of the scaling rule that matched")
    scaling_strategy: list[str] = Field(default_factory=list)
    support_intensity: float = Field(ge=0.0, le=1.0)
