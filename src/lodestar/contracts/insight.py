"""Insight collaborator contracts.

Requests are structured; results are the already-coerced shapes the engine
consumes. Coercion from raw collaborator output lives in lodestar.insight.schema.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from lodestar.contracts.intervention import Milestone
from lodestar.contracts.risk import RiskCategory, RiskLevel


class InsightKind(str, Enum):
    RISK_ANALYSIS = "risk_analysis"
    INTERVENTION_PLAN = "intervention_plan"
    EFFECTIVENESS_ANALYSIS = "effectiveness_analysis"


class InsightRequest(BaseModel):
    kind: InsightKind
    context: dict[str, Any] = Field(default_factory=dict)


class RiskAnalysisResult(BaseModel):
    levels: dict[RiskCategory, RiskLevel] = Field(
        default_factory=dict,
        description="Only the categories the collaborator answered validly",
    )
    malformed: list[str] = Field(
        default_factory=list,
        description="Category keys present but unusable",
    )
    analysis: str = ""


class InterventionPlanResult(BaseModel):
    strategic_objectives: list[str] = Field(default_factory=list)
    action_steps: list[str] = Field(default_factory=list)
    support_mechanisms: list[str] = Field(default_factory=list)
    expected_outcomes: list[str] = Field(default_factory=list)
    description: str = ""
    expected_duration_weeks: int = 12


class EffectivenessAnalysisResult(BaseModel):
    progress_percentage: float = 0.0
    effectiveness_score: float = 0.0
    current_phase: str = ""
    milestones: list[Milestone] = Field(default_factory=list)
    analysis: str = ""
