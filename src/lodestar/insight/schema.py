"""
Insight Result Coercion

The insight collaborator is asked for JSON under a declared schema, but model
output drifts: camelCase keys, levels as numbers, lists as newline strings,
percentages outside their range. Every function here takes whatever dict came
back and returns a well-formed result model, substituting defaults instead of
raising.
"""

import logging
import math
from typing import Any

from lodestar.contracts.insight import (
    EffectivenessAnalysisResult,
    InterventionPlanResult,
    RiskAnalysisResult,
)
from lodestar.contracts.intervention import Milestone
from lodestar.contracts.risk import RiskCategory, RiskLevel

logger = logging.getLogger(__name__)

DEFAULT_DURATION_WEEKS = 12

PLAN_FIELDS = {
    "strategic_objectives": ("strategic_objectives", "strategicObjectives", "objectives"),
    "action_steps": ("action_steps", "actionSteps", "steps"),
    "support_mechanisms": ("support_mechanisms", "supportMechanisms", "supports"),
    "expected_outcomes": ("expected_outcomes", "expectedOutcomes", "outcomes"),
}


def _pick(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _coerce_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        lines = [line.strip(" -*•\t") for line in value.splitlines()]
        return [line for line in lines if line]
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, dict):
                item = _pick(item, "text", "name", "description", "title")
            if item is None:
                continue
            text = str(item).strip()
            if text:
                items.append(text)
        return items
    return []


def _coerce_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def _level_key(key: str) -> str:
    for suffix in ("RiskLevel", "_risk_level", "Level", "_level"):
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)]
    return key


def coerce_risk_analysis(data: dict[str, Any] | None) -> RiskAnalysisResult:
    """Coerce a risk analysis reply.

    Accepts {"levels": {"academic": "HIGH", ...}} or flat keys such as
    "academicRiskLevel". Categories with unusable values are reported in
    ``malformed``; categories that are simply absent are not.
    """
    if not isinstance(data, dict):
        return RiskAnalysisResult()

    raw_levels = data.get("levels")
    if not isinstance(raw_levels, dict):
        raw_levels = {
            key: value for key, value in data.items() if key not in ("analysis", "rationale")
        }

    levels: dict[RiskCategory, RiskLevel] = {}
    malformed: list[str] = []

    for key, value in raw_levels.items():
        category = RiskCategory.parse(_level_key(str(key)))
        if category is None:
            continue
        level = RiskLevel.parse(value)
        if level is None:
            logger.debug(f"Malformed risk level for {category.value}: {value!r}")
            malformed.append(category.value)
            continue
        levels[category] = level

    analysis = _pick(data, "analysis", "rationale")
    return RiskAnalysisResult(
        levels=levels,
        malformed=malformed,
        analysis=str(analysis) if analysis is not None else "",
    )


def coerce_plan(data: dict[str, Any] | None) -> InterventionPlanResult:
    """Coerce an intervention plan reply. Missing lists become empty lists."""
    if not isinstance(data, dict):
        return InterventionPlanResult()

    fields = {name: _coerce_str_list(_pick(data, *keys)) for name, keys in PLAN_FIELDS.items()}

    duration = _coerce_float(
        _pick(data, "expected_duration_weeks", "expectedDurationWeeks", "expectedDuration"),
        default=DEFAULT_DURATION_WEEKS,
    )
    weeks = int(duration) if duration >= 1 else DEFAULT_DURATION_WEEKS

    description = _pick(data, "description", "summary")
    return InterventionPlanResult(
        **fields,
        description=str(description).strip() if description is not None else "",
        expected_duration_weeks=weeks,
    )


def _coerce_milestones(value: Any) -> list[Milestone]:
    if not isinstance(value, list):
        return []
    milestones = []
    for item in value:
        if isinstance(item, str) and item.strip():
            milestones.append(Milestone(name=item.strip()))
        elif isinstance(item, dict) and _pick(item, "name", "title"):
            milestones.append(
                Milestone(
                    name=str(_pick(item, "name", "title")),
                    completed=bool(item.get("completed", False)),
                )
            )
    return milestones


def coerce_effectiveness(data: dict[str, Any] | None) -> EffectivenessAnalysisResult:
    """Coerce an effectiveness analysis reply.

    Numbers are clamped into range. Any status recommendation the model gave
    is folded into ``analysis`` so the tracker classifies one piece of text.
    """
    if not isinstance(data, dict):
        return EffectivenessAnalysisResult()

    progress = _coerce_float(_pick(data, "progress_percentage", "progressPercentage", "progress"))
    score = _coerce_float(
        _pick(data, "effectiveness_score", "effectivenessScore", "effectiveness")
    )
    # Scores reported on a 0-100 scale
    if score > 1.0:
        score = score / 100.0

    parts = []
    status_keys = ("status_recommendation", "statusRecommendation", "status", "recommendation")
    for key in ("analysis", *status_keys):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())

    phase = _pick(data, "current_phase", "currentPhase", "phase")
    return EffectivenessAnalysisResult(
        progress_percentage=max(0.0, min(100.0, progress)),
        effectiveness_score=max(0.0, min(1.0, score)),
        current_phase=str(phase) if phase is not None else "",
        milestones=_coerce_milestones(data.get("milestones")),
        analysis="\n".join(parts),
    )
