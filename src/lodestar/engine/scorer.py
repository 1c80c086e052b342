"""
Risk Scorer

Converts a student profile plus the insight collaborator's risk analysis into
one RiskLevel per requested category. Categories the analysis does not
answer validly default to MODERATE and are flagged low-confidence; the scorer
never raises on collaborator failure.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from lodestar.contracts import (
    InsightKind,
    InsightRequest,
    RiskAnalysisResult,
    RiskCategory,
    RiskLevel,
    StudentSignalProfile,
)
from lodestar.engine.early_warning import EarlyWarningFinding
from lodestar.engine.signals import SignalAggregator
from lodestar.insight.client import InsightClient
from lodestar.insight.schema import coerce_risk_analysis

logger = logging.getLogger(__name__)

DEFAULT_LEVEL = RiskLevel.MODERATE


@dataclass
class ScoreResult:
    levels: dict[RiskCategory, RiskLevel] = field(default_factory=dict)
    low_confidence: list[RiskCategory] = field(default_factory=list)
    analysis: str = ""


def score_result(
    categories: list[RiskCategory], result: RiskAnalysisResult | None
) -> ScoreResult:
    """Map an analysis result onto the requested categories.

    Missing or malformed categories get DEFAULT_LEVEL and are marked
    low-confidence. Extra categories in the result are ignored.
    """
    scored = ScoreResult(analysis=result.analysis if result else "")
    for category in categories:
        level = result.levels.get(category) if result else None
        if level is None:
            scored.levels[category] = DEFAULT_LEVEL
            scored.low_confidence.append(category)
        else:
            scored.levels[category] = level
    return scored


class RiskScorer:
    """Scores risk categories with one RISK_ANALYSIS request per student."""

    def __init__(self, insight: InsightClient, timeout_ms: int = 30000):
        self.insight = insight
        self.timeout_ms = timeout_ms

    def build_request(
        self,
        profile: StudentSignalProfile,
        categories: list[RiskCategory],
        early_warnings: list[EarlyWarningFinding] | None = None,
    ) -> InsightRequest:
        return InsightRequest(
            kind=InsightKind.RISK_ANALYSIS,
            context={
                "student_id": profile.student_id,
                "grade_level": profile.grade_level,
                "categories": {
                    category.value: SignalAggregator.category_context(profile, category)
                    for category in categories
                },
                "early_warnings": [
                    f"{finding.category.value}: {finding.detail}"
                    for finding in early_warnings or []
                ],
            },
        )

    async def score(
        self,
        profile: StudentSignalProfile,
        categories: list[RiskCategory],
        early_warnings: list[EarlyWarningFinding] | None = None,
    ) -> ScoreResult:
        """Score every requested category.

        Returns:
            ScoreResult with exactly one level per requested category
        """
        if not categories:
            return ScoreResult()

        request = self.build_request(profile, categories, early_warnings)
        result: RiskAnalysisResult | None = None
        try:
            raw = await asyncio.wait_for(
                self.insight.generate(request),
                timeout=self.timeout_ms / 1000,
            )
            result = coerce_risk_analysis(raw)
        except asyncio.TimeoutError:
            logger.warning(f"Risk analysis timed out for {profile.student_id}")
        except Exception as e:
            logger.warning(f"Risk analysis failed for {profile.student_id}: {e}")

        scored = score_result(categories, result)
        if scored.low_confidence:
            logger.debug(
                f"{profile.student_id}: defaulted to {DEFAULT_LEVEL.name} for "
                f"{[c.value for c in scored.low_confidence]}"
            )
        return scored
