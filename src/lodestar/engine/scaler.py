"""
Adaptive Scaler

Recommends the next intervention intensity level (1..5). Rules, first match
wins:

    1. DECLINING and potential < 0.4        -> level + 2
    2. STABLE and recent effectiveness < 0.5 -> level + 1
    3. IMPROVING and potential > 0.7        -> level - 1
    4. otherwise                            -> unchanged

Recent effectiveness is the mean latest effectiveness score of the student's
most recent tracked interventions. With no tracked history it is undefined
and rule 2 cannot fire.
"""

import logging

from lodestar.catalog import Catalog
from lodestar.contracts import (
    EventKind,
    Intervention,
    PerformanceTrend,
    ScalingRecommendation,
)
from lodestar.engine.audit import record
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)

MIN_LEVEL = 1
MAX_LEVEL = 5


def clamp_level(level: int) -> int:
    return max(MIN_LEVEL, min(MAX_LEVEL, int(level)))


def recommend_level(
    current_level: int,
    trend: PerformanceTrend,
    potential_index: float,
    recent_effectiveness: float | None,
) -> tuple[int, str]:
    """Apply the scaling rules.

    Returns:
        (recommended level in 1..5, name of the rule that matched)
    """
    level = clamp_level(current_level)

    if trend == PerformanceTrend.DECLINING and potential_index < 0.4:
        return clamp_level(level + 2), "declining_low_potential"
    if (
        trend == PerformanceTrend.STABLE
        and recent_effectiveness is not None
        and recent_effectiveness < 0.5
    ):
        return clamp_level(level + 1), "stable_low_effectiveness"
    if trend == PerformanceTrend.IMPROVING and potential_index > 0.7:
        return clamp_level(level - 1), "improving_high_potential"
    return level, "unchanged"


def support_intensity(level: int) -> float:
    return clamp_level(level) / MAX_LEVEL


class AdaptiveScaler:
    def __init__(
        self,
        repository: Repository,
        catalog: Catalog,
        default_level: int = 3,
        window: int = 3,
        event_log: EventLogWriter | None = None,
    ):
        self.repository = repository
        self.catalog = catalog
        self.default_level = clamp_level(default_level)
        self.window = window
        self.event_log = event_log

    def recent_effectiveness(self, interventions: list[Intervention]) -> float | None:
        """Mean effectiveness of the newest `window` tracked interventions.

        Args:
            interventions: The student's interventions, newest first
        """
        scores = [
            iv.effectiveness_score for iv in interventions if iv.effectiveness_score is not None
        ][: self.window]
        if not scores:
            return None
        return sum(scores) / len(scores)

    def recommend(
        self,
        current_level: int,
        trend: PerformanceTrend,
        potential_index: float,
        recent_effectiveness: float | None,
        student_id: str | None = None,
    ) -> ScalingRecommendation:
        level, rule = recommend_level(current_level, trend, potential_index, recent_effectiveness)
        return ScalingRecommendation(
            student_id=student_id,
            current_level=clamp_level(current_level),
            recommended_level=level,
            trend=trend,
            potential_index=potential_index,
            recent_effectiveness=recent_effectiveness,
            rule=rule,
            scaling_strategy=self.catalog.strategy_for(level),
            support_intensity=support_intensity(level),
        )

    async def current_level(self, student_id: str) -> int:
        level = await self.repository.get_intervention_level(student_id)
        return clamp_level(level) if level is not None else self.default_level

    async def scale(
        self,
        student_id: str,
        trend: PerformanceTrend | None = None,
        potential_index: float | None = None,
    ) -> ScalingRecommendation:
        """Recommend and store the student's next intervention level.

        Trend and potential default to the student's stored performance
        analytics. The level is read and written in one transaction.
        """
        if trend is None or potential_index is None:
            profile = await self.repository.get_profile(student_id)
            if profile is not None:
                trend = trend or profile.performance.trend
                if potential_index is None:
                    potential_index = profile.performance.potential_index
        trend = trend or PerformanceTrend.STABLE
        potential_index = 0.5 if potential_index is None else max(0.0, min(1.0, potential_index))

        interventions = await self.repository.list_interventions(student_id=student_id)
        recent = self.recent_effectiveness(interventions)

        result: dict[str, ScalingRecommendation] = {}

        def compute(stored: int | None) -> int:
            current = clamp_level(stored) if stored is not None else self.default_level
            result["recommendation"] = self.recommend(
                current, trend, potential_index, recent, student_id=student_id
            )
            return result["recommendation"].recommended_level

        await self.repository.update_intervention_level(student_id, compute)
        recommendation = result["recommendation"]

        if recommendation.recommended_level != recommendation.current_level:
            logger.info(
                f"{student_id}: intervention level {recommendation.current_level} -> "
                f"{recommendation.recommended_level} ({recommendation.rule})"
            )
            record(
                self.event_log,
                student_id,
                EventKind.LEVEL_SCALED,
                {
                    "from": recommendation.current_level,
                    "to": recommendation.recommended_level,
                    "rule": recommendation.rule,
                },
            )
        return recommendation
