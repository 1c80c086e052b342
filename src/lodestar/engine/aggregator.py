"""
Risk Aggregator

Reduces per-category levels to one overall level and the trigger set.

The overall level is the maximum present. When several categories share it,
the attributed category is the first in CATEGORY_PRIORITY_ORDER, so repeated
runs over the same map always attribute the same category regardless of dict
ordering.
"""

import logging
from dataclasses import dataclass, field

from lodestar.contracts import (
    CATEGORY_PRIORITY_ORDER,
    RiskAssessment,
    RiskCategory,
    RiskLevel,
    category_rank,
)

logger = logging.getLogger(__name__)


def priority_key(category: RiskCategory, level: RiskLevel) -> tuple[int, int]:
    """Sort key: highest level first, then fixed category order."""
    return (-int(level), category_rank(category))


@dataclass
class Aggregate:
    overall_risk_level: RiskLevel = RiskLevel.LOW
    overall_category: RiskCategory | None = None
    trigger_set: list[RiskCategory] = field(default_factory=list)


def parse_thresholds(raw: dict[str, str]) -> dict[RiskCategory, RiskLevel]:
    """Parse a {category: level name} config map.

    Raises:
        ValueError: On an unknown category or level
    """
    thresholds = {}
    for name, level_name in raw.items():
        category = RiskCategory.parse(name)
        level = RiskLevel.parse(level_name)
        if category is None or level is None:
            raise ValueError(f"Invalid risk trigger threshold {name}={level_name!r}")
        thresholds[category] = level
    return thresholds


class RiskAggregator:
    """Overall level, attribution, and trigger set for a level map."""

    def __init__(self, thresholds: dict[RiskCategory, RiskLevel]):
        self.thresholds = thresholds

    @classmethod
    def from_config(cls, config) -> "RiskAggregator":
        return cls(parse_thresholds(config.RISK_TRIGGER_THRESHOLDS))

    def reduce(self, levels: dict[RiskCategory, RiskLevel]) -> Aggregate:
        if not levels:
            return Aggregate()

        overall_category = min(levels, key=lambda c: priority_key(c, levels[c]))
        trigger_set = [
            category
            for category in CATEGORY_PRIORITY_ORDER
            if category in levels
            and category in self.thresholds
            and levels[category] >= self.thresholds[category]
        ]
        return Aggregate(
            overall_risk_level=levels[overall_category],
            overall_category=overall_category,
            trigger_set=trigger_set,
        )

    def aggregate(
        self,
        student_id: str,
        levels: dict[RiskCategory, RiskLevel],
        low_confidence: list[RiskCategory] | None = None,
        trigger_details: list[str] | None = None,
        rationale: str = "",
    ) -> RiskAssessment:
        """Build the immutable assessment record for one scoring cycle."""
        reduced = self.reduce(levels)
        assessment = RiskAssessment(
            student_id=student_id,
            levels=dict(levels),
            overall_risk_level=reduced.overall_risk_level,
            overall_category=reduced.overall_category,
            trigger_set=reduced.trigger_set,
            low_confidence=list(low_confidence or []),
            trigger_details=list(trigger_details or []),
            rationale=rationale,
        )
        logger.info(
            f"{student_id}: overall {assessment.overall_risk_level.name}"
            + (f" ({assessment.overall_category.value})" if assessment.overall_category else "")
            + f", triggered {[c.value for c in assessment.trigger_set]}"
        )
        return assessment
