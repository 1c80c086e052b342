"""Intervention outcome analysis."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from lodestar.analytics.trends import window_start
from lodestar.contracts import Intervention, RiskCategory, RiskLevel
from lodestar.store.repository import Repository

TOP_N = 5

# Latest progress percentage thresholds (exclusive)
SUCCESSFUL_ABOVE = 80.0
PARTIAL_ABOVE = 50.0


def outcome_of(progress_percentage: float) -> str:
    if progress_percentage > SUCCESSFUL_ABOVE:
        return "SUCCESSFUL"
    if progress_percentage > PARTIAL_ABOVE:
        return "PARTIALLY_SUCCESSFUL"
    return "UNSUCCESSFUL"


def risk_improvement_percentage(initial: RiskLevel, current: RiskLevel) -> float:
    """How far risk fell between two levels, as a share of the scale; never negative."""
    return max(0.0, (int(initial) - int(current)) / 4 * 100)


@dataclass
class OutcomeReport:
    since: datetime
    total_interventions: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    category_progress: dict[RiskCategory, float] = field(default_factory=dict)
    top_interventions: list[Intervention] = field(default_factory=list)
    mean_risk_improvement: float | None = None


class OutcomeAnalyzer:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def analyze(self, months: int = 12, now: datetime | None = None) -> OutcomeReport:
        """Summarise interventions created in the last `months` months."""
        since = window_start(months, now)
        interventions = await self.repository.list_interventions(since=since)

        report = OutcomeReport(since=since, total_interventions=len(interventions))
        counts = Counter(outcome_of(iv.progress_percentage) for iv in interventions)
        report.outcomes = {
            name: counts.get(name, 0)
            for name in ("SUCCESSFUL", "PARTIALLY_SUCCESSFUL", "UNSUCCESSFUL")
        }

        by_category: dict[RiskCategory, list[float]] = {}
        for iv in interventions:
            by_category.setdefault(iv.category, []).append(iv.progress_percentage)
        report.category_progress = {
            category: sum(values) / len(values)
            for category, values in sorted(by_category.items(), key=lambda kv: kv[0].value)
        }

        report.top_interventions = sorted(
            interventions, key=lambda iv: iv.progress_percentage, reverse=True
        )[:TOP_N]

        improvements = []
        latest_cache = {}
        for iv in interventions:
            if iv.student_id not in latest_cache:
                latest_cache[iv.student_id] = await self.repository.latest_assessment(
                    iv.student_id
                )
            latest = latest_cache[iv.student_id]
            if latest is None or latest.created_at <= iv.created_at:
                continue
            current = latest.level_for(iv.category)
            if current is not None:
                improvements.append(
                    risk_improvement_percentage(iv.risk_level_at_creation, current)
                )
        if improvements:
            report.mean_risk_improvement = sum(improvements) / len(improvements)

        return report
