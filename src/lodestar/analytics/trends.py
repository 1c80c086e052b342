"""Risk trend analysis over the append-only assessment log."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from lodestar.contracts import RiskCategory, RiskLevel
from lodestar.store.repository import Repository

DAYS_PER_MONTH = 30


def window_start(months: int, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=DAYS_PER_MONTH * months)


@dataclass
class CategoryTrend:
    count: int = 0
    mean_level: float = 0.0
    distribution: dict[str, int] = field(default_factory=dict)


@dataclass
class RiskTrendReport:
    since: datetime
    total_assessments: int = 0
    students: int = 0
    overall_distribution: dict[str, int] = field(default_factory=dict)
    categories: dict[RiskCategory, CategoryTrend] = field(default_factory=dict)
    confident_scores: int = 0
    low_confidence_scores: int = 0


def _distribution(levels: list[RiskLevel]) -> dict[str, int]:
    counts = Counter(levels)
    return {level.name: counts.get(level, 0) for level in RiskLevel}


class RiskTrendAnalyzer:
    def __init__(self, repository: Repository):
        self.repository = repository

    async def analyze(self, months: int = 12, now: datetime | None = None) -> RiskTrendReport:
        """Summarise assessments created in the last `months` months."""
        since = window_start(months, now)
        assessments = await self.repository.list_assessments(since=since)

        report = RiskTrendReport(since=since, total_assessments=len(assessments))
        report.students = len({a.student_id for a in assessments})
        report.overall_distribution = _distribution([a.overall_risk_level for a in assessments])

        per_category: dict[RiskCategory, list[RiskLevel]] = {}
        for assessment in assessments:
            for category, level in assessment.levels.items():
                per_category.setdefault(category, []).append(level)
                if assessment.is_confident(category):
                    report.confident_scores += 1
                else:
                    report.low_confidence_scores += 1

        for category in RiskCategory:
            levels = per_category.get(category)
            if not levels:
                continue
            report.categories[category] = CategoryTrend(
                count=len(levels),
                mean_level=sum(int(level) for level in levels) / len(levels),
                distribution=_distribution(levels),
            )
        return report
