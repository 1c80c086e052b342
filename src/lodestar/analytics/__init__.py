"""Analytics over the assessment log and intervention history."""

from lodestar.analytics.outcomes import (
    OutcomeAnalyzer,
    OutcomeReport,
    outcome_of,
    risk_improvement_percentage,
)
from lodestar.analytics.trends import CategoryTrend, RiskTrendAnalyzer, RiskTrendReport

__all__ = [
    "CategoryTrend",
    "OutcomeAnalyzer",
    "OutcomeReport",
    "RiskTrendAnalyzer",
    "RiskTrendReport",
    "outcome_of",
    "risk_improvement_percentage",
]
