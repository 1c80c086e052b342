"""Insight collaborator - requests, prompts, parsing, and result coercion."""

from lodestar.insight.client import InsightClient, InsightUnavailableError, LLMInsightClient
from lodestar.insight.parsing import FreeTextParser, extract_json, repair_json
from lodestar.insight.prompts import PromptLoader
from lodestar.insight.schema import coerce_effectiveness, coerce_plan, coerce_risk_analysis

__all__ = [
    "FreeTextParser",
    "InsightClient",
    "InsightUnavailableError",
    "LLMInsightClient",
    "PromptLoader",
    "coerce_effectiveness",
    "coerce_plan",
    "coerce_risk_analysis",
    "extract_json",
    "repair_json",
]
