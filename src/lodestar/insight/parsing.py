"""
Insight output parsing

Turns raw model text into a dict. Structured JSON is the contract; the
heading-based FreeTextParser exists only as a fallback for prose replies and
produces the same dict shape, so nothing downstream depends on its heuristics.
"""

import json
import logging
import re
from typing import Any

from lodestar.contracts.insight import InsightKind
from lodestar.contracts.risk import RiskCategory

logger = logging.getLogger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    content = text.strip()
    if "```json" in content:
        content = content.split("```json", 1)[1].split("```", 1)[0].strip()
    elif content.count("```") >= 2:
        content = content.split("```", 2)[1].strip()
    return content


def repair_json(text: str) -> str:
    """Attempt to repair malformed JSON from LLM output.

    Common issues:
    - Trailing commas
    - Missing closing braces/brackets
    - Unterminated strings
    """
    # Remove trailing commas before } or ]
    text = re.sub(r",\s*([}\]])", r"\1", text)

    text = text.rstrip()

    # Close an unterminated string value first
    quote_count = len(re.findall(r'(?<!\\)"', text))
    if quote_count % 2 == 1 and re.search(r'"[^"]*":\s*"[^"]*$', text):
        text += '"'

    open_braces = text.count("{") - text.count("}")
    open_brackets = text.count("[") - text.count("]")
    if open_brackets > 0:
        text += "]" * open_brackets
    if open_braces > 0:
        text += "}" * open_braces

    return text


def extract_json(text: str) -> dict[str, Any] | None:
    """Extract a JSON object from model output.

    Returns None when no object can be recovered.
    """
    if not text or not text.strip():
        return None

    content = strip_code_fences(text)

    candidates = [content]
    start = content.find("{")
    end = content.rfind("}")
    if start != -1:
        candidates.append(content[start : end + 1] if end > start else content[start:])

    for candidate in candidates:
        for attempt in (candidate, repair_json(candidate)):
            try:
                data = json.loads(attempt)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                return data

    return None


_BULLET = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


def _heading_pattern(label: str) -> str:
    return r"[\s-]*".join(re.escape(word) for word in label.split())


class FreeTextParser:
    """Heading-based extraction from prose ("Strategic Objectives: ...")."""

    PLAN_HEADINGS = {
        "strategic_objectives": "Strategic Objectives",
        "action_steps": "Action Steps",
        "support_mechanisms": "Support Mechanisms",
        "expected_outcomes": "Expected Outcomes",
    }

    NEXT_HEADING = r"(?=\n\s*[A-Z][A-Za-z ]{2,40}:|\Z)"

    def parse(self, kind: InsightKind, text: str) -> dict[str, Any]:
        if kind == InsightKind.RISK_ANALYSIS:
            return {"levels": self.extract_risk_levels(text), "analysis": text}

        if kind == InsightKind.INTERVENTION_PLAN:
            return {
                field: self.extract_list(text, heading)
                for field, heading in self.PLAN_HEADINGS.items()
            }

        return {
            "progress_percentage": self.extract_number(text, "Progress Percentage"),
            "effectiveness_score": self.extract_number(text, "Effectiveness Score"),
            "analysis": text,
        }

    def extract_list(self, text: str, heading: str) -> list[str]:
        match = re.search(
            rf"{_heading_pattern(heading)}\s*:\s*(.+?){self.NEXT_HEADING}",
            text,
            re.IGNORECASE | re.DOTALL,
        )
        if not match:
            return []
        items = []
        for line in match.group(1).split("\n"):
            item = _BULLET.sub("", line).strip()
            if item:
                items.append(item)
        return items

    def extract_number(self, text: str, label: str) -> float | None:
        match = re.search(
            rf"{_heading_pattern(label)}\s*:\s*(\d+(?:\.\d+)?)",
            text,
            re.IGNORECASE,
        )
        return float(match.group(1)) if match else None

    def extract_risk_levels(self, text: str) -> dict[str, str]:
        levels = {}
        remaining = text
        # Longest labels first so "Social Emotional" is consumed before "Emotional"
        for category in sorted(RiskCategory, key=lambda c: len(c.label), reverse=True):
            match = re.search(
                rf"{_heading_pattern(category.label)}\s*Risk\s*Level\s*:\s*"
                r"(LOW|MODERATE|MEDIUM|HIGH|CRITICAL)",
                remaining,
                re.IGNORECASE,
            )
            if match:
                levels[category.value] = match.group(1).upper()
                start, end = match.span()
                remaining = remaining[:start] + " " * (end - start) + remaining[end:]
        if not levels:
            logger.debug("No risk levels found in free-text analysis")
        return levels
