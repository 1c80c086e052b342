"""Deterministic early-warning rules evaluated on a student profile."""

import logging
import operator
from dataclasses import dataclass, field

from lodestar.catalog import EarlyWarningRule
from lodestar.contracts import RiskCategory, StudentSignalProfile

logger = logging.getLogger(__name__)

_OPS = {
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


@dataclass
class EarlyWarningFinding:
    rule: str
    category: RiskCategory
    detail: str
    recommended: list[str] = field(default_factory=list)


def _resolve(profile: StudentSignalProfile, path: str):
    value = profile
    for part in path.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def evaluate_rules(
    profile: StudentSignalProfile, rules: list[EarlyWarningRule]
) -> list[EarlyWarningFinding]:
    """Return one finding per rule whose threshold the profile crosses.

    Rules on fields the profile does not have are skipped.
    """
    findings = []
    for rule in rules:
        value = _resolve(profile, rule.field)
        if value is None:
            continue
        try:
            crossed = _OPS[rule.op](float(value), rule.value)
        except (TypeError, ValueError):
            logger.debug(f"Early-warning rule {rule.name}: non-numeric {rule.field}={value!r}")
            continue
        if crossed:
            findings.append(
                EarlyWarningFinding(
                    rule=rule.name,
                    category=rule.category,
                    detail=rule.detail.format(value=value),
                    recommended=list(rule.recommended),
                )
            )
    return findings


def recommended_for(findings: list[EarlyWarningFinding], category: RiskCategory) -> list[str]:
    """Deduplicated recommended interventions for one category, in rule order."""
    seen: dict[str, None] = {}
    for finding in findings:
        if finding.category == category:
            for item in finding.recommended:
                seen.setdefault(item, None)
    return list(seen)
