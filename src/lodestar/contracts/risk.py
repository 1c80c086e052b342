"""Risk contracts - levels, categories, and the append-only assessment record."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class RiskLevel(IntEnum):
    """Ordered risk severity. The integer value is the priority."""

    LOW = 1
    MODERATE = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Any) -> RiskLevel | None:
        """Parse a level from a name, alias, or priority number.

        Returns None for anything unrecognised instead of raising.
        """
        if isinstance(value, RiskLevel):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, str) and value.strip().isdecimal():
            value = int(value.strip())
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            name = value.strip().upper().replace(" ", "_")
            if name == "MEDIUM":
                name = "MODERATE"
            return cls.__members__.get(name)
        return None


class RiskCategory(str, Enum):
    """Risk dimensions.

    Declaration order is the fixed tie-break order: when two categories
    share the highest level, the one declared first wins.
    """

    ACADEMIC = "academic"
    EMOTIONAL = "emotional"
    SKILL_DEVELOPMENT = "skill_development"
    CAREER_PREPARATION = "career_preparation"
    ATTENDANCE = "attendance"
    BEHAVIORAL = "behavioral"
    FINANCIAL = "financial"
    SOCIAL_EMOTIONAL = "social_emotional"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @classmethod
    def parse(cls, value: Any) -> RiskCategory | None:
        """Parse a category from its value, name, or camelCase spelling."""
        if isinstance(value, RiskCategory):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip()
        if not key.isupper() and " " not in key and "_" not in key:
            # camelCase -> snake_case ("skillDevelopment" -> "skill_development")
            key = re.sub(r"(?<!^)(?=[A-Z])", "_", key)
        key = key.lower().replace(" ", "_").replace("-", "_")
        if key.endswith("_risk"):
            key = key[: -len("_risk")]
        try:
            return cls(key)
        except ValueError:
            return None


CATEGORY_PRIORITY_ORDER: tuple[RiskCategory, ...] = tuple(RiskCategory)


def category_rank(category: RiskCategory) -> int:
    """Position of a category in the fixed tie-break order (0 = highest)."""
    return CATEGORY_PRIORITY_ORDER.index(category)


class RiskAssessment(BaseModel):
    """One point-in-time risk assessment for a student.

    Assessments are appended to the log and never mutated.
    """

    id: str = Field(default_factory=lambda: f"ra_{uuid.uuid4().hex[:12]}")
    student_id: str
    levels: dict[RiskCategory, RiskLevel] = Field(
        default_factory=dict,
        description="One level per assessed category",
    )
    overall_risk_level: RiskLevel = RiskLevel.LOW
    overall_category: RiskCategory | None = Field(
        default=None,
        description="Category the overall level is attributed to",
    )
    trigger_set: list[RiskCategory] = Field(default_factory=list)
    low_confidence: list[RiskCategory] = Field(
        default_factory=list,
        description="Categories scored from a default rather than an analysis",
    )
    trigger_details: list[str] = Field(default_factory=list)
    rationale: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _overall_is_max(self) -> RiskAssessment:
        if self.levels:
            highest = max(self.levels.values())
            if self.overall_risk_level != highest:
                raise ValueError(
                    f"overall_risk_level {self.overall_risk_level.name} "
                    f"does not match highest category level {highest.name}"
                )
        return self

    def level_for(self, category: RiskCategory) -> RiskLevel | None:
        return self.levels.get(category)

    def is_confident(self, category: RiskCategory) -> bool:
        return category not in self.low_confidence
