"""Strategy catalog loading from YAML."""

import logging
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from lodestar.contracts.risk import RiskCategory

logger = logging.getLogger(__name__)

CATALOG_FILE = Path(__file__).parent / "catalog.yaml"

INTERVENTION_LEVELS = range(1, 6)


class AdjustmentCatalog(BaseModel):
    redesign_below: float = 0.3
    refinement_below: float = 0.6
    redesign: list[str] = Field(default_factory=list)
    refinement: list[str] = Field(default_factory=list)
    metric_focus_below_percent: float = 10.0
    metric_focus: str = "Focus on improving {metric} performance"


class EarlyWarningRule(BaseModel):
    """A deterministic threshold check on one profile field."""

    name: str
    category: RiskCategory
    field: str = Field(description="Dotted path into the profile, e.g. academic.gpa")
    op: Literal["lt", "le", "gt", "ge"]
    value: float
    detail: str = "{value}"
    recommended: list[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, value):
        category = RiskCategory.parse(value)
        if category is None:
            raise ValueError(f"Unknown risk category: {value!r}")
        return category


class Catalog(BaseModel):
    scaling_strategies: dict[int, list[str]]
    adjustments: AdjustmentCatalog = Field(default_factory=AdjustmentCatalog)
    early_warning_rules: list[EarlyWarningRule] = Field(default_factory=list)
    interventionist_roles: dict[str, str] = Field(default_factory=dict)
    phases: list[str] = Field(default_factory=list)
    milestones: list[str] = Field(default_factory=list)

    @field_validator("scaling_strategies")
    @classmethod
    def _all_levels_present(cls, value: dict[int, list[str]]) -> dict[int, list[str]]:
        missing = [level for level in INTERVENTION_LEVELS if level not in value]
        if missing:
            raise ValueError(f"scaling_strategies missing levels {missing}")
        return value

    def strategy_for(self, level: int) -> list[str]:
        level = max(1, min(5, level))
        return list(self.scaling_strategies[level])

    def role_for(self, category: RiskCategory) -> str:
        return self.interventionist_roles.get(category.value, "unassigned")

    @property
    def initial_phase(self) -> str:
        return self.phases[0] if self.phases else "INITIAL_IMPLEMENTATION"


def load_catalog(path: Path | str | None = None) -> Catalog:
    """Load the strategy catalog.

    Args:
        path: YAML file to load; the bundled catalog when empty

    Raises:
        FileNotFoundError: If an explicit path does not exist
        pydantic.ValidationError: If the file does not describe a catalog
    """
    catalog_path = Path(path) if path else CATALOG_FILE
    with open(catalog_path) as f:
        data = yaml.safe_load(f) or {}

    catalog = Catalog(**data)
    logger.debug(
        f"Loaded catalog from {catalog_path}: "
        f"{len(catalog.early_warning_rules)} early-warning rules"
    )
    return catalog
