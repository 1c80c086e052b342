"""Consolidator - merges one cycle's interventions into a priority-ordered bundle."""

from dataclasses import dataclass, field

from lodestar.contracts import Intervention, RiskAssessment, RiskLevel
from lodestar.engine.aggregator import priority_key


@dataclass
class InterventionBundle:
    student_id: str
    overall_risk_level: RiskLevel
    interventions: list[Intervention] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.interventions)


class Consolidator:
    def consolidate(
        self, interventions: list[Intervention], assessment: RiskAssessment
    ) -> InterventionBundle:
        """Order interventions by their category's assessed level, highest first.

        Ties are broken by the fixed category order. A category the
        assessment does not carry falls back to the level recorded on the
        intervention when it was created.
        """

        def level_of(intervention: Intervention) -> RiskLevel:
            return assessment.levels.get(
                intervention.category, intervention.risk_level_at_creation
            )

        ordered = sorted(
            interventions,
            key=lambda iv: priority_key(iv.category, level_of(iv)),
        )
        return InterventionBundle(
            student_id=assessment.student_id,
            overall_risk_level=assessment.overall_risk_level,
            interventions=ordered,
        )
