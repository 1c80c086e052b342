"""
Intervention Planner

For each triggered category, asks the insight collaborator for a plan and
creates an ACTIVE Intervention.

Guarantees:
- At most one open intervention per (student, category): a per-key lock
  serialises planners in this process and the repository's conditional
  create rejects anything that slips past it from another process.
- One category failing (timeout, collaborator error, repository error) never
  stops the others; the failure is reported in PlanningResult.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal

from lodestar.catalog import Catalog
from lodestar.contracts import (
    CATEGORY_INTERVENTION_TYPES,
    EventKind,
    InsightKind,
    InsightRequest,
    Intervention,
    RiskAssessment,
    RiskCategory,
    StudentSignalProfile,
)
from lodestar.engine.audit import record
from lodestar.engine.early_warning import EarlyWarningFinding, recommended_for
from lodestar.engine.locks import KeyedLock
from lodestar.engine.signals import SignalAggregator
from lodestar.insight.client import InsightClient
from lodestar.insight.schema import coerce_plan
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import DuplicateActiveInterventionError, Repository

logger = logging.getLogger(__name__)


@dataclass
class PlanOutcome:
    category: RiskCategory
    status: Literal["created", "skipped", "failed"]
    intervention: Intervention | None = None
    reason: str = ""


@dataclass
class PlanningResult:
    student_id: str
    created: list[Intervention] = field(default_factory=list)
    skipped: dict[RiskCategory, str] = field(default_factory=dict)
    failed: dict[RiskCategory, str] = field(default_factory=dict)

    def add(self, outcome: PlanOutcome) -> None:
        if outcome.status == "created" and outcome.intervention is not None:
            self.created.append(outcome.intervention)
        elif outcome.status == "skipped":
            self.skipped[outcome.category] = outcome.reason
        else:
            self.failed[outcome.category] = outcome.reason


class InterventionPlanner:
    """Creates interventions for the categories an assessment triggered."""

    def __init__(
        self,
        repository: Repository,
        insight: InsightClient,
        catalog: Catalog,
        timeout_ms: int = 30000,
        event_log: EventLogWriter | None = None,
        locks: KeyedLock | None = None,
    ):
        self.repository = repository
        self.insight = insight
        self.catalog = catalog
        self.timeout_ms = timeout_ms
        self.event_log = event_log
        self.locks = locks or KeyedLock()

    async def plan(
        self,
        assessment: RiskAssessment,
        intensity_level: int,
        profile: StudentSignalProfile | None = None,
        early_warnings: list[EarlyWarningFinding] | None = None,
    ) -> PlanningResult:
        """Plan every category in the assessment's trigger set concurrently."""
        result = PlanningResult(student_id=assessment.student_id)
        categories = list(assessment.trigger_set)
        if not categories:
            return result

        outcomes = await asyncio.gather(
            *[
                self.plan_category(
                    assessment, category, intensity_level, profile, early_warnings
                )
                for category in categories
            ],
            return_exceptions=True,
        )

        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.error(
                    f"Planning {category.value} for {assessment.student_id} failed: {outcome}"
                )
                outcome = PlanOutcome(category, "failed", reason=str(outcome))
                record(
                    self.event_log,
                    assessment.student_id,
                    EventKind.PLAN_FAILED,
                    {"category": category.value, "reason": outcome.reason},
                )
            result.add(outcome)

        return result

    async def plan_category(
        self,
        assessment: RiskAssessment,
        category: RiskCategory,
        intensity_level: int,
        profile: StudentSignalProfile | None = None,
        early_warnings: list[EarlyWarningFinding] | None = None,
    ) -> PlanOutcome:
        """Plan one category.

        Collaborator failures are returned as a "failed" outcome.

        Raises:
            RepositoryError: If the intervention cannot be written
        """
        student_id = assessment.student_id

        async with self.locks.hold((student_id, category)):
            existing = await self.repository.find_open_intervention(student_id, category)
            if existing is not None:
                reason = f"open intervention {existing.id} ({existing.status.value})"
                logger.info(f"{student_id}/{category.value}: skipped, {reason}")
                record(
                    self.event_log,
                    student_id,
                    EventKind.INTERVENTION_SKIPPED,
                    {"category": category.value, "reason": reason},
                )
                return PlanOutcome(category, "skipped", existing, reason)

            request = self.build_request(
                assessment, category, intensity_level, profile, early_warnings
            )
            try:
                raw = await asyncio.wait_for(
                    self.insight.generate(request),
                    timeout=self.timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                return self._failed(student_id, category, "plan request timed out")
            except Exception as e:
                return self._failed(student_id, category, f"plan request failed: {e}")

            plan = coerce_plan(raw)
            intervention = Intervention(
                student_id=student_id,
                category=category,
                intervention_type=CATEGORY_INTERVENTION_TYPES[category],
                risk_level_at_creation=assessment.levels.get(
                    category, assessment.overall_risk_level
                ),
                strategic_objectives=plan.strategic_objectives,
                action_steps=plan.action_steps,
                support_mechanisms=plan.support_mechanisms,
                expected_outcomes=plan.expected_outcomes,
                description=plan.description,
                expected_duration_weeks=plan.expected_duration_weeks,
                assigned_role=self.catalog.role_for(category),
                intensity_level=max(1, min(5, intensity_level)),
            )

            try:
                await self.repository.create_intervention(intervention)
            except DuplicateActiveInterventionError as e:
                logger.info(f"{student_id}/{category.value}: skipped, {e}")
                record(
                    self.event_log,
                    student_id,
                    EventKind.INTERVENTION_SKIPPED,
                    {"category": category.value, "reason": str(e)},
                )
                return PlanOutcome(category, "skipped", reason=str(e))

        logger.info(
            f"{student_id}/{category.value}: created {intervention.id} "
            f"({intervention.intervention_type.value}, level {intervention.intensity_level})"
        )
        record(
            self.event_log,
            student_id,
            EventKind.INTERVENTION_CREATED,
            {
                "intervention_id": intervention.id,
                "category": category.value,
                "risk_level": intervention.risk_level_at_creation.name,
            },
        )
        return PlanOutcome(category, "created", intervention)

    def build_request(
        self,
        assessment: RiskAssessment,
        category: RiskCategory,
        intensity_level: int,
        profile: StudentSignalProfile | None,
        early_warnings: list[EarlyWarningFinding] | None,
    ) -> InsightRequest:
        level = assessment.levels.get(category, assessment.overall_risk_level)
        return InsightRequest(
            kind=InsightKind.INTERVENTION_PLAN,
            context={
                "student_id": assessment.student_id,
                "category": category.value,
                "risk_level": level.name,
                "overall_risk_level": assessment.overall_risk_level.name,
                "intensity_level": intensity_level,
                "scaling_strategy": self.catalog.strategy_for(intensity_level),
                "context": (
                    SignalAggregator.category_context(profile, category) if profile else {}
                ),
                "recommended_interventions": recommended_for(early_warnings or [], category),
            },
        )

    def _failed(self, student_id: str, category: RiskCategory, reason: str) -> PlanOutcome:
        logger.warning(f"{student_id}/{category.value}: {reason}")
        record(
            self.event_log,
            student_id,
            EventKind.PLAN_FAILED,
            {"category": category.value, "reason": reason},
        )
        return PlanOutcome(category, "failed", reason=reason)
