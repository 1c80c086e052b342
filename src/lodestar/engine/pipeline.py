"""
Support Pipeline

Wires the engine components into the two per-student cycles:

    run():    collect signals -> score -> aggregate -> append assessment
              -> plan triggered categories -> consolidate
    review(): track every open intervention -> scale the intervention level

The assessment is persisted before planning starts; a failure to append it
is fatal for the cycle and nothing is planned.
"""

import logging
from dataclasses import dataclass, field

from lodestar.catalog import Catalog
from lodestar.contracts import (
    OPEN_STATUSES,
    EventKind,
    InterventionStatus,
    RiskAssessment,
    RiskCategory,
    ScalingRecommendation,
    StudentSignalProfile,
)
from lodestar.engine.aggregator import RiskAggregator
from lodestar.engine.audit import record
from lodestar.engine.consolidator import Consolidator, InterventionBundle
from lodestar.engine.early_warning import EarlyWarningFinding, evaluate_rules
from lodestar.engine.planner import InterventionPlanner, PlanningResult
from lodestar.engine.scaler import AdaptiveScaler
from lodestar.engine.scorer import RiskScorer
from lodestar.engine.signals import SignalAggregator
from lodestar.engine.tracker import ProgressTracker, TrackingOutcome
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    assessment: RiskAssessment
    planning: PlanningResult
    bundle: InterventionBundle


@dataclass
class ReviewResult:
    student_id: str
    tracked: list[TrackingOutcome] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    scaling: ScalingRecommendation | None = None


class SupportPipeline:
    def __init__(
        self,
        repository: Repository,
        signals: SignalAggregator,
        scorer: RiskScorer,
        aggregator: RiskAggregator,
        planner: InterventionPlanner,
        consolidator: Consolidator,
        tracker: ProgressTracker,
        scaler: AdaptiveScaler,
        catalog: Catalog,
        categories: list[RiskCategory] | None = None,
        event_log: EventLogWriter | None = None,
    ):
        self.repository = repository
        self.signals = signals
        self.scorer = scorer
        self.aggregator = aggregator
        self.planner = planner
        self.consolidator = consolidator
        self.tracker = tracker
        self.scaler = scaler
        self.catalog = catalog
        self.categories = categories or list(RiskCategory)
        self.event_log = event_log

    async def assess(
        self, student_id: str
    ) -> tuple[RiskAssessment, list[EarlyWarningFinding], StudentSignalProfile]:
        """Score and persist a new assessment without planning.

        Returns:
            (assessment, early-warning findings, profile)
        """
        profile = await self.signals.collect(student_id)
        findings = evaluate_rules(profile, self.catalog.early_warning_rules)
        scored = await self.scorer.score(profile, self.categories, findings)

        details = [f"{finding.category.value}: {finding.detail}" for finding in findings]
        rationale = scored.analysis
        if details:
            rationale = "\n".join([rationale, "Early warnings:", *details]).strip()

        assessment = self.aggregator.aggregate(
            student_id,
            scored.levels,
            low_confidence=scored.low_confidence,
            trigger_details=details,
            rationale=rationale,
        )
        await self.repository.append_assessment(assessment)

        record(
            self.event_log,
            student_id,
            EventKind.RISK_ASSESSED,
            {
                "assessment_id": assessment.id,
                "overall": assessment.overall_risk_level.name,
                "trigger_set": [c.value for c in assessment.trigger_set],
                "low_confidence": [c.value for c in assessment.low_confidence],
            },
        )
        return assessment, findings, profile

    async def run(self, student_id: str) -> CycleResult:
        """Assess a student and plan interventions for what the assessment triggered.

        Raises:
            RepositoryError: If the assessment cannot be stored
        """
        assessment, findings, profile = await self.assess(student_id)
        level = await self.scaler.current_level(student_id)
        planning = await self.planner.plan(
            assessment, level, profile=profile, early_warnings=findings
        )
        bundle = self.consolidator.consolidate(planning.created, assessment)
        return CycleResult(assessment=assessment, planning=planning, bundle=bundle)

    async def review(self, student_id: str) -> ReviewResult:
        """Track every open intervention for a student, then rescale their level.

        Interventions in CRITICAL_REVIEW whose ticket is still pending are
        tracked too, which retries the ticket. A failure tracking one
        intervention is recorded and does not stop the others.
        """
        result = ReviewResult(student_id=student_id)
        open_interventions = await self.repository.list_interventions(
            student_id=student_id, statuses=OPEN_STATUSES
        )
        pending = [
            intervention
            for intervention in await self.repository.list_interventions(
                student_id=student_id, statuses=[InterventionStatus.CRITICAL_REVIEW]
            )
            if intervention.escalation_pending
        ]

        for intervention in [*reversed(open_interventions), *pending]:
            try:
                result.tracked.append(await self.tracker.track(intervention.id))
            except Exception as e:
                logger.error(f"Tracking {intervention.id} failed: {e}")
                result.failed[intervention.id] = str(e)

        result.scaling = await self.scaler.scale(student_id)
        return result
