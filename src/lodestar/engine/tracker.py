"""
Progress Tracker

Runs one tracking cycle for an intervention and advances its lifecycle:

    ACTIVE ──> IN_PROGRESS ──> SUCCESSFUL        (terminal)
       │            │  ▲
       │            ▼  │
       ├──────> NEEDS_ADJUSTMENT                 (loops back into tracking)
       │            │
       └────────────┴──> CRITICAL_REVIEW         (terminal, raises a ticket)

The recommendation is classified from the analysis text, most severe phrase
first, so text mentioning both "highly effective" and "critical intervention
required" lands in CRITICAL_REVIEW.
"""

import asyncio
import logging
import re
from dataclasses import dataclass

from lodestar.catalog import Catalog
from lodestar.contracts import (
    EffectivenessAnalysisResult,
    EffectivenessReport,
    EventKind,
    InsightKind,
    InsightRequest,
    Intervention,
    InterventionStatus,
    Milestone,
    ProgressSnapshot,
    SupportTicket,
    TicketPriority,
)
from lodestar.engine.audit import record
from lodestar.engine.effectiveness import EffectivenessMeasurer
from lodestar.engine.locks import KeyedLock
from lodestar.escalation.tickets import EscalationError, EscalationSink
from lodestar.insight.client import InsightClient
from lodestar.insight.schema import coerce_effectiveness
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)

ESCALATION_DESCRIPTION = "Critical intervention requires immediate attention"

HISTORY_IN_CONTEXT = 5
_HISTORY_FIELDS = {"timestamp", "progress_percentage", "effectiveness_score", "current_phase"}

# Most severe first
STATUS_PATTERNS: list[tuple[InterventionStatus, re.Pattern]] = [
    (
        InterventionStatus.CRITICAL_REVIEW,
        re.compile(r"critical\s+intervention\s+required", re.IGNORECASE),
    ),
    (
        InterventionStatus.NEEDS_ADJUSTMENT,
        re.compile(r"needs\s+(?:modification|adjustment)", re.IGNORECASE),
    ),
    (
        InterventionStatus.SUCCESSFUL,
        re.compile(r"highly\s+effective", re.IGNORECASE),
    ),
]

_TRACKED = frozenset(
    {
        InterventionStatus.IN_PROGRESS,
        InterventionStatus.SUCCESSFUL,
        InterventionStatus.NEEDS_ADJUSTMENT,
        InterventionStatus.CRITICAL_REVIEW,
    }
)

TRANSITIONS: dict[InterventionStatus, frozenset[InterventionStatus]] = {
    InterventionStatus.ACTIVE: _TRACKED,
    InterventionStatus.IN_PROGRESS: _TRACKED,
    InterventionStatus.NEEDS_ADJUSTMENT: _TRACKED,
    InterventionStatus.SUCCESSFUL: frozenset(),
    InterventionStatus.CRITICAL_REVIEW: frozenset(),
}


def classify_status(text: str) -> InterventionStatus:
    """Map analysis text to a recommended status; IN_PROGRESS when nothing matches."""
    for status, pattern in STATUS_PATTERNS:
        if text and pattern.search(text):
            return status
    return InterventionStatus.IN_PROGRESS


def next_status(
    current: InterventionStatus, recommended: InterventionStatus
) -> InterventionStatus:
    """Apply the transition table; disallowed moves keep the current status."""
    if recommended in TRANSITIONS[current]:
        return recommended
    return current


@dataclass
class TrackingOutcome:
    intervention_id: str
    previous_status: InterventionStatus
    status: InterventionStatus
    snapshot: ProgressSnapshot | None = None
    ticket: SupportTicket | None = None
    skipped_reason: str = ""

    @property
    def changed(self) -> bool:
        return self.status != self.previous_status


class ProgressTracker:
    """Effectiveness analysis, snapshot, and status transition for one intervention."""

    def __init__(
        self,
        repository: Repository,
        insight: InsightClient,
        escalation: EscalationSink,
        measurer: EffectivenessMeasurer,
        catalog: Catalog,
        timeout_ms: int = 30000,
        event_log: EventLogWriter | None = None,
    ):
        self.repository = repository
        self.insight = insight
        self.escalation = escalation
        self.measurer = measurer
        self.catalog = catalog
        self.timeout_ms = timeout_ms
        self.event_log = event_log
        self._escalations = KeyedLock()

    async def track(self, intervention_id: str) -> TrackingOutcome:
        """Run one tracking cycle.

        Raises:
            NotFoundError: If the intervention does not exist
            RepositoryError: If the snapshot cannot be committed
            EscalationError: If the ticket cannot be raised. The status is already
                committed and the ticket is retried on the next cycle.
        """
        intervention = await self.repository.get_intervention(intervention_id)
        if intervention.status.is_terminal:
            outcome = TrackingOutcome(
                intervention_id=intervention_id,
                previous_status=intervention.status,
                status=intervention.status,
                skipped_reason=f"terminal status {intervention.status.value}",
            )
            if intervention.escalation_pending:
                outcome.ticket = await self._escalate(intervention_id)
            return outcome

        samples = await self.repository.list_metric_samples(intervention_id)
        report = self.measurer.measure(samples, intervention_id) if samples else None
        analysis = await self._analyze(intervention, report)

        recommended = classify_status(analysis.analysis)
        snapshot = ProgressSnapshot(
            intervention_id=intervention_id,
            progress_percentage=analysis.progress_percentage,
            effectiveness_score=(
                report.effectiveness_score if report else analysis.effectiveness_score
            ),
            current_phase=analysis.current_phase or self.catalog.initial_phase,
            milestones=analysis.milestones or self._default_milestones(intervention),
            status=recommended,
            analysis=analysis.analysis,
        )

        transition: dict[str, InterventionStatus] = {}

        def apply(current: Intervention) -> Intervention | None:
            if current.status.is_terminal:
                return None
            new = next_status(current.status, recommended)
            transition["from"] = current.status
            transition["to"] = new
            current.progress_history.append(snapshot.model_copy(update={"status": new}))
            if new == InterventionStatus.CRITICAL_REVIEW:
                current.escalation_pending = True
            current.status = new
            return current

        updated = await self.repository.update_intervention(intervention_id, apply)

        if not transition:
            # Another tracker finished the intervention first
            return TrackingOutcome(
                intervention_id=intervention_id,
                previous_status=intervention.status,
                status=updated.status,
                skipped_reason=f"terminal status {updated.status.value}",
            )

        outcome = TrackingOutcome(
            intervention_id=intervention_id,
            previous_status=transition["from"],
            status=transition["to"],
            snapshot=updated.latest_snapshot,
        )
        self._record_cycle(updated, outcome)

        if updated.escalation_pending:
            outcome.ticket = await self._escalate(intervention_id)

        return outcome

    async def _analyze(
        self, intervention: Intervention, report: EffectivenessReport | None
    ) -> EffectivenessAnalysisResult:
        request = self.build_request(intervention, report)
        try:
            raw = await asyncio.wait_for(
                self.insight.generate(request),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Effectiveness analysis timed out for {intervention.id}")
            return EffectivenessAnalysisResult()
        except Exception as e:
            logger.warning(f"Effectiveness analysis failed for {intervention.id}: {e}")
            return EffectivenessAnalysisResult()
        return coerce_effectiveness(raw)

    def build_request(
        self, intervention: Intervention, report: EffectivenessReport | None
    ) -> InsightRequest:
        history = [
            snapshot.model_dump(mode="json", include=_HISTORY_FIELDS)
            for snapshot in intervention.progress_history[-HISTORY_IN_CONTEXT:]
        ]
        metrics = (
            {name: impact.model_dump(mode="json") for name, impact in report.impacts.items()}
            if report
            else {}
        )
        return InsightRequest(
            kind=InsightKind.EFFECTIVENESS_ANALYSIS,
            context={
                "intervention_id": intervention.id,
                "student_id": intervention.student_id,
                "category": intervention.category.value,
                "status": intervention.status.value,
                "expected_duration_weeks": intervention.expected_duration_weeks,
                "plan": {
                    "strategic_objectives": intervention.strategic_objectives,
                    "action_steps": intervention.action_steps,
                    "support_mechanisms": intervention.support_mechanisms,
                    "expected_outcomes": intervention.expected_outcomes,
                },
                "history": history,
                "metrics": metrics,
            },
        )

    def _default_milestones(self, intervention: Intervention) -> list[Milestone]:
        previous = intervention.latest_snapshot
        if previous and previous.milestones:
            return list(previous.milestones)
        return [Milestone(name=name) for name in self.catalog.milestones]

    def _record_cycle(self, intervention: Intervention, outcome: TrackingOutcome) -> None:
        snapshot = outcome.snapshot
        record(
            self.event_log,
            intervention.student_id,
            EventKind.PROGRESS_TRACKED,
            {
                "intervention_id": intervention.id,
                "progress_percentage": snapshot.progress_percentage if snapshot else 0.0,
                "effectiveness_score": snapshot.effectiveness_score if snapshot else 0.0,
            },
        )
        if outcome.changed:
            logger.info(
                f"{intervention.id}: {outcome.previous_status.value} -> {outcome.status.value}"
            )
            record(
                self.event_log,
                intervention.student_id,
                EventKind.STATUS_CHANGED,
                {
                    "intervention_id": intervention.id,
                    "from": outcome.previous_status.value,
                    "to": outcome.status.value,
                },
            )

    async def _escalate(self, intervention_id: str) -> SupportTicket | None:
        """Raise the pending ticket and clear the marker.

        The marker is committed with the CRITICAL_REVIEW status, so a sink
        failure leaves it set and the next cycle retries. Returns None when
        another cycle raised the ticket first.
        """
        async with self._escalations.hold(intervention_id):
            intervention = await self.repository.get_intervention(intervention_id)
            if not intervention.escalation_pending:
                return None
            try:
                ticket = await self.escalation.create_ticket(
                    intervention_id,
                    TicketPriority.HIGH,
                    ESCALATION_DESCRIPTION,
                )
            except EscalationError as e:
                logger.error(f"Escalation for {intervention_id} failed: {e}")
                raise

            def clear(current: Intervention) -> Intervention:
                current.escalation_pending = False
                return current

            await self.repository.update_intervention(intervention_id, clear)

        record(
            self.event_log,
            intervention.student_id,
            EventKind.ESCALATION_CREATED,
            {"intervention_id": intervention_id, "ticket_id": ticket.id},
        )
        return ticket
