"""Tests for progress tracking and escalation."""

import asyncio

import pytest

from lodestar.contracts import (
    EventKind,
    InsightKind,
    Intervention,
    InterventionStatus,
    InterventionType,
    Milestone,
    PerformanceMetricSample,
    ProgressSnapshot,
    RiskCategory,
    RiskLevel,
    TicketPriority,
)
from lodestar.engine import EffectivenessMeasurer, ProgressTracker, classify_status
from lodestar.engine.tracker import ESCALATION_DESCRIPTION, next_status
from lodestar.escalation import EscalationError, RepositoryEscalationSink
from lodestar.store import NotFoundError

from conftest import FakeEscalationSink, FakeInsightClient

CRITICAL_REPLY = {
    "progress_percentage": 10,
    "effectiveness_score": 0.1,
    "analysis": "No engagement. Critical Intervention Required.",
}


def make_tracker(repository, catalog, insight, escalation=None, event_log=None, timeout_ms=1000):
    return ProgressTracker(
        repository,
        insight,
        escalation or FakeEscalationSink(),
        EffectivenessMeasurer(catalog.adjustments, repository),
        catalog,
        timeout_ms=timeout_ms,
        event_log=event_log,
    )


async def stored_intervention(repository, status=InterventionStatus.ACTIVE, **kwargs):
    intervention = Intervention(
        student_id="s1",
        category=RiskCategory.ACADEMIC,
        intervention_type=InterventionType.ACADEMIC_SUPPORT,
        risk_level_at_creation=RiskLevel.HIGH,
        status=status,
        **kwargs,
    )
    return await repository.create_intervention(intervention)


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("The plan is highly effective.", InterventionStatus.SUCCESSFUL),
            ("Plan needs modification going forward", InterventionStatus.NEEDS_ADJUSTMENT),
            ("Needs adjustment", InterventionStatus.NEEDS_ADJUSTMENT),
            ("CRITICAL INTERVENTION REQUIRED", InterventionStatus.CRITICAL_REVIEW),
            ("Steady progress", InterventionStatus.IN_PROGRESS),
            ("", InterventionStatus.IN_PROGRESS),
        ],
    )
    def test_phrases(self, text, expected):
        assert classify_status(text) == expected

    def test_most_severe_phrase_wins(self):
        text = "Highly effective at first, but now critical intervention required."
        assert classify_status(text) == InterventionStatus.CRITICAL_REVIEW
        text = "Highly effective overall, though the schedule needs modification."
        assert classify_status(text) == InterventionStatus.NEEDS_ADJUSTMENT

    def test_terminal_statuses_do_not_move(self):
        for terminal in (InterventionStatus.SUCCESSFUL, InterventionStatus.CRITICAL_REVIEW):
            assert next_status(terminal, InterventionStatus.IN_PROGRESS) == terminal

    def test_nothing_moves_back_to_active(self):
        assert (
            next_status(InterventionStatus.IN_PROGRESS, InterventionStatus.ACTIVE)
            == InterventionStatus.IN_PROGRESS
        )


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_first_cycle_moves_to_in_progress(self, repository, catalog, event_log):
        insight = FakeInsightClient(
            {
                InsightKind.EFFECTIVENESS_ANALYSIS: {
                    "progress_percentage": 35,
                    "effectiveness_score": 0.4,
                    "analysis": "Attending sessions.",
                }
            }
        )
        intervention = await stored_intervention(repository)
        tracker = make_tracker(repository, catalog, insight, event_log=event_log)

        outcome = await tracker.track(intervention.id)

        assert outcome.previous_status == InterventionStatus.ACTIVE
        assert outcome.status == InterventionStatus.IN_PROGRESS
        assert outcome.changed
        assert outcome.ticket is None

        stored = await repository.get_intervention(intervention.id)
        assert stored.status == InterventionStatus.IN_PROGRESS
        assert stored.version == 1
        assert len(stored.progress_history) == 1
        snapshot = stored.latest_snapshot
        assert snapshot.progress_percentage == 35
        assert snapshot.effectiveness_score == 0.4
        assert snapshot.current_phase == "INITIAL_IMPLEMENTATION"
        assert [m.name for m in snapshot.milestones] == catalog.milestones

        kinds = [e.kind for e in event_log.replay_stream("s1")]
        assert kinds == [EventKind.PROGRESS_TRACKED, EventKind.STATUS_CHANGED]

    @pytest.mark.asyncio
    async def test_critical_text_escalates_exactly_once(self, repository, catalog, event_log):
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: CRITICAL_REPLY})
        escalation = FakeEscalationSink()
        intervention = await stored_intervention(repository, InterventionStatus.IN_PROGRESS)
        tracker = make_tracker(repository, catalog, insight, escalation, event_log)

        outcome = await tracker.track(intervention.id)
        again = await tracker.track(intervention.id)

        assert outcome.status == InterventionStatus.CRITICAL_REVIEW
        assert outcome.ticket is not None
        assert len(escalation.tickets) == 1
        ticket = escalation.tickets[0]
        assert ticket.intervention_id == intervention.id
        assert ticket.priority == TicketPriority.HIGH
        assert ticket.description == ESCALATION_DESCRIPTION

        # Terminal now: the second cycle is skipped without a new snapshot
        assert again.skipped_reason
        assert len(insight.requests) == 1
        stored = await repository.get_intervention(intervention.id)
        assert len(stored.progress_history) == 1
        assert len(event_log.get_events_by_kind(EventKind.ESCALATION_CREATED)) == 1

    @pytest.mark.asyncio
    async def test_repository_sink_stores_ticket(self, repository, catalog):
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: CRITICAL_REPLY})
        intervention = await stored_intervention(repository)
        tracker = make_tracker(
            repository, catalog, insight, escalation=RepositoryEscalationSink(repository)
        )

        await tracker.track(intervention.id)

        tickets = await repository.list_tickets(intervention.id)
        assert len(tickets) == 1
        assert tickets[0].status == "URGENT_REVIEW"

    @pytest.mark.asyncio
    async def test_escalation_failure_propagates_after_commit(self, repository, catalog):
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: CRITICAL_REPLY})
        intervention = await stored_intervention(repository)
        tracker = make_tracker(
            repository, catalog, insight, escalation=FakeEscalationSink(fail=True)
        )

        with pytest.raises(EscalationError):
            await tracker.track(intervention.id)

        stored = await repository.get_intervention(intervention.id)
        assert stored.status == InterventionStatus.CRITICAL_REVIEW
        assert stored.escalation_pending

    @pytest.mark.asyncio
    async def test_failed_escalation_is_retried_once_the_sink_recovers(
        self, repository, catalog, event_log
    ):
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: CRITICAL_REPLY})
        escalation = FakeEscalationSink(fail=True)
        intervention = await stored_intervention(repository)
        tracker = make_tracker(repository, catalog, insight, escalation, event_log)

        with pytest.raises(EscalationError):
            await tracker.track(intervention.id)
        escalation.fail = False
        retried = await tracker.track(intervention.id)
        again = await tracker.track(intervention.id)

        assert retried.skipped_reason
        assert retried.ticket is not None
        assert again.ticket is None
        assert [t.intervention_id for t in escalation.tickets] == [intervention.id]
        assert len(insight.requests) == 1
        stored = await repository.get_intervention(intervention.id)
        assert not stored.escalation_pending
        assert len(event_log.get_events_by_kind(EventKind.ESCALATION_CREATED)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_retries_raise_one_ticket(self, repository, catalog):
        insight = FakeInsightClient()
        escalation = FakeEscalationSink()
        intervention = await stored_intervention(
            repository, InterventionStatus.CRITICAL_REVIEW, escalation_pending=True
        )
        tracker = make_tracker(repository, catalog, insight, escalation)

        outcomes = await asyncio.gather(*(tracker.track(intervention.id) for _ in range(3)))

        assert len(escalation.tickets) == 1
        assert sum(1 for o in outcomes if o.ticket) == 1

    @pytest.mark.asyncio
    async def test_successful_is_terminal(self, repository, catalog):
        insight = FakeInsightClient(
            {
                InsightKind.EFFECTIVENESS_ANALYSIS: {
                    "progress_percentage": 90,
                    "effectiveness_score": 0.9,
                    "analysis": "Highly Effective",
                }
            }
        )
        intervention = await stored_intervention(repository, InterventionStatus.NEEDS_ADJUSTMENT)
        tracker = make_tracker(repository, catalog, insight)

        outcome = await tracker.track(intervention.id)
        assert outcome.status == InterventionStatus.SUCCESSFUL
        assert outcome.ticket is None
        assert await repository.find_open_intervention("s1", RiskCategory.ACADEMIC) is None

    @pytest.mark.asyncio
    async def test_terminal_intervention_is_skipped(self, repository, catalog):
        insight = FakeInsightClient()
        intervention = await stored_intervention(repository, InterventionStatus.SUCCESSFUL)

        outcome = await make_tracker(repository, catalog, insight).track(intervention.id)

        assert outcome.status == InterventionStatus.SUCCESSFUL
        assert not outcome.changed
        assert "terminal" in outcome.skipped_reason
        assert insight.requests == []

    @pytest.mark.asyncio
    async def test_missing_intervention(self, repository, catalog):
        with pytest.raises(NotFoundError):
            await make_tracker(repository, catalog, FakeInsightClient()).track("iv_missing")

    @pytest.mark.asyncio
    async def test_failed_analysis_records_default_snapshot(self, repository, catalog):
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: RuntimeError("down")})
        intervention = await stored_intervention(repository, InterventionStatus.IN_PROGRESS)

        outcome = await make_tracker(repository, catalog, insight).track(intervention.id)

        assert outcome.status == InterventionStatus.IN_PROGRESS
        assert not outcome.changed
        assert outcome.snapshot.progress_percentage == 0.0
        assert outcome.snapshot.effectiveness_score == 0.0

    @pytest.mark.asyncio
    async def test_out_of_range_values_are_clamped(self, repository, catalog):
        insight = FakeInsightClient(
            {
                InsightKind.EFFECTIVENESS_ANALYSIS: {
                    "progress_percentage": 250,
                    "effectiveness_score": -1,
                }
            }
        )
        intervention = await stored_intervention(repository)

        outcome = await make_tracker(repository, catalog, insight).track(intervention.id)

        assert outcome.snapshot.progress_percentage == 100.0
        assert outcome.snapshot.effectiveness_score == 0.0

    @pytest.mark.asyncio
    async def test_measured_metrics_override_model_score(self, repository, catalog):
        insight = FakeInsightClient(
            {InsightKind.EFFECTIVENESS_ANALYSIS: {"effectiveness_score": 0.9}}
        )
        intervention = await stored_intervention(repository)
        await repository.record_metric_samples(
            [
                PerformanceMetricSample(
                    intervention_id=intervention.id,
                    metric_name="attendance_rate",
                    value_before=60,
                    value_after=75,
                )
            ]
        )

        outcome = await make_tracker(repository, catalog, insight).track(intervention.id)

        assert outcome.snapshot.effectiveness_score == pytest.approx(0.25)
        metrics = insight.requests[0].context["metrics"]
        assert metrics["attendance_rate"]["improvement_percent"] == pytest.approx(25.0)

    @pytest.mark.asyncio
    async def test_history_and_milestones_carry_forward(self, repository, catalog):
        previous = ProgressSnapshot(
            intervention_id="placeholder",
            progress_percentage=20,
            effectiveness_score=0.3,
            current_phase="ACTIVE_SUPPORT",
            milestones=[Milestone(name="Initial Assessment", completed=True)],
        )
        intervention = await stored_intervention(
            repository, InterventionStatus.IN_PROGRESS, progress_history=[previous]
        )
        insight = FakeInsightClient({InsightKind.EFFECTIVENESS_ANALYSIS: {}})

        outcome = await make_tracker(repository, catalog, insight).track(intervention.id)

        history = insight.requests[0].context["history"]
        assert history[0]["progress_percentage"] == 20
        assert history[0]["current_phase"] == "ACTIVE_SUPPORT"
        assert outcome.snapshot.milestones == previous.milestones

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, repository, catalog):
        insight = FakeInsightClient(
            {InsightKind.EFFECTIVENESS_ANALYSIS: CRITICAL_REPLY}, delay=0.5
        )
        intervention = await stored_intervention(repository)

        outcome = await make_tracker(repository, catalog, insight, timeout_ms=20).track(
            intervention.id
        )

        assert outcome.status == InterventionStatus.IN_PROGRESS
        assert outcome.ticket is None
