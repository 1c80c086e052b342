"""Tests for the per-student pipeline and the batch sweep."""

import asyncio

import pytest

from lodestar.contracts import (
    EventKind,
    InsightKind,
    InterventionStatus,
    RiskCategory,
    RiskLevel,
    StudentSignalProfile,
)
from lodestar.engine import BatchSweep
from lodestar.store import RepositoryError

from conftest import plan_response

RISK_REPLY = {
    "levels": {"academic": "HIGH", "emotional": "CRITICAL", "skill_development": "LOW"},
    "analysis": "Grades and wellbeing both slipping.",
}


async def seed_profile(repository, student_id="s1", gpa=1.8):
    profile = StudentSignalProfile(student_id=student_id, grade_level="10")
    profile.academic.gpa = gpa
    await repository.save_profile(profile)


def script_insight(insight, effectiveness=None):
    insight.responses[InsightKind.RISK_ANALYSIS] = RISK_REPLY
    insight.responses[InsightKind.INTERVENTION_PLAN] = plan_response()
    insight.responses[InsightKind.EFFECTIVENESS_ANALYSIS] = effectiveness or {
        "progress_percentage": 40,
        "effectiveness_score": 0.3,
        "analysis": "Early days.",
    }


class TestSupportPipeline:
    @pytest.mark.asyncio
    async def test_run_assesses_plans_and_consolidates(self, engine, repository, insight):
        script_insight(insight)
        await seed_profile(repository)

        cycle = await engine.pipeline.run("s1")

        assessment = cycle.assessment
        assert assessment.overall_risk_level == RiskLevel.CRITICAL
        assert assessment.overall_category == RiskCategory.EMOTIONAL
        assert assessment.trigger_set == [RiskCategory.ACADEMIC, RiskCategory.EMOTIONAL]
        assert len(assessment.levels) == len(RiskCategory)
        # Categories the analysis left out are defaulted and flagged
        assert RiskCategory.FINANCIAL in assessment.low_confidence
        assert assessment.levels[RiskCategory.FINANCIAL] == RiskLevel.MODERATE
        assert assessment.trigger_details == ["academic: Low GPA: 1.8"]
        assert "Early warnings:" in assessment.rationale

        stored = await repository.latest_assessment("s1")
        assert stored.id == assessment.id

        assert [iv.category for iv in cycle.bundle.interventions] == [
            RiskCategory.EMOTIONAL,
            RiskCategory.ACADEMIC,
        ]
        assert all(iv.intensity_level == 3 for iv in cycle.bundle.interventions)
        plan_request = insight.requests_of(InsightKind.INTERVENTION_PLAN)[0]
        assert plan_request.context["scaling_strategy"] == engine.catalog.strategy_for(3)

    @pytest.mark.asyncio
    async def test_second_run_does_not_duplicate(self, engine, repository, insight):
        script_insight(insight)
        await seed_profile(repository)

        await engine.pipeline.run("s1")
        second = await engine.pipeline.run("s1")

        assert second.planning.created == []
        assert set(second.planning.skipped) == {RiskCategory.ACADEMIC, RiskCategory.EMOTIONAL}
        assert len(await repository.list_interventions("s1")) == 2
        assert len(await repository.list_assessments("s1")) == 2

    @pytest.mark.asyncio
    async def test_collaborator_down_still_assesses(self, engine, repository, insight):
        insight.responses[InsightKind.RISK_ANALYSIS] = RuntimeError("unreachable")
        insight.responses[InsightKind.INTERVENTION_PLAN] = plan_response()

        cycle = await engine.pipeline.run("s1")

        assessment = cycle.assessment
        assert set(assessment.levels.values()) == {RiskLevel.MODERATE}
        assert set(assessment.low_confidence) == set(RiskCategory)
        # MODERATE meets the academic and skill thresholds
        assert assessment.trigger_set == [
            RiskCategory.ACADEMIC,
            RiskCategory.SKILL_DEVELOPMENT,
        ]

    @pytest.mark.asyncio
    async def test_assessment_write_failure_is_fatal(self, engine, repository, insight):
        script_insight(insight)

        async def broken(assessment):
            raise RepositoryError("read-only database")

        repository.append_assessment = broken

        with pytest.raises(RepositoryError):
            await engine.pipeline.run("s1")
        assert insight.requests_of(InsightKind.INTERVENTION_PLAN) == []

    @pytest.mark.asyncio
    async def test_review_tracks_open_interventions_then_scales(
        self, engine, repository, insight, event_log
    ):
        script_insight(insight)
        await seed_profile(repository)
        await engine.pipeline.run("s1")

        review = await engine.pipeline.review("s1")

        assert len(review.tracked) == 2
        assert all(o.status == InterventionStatus.IN_PROGRESS for o in review.tracked)
        assert review.failed == {}
        # STABLE trend with mean effectiveness 0.3 escalates one level
        assert review.scaling.rule == "stable_low_effectiveness"
        assert review.scaling.recommended_level == 4
        assert await repository.get_intervention_level("s1") == 4

        kinds = {e.kind for e in event_log.replay_stream("s1")}
        assert {
            EventKind.RISK_ASSESSED,
            EventKind.PROGRESS_TRACKED,
            EventKind.LEVEL_SCALED,
        } <= kinds

    @pytest.mark.asyncio
    async def test_review_isolates_tracking_failures(
        self, engine, repository, insight, escalation
    ):
        script_insight(
            insight,
            effectiveness={"analysis": "Critical intervention required"},
        )
        await seed_profile(repository)
        await engine.pipeline.run("s1")
        escalation.fail = True

        review = await engine.pipeline.review("s1")

        assert len(review.failed) == 2
        assert review.scaling is not None
        # The status change is committed even though the ticket was not
        statuses = {iv.status for iv in await repository.list_interventions("s1")}
        assert statuses == {InterventionStatus.CRITICAL_REVIEW}

        # The next review raises the missing tickets and nothing else
        escalation.fail = False
        retry = await engine.pipeline.review("s1")
        assert retry.failed == {}
        assert len(escalation.tickets) == 2
        assert all(outcome.ticket for outcome in retry.tracked)

        await engine.pipeline.review("s1")
        assert len(escalation.tickets) == 2


class FakePipeline:
    def __init__(self, fail=(), delay=0.01, on_run=None):
        self.fail = set(fail)
        self.delay = delay
        self.on_run = on_run
        self.in_flight = 0
        self.max_in_flight = 0
        self.reviewed = []
        self.ran = []

    async def review(self, student_id):
        self.reviewed.append(student_id)
        return None

    async def run(self, student_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            self.ran.append(student_id)
            if self.on_run:
                self.on_run(student_id)
            if student_id in self.fail:
                raise RuntimeError(f"{student_id} exploded")
            return None
        finally:
            self.in_flight -= 1


class TestBatchSweep:
    @pytest.mark.asyncio
    async def test_bounded_parallelism(self, repository):
        pipeline = FakePipeline()
        sweep = BatchSweep(pipeline, repository, max_parallel=3)

        result = await sweep.run([f"s{i}" for i in range(10)])

        assert len(result.succeeded) == 10
        assert pipeline.max_in_flight == 3
        assert result.processed == 10
        assert not result.cancelled

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, repository, event_log):
        pipeline = FakePipeline(fail={"s2"})
        sweep = BatchSweep(pipeline, repository, max_parallel=2, event_log=event_log)

        result = await sweep.run(["s1", "s2", "s3", "s4"])

        assert sorted(r.student_id for r in result.succeeded) == ["s1", "s3", "s4"]
        assert result.failed == {"s2": "s2 exploded"}
        assert [e.stream_id for e in event_log.get_events_by_kind(EventKind.STUDENT_FAILED)] == [
            "s2"
        ]
        completed = event_log.get_events_by_kind(EventKind.SWEEP_COMPLETED)[0]
        assert completed.payload["succeeded"] == 3
        assert completed.payload["failed"] == 1

    @pytest.mark.asyncio
    async def test_cancel_stops_new_students(self, repository):
        cancel = asyncio.Event()
        pipeline = FakePipeline(on_run=lambda student_id: cancel.set())
        sweep = BatchSweep(pipeline, repository, max_parallel=1)

        result = await sweep.run(["s1", "s2", "s3"], cancel_event=cancel)

        assert [r.student_id for r in result.succeeded] == ["s1"]
        assert result.not_started == ["s2", "s3"]
        assert result.cancelled

    @pytest.mark.asyncio
    async def test_review_runs_before_planning(self, repository):
        pipeline = FakePipeline()
        await BatchSweep(pipeline, repository).run(["s1"])
        assert pipeline.reviewed == ["s1"]

        pipeline = FakePipeline()
        await BatchSweep(pipeline, repository, tracking_enabled=False).run(["s1"])
        assert pipeline.reviewed == []
        assert pipeline.ran == ["s1"]

    @pytest.mark.asyncio
    async def test_defaults_to_stored_students(self, repository):
        for student_id in ("b", "a"):
            await repository.save_profile(StudentSignalProfile(student_id=student_id))
        pipeline = FakePipeline()

        result = await BatchSweep(pipeline, repository, max_parallel=1).run()

        assert pipeline.ran == ["a", "b"]
        assert result.processed == 2

    @pytest.mark.asyncio
    async def test_empty_sweep(self, repository):
        result = await BatchSweep(FakePipeline(), repository).run([])
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_engine_sweep_end_to_end(self, engine, repository, insight):
        script_insight(insight)
        await seed_profile(repository, "s1")
        await seed_profile(repository, "s2", gpa=3.5)

        result = await engine.sweep.run()

        assert sorted(r.student_id for r in result.succeeded) == ["s1", "s2"]
        assert len(await repository.list_interventions()) == 4
