"""Tests for the signal aggregator."""

import asyncio

import pytest

from lodestar.contracts import EventKind, PerformanceTrend, RiskCategory, StudentSignalProfile
from lodestar.engine import SignalAggregator


class StaticSource:
    def __init__(self, name, data=None, error=None, delay=0.0):
        self.name = name
        self.data = data
        self.error = error
        self.delay = delay

    async def fetch(self, student_id):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.data


class TestSignalAggregator:
    @pytest.mark.asyncio
    async def test_unknown_student_without_sources(self, repository):
        aggregator = SignalAggregator(repository)
        profile = await aggregator.collect("s1")
        assert profile.student_id == "s1"
        assert profile.academic.gpa is None
        # Nothing merged, nothing saved
        assert await repository.get_profile("s1") is None

    @pytest.mark.asyncio
    async def test_merges_sources_over_stored_profile(self, repository, event_log):
        stored = StudentSignalProfile(student_id="s1")
        stored.academic.gpa = 3.1
        stored.academic.failed_courses = 0
        await repository.save_profile(stored)

        sources = [
            StaticSource(
                "sis", {"grade_level": 11, "academic": {"gpa": 1.9, "study_habits": None}}
            ),
            StaticSource(
                "attendance",
                {"attendance": {"total_absences": 12}, "performance": {"trend": "DECLINING"}},
            ),
        ]
        aggregator = SignalAggregator(repository, sources, event_log=event_log)
        profile = await aggregator.collect("s1")

        assert profile.grade_level == "11"
        assert profile.academic.gpa == 1.9
        assert profile.academic.failed_courses == 0
        assert profile.attendance.total_absences == 12
        assert profile.performance.trend == PerformanceTrend.DECLINING
        assert (await repository.get_profile("s1")).academic.gpa == 1.9

        events = list(event_log.replay_stream("s1"))
        assert events[-1].kind == EventKind.SIGNALS_COLLECTED
        assert events[-1].payload["sections"] == ["academic", "attendance", "performance"]

    @pytest.mark.asyncio
    async def test_failing_and_slow_sources_are_skipped(self, repository):
        sources = [
            StaticSource("broken", error=RuntimeError("down")),
            StaticSource("slow", {"academic": {"gpa": 0.5}}, delay=0.5),
            StaticSource("ok", {"financial": {"stress_level": 8}}),
        ]
        aggregator = SignalAggregator(repository, sources, timeout_ms=50)
        profile = await aggregator.collect("s1")

        assert profile.academic.gpa is None
        assert profile.financial.stress_level == 8

    @pytest.mark.asyncio
    async def test_invalid_section_is_ignored(self, repository):
        sources = [
            StaticSource(
                "bad",
                {"academic": {"gpa": -1}, "behavioral": {"disciplinary_incidents": 4}},
            ),
        ]
        profile = await SignalAggregator(repository, sources).collect("s1")
        assert profile.academic.gpa is None
        assert profile.behavioral.disciplinary_incidents == 4

    @pytest.mark.asyncio
    async def test_non_dict_payload_is_skipped(self, repository):
        sources = [
            StaticSource("rows", [{"academic": {"gpa": 1.2}}]),
            StaticSource("text", "gpa=1.2"),
            StaticSource("ok", {"attendance": {"total_absences": 12}}),
        ]
        profile = await SignalAggregator(repository, sources).collect("s1")
        assert profile.academic.gpa is None
        assert profile.attendance.total_absences == 12


class TestCategoryContext:
    def test_only_known_values(self):
        profile = StudentSignalProfile(student_id="s1", grade_level="10")
        profile.academic.gpa = 2.4
        context = SignalAggregator.category_context(profile, RiskCategory.ACADEMIC)
        assert context == {"gpa": 2.4, "grade_level": "10"}

    def test_emotional_draws_from_several_sections(self):
        profile = StudentSignalProfile(student_id="s1")
        profile.social_emotional.wellbeing_indicators = ["withdrawn"]
        profile.financial.stress_level = 9.0
        context = SignalAggregator.category_context(profile, RiskCategory.EMOTIONAL)
        assert context == {"wellbeing_indicators": ["withdrawn"], "stress_level": 9.0}

    def test_enum_values_are_serialized(self):
        profile = StudentSignalProfile(student_id="s1")
        context = SignalAggregator.category_context(profile, RiskCategory.SKILL_DEVELOPMENT)
        assert context == {"trend": "STABLE", "potential_index": 0.5}
