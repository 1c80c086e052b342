"""Tests for adaptive scaling."""

import pytest

from lodestar.contracts import (
    EventKind,
    Intervention,
    InterventionType,
    PerformanceTrend,
    ProgressSnapshot,
    RiskCategory,
    RiskLevel,
    StudentSignalProfile,
)
from lodestar.engine import AdaptiveScaler, recommend_level, support_intensity

DECLINING = PerformanceTrend.DECLINING
STABLE = PerformanceTrend.STABLE
IMPROVING = PerformanceTrend.IMPROVING


def tracked(effectiveness, category=RiskCategory.ACADEMIC):
    intervention = Intervention(
        student_id="s1",
        category=category,
        intervention_type=InterventionType.ACADEMIC_SUPPORT,
        risk_level_at_creation=RiskLevel.HIGH,
    )
    if effectiveness is not None:
        intervention.progress_history.append(
            ProgressSnapshot(intervention_id=intervention.id, effectiveness_score=effectiveness)
        )
    return intervention


class TestRecommendLevel:
    def test_declining_low_potential(self):
        assert recommend_level(3, DECLINING, 0.3, None) == (5, "declining_low_potential")

    def test_improving_high_potential(self):
        assert recommend_level(2, IMPROVING, 0.8, None) == (1, "improving_high_potential")

    def test_stable_low_effectiveness(self):
        assert recommend_level(3, STABLE, 0.5, 0.4) == (4, "stable_low_effectiveness")

    def test_stable_without_history_is_unchanged(self):
        assert recommend_level(3, STABLE, 0.5, None) == (3, "unchanged")

    def test_boundaries_do_not_fire(self):
        assert recommend_level(3, DECLINING, 0.4, None)[1] == "unchanged"
        assert recommend_level(3, STABLE, 0.5, 0.5)[1] == "unchanged"
        assert recommend_level(3, IMPROVING, 0.7, None)[1] == "unchanged"

    @pytest.mark.parametrize("current", [-3, 0, 1, 2, 3, 4, 5, 6, 12])
    @pytest.mark.parametrize("trend", list(PerformanceTrend))
    @pytest.mark.parametrize("potential", [0.0, 0.39, 0.5, 0.71, 1.0])
    def test_always_within_bounds(self, current, trend, potential):
        level, _ = recommend_level(current, trend, potential, 0.1)
        assert 1 <= level <= 5

    def test_support_intensity(self):
        assert support_intensity(5) == 1.0
        assert support_intensity(1) == 0.2


class TestAdaptiveScaler:
    def test_recent_effectiveness_window(self, repository, catalog):
        scaler = AdaptiveScaler(repository, catalog, window=2)
        interventions = [tracked(0.2), tracked(None), tracked(0.4), tracked(0.9)]
        assert scaler.recent_effectiveness(interventions) == pytest.approx(0.3)
        assert scaler.recent_effectiveness([tracked(None)]) is None

    def test_recommendation_carries_strategy(self, repository, catalog):
        scaler = AdaptiveScaler(repository, catalog)
        recommendation = scaler.recommend(3, DECLINING, 0.2, None, student_id="s1")
        assert recommendation.recommended_level == 5
        assert recommendation.scaling_strategy == catalog.strategy_for(5)
        assert recommendation.support_intensity == 1.0

    @pytest.mark.asyncio
    async def test_scale_persists_level(self, repository, catalog, event_log):
        scaler = AdaptiveScaler(repository, catalog, default_level=3, event_log=event_log)

        first = await scaler.scale("s1", DECLINING, 0.3)
        assert (first.current_level, first.recommended_level) == (3, 5)
        assert await repository.get_intervention_level("s1") == 5

        second = await scaler.scale("s1", IMPROVING, 0.9)
        assert (second.current_level, second.recommended_level) == (5, 4)
        assert await scaler.current_level("s1") == 4

        events = event_log.get_events_by_kind(EventKind.LEVEL_SCALED)
        assert [e.payload["to"] for e in reversed(events)] == [5, 4]

    @pytest.mark.asyncio
    async def test_scale_reads_profile_analytics(self, repository, catalog):
        profile = StudentSignalProfile(student_id="s1")
        profile.performance.trend = IMPROVING
        profile.performance.potential_index = 0.9
        await repository.save_profile(profile)

        recommendation = await AdaptiveScaler(repository, catalog).scale("s1")

        assert recommendation.trend == IMPROVING
        assert recommendation.recommended_level == 2

    @pytest.mark.asyncio
    async def test_scale_uses_tracked_history(self, repository, catalog):
        await repository.create_intervention(tracked(0.2))
        recommendation = await AdaptiveScaler(repository, catalog).scale("s1", STABLE, 0.5)
        assert recommendation.recent_effectiveness == pytest.approx(0.2)
        assert recommendation.rule == "stable_low_effectiveness"
        assert recommendation.recommended_level == 4

    @pytest.mark.asyncio
    async def test_unchanged_level_is_not_audited(self, repository, catalog, event_log):
        scaler = AdaptiveScaler(repository, catalog, event_log=event_log)
        recommendation = await scaler.scale("s1", STABLE, 0.5)
        assert recommendation.rule == "unchanged"
        assert await repository.get_intervention_level("s1") == 3
        assert event_log.get_events_by_kind(EventKind.LEVEL_SCALED) == []

    @pytest.mark.asyncio
    async def test_current_level_default(self, repository, catalog):
        assert await AdaptiveScaler(repository, catalog, default_level=2).current_level("s9") == 2
