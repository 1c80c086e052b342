"""Tests for contracts module."""

import pytest
from pydantic import ValidationError

from lodestar.contracts import (
    CATEGORY_INTERVENTION_TYPES,
    CATEGORY_PRIORITY_ORDER,
    INTERVENTION_TYPE_CATEGORIES,
    OPEN_STATUSES,
    Intervention,
    InterventionStatus,
    InterventionType,
    PerformanceAnalytics,
    ProgressSnapshot,
    RiskAssessment,
    RiskCategory,
    RiskLevel,
    category_rank,
)


class TestRiskLevel:
    def test_total_order(self):
        assert RiskLevel.LOW < RiskLevel.MODERATE < RiskLevel.HIGH < RiskLevel.CRITICAL
        assert max([RiskLevel.HIGH, RiskLevel.CRITICAL, RiskLevel.LOW]) == RiskLevel.CRITICAL

    def test_priority_values(self):
        assert [int(level) for level in RiskLevel] == [1, 2, 3, 4]

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("HIGH", RiskLevel.HIGH),
            ("high", RiskLevel.HIGH),
            (" Critical ", RiskLevel.CRITICAL),
            ("MEDIUM", RiskLevel.MODERATE),
            (2, RiskLevel.MODERATE),
            (3.0, RiskLevel.HIGH),
            ("4", RiskLevel.CRITICAL),
            (" 1 ", RiskLevel.LOW),
            (RiskLevel.LOW, RiskLevel.LOW),
        ],
    )
    def test_parse_valid(self, value, expected):
        assert RiskLevel.parse(value) == expected

    @pytest.mark.parametrize(
        "value",
        ["SEVERE", "", None, 0, 7, True, 2.5, "9", "2.0", float("nan"), ["HIGH"]],
    )
    def test_parse_invalid_returns_none(self, value):
        assert RiskLevel.parse(value) is None


class TestRiskCategory:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("academic", RiskCategory.ACADEMIC),
            ("skillDevelopment", RiskCategory.SKILL_DEVELOPMENT),
            ("careerPreparation", RiskCategory.CAREER_PREPARATION),
            ("socialEmotional", RiskCategory.SOCIAL_EMOTIONAL),
            ("social_emotional", RiskCategory.SOCIAL_EMOTIONAL),
            ("Social Emotional", RiskCategory.SOCIAL_EMOTIONAL),
            ("academicRisk", RiskCategory.ACADEMIC),
            ("ACADEMIC", RiskCategory.ACADEMIC),
        ],
    )
    def test_parse(self, value, expected):
        assert RiskCategory.parse(value) == expected

    def test_parse_unknown(self):
        assert RiskCategory.parse("housing") is None
        assert RiskCategory.parse(3) is None

    def test_priority_order_is_declared_order(self):
        assert CATEGORY_PRIORITY_ORDER[0] == RiskCategory.ACADEMIC
        assert CATEGORY_PRIORITY_ORDER[1] == RiskCategory.EMOTIONAL
        assert CATEGORY_PRIORITY_ORDER[-1] == RiskCategory.SOCIAL_EMOTIONAL
        assert category_rank(RiskCategory.SKILL_DEVELOPMENT) < category_rank(
            RiskCategory.CAREER_PREPARATION
        )

    def test_label(self):
        assert RiskCategory.SKILL_DEVELOPMENT.label == "Skill Development"


class TestRiskAssessment:
    def test_overall_must_equal_max(self):
        with pytest.raises(ValidationError):
            RiskAssessment(
                student_id="s1",
                levels={RiskCategory.ACADEMIC: RiskLevel.HIGH},
                overall_risk_level=RiskLevel.LOW,
            )

    def test_valid_assessment_is_frozen(self):
        assessment = RiskAssessment(
            student_id="s1",
            levels={RiskCategory.ACADEMIC: RiskLevel.HIGH},
            overall_risk_level=RiskLevel.HIGH,
            overall_category=RiskCategory.ACADEMIC,
        )
        assert assessment.id.startswith("ra_")
        with pytest.raises(ValidationError):
            assessment.rationale = "changed"

    def test_json_round_trip_keeps_enum_keys(self):
        assessment = RiskAssessment(
            student_id="s1",
            levels={RiskCategory.EMOTIONAL: RiskLevel.CRITICAL},
            overall_risk_level=RiskLevel.CRITICAL,
            low_confidence=[RiskCategory.EMOTIONAL],
        )
        restored = RiskAssessment.model_validate_json(assessment.model_dump_json())
        assert restored.levels == {RiskCategory.EMOTIONAL: RiskLevel.CRITICAL}
        assert not restored.is_confident(RiskCategory.EMOTIONAL)


class TestInterventionContracts:
    def test_terminal_statuses(self):
        assert InterventionStatus.SUCCESSFUL.is_terminal
        assert InterventionStatus.CRITICAL_REVIEW.is_terminal
        assert set(OPEN_STATUSES) == {
            InterventionStatus.ACTIVE,
            InterventionStatus.IN_PROGRESS,
            InterventionStatus.NEEDS_ADJUSTMENT,
        }

    def test_category_type_mapping_is_one_to_one(self):
        assert len(CATEGORY_INTERVENTION_TYPES) == len(RiskCategory)
        assert len(set(CATEGORY_INTERVENTION_TYPES.values())) == len(InterventionType)
        for category, intervention_type in CATEGORY_INTERVENTION_TYPES.items():
            assert INTERVENTION_TYPE_CATEGORIES[intervention_type] == category

    def test_snapshot_clamps_out_of_range(self):
        snapshot = ProgressSnapshot(
            intervention_id="iv_1",
            progress_percentage=140,
            effectiveness_score=-0.3,
        )
        assert snapshot.progress_percentage == 100.0
        assert snapshot.effectiveness_score == 0.0

    def test_snapshot_clamps_nan_and_garbage(self):
        snapshot = ProgressSnapshot(
            intervention_id="iv_1",
            progress_percentage=float("nan"),
            effectiveness_score="not a number",
        )
        assert snapshot.progress_percentage == 0.0
        assert snapshot.effectiveness_score == 0.0

    def test_intervention_defaults(self):
        intervention = Intervention(
            student_id="s1",
            category=RiskCategory.ACADEMIC,
            intervention_type=InterventionType.ACADEMIC_SUPPORT,
            risk_level_at_creation=RiskLevel.HIGH,
        )
        assert intervention.status == InterventionStatus.ACTIVE
        assert intervention.effectiveness_score is None
        assert intervention.progress_percentage == 0.0
        assert intervention.expected_duration_weeks == 12

    def test_intensity_level_bounds(self):
        with pytest.raises(ValidationError):
            Intervention(
                student_id="s1",
                category=RiskCategory.ACADEMIC,
                intervention_type=InterventionType.ACADEMIC_SUPPORT,
                risk_level_at_creation=RiskLevel.HIGH,
                intensity_level=6,
            )


class TestPerformanceAnalytics:
    def test_potential_index_clamped(self):
        assert PerformanceAnalytics(potential_index=1.7).potential_index == 1.0
        assert PerformanceAnalytics(potential_index=-2).potential_index == 0.0
