"""
Effectiveness Measurer

Scores an intervention from before/after metric samples:

    improvement_ratio = clamp((after - before) / before, 0, 1)
    effectiveness     = mean(improvement_ratio over usable metrics)

A metric with a zero (or non-finite) baseline is a data error: it is reported
as excluded and left out of the mean. With no usable metric the score is 0.0.
"""

import logging
import math

from lodestar.catalog import AdjustmentCatalog
from lodestar.contracts import EffectivenessReport, MetricImpact, PerformanceMetricSample
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)


def latest_per_metric(
    samples: list[PerformanceMetricSample],
) -> dict[str, PerformanceMetricSample]:
    """Most recent sample for each metric name (later list position wins ties)."""
    latest: dict[str, PerformanceMetricSample] = {}
    for sample in samples:
        current = latest.get(sample.metric_name)
        if current is None or sample.timestamp >= current.timestamp:
            latest[sample.metric_name] = sample
    return latest


def metric_impact(sample: PerformanceMetricSample) -> MetricImpact:
    before, after = sample.value_before, sample.value_after
    if not (math.isfinite(before) and math.isfinite(after)):
        return MetricImpact(metric_name=sample.metric_name, excluded=True)
    if before <= 0:
        return MetricImpact(
            metric_name=sample.metric_name,
            absolute_change=after - before,
            excluded=True,
        )
    ratio = (after - before) / before
    return MetricImpact(
        metric_name=sample.metric_name,
        improvement_percent=ratio * 100,
        absolute_change=after - before,
        improvement_ratio=max(0.0, min(1.0, ratio)),
    )


class EffectivenessMeasurer:
    """Effectiveness score, per-metric impact, and adjustment recommendations."""

    def __init__(self, adjustments: AdjustmentCatalog, repository: Repository | None = None):
        self.adjustments = adjustments
        self.repository = repository

    def measure(
        self,
        samples: list[PerformanceMetricSample],
        intervention_id: str | None = None,
    ) -> EffectivenessReport:
        impacts = {
            name: metric_impact(sample) for name, sample in latest_per_metric(samples).items()
        }
        excluded = [name for name, impact in impacts.items() if impact.excluded]
        if excluded:
            logger.warning(f"Excluded metrics with unusable baseline: {excluded}")

        ratios = [
            impact.improvement_ratio
            for impact in impacts.values()
            if impact.improvement_ratio is not None
        ]
        score = sum(ratios) / len(ratios) if ratios else 0.0

        return EffectivenessReport(
            intervention_id=intervention_id,
            effectiveness_score=score,
            impacts=impacts,
            excluded_metrics=excluded,
            recommended_adjustments=self.recommend_adjustments(score, impacts),
        )

    def recommend_adjustments(self, score: float, impacts: dict[str, MetricImpact]) -> list[str]:
        catalog = self.adjustments
        recommendations: list[str] = []
        if score < catalog.redesign_below:
            recommendations.extend(catalog.redesign)
        elif score < catalog.refinement_below:
            recommendations.extend(catalog.refinement)

        for name, impact in impacts.items():
            if (
                impact.improvement_percent is not None
                and impact.improvement_percent < catalog.metric_focus_below_percent
            ):
                recommendations.append(catalog.metric_focus.format(metric=name))
        return recommendations

    async def measure_intervention(self, intervention_id: str) -> EffectivenessReport | None:
        """Measure from stored samples; None when the intervention has none."""
        if self.repository is None:
            raise RuntimeError("EffectivenessMeasurer has no repository")
        samples = await self.repository.list_metric_samples(intervention_id)
        if not samples:
            return None
        return self.measure(samples, intervention_id)
