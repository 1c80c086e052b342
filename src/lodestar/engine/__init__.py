"""Risk assessment and adaptive intervention engine."""

from lodestar.engine.aggregator import Aggregate, RiskAggregator, parse_thresholds, priority_key
from lodestar.engine.consolidator import Consolidator, InterventionBundle
from lodestar.engine.early_warning import EarlyWarningFinding, evaluate_rules
from lodestar.engine.effectiveness import EffectivenessMeasurer
from lodestar.engine.factory import Engine, build_engine
from lodestar.engine.locks import KeyedLock
from lodestar.engine.pipeline import CycleResult, ReviewResult, SupportPipeline
from lodestar.engine.planner import InterventionPlanner, PlanningResult, PlanOutcome
from lodestar.engine.scaler import AdaptiveScaler, recommend_level, support_intensity
from lodestar.engine.scorer import RiskScorer, ScoreResult, score_result
from lodestar.engine.signals import SignalAggregator, SignalSource
from lodestar.engine.sweep import BatchSweep, SweepResult
from lodestar.engine.tracker import ProgressTracker, TrackingOutcome, classify_status

__all__ = [
    # Assessment
    "SignalAggregator",
    "SignalSource",
    "EarlyWarningFinding",
    "evaluate_rules",
    "RiskScorer",
    "ScoreResult",
    "score_result",
    "Aggregate",
    "RiskAggregator",
    "parse_thresholds",
    "priority_key",
    # Planning
    "InterventionPlanner",
    "PlanningResult",
    "PlanOutcome",
    "Consolidator",
    "InterventionBundle",
    "KeyedLock",
    # Tracking + scaling
    "ProgressTracker",
    "TrackingOutcome",
    "classify_status",
    "EffectivenessMeasurer",
    "AdaptiveScaler",
    "recommend_level",
    "support_intensity",
    # Orchestration
    "SupportPipeline",
    "CycleResult",
    "ReviewResult",
    "BatchSweep",
    "SweepResult",
    "Engine",
    "build_engine",
]
