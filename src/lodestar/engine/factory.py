"""Engine construction from configuration."""

import logging
from dataclasses import dataclass
from pathlib import Path

from lodestar.catalog import Catalog, load_catalog
from lodestar.config import Config, get_config
from lodestar.contracts import RiskCategory
from lodestar.engine.aggregator import RiskAggregator
from lodestar.engine.consolidator import Consolidator
from lodestar.engine.effectiveness import EffectivenessMeasurer
from lodestar.engine.locks import KeyedLock
from lodestar.engine.pipeline import SupportPipeline
from lodestar.engine.planner import InterventionPlanner
from lodestar.engine.scaler import AdaptiveScaler
from lodestar.engine.scorer import RiskScorer
from lodestar.engine.signals import SignalAggregator, SignalSource
from lodestar.engine.sweep import BatchSweep
from lodestar.engine.tracker import ProgressTracker
from lodestar.escalation import EscalationSink, RepositoryEscalationSink
from lodestar.insight import InsightClient, LLMInsightClient
from lodestar.providers import OpenRouterClient
from lodestar.store import EventLogWriter, Repository, SQLiteRepository

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All engine components, wired to one repository and insight client."""

    config: Config
    catalog: Catalog
    repository: Repository
    insight: InsightClient
    escalation: EscalationSink
    event_log: EventLogWriter | None
    signals: SignalAggregator
    scorer: RiskScorer
    aggregator: RiskAggregator
    planner: InterventionPlanner
    consolidator: Consolidator
    tracker: ProgressTracker
    measurer: EffectivenessMeasurer
    scaler: AdaptiveScaler
    pipeline: SupportPipeline
    sweep: BatchSweep

    async def close(self) -> None:
        close = getattr(self.insight, "close", None)
        if close is not None:
            await close()


def assessed_categories(config: Config) -> list[RiskCategory]:
    if config.ASSESSED_CATEGORIES == "all":
        return list(RiskCategory)
    return [RiskCategory(name) for name in config.ASSESSED_CATEGORIES]


def build_engine(
    config: Config | None = None,
    *,
    insight: InsightClient | None = None,
    repository: Repository | None = None,
    escalation: EscalationSink | None = None,
    event_log: EventLogWriter | None = None,
    sources: list[SignalSource] | None = None,
    catalog: Catalog | None = None,
) -> Engine:
    """Build a fully wired engine.

    Anything not passed in is created from config: a SQLite repository and
    event log under DATA_DIR, an OpenRouter-backed insight client, and the
    repository-backed escalation sink.
    """
    config = config or get_config()
    catalog = catalog or load_catalog(config.CATALOG_PATH or None)
    timeout_ms = config.CALL_TIMEOUT_MS

    if repository is None:
        repository = SQLiteRepository(config.db_path)
    if event_log is None:
        event_log = EventLogWriter(Path(config.DATA_DIR) / "events.db")
    if insight is None:
        provider = OpenRouterClient(
            api_key=config.INSIGHT_API_KEY,
            base_url=config.INSIGHT_BASE_URL,
            timeout=timeout_ms / 1000,
        )
        insight = LLMInsightClient(provider, config)
    if escalation is None:
        escalation = RepositoryEscalationSink(repository)

    measurer = EffectivenessMeasurer(catalog.adjustments, repository)
    signals = SignalAggregator(repository, sources, timeout_ms, event_log)
    scorer = RiskScorer(insight, timeout_ms)
    aggregator = RiskAggregator.from_config(config)
    planner = InterventionPlanner(
        repository, insight, catalog, timeout_ms, event_log, locks=KeyedLock()
    )
    consolidator = Consolidator()
    tracker = ProgressTracker(
        repository, insight, escalation, measurer, catalog, timeout_ms, event_log
    )
    scaler = AdaptiveScaler(
        repository,
        catalog,
        default_level=config.DEFAULT_INTERVENTION_LEVEL,
        window=config.RECENT_EFFECTIVENESS_WINDOW,
        event_log=event_log,
    )
    pipeline = SupportPipeline(
        repository,
        signals,
        scorer,
        aggregator,
        planner,
        consolidator,
        tracker,
        scaler,
        catalog,
        categories=assessed_categories(config),
        event_log=event_log,
    )
    sweep = BatchSweep(
        pipeline,
        repository,
        max_parallel=config.SWEEP_MAX_PARALLEL,
        tracking_enabled=config.TRACKING_ENABLED_IN_SWEEP,
        event_log=event_log,
    )

    return Engine(
        config=config,
        catalog=catalog,
        repository=repository,
        insight=insight,
        escalation=escalation,
        event_log=event_log,
        signals=signals,
        scorer=scorer,
        aggregator=aggregator,
        planner=planner,
        consolidator=consolidator,
        tracker=tracker,
        measurer=measurer,
        scaler=scaler,
        pipeline=pipeline,
        sweep=sweep,
    )
