"""Command-line interface for Lodestar - student risk assessment and intervention engine."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _run_with_engine(action: Callable[[Any], Awaitable[int]]) -> int:
    """Build the engine from config, run an async action, and close it."""
    from lodestar.config import get_config
    from lodestar.engine import build_engine

    async def runner() -> int:
        engine = build_engine(get_config())
        try:
            return await action(engine)
        finally:
            await engine.close()

    return asyncio.run(runner())


def _load_records(path: Path) -> list[dict]:
    """Load a JSON array or JSON Lines file."""
    text = path.read_text()
    if path.suffix == ".jsonl":
        return [json.loads(line) for line in text.splitlines() if line.strip()]
    data = json.loads(text)
    return data if isinstance(data, list) else [data]


def _print_assessment(assessment) -> None:
    print(f"Assessment {assessment.id} for {assessment.student_id}")
    print(f"  Overall: {assessment.overall_risk_level.name}", end="")
    if assessment.overall_category:
        print(f" ({assessment.overall_category.value})")
    else:
        print()
    for category, level in assessment.levels.items():
        flag = "" if assessment.is_confident(category) else "  [low confidence]"
        print(f"  {category.value:20s} {level.name}{flag}")
    print(f"  Triggered: {', '.join(c.value for c in assessment.trigger_set) or '-'}")
    for detail in assessment.trigger_details:
        print(f"  ! {detail}")


def cmd_status(args: argparse.Namespace) -> int:
    """Show system status."""
    from lodestar.config import get_config
    from lodestar.contracts import OPEN_STATUSES
    from lodestar.store import SQLiteRepository

    config = get_config()

    print("Lodestar Status")
    print("=" * 50)

    errors = config.validate()
    if errors:
        print("\nConfiguration errors:")
        for error in errors:
            print(f"  - {error}")
    else:
        print("\nConfiguration: OK")

    print("\nModels:")
    for kind, tier in config.INSIGHT_MODEL_TIERS.items():
        print(f"  {kind}: {config.get_model(kind)} ({tier})")

    print("\nTrigger thresholds:")
    for category, level in config.RISK_TRIGGER_THRESHOLDS.items():
        print(f"  {category}: >= {level}")

    print(f"\nDatabase: {config.db_path}")
    if config.db_path.exists():

        async def counts() -> tuple[int, int]:
            repository = SQLiteRepository(config.db_path)
            students = await repository.list_student_ids()
            open_interventions = await repository.list_interventions(statuses=OPEN_STATUSES)
            return len(students), len(open_interventions)

        students, open_count = asyncio.run(counts())
        print(f"  Students: {students}")
        print(f"  Open interventions: {open_count}")

    return 0


def cmd_import_profiles(args: argparse.Namespace) -> int:
    """Import student signal profiles from JSON."""
    from pydantic import ValidationError

    from lodestar.contracts import StudentSignalProfile

    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return 1

    async def action(engine) -> int:
        imported = 0
        for record in _load_records(path):
            try:
                profile = StudentSignalProfile.model_validate(record)
            except ValidationError as e:
                print(f"Skipping {record.get('student_id', '?')}: {e.error_count()} errors")
                continue
            await engine.repository.save_profile(profile)
            imported += 1
        print(f"Imported {imported} profiles")
        return 0

    return _run_with_engine(action)


def cmd_record_metrics(args: argparse.Namespace) -> int:
    """Record before/after metric samples from JSON."""
    from lodestar.contracts import PerformanceMetricSample

    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return 1

    async def action(engine) -> int:
        samples = [PerformanceMetricSample.model_validate(r) for r in _load_records(path)]
        count = await engine.repository.record_metric_samples(samples)
        print(f"Recorded {count} metric samples")
        return 0

    return _run_with_engine(action)


def cmd_assess(args: argparse.Namespace) -> int:
    """Assess one student and plan interventions."""

    async def action(engine) -> int:
        if args.no_plan:
            assessment, _, _ = await engine.pipeline.assess(args.student_id)
            _print_assessment(assessment)
            return 0

        cycle = await engine.pipeline.run(args.student_id)
        _print_assessment(cycle.assessment)

        print(f"\nIntervention bundle ({cycle.bundle.overall_risk_level.name}):")
        for intervention in cycle.bundle.interventions:
            print(
                f"  {intervention.id}  {intervention.category.value:20s} "
                f"{intervention.risk_level_at_creation.name:9s} -> {intervention.assigned_role}"
            )
        for category, reason in cycle.planning.skipped.items():
            print(f"  skipped {category.value}: {reason}")
        for category, reason in cycle.planning.failed.items():
            print(f"  FAILED {category.value}: {reason}")
        return 1 if cycle.planning.failed else 0

    return _run_with_engine(action)


def cmd_sweep(args: argparse.Namespace) -> int:
    """Run a batch sweep once, or periodically with --daemon."""
    from lodestar.daemon import SweepDaemon

    async def action(engine) -> int:
        if args.daemon:
            interval = args.interval or engine.config.SWEEP_INTERVAL
            daemon = SweepDaemon(
                engine.sweep,
                interval=interval,
                event_log=engine.event_log,
                run_immediately=True,
            )
            await daemon.start()
            try:
                await daemon.wait()
            finally:
                await daemon.stop()
            return 0

        result = await engine.sweep.run(student_ids=args.students or None)
        print(f"Sweep: {len(result.succeeded)} succeeded, {len(result.failed)} failed")
        for student_id, error in result.failed.items():
            print(f"  {student_id}: {error}")
        return 1 if result.failed else 0

    try:
        return _run_with_engine(action)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


def cmd_track(args: argparse.Namespace) -> int:
    """Run a tracking cycle for one intervention or all of a student's."""

    async def action(engine) -> int:
        if args.student:
            review = await engine.pipeline.review(args.student)
            outcomes = review.tracked
            for intervention_id, error in review.failed.items():
                print(f"  FAILED {intervention_id}: {error}")
            if review.scaling:
                print(
                    f"Level {review.scaling.current_level} -> "
                    f"{review.scaling.recommended_level} ({review.scaling.rule})"
                )
        else:
            outcomes = [await engine.tracker.track(args.intervention_id)]

        for outcome in outcomes:
            if outcome.skipped_reason:
                print(f"{outcome.intervention_id}: skipped ({outcome.skipped_reason})")
                if outcome.ticket:
                    print(f"  escalated: ticket {outcome.ticket.id}")
                continue
            snapshot = outcome.snapshot
            print(
                f"{outcome.intervention_id}: {outcome.previous_status.value} -> "
                f"{outcome.status.value}, progress {snapshot.progress_percentage:.0f}%, "
                f"effectiveness {snapshot.effectiveness_score:.2f}"
            )
            if outcome.ticket:
                print(f"  escalated: ticket {outcome.ticket.id}")
        return 0

    return _run_with_engine(action)


def cmd_measure(args: argparse.Namespace) -> int:
    """Measure an intervention's effectiveness from recorded metrics."""

    async def action(engine) -> int:
        report = await engine.measurer.measure_intervention(args.intervention_id)
        if report is None:
            print(f"No metric samples for {args.intervention_id}")
            return 1

        print(f"Effectiveness: {report.effectiveness_score:.2f}")
        for name, impact in report.impacts.items():
            if impact.excluded:
                print(f"  {name}: excluded (unusable baseline)")
            else:
                print(
                    f"  {name}: {impact.improvement_percent:+.1f}% "
                    f"({impact.absolute_change:+g})"
                )
        if report.recommended_adjustments:
            print("Recommended adjustments:")
            for item in report.recommended_adjustments:
                print(f"  - {item}")
        return 0

    return _run_with_engine(action)


def cmd_scale(args: argparse.Namespace) -> int:
    """Recompute a student's intervention level."""
    from lodestar.contracts import PerformanceTrend

    trend = PerformanceTrend(args.trend) if args.trend else None

    async def action(engine) -> int:
        rec = await engine.scaler.scale(args.student_id, trend, args.potential)
        print(
            f"{args.student_id}: level {rec.current_level} -> "
            f"{rec.recommended_level} ({rec.rule})"
        )
        print(f"  Support intensity: {rec.support_intensity:.1f}")
        for item in rec.scaling_strategy:
            print(f"  - {item}")
        return 0

    return _run_with_engine(action)


def cmd_trends(args: argparse.Namespace) -> int:
    """Show risk trends over the assessment log."""
    from lodestar.analytics import RiskTrendAnalyzer

    async def action(engine) -> int:
        report = await RiskTrendAnalyzer(engine.repository).analyze(months=args.months)
        print(f"Assessments since {report.since:%Y-%m-%d}: {report.total_assessments}")
        print(f"Students: {report.students}")
        print("\nOverall levels:")
        for level, count in report.overall_distribution.items():
            print(f"  {level:9s} {count}")
        print("\nCategories:")
        for category, trend in report.categories.items():
            print(f"  {category.value:20s} n={trend.count:<5d} mean={trend.mean_level:.2f}")
        print(
            f"\nConfidence: {report.confident_scores} confident, "
            f"{report.low_confidence_scores} low-confidence"
        )
        return 0

    return _run_with_engine(action)


def cmd_outcomes(args: argparse.Namespace) -> int:
    """Show intervention outcomes."""
    from lodestar.analytics import OutcomeAnalyzer

    async def action(engine) -> int:
        report = await OutcomeAnalyzer(engine.repository).analyze(months=args.months)
        print(f"Interventions since {report.since:%Y-%m-%d}: {report.total_interventions}")
        for outcome, count in report.outcomes.items():
            print(f"  {outcome:20s} {count}")
        print("\nMean progress by category:")
        for category, progress in report.category_progress.items():
            print(f"  {category.value:20s} {progress:.1f}%")
        print("\nTop interventions:")
        for iv in report.top_interventions:
            print(f"  {iv.id}  {iv.category.value:20s} {iv.progress_percentage:.0f}%")
        if report.mean_risk_improvement is not None:
            print(f"\nMean risk improvement: {report.mean_risk_improvement:.1f}%")
        return 0

    return _run_with_engine(action)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lodestar",
        description="Lodestar - student risk assessment and adaptive intervention engine",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command")

    # lodestar status
    status_parser = subparsers.add_parser("status", help="Show system status")
    status_parser.set_defaults(func=cmd_status)

    # lodestar import-profiles <file>
    import_parser = subparsers.add_parser(
        "import-profiles",
        help="Import student signal profiles from JSON or JSONL",
    )
    import_parser.add_argument("file", help="Path to profiles file")
    import_parser.set_defaults(func=cmd_import_profiles)

    # lodestar record-metrics <file>
    metrics_parser = subparsers.add_parser(
        "record-metrics",
        help="Record before/after metric samples from JSON or JSONL",
    )
    metrics_parser.add_argument("file", help="Path to samples file")
    metrics_parser.set_defaults(func=cmd_record_metrics)

    # lodestar assess <student_id>
    assess_parser = subparsers.add_parser(
        "assess",
        help="Assess a student and plan interventions",
    )
    assess_parser.add_argument("student_id", help="Student id")
    assess_parser.add_argument(
        "--no-plan",
        action="store_true",
        dest="no_plan",
        help="Only record the assessment",
    )
    assess_parser.set_defaults(func=cmd_assess)

    # lodestar sweep
    sweep_parser = subparsers.add_parser(
        "sweep",
        help="Re-assess all students (or the given ones)",
    )
    sweep_parser.add_argument(
        "--students",
        nargs="*",
        help="Student ids to sweep (default: all stored profiles)",
    )
    sweep_parser.add_argument(
        "--daemon",
        action="store_true",
        help="Keep running and sweep every interval",
    )
    sweep_parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between sweeps in daemon mode (default: SWEEP_INTERVAL)",
    )
    sweep_parser.set_defaults(func=cmd_sweep)

    # lodestar track
    track_parser = subparsers.add_parser(
        "track",
        help="Run a tracking cycle",
    )
    track_target = track_parser.add_mutually_exclusive_group(required=True)
    track_target.add_argument("intervention_id", nargs="?", help="Intervention id")
    track_target.add_argument("--student", help="Track all open interventions of a student")
    track_parser.set_defaults(func=cmd_track)

    # lodestar measure <intervention_id>
    measure_parser = subparsers.add_parser(
        "measure",
        help="Measure effectiveness from recorded metrics",
    )
    measure_parser.add_argument("intervention_id", help="Intervention id")
    measure_parser.set_defaults(func=cmd_measure)

    # lodestar scale <student_id>
    scale_parser = subparsers.add_parser(
        "scale",
        help="Recompute a student's intervention level",
    )
    scale_parser.add_argument("student_id", help="Student id")
    scale_parser.add_argument(
        "--trend",
        choices=["IMPROVING", "STABLE", "DECLINING"],
        help="Performance trend (default: from profile)",
    )
    scale_parser.add_argument(
        "--potential",
        type=float,
        default=None,
        help="Potential index 0-1 (default: from profile)",
    )
    scale_parser.set_defaults(func=cmd_scale)

    # lodestar trends
    trends_parser = subparsers.add_parser("trends", help="Risk trend analysis")
    trends_parser.add_argument(
        "--months",
        type=int,
        default=12,
        help="Window in months (default: 12)",
    )
    trends_parser.set_defaults(func=cmd_trends)

    # lodestar outcomes
    outcomes_parser = subparsers.add_parser("outcomes", help="Intervention outcome analysis")
    outcomes_parser.add_argument(
        "--months",
        type=int,
        default=12,
        help="Window in months (default: 12)",
    )
    outcomes_parser.set_defaults(func=cmd_outcomes)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Show help if no command
    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
