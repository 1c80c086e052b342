"""
Batch Sweep

Re-assesses many students with bounded concurrency. Each student runs
review() (when tracking is enabled) and then run(), so the freshly scaled
level feeds that student's planning.

- At most max_parallel students are in flight
- One student's failure is recorded and never cancels the others
- Setting cancel_event stops workers from picking up further students;
  students already in flight finish
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from lodestar.contracts import EventKind
from lodestar.engine.audit import record
from lodestar.engine.pipeline import CycleResult, ReviewResult, SupportPipeline
from lodestar.store.event_log import EventLogWriter
from lodestar.store.repository import Repository

logger = logging.getLogger(__name__)

SWEEP_STREAM = "sweep"


@dataclass
class StudentSweepResult:
    student_id: str
    cycle: CycleResult | None = None
    review: ReviewResult | None = None


@dataclass
class SweepResult:
    succeeded: list[StudentSweepResult] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    not_started: list[str] = field(default_factory=list)
    cancelled: bool = False
    total_time_ms: int = 0

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)


class BatchSweep:
    def __init__(
        self,
        pipeline: SupportPipeline,
        repository: Repository,
        max_parallel: int = 4,
        tracking_enabled: bool = True,
        event_log: EventLogWriter | None = None,
    ):
        self.pipeline = pipeline
        self.repository = repository
        self.max_parallel = max(1, max_parallel)
        self.tracking_enabled = tracking_enabled
        self.event_log = event_log

    async def run(
        self,
        student_ids: list[str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SweepResult:
        """Sweep the given students, or every student with a stored profile."""
        start_time = time.monotonic()
        if student_ids is None:
            student_ids = await self.repository.list_student_ids()

        result = SweepResult()
        queue: asyncio.Queue[str] = asyncio.Queue()
        for student_id in student_ids:
            queue.put_nowait(student_id)

        record(
            self.event_log,
            SWEEP_STREAM,
            EventKind.SWEEP_STARTED,
            {"students": len(student_ids)},
        )
        logger.info(f"Sweep started: {len(student_ids)} students, {self.max_parallel} parallel")

        async def worker() -> None:
            while not queue.empty():
                if cancel_event is not None and cancel_event.is_set():
                    return
                student_id = queue.get_nowait()
                try:
                    result.succeeded.append(await self.process(student_id))
                except Exception as e:
                    logger.warning(f"Sweep: {student_id} failed: {e}")
                    result.failed[student_id] = str(e)
                    record(
                        self.event_log,
                        student_id,
                        EventKind.STUDENT_FAILED,
                        {"error": str(e)},
                    )

        workers = min(self.max_parallel, len(student_ids))
        await asyncio.gather(*[worker() for _ in range(workers)])

        while not queue.empty():
            result.not_started.append(queue.get_nowait())
        result.cancelled = bool(cancel_event is not None and cancel_event.is_set())
        result.total_time_ms = int((time.monotonic() - start_time) * 1000)

        record(
            self.event_log,
            SWEEP_STREAM,
            EventKind.SWEEP_COMPLETED,
            {
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
                "cancelled": result.cancelled,
                "total_time_ms": result.total_time_ms,
            },
        )
        logger.info(
            f"Sweep completed: {len(result.succeeded)} ok, {len(result.failed)} failed"
            + (f", cancelled with {len(result.not_started)} remaining" if result.cancelled else "")
            + f" ({result.total_time_ms}ms)"
        )
        return result

    async def process(self, student_id: str) -> StudentSweepResult:
        review = await self.pipeline.review(student_id) if self.tracking_enabled else None
        cycle = await self.pipeline.run(student_id)
        return StudentSweepResult(student_id=student_id, cycle=cycle, review=review)
