"""Sweep Daemon - background loop that re-assesses every student periodically."""

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from lodestar.contracts import EventKind
from lodestar.engine.audit import record
from lodestar.engine.sweep import BatchSweep, SweepResult
from lodestar.store.event_log import EventLogWriter

logger = logging.getLogger(__name__)

DAEMON_STREAM = "daemon"


class SweepDaemon:
    """Background daemon running a BatchSweep every interval.

    Stopping sets the sweep's cancel event first, so a sweep in flight stops
    picking up new students before the task itself is cancelled.
    """

    DEFAULT_INTERVAL = 86400.0  # seconds

    def __init__(
        self,
        sweep: BatchSweep,
        interval: float = DEFAULT_INTERVAL,
        event_log: EventLogWriter | None = None,
        run_immediately: bool = False,
        on_complete: Optional[Callable[[SweepResult], Any]] = None,
    ):
        """Initialize the daemon.

        Args:
            sweep: Batch sweep to run on each tick
            interval: Seconds between sweeps
            event_log: Event log for daemon events
            run_immediately: Sweep once on start instead of waiting an interval
            on_complete: Optional callback with each sweep's result
        """
        self.sweep = sweep
        self.interval = interval
        self.event_log = event_log
        self.run_immediately = run_immediately
        self.on_complete = on_complete

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._cancel_event = asyncio.Event()
        self._tick_count = 0
        self.last_result: SweepResult | None = None

    async def start(self) -> None:
        """Start the background tick loop."""
        if self._running:
            return

        self._running = True
        self._tick_count = 0
        self._cancel_event = asyncio.Event()
        self._task = asyncio.create_task(self._tick_loop())
        logger.info(f"Sweep daemon started (interval {self.interval:.0f}s)")

    async def stop(self) -> None:
        """Stop the background tick loop."""
        self._running = False
        self._cancel_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Sweep daemon stopped")

    async def wait(self) -> None:
        """Block until the daemon is stopped."""
        if self._task:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _tick_loop(self) -> None:
        """Main daemon loop."""
        first = True
        while self._running:
            try:
                if not (first and self.run_immediately):
                    await asyncio.sleep(self.interval)
                first = False
                if not self._running:
                    break
                await self._tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Log error but keep running
                logger.error(f"Sweep daemon tick {self._tick_count} failed: {e}")
                record(
                    self.event_log,
                    DAEMON_STREAM,
                    EventKind.ERROR,
                    {"error": str(e), "tick": self._tick_count},
                )

    async def _tick(self) -> None:
        """Execute a single daemon tick."""
        self._tick_count += 1
        tick_start = time.monotonic()

        record(
            self.event_log,
            DAEMON_STREAM,
            EventKind.DAEMON_TICK,
            {
                "tick": self._tick_count,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

        self.last_result = await self.sweep.run(cancel_event=self._cancel_event)

        if self.on_complete:
            if inspect.iscoroutinefunction(self.on_complete):
                await self.on_complete(self.last_result)
            else:
                self.on_complete(self.last_result)

        logger.debug(
            f"Daemon tick {self._tick_count} took {int((time.monotonic() - tick_start) * 1000)}ms"
        )

    @property
    def is_running(self) -> bool:
        """Check if daemon is running."""
        return self._running and self._task is not None

    def get_status(self) -> dict:
        """Get daemon status for diagnostics."""
        return {
            "running": self.is_running,
            "tick_count": self._tick_count,
            "interval": self.interval,
            "last_processed": self.last_result.processed if self.last_result else 0,
        }
