"""
============================================================================
UPTIME ENGINE - IN-PROCESS SCHEDULER
============================================================================
Periodic trigger for deployments that have no external cron hitting the
HTTP endpoint. Jobs are coroutines sharing the application's event loop.

Registered Jobs
---------------
1.  uptime_cycle    (every TRIGGER_SCHEDULER_INTERVAL seconds, default 60)
    Calls ``UptimeEngine.run_cycle``.

Overlap policy: when a tick finds the previous run of a job still going,
no second copy is started. The tick is counted in ``skip_count`` and the
job's next due time still advances by one interval.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from exceptions import CycleInProgressError
from utils.logger import get_logger


logger = get_logger("Scheduler")


def _epoch_to_iso(value: Optional[float]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()


# ============================================================================
# JOB DEFINITION
# ============================================================================

@dataclass
class ScheduledJob:
    """
    One periodic coroutine and its run bookkeeping.

    Attributes
    ----------
    coroutine_factory : Callable
        Zero-argument async callable invoked on every due tick.
    next_run : float
        Epoch seconds at which the job becomes due. A fresh job is due now.
    skip_count : int
        Due ticks that found the previous run unfinished, plus runs refused
        because a trigger-started cycle held the engine.
    task : asyncio.Task | None
        The run currently in flight, if any.
    """
    name: str
    interval_seconds: int
    coroutine_factory: Callable[[], Awaitable[Any]]
    enabled: bool = True
    last_run: Optional[float] = None
    next_run: float = field(default_factory=time.time)
    run_count: int = 0
    error_count: int = 0
    skip_count: int = 0
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    def is_due(self, now: float) -> bool:
        return self.enabled and now >= self.next_run

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "running": self.is_running,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "skip_count": self.skip_count,
            "last_run": _epoch_to_iso(self.last_run),
            "next_run": _epoch_to_iso(self.next_run),
        }


# ============================================================================
# SCHEDULER
# ============================================================================

class Scheduler:
    """
    Ticks once per ``tick_interval`` and launches whichever jobs are due.

    Usage
    -----
        scheduler = Scheduler()
        scheduler.register_job("uptime_cycle", 60, engine.run_cycle)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, tick_interval: float = 1.0):
        self._tick_interval = tick_interval
        self._jobs: Dict[str, ScheduledJob] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # JOB REGISTRY
    # ------------------------------------------------------------------

    def register_job(
        self,
        name: str,
        interval_seconds: int,
        coroutine_factory: Callable[[], Awaitable[Any]],
        enabled: bool = True,
    ) -> None:
        """
        Add *name* to the registry, replacing any job of the same name.
        The job is due on the first tick after registration.
        """
        if name in self._jobs:
            logger.warning(f"[Scheduler] Replacing existing job '{name}'")

        self._jobs[name] = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            coroutine_factory=coroutine_factory,
            enabled=enabled,
        )
        logger.debug(f"[Scheduler] Job '{name}' every {interval_seconds}s (enabled={enabled})")

    def _set_enabled(self, name: str, enabled: bool) -> bool:
        job = self._jobs.get(name)
        if job is None:
            return False
        job.enabled = enabled
        return True

    def enable_job(self, name: str) -> bool:
        """Resume a paused job. False when *name* is unknown."""
        return self._set_enabled(name, True)

    def disable_job(self, name: str) -> bool:
        """Pause a job without removing it. False when *name* is unknown."""
        return self._set_enabled(name, False)

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("[Scheduler] start() called twice; ignoring")
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._main_loop())
        logger.info(f"✓ Scheduler started ({len(self._jobs)} job(s), tick={self._tick_interval}s)")

    async def stop(self) -> None:
        """Stop ticking, then cancel and await any run still in flight."""
        self._running = False
        await self._cancel(self._loop_task)
        self._loop_task = None

        for job in self._jobs.values():
            if job.is_running:
                await self._cancel(job.task)
        logger.info("✓ Scheduler stopped")

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # TICKING
    # ------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> List[str]:
        """
        Launch due jobs as background tasks.

        Returns:
            Names of the jobs started on this tick (skipped ones excluded)
        """
        if now is None:
            now = time.time()

        started = []
        for job in self._jobs.values():
            if not job.is_due(now):
                continue

            job.next_run = now + job.interval_seconds
            if job.is_running:
                job.skip_count += 1
                logger.warning(
                    f"[Scheduler] '{job.name}' has not finished its previous run; "
                    f"skipped ({job.skip_count} total)"
                )
                continue

            job.task = asyncio.create_task(self._execute_job(job))
            started.append(job.name)
        return started

    async def _main_loop(self) -> None:
        logger.info("[Scheduler] Tick loop running")
        while self._running:
            self.tick()
            try:
                await asyncio.sleep(self._tick_interval)
            except asyncio.CancelledError:
                break
        logger.info("[Scheduler] Tick loop finished")

    async def _execute_job(self, job: ScheduledJob) -> None:
        """Await one run of *job* and fold its outcome into the counters."""
        started = time.monotonic()
        try:
            await job.coroutine_factory()
        except CycleInProgressError:
            # engine busy with a trigger-started cycle
            job.skip_count += 1
            logger.info(f"[Scheduler] '{job.name}' not run: cycle already in progress")
            return
        except Exception as e:
            job.error_count += 1
            logger.opt(exception=True).error(
                f"[Scheduler] '{job.name}' failed after {time.monotonic() - started:.2f}s: {e}"
            )
            return

        job.run_count += 1
        job.last_run = time.time()
        logger.debug(
            f"[Scheduler] '{job.name}' run #{job.run_count} took {time.monotonic() - started:.2f}s"
        )

    # ------------------------------------------------------------------
    # DIAGNOSTICS
    # ------------------------------------------------------------------

    def get_job_stats(self) -> List[Dict[str, Any]]:
        """Per-job counters and timestamps for the /health payload."""
        return [job.describe() for job in self._jobs.values()]
