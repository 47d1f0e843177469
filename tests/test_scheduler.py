"""Tests for the in-process scheduler."""

from __future__ import annotations

import asyncio
import time

import pytest

from exceptions import CycleInProgressError
from monitoring.scheduler import Scheduler


# Registered jobs are due immediately, so any later instant works
T0 = time.time() + 3600


class GatedJob:
    def __init__(self) -> None:
        self.calls = 0
        self.gate = asyncio.Event()

    async def __call__(self) -> None:
        self.calls += 1
        await self.gate.wait()


class TestScheduler:
    @pytest.mark.asyncio
    async def test_tick_launches_due_jobs(self) -> None:
        scheduler = Scheduler()
        job = GatedJob()
        job.gate.set()
        scheduler.register_job("uptime_cycle", 60, job)

        launched = scheduler.tick(now=T0)
        await scheduler._jobs["uptime_cycle"].task

        assert launched == ["uptime_cycle"]
        assert job.calls == 1
        stats = scheduler.get_job_stats()[0]
        assert stats["run_count"] == 1
        assert stats["running"] is False
        assert stats["last_run"] is not None

    @pytest.mark.asyncio
    async def test_job_not_due_is_not_launched(self) -> None:
        scheduler = Scheduler()
        scheduler.register_job("uptime_cycle", 60, GatedJob())

        scheduler.tick(now=T0)
        assert scheduler.tick(now=T0 + 30) == []
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_running_job_is_skipped_not_stacked(self) -> None:
        scheduler = Scheduler()
        job = GatedJob()
        scheduler.register_job("uptime_cycle", 60, job)

        assert scheduler.tick(now=T0) == ["uptime_cycle"]
        await asyncio.sleep(0)
        assert scheduler.tick(now=T0 + 60) == []
        assert scheduler.tick(now=T0 + 120) == []

        job.gate.set()
        await scheduler._jobs["uptime_cycle"].task
        assert scheduler.tick(now=T0 + 180) == ["uptime_cycle"]
        await scheduler._jobs["uptime_cycle"].task

        stats = scheduler.get_job_stats()[0]
        assert job.calls == 2
        assert stats["skip_count"] == 2
        assert stats["run_count"] == 2

    @pytest.mark.asyncio
    async def test_cycle_in_progress_counts_as_skip(self) -> None:
        async def busy() -> None:
            raise CycleInProgressError()

        scheduler = Scheduler()
        scheduler.register_job("uptime_cycle", 60, busy)
        scheduler.tick(now=T0)
        await scheduler._jobs["uptime_cycle"].task

        stats = scheduler.get_job_stats()[0]
        assert (stats["skip_count"], stats["error_count"], stats["run_count"]) == (1, 0, 0)

    @pytest.mark.asyncio
    async def test_failing_job_is_counted_and_contained(self) -> None:
        async def broken() -> None:
            raise RuntimeError("database unavailable")

        scheduler = Scheduler()
        scheduler.register_job("uptime_cycle", 60, broken)
        scheduler.tick(now=T0)
        await scheduler._jobs["uptime_cycle"].task

        assert scheduler.get_job_stats()[0]["error_count"] == 1

    @pytest.mark.asyncio
    async def test_disabled_job_never_runs(self) -> None:
        scheduler = Scheduler()
        scheduler.register_job("uptime_cycle", 60, GatedJob())

        assert scheduler.disable_job("uptime_cycle")
        assert not scheduler.disable_job("missing")
        assert scheduler.tick(now=T0) == []
        assert scheduler.enable_job("uptime_cycle")

    @pytest.mark.asyncio
    async def test_stop_cancels_running_job(self) -> None:
        scheduler = Scheduler(tick_interval=0.01)
        job = GatedJob()
        scheduler.register_job("uptime_cycle", 60, job)

        await scheduler.start()
        for _ in range(50):
            if job.calls:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert job.calls == 1
        assert not scheduler.is_running
        assert scheduler.get_job_stats()[0]["running"] is False
