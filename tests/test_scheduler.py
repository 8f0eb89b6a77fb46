"""Tests for the periodic job scheduler."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from options_flow_tracker.scheduler import PeriodicScheduler


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class TestRegister:
    """Tests for job registration."""

    def test_duplicate_name_rejected(self) -> None:
        scheduler = PeriodicScheduler()
        scheduler.register("a", 1, AsyncMock())
        with pytest.raises(ValueError):
            scheduler.register("a", 1, AsyncMock())

    def test_non_positive_interval_rejected(self) -> None:
        with pytest.raises(ValueError):
            PeriodicScheduler().register("a", 0, AsyncMock())


class TestRunOnce:
    """Tests for single ticks."""

    @pytest.mark.asyncio
    async def test_runs_job(self) -> None:
        scheduler = PeriodicScheduler()
        job = AsyncMock()
        scheduler.register("a", 60, job)

        assert await scheduler.run_once("a") is True
        job.assert_awaited_once()
        assert scheduler.jobs["a"].runs == 1

    @pytest.mark.asyncio
    async def test_closed_gate_skips(self) -> None:
        scheduler = PeriodicScheduler()
        job = AsyncMock()
        scheduler.register("a", 60, job, gate=lambda: False)

        assert await scheduler.run_once("a") is False
        job.assert_not_awaited()
        assert scheduler.jobs["a"].skips == 1

    @pytest.mark.asyncio
    async def test_gate_evaluated_once_per_tick(self) -> None:
        scheduler = PeriodicScheduler()
        calls = 0

        def gate() -> bool:
            nonlocal calls
            calls += 1
            return True

        scheduler.register("a", 60, AsyncMock(), gate=gate)
        await scheduler.run_once("a")
        await scheduler.run_once("a")

        assert calls == 2

    @pytest.mark.asyncio
    async def test_job_failure_is_contained(self) -> None:
        scheduler = PeriodicScheduler()
        scheduler.register("a", 60, AsyncMock(side_effect=RuntimeError("boom")))

        assert await scheduler.run_once("a") is False
        assert scheduler.jobs["a"].failures == 1


class TestLoop:
    """Tests for the running scheduler."""

    @pytest.mark.asyncio
    async def test_repeats_until_stopped(self) -> None:
        scheduler = PeriodicScheduler()
        job = AsyncMock()
        scheduler.register("a", 0.01, job)

        scheduler.start()
        assert scheduler.is_running
        await _wait_for(lambda: job.await_count >= 3)
        await scheduler.stop()

        assert not scheduler.is_running
        count = job.await_count
        await asyncio.sleep(0.05)
        assert job.await_count == count

    @pytest.mark.asyncio
    async def test_run_immediately(self) -> None:
        scheduler = PeriodicScheduler()
        job = AsyncMock()
        scheduler.register("a", 60, job, run_immediately=True)

        scheduler.start()
        await _wait_for(lambda: job.await_count == 1)
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failing_job_keeps_running(self) -> None:
        scheduler = PeriodicScheduler()
        job = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler.register("a", 0.01, job)

        scheduler.start()
        await _wait_for(lambda: job.await_count >= 2)
        await scheduler.stop()

        assert scheduler.jobs["a"].failures >= 2

    @pytest.mark.asyncio
    async def test_register_after_start(self) -> None:
        scheduler = PeriodicScheduler()
        scheduler.start()
        job = AsyncMock()
        scheduler.register("late", 0.01, job)

        await _wait_for(lambda: job.await_count >= 1)
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_double_start_rejected(self) -> None:
        scheduler = PeriodicScheduler()
        scheduler.start()
        try:
            with pytest.raises(RuntimeError):
                scheduler.start()
        finally:
            await scheduler.stop()
