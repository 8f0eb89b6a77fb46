"""Periodic job scheduler.

One asyncio task per registered job. Each tick waits out the interval
(or until stop), evaluates the job's gate once, and runs the job. Job
failures are logged and never end the loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]
Gate = Callable[[], bool]


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    job: Job
    gate: Gate | None = None
    run_immediately: bool = False
    runs: int = 0
    skips: int = 0
    failures: int = 0


class PeriodicScheduler:
    """Runs registered jobs on fixed intervals until stopped."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stop_event: asyncio.Event | None = None

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def register(
        self,
        name: str,
        interval_seconds: float,
        job: Job,
        *,
        gate: Gate | None = None,
        run_immediately: bool = False,
    ) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"Job {name!r} already registered")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        scheduled = ScheduledJob(
            name=name,
            interval_seconds=interval_seconds,
            job=job,
            gate=gate,
            run_immediately=run_immediately,
        )
        self._jobs[name] = scheduled
        if self._stop_event is not None:
            self._tasks[name] = asyncio.create_task(self._run_loop(scheduled))
        return scheduled

    async def run_once(self, name: str) -> bool:
        """Run one tick of ``name`` now. Returns False if gated or failed."""
        return await self._tick(self._jobs[name])

    async def _tick(self, scheduled: ScheduledJob) -> bool:
        try:
            if scheduled.gate is not None and not scheduled.gate():
                scheduled.skips += 1
                logger.debug("Job %s gated; skipping tick", scheduled.name)
                return False
            await scheduled.job()
            scheduled.runs += 1
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            scheduled.failures += 1
            logger.exception("Job %s failed: %s", scheduled.name, e)
            return False

    async def _run_loop(self, scheduled: ScheduledJob) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            return
        if scheduled.run_immediately:
            await self._tick(scheduled)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=scheduled.interval_seconds)
                break
            except TimeoutError:
                pass
            await self._tick(scheduled)

    def start(self) -> None:
        if self._stop_event is not None:
            raise RuntimeError("Scheduler already started")
        self._stop_event = asyncio.Event()
        for name, scheduled in self._jobs.items():
            self._tasks[name] = asyncio.create_task(self._run_loop(scheduled))
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    async def stop(self) -> None:
        if self._stop_event is None:
            return
        self._stop_event.set()
        for task in self._tasks.values():
            task.cancel()
        for task in self._tasks.values():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._stop_event = None
        logger.info("Scheduler stopped")
