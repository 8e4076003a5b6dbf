"""APScheduler-driven automation loop.

A single interval tick selects due schedules and hands them to the run
executor as background tasks, bounded by a fixed-size worker pool.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from chartwatch.config import settings
from chartwatch.engine.run_job import RunExecutor
from chartwatch.models.types import utcnow

logger = logging.getLogger(__name__)

TICK_JOB_ID = "automation_tick"


class AutomationScheduler:
    """Owns the tick timer, the worker pool and the in-flight run registry."""

    def __init__(
        self,
        executor: RunExecutor,
        tick_seconds: int | None = None,
        max_concurrent_runs: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.executor = executor
        self.store = executor.store
        self.tick_seconds = tick_seconds if tick_seconds is not None else settings.scheduler_tick_seconds
        self.max_concurrent_runs = (
            max_concurrent_runs if max_concurrent_runs is not None else settings.scheduler_max_concurrent_runs
        )
        self.clock = clock
        self._scheduler: AsyncIOScheduler | None = None
        self._semaphore: asyncio.Semaphore | None = None
        self._active: dict[int, asyncio.Task] = {}

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _pool(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent_runs)
        return self._semaphore

    def start(self):
        """Start the periodic tick. Must be called from a running event loop."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.tick_seconds),
            id=TICK_JOB_ID,
            name="Automation tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.tick_seconds,
            next_run_time=utcnow(),
        )
        self._scheduler.start()
        logger.info(
            f"Automation scheduler started (tick every {self.tick_seconds}s, "
            f"{self.max_concurrent_runs} concurrent runs)"
        )

    async def stop(self, timeout: float | None = 30.0):
        """Stop ticking and wait for in-flight runs to finish."""
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None

        tasks = list(self._active.values())
        if tasks:
            logger.info(f"Waiting for {len(tasks)} in-flight run(s)")
            done, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Automation scheduler stopped")

    async def tick(self) -> list[int]:
        """Submit every due schedule that is not already in flight."""
        try:
            due = self.store.due_schedules(self.clock())
        except Exception as e:
            logger.error(f"Tick failed reading due schedules: {e}", exc_info=True)
            return []

        submitted = [s.id for s in due if self.submit(s.id)]
        if submitted:
            logger.info(f"Tick submitted {len(submitted)} schedule(s): {submitted}")
        return submitted

    async def trigger_all(self, wait: bool = False) -> list[int]:
        """Run every enabled schedule now, regardless of its next run time.

        Schedules already running are dropped, not queued.
        """
        logger.info("Manual trigger of all enabled schedules")
        schedules = self.store.enabled_schedules()
        submitted = [s.id for s in schedules if self.submit(s.id)]
        if wait and submitted:
            await asyncio.gather(
                *(self._active[sid] for sid in submitted if sid in self._active),
                return_exceptions=True,
            )
        return submitted

    def submit(self, schedule_id: int) -> bool:
        """Start a background run unless one is already in flight here."""
        if schedule_id in self._active:
            logger.debug(f"[schedule_{schedule_id}] Already in flight, not resubmitting")
            return False
        task = asyncio.create_task(self._run_guarded(schedule_id), name=f"schedule_{schedule_id}")
        self._active[schedule_id] = task
        task.add_done_callback(lambda t, sid=schedule_id: self._active.pop(sid, None))
        return True

    async def _run_guarded(self, schedule_id: int):
        async with self._pool():
            try:
                return await self.executor.run(schedule_id)
            except Exception as e:
                logger.error(f"[schedule_{schedule_id}] Run crashed: {e}", exc_info=True)
                return None

    def in_flight(self) -> list[int]:
        return sorted(self._active)

    def status(self) -> dict:
        """Current scheduler state for the API."""
        next_tick = None
        if self._scheduler is not None:
            job = self._scheduler.get_job(TICK_JOB_ID)
            if job and job.next_run_time:
                next_tick = str(job.next_run_time)
        return {
            "running": self.running,
            "tick_seconds": self.tick_seconds,
            "next_tick": next_tick,
            "max_concurrent_runs": self.max_concurrent_runs,
            "in_flight": self.in_flight(),
        }
