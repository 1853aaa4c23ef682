"""Scheduler loop for scheduled reports.

An APScheduler ``AsyncIOScheduler`` fires ``SchedulerLoop.tick`` at a fixed
period. Each tick scans for due schedules, takes each schedule's lock
without waiting and hands it to a bounded queue consumed by a pool of
worker tasks that call the execution runner.

Per tick the loop moves ``idle -> scanning -> dispatching -> idle``. It
never awaits an execution: a busy schedule is skipped (it stays due and
is retried next tick) and a full queue defers dispatch to the next tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models.base import utc_now
from app.models.enums import TriggerSource
from app.services.schedule.locks import ScheduleLockRegistry
from app.services.schedule.runner import ExecutionRunner
from app.services.schedule.service import ScheduleStore

logger = logging.getLogger(__name__)

TICK_JOB_ID = "scheduled-reports-tick"


class SchedulerState(str, Enum):
    """Scan state of the scheduler loop."""

    IDLE = "idle"
    SCANNING = "scanning"
    DISPATCHING = "dispatching"

    def __str__(self) -> str:
        """Return the string value for serialization."""
        return self.value


@dataclass
class TickResult:
    """Summary of one scan."""

    started_at: datetime
    due: int = 0
    dispatched: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    deferred: list[int] = field(default_factory=list)
    error: str | None = None


class SchedulerLoop:
    """Periodic due-schedule scanner with a bounded worker pool.

    Attributes:
        scheduler: APScheduler AsyncIOScheduler driving the tick
        state: Current SchedulerState
        is_running: Whether workers (and the timer, if enabled) are started
        last_tick: Result of the most recent scan

    Examples:
        >>> loop = SchedulerLoop(async_session, store, runner, locks)
        >>> await loop.start()
        >>> await loop.tick()  # also fired by the timer
        >>> await loop.shutdown()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ScheduleStore,
        runner: ExecutionRunner,
        locks: ScheduleLockRegistry,
        *,
        tick_seconds: int | None = None,
        max_workers: int | None = None,
        queue_size: int | None = None,
        enabled: bool | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.runner = runner
        self.locks = locks
        self.clock = clock

        self.tick_seconds = tick_seconds or settings.SCHEDULER_TICK_SECONDS
        self.max_workers = max_workers or settings.SCHEDULER_MAX_WORKERS
        self.queue_size = queue_size or settings.SCHEDULER_QUEUE_SIZE
        self.enabled = settings.SCHEDULER_ENABLED if enabled is None else enabled

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        self.state = SchedulerState.IDLE
        self.is_running = False
        self.last_tick: TickResult | None = None

        self._queue: asyncio.Queue[int] = asyncio.Queue(maxsize=self.queue_size)
        self._workers: list[asyncio.Task[None]] = []
        self._tick_lock = asyncio.Lock()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Start the worker pool and, when enabled, the tick timer.

        The first tick fires immediately so schedules that fell due while
        the service was down run once, without replaying missed slots.
        """
        if self.is_running:
            return

        self._workers = [
            asyncio.create_task(self._worker(index), name=f"report-worker-{index}")
            for index in range(self.max_workers)
        ]

        if self.enabled:
            self.scheduler.add_job(
                self.tick,
                trigger=IntervalTrigger(seconds=self.tick_seconds),
                id=TICK_JOB_ID,
                name="Scheduled report scan",
                next_run_time=datetime.now(UTC),
                replace_existing=True,
            )
            self.scheduler.start()

        self.is_running = True
        logger.info(
            "SchedulerLoop started",
            extra={
                "context": {
                    "timer_enabled": self.enabled,
                    "tick_seconds": self.tick_seconds,
                    "workers": self.max_workers,
                    "queue_size": self.queue_size,
                }
            },
        )

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop the timer, drop queued dispatches and wait for in-flight runs.

        Runs still going after ``timeout`` seconds are cancelled; their
        executions are failed by startup recovery on the next start.
        """
        if not self.is_running:
            return

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        while not self._queue.empty():
            schedule_id = self._queue.get_nowait()
            self.locks.release(schedule_id)
            self._queue.task_done()

        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except TimeoutError:
            logger.warning(f"In-flight executions still running after {timeout:.0f}s")

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        self.is_running = False
        self.state = SchedulerState.IDLE
        logger.info("SchedulerLoop shutdown")

    async def drain(self) -> None:
        """Wait until every dispatched execution has finished."""
        await self._queue.join()

    # ==========================================================================
    # Scan and dispatch
    # ==========================================================================

    async def tick(self) -> TickResult:
        """Scan for due schedules and dispatch them to the worker pool."""
        async with self._tick_lock:
            result = TickResult(started_at=self.clock())
            self.state = SchedulerState.SCANNING
            try:
                async with self.session_factory() as db:
                    due = await self.store.list_due(db, result.started_at)
                result.due = len(due)

                self.state = SchedulerState.DISPATCHING
                for schedule in due:
                    if await self.locks.try_acquire(schedule.id):
                        self._dispatch(schedule.id, result)
                    else:
                        # Still running; stays due for the next tick
                        result.skipped.append(schedule.id)
            except Exception as e:
                result.error = f"{type(e).__name__}: {e}"
                logger.exception("Scheduler tick failed")
            finally:
                self.state = SchedulerState.IDLE
                self.last_tick = result

            if result.due or result.error:
                logger.info(
                    f"Tick: {result.due} due, {len(result.dispatched)} dispatched, "
                    f"{len(result.skipped)} skipped, {len(result.deferred)} deferred",
                    extra={
                        "context": {
                            "due": result.due,
                            "dispatched": len(result.dispatched),
                            "skipped": len(result.skipped),
                            "deferred": len(result.deferred),
                        }
                    },
                )
            return result

    def _dispatch(self, schedule_id: int, result: TickResult) -> None:
        """Queue a schedule whose lock the caller holds."""
        try:
            self._queue.put_nowait(schedule_id)
        except asyncio.QueueFull:
            self.locks.release(schedule_id)
            result.deferred.append(schedule_id)
            logger.warning(
                f"Dispatch queue full; deferring scheduled report {schedule_id}",
                extra={"context": {"schedule_id": str(schedule_id)}},
            )
        else:
            result.dispatched.append(schedule_id)

    async def _worker(self, index: int) -> None:
        while True:
            schedule_id = await self._queue.get()
            try:
                await self.runner.run(schedule_id, TriggerSource.SCHEDULE, lock_held=True)
            except Exception:
                logger.exception(
                    f"Worker {index} failed running scheduled report {schedule_id}",
                    extra={"context": {"schedule_id": str(schedule_id)}},
                )
            finally:
                self._queue.task_done()

    # ==========================================================================
    # Monitoring
    # ==========================================================================

    def next_tick_at(self) -> datetime | None:
        """Next timer fire time, if the timer is running."""
        if not self.scheduler.running:
            return None
        job = self.scheduler.get_job(TICK_JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.astimezone(UTC)

    def status(self) -> dict[str, Any]:
        """Loop state for the health endpoint."""
        return {
            "enabled": self.enabled,
            "running": self.is_running,
            "state": str(self.state),
            "workers": len(self._workers),
            "queue_depth": self._queue.qsize(),
            "queue_capacity": self.queue_size,
            "last_tick_at": self.last_tick.started_at if self.last_tick else None,
            "next_tick_at": self.next_tick_at(),
        }


__all__ = ["SchedulerLoop", "SchedulerState", "TickResult"]
