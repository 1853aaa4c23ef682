"""Manual "run now" trigger for scheduled reports."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import TriggerSource
from app.services.schedule.runner import ExecutionResult, ExecutionRunner
from app.services.schedule.service import ScheduleStore

logger = logging.getLogger(__name__)


class ManualTrigger:
    """Start executions outside the timer path.

    ``trigger`` returns as soon as the run is scheduled on the event loop.
    The run itself waits for the schedule's lock, so it never overlaps a
    timer run or another manual run of the same schedule. Inactive
    schedules may be run manually.
    """

    def __init__(self, store: ScheduleStore, runner: ExecutionRunner) -> None:
        self.store = store
        self.runner = runner
        self._tasks: set[asyncio.Task[ExecutionResult | None]] = set()

    @property
    def pending(self) -> int:
        """Number of manual runs not yet finished."""
        return len(self._tasks)

    async def trigger(
        self,
        db: AsyncSession,
        schedule_id: int,
    ) -> asyncio.Task[ExecutionResult | None]:
        """Accept a manual run request.

        Raises:
            NotFoundError: Unknown or deleted schedule.
        """
        schedule = await self.store.get(db, schedule_id)

        task = asyncio.create_task(
            self._run(schedule.id), name=f"manual-report-{schedule.id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            f"Manual run requested for scheduled report {schedule.id}",
            extra={
                "context": {
                    "schedule_id": str(schedule.id),
                    "queued_behind_lock": self.runner.locks.is_locked(schedule.id),
                }
            },
        )
        return task

    async def _run(self, schedule_id: int) -> ExecutionResult | None:
        try:
            return await self.runner.run(schedule_id, TriggerSource.MANUAL)
        except Exception:
            logger.exception(
                f"Manual run of scheduled report {schedule_id} failed",
                extra={"context": {"schedule_id": str(schedule_id)}},
            )
            return None

    async def wait_idle(self) -> None:
        """Wait for every accepted manual run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait up to ``timeout`` seconds for manual runs, then cancel them."""
        if not self._tasks:
            return
        try:
            await asyncio.wait_for(self.wait_idle(), timeout=timeout)
        except TimeoutError:
            logger.warning(f"Cancelling {len(self._tasks)} unfinished manual run(s)")
            for task in list(self._tasks):
                task.cancel()
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["ManualTrigger"]
