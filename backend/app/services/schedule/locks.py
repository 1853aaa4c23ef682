"""Per-schedule mutual exclusion for report executions.

At most one execution of a given schedule runs at a time. The scheduler
loop uses the non-blocking ``try_acquire`` and skips busy schedules, while
manual runs wait for the lock with ``acquire``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class ScheduleLockRegistry:
    """Registry of one ``asyncio.Lock`` per schedule id.

    Entries are created on demand and removed when the lock is released
    with no waiters left, so the registry only holds busy schedules.

    Examples:
        >>> locks = ScheduleLockRegistry()
        >>> if await locks.try_acquire(schedule_id):
        ...     try:
        ...         ...
        ...     finally:
        ...         locks.release(schedule_id)
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = {}

    def _lock_for(self, schedule_id: int) -> asyncio.Lock:
        lock = self._locks.get(schedule_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[schedule_id] = lock
        return lock

    async def try_acquire(self, schedule_id: int) -> bool:
        """Acquire the lock only if it is free and nobody is queued for it.

        Returns:
            bool: True if the caller now owns the lock.
        """
        lock = self._lock_for(schedule_id)
        if lock.locked() or self._waiters.get(schedule_id, 0):
            return False
        # An unlocked asyncio.Lock without waiters is acquired without suspending
        await lock.acquire()
        return True

    async def acquire(self, schedule_id: int) -> None:
        """Wait until the lock for ``schedule_id`` is owned by the caller."""
        lock = self._lock_for(schedule_id)
        self._waiters[schedule_id] = self._waiters.get(schedule_id, 0) + 1
        try:
            await lock.acquire()
        finally:
            remaining = self._waiters[schedule_id] - 1
            if remaining:
                self._waiters[schedule_id] = remaining
            else:
                del self._waiters[schedule_id]
                # A cancelled waiter may leave an idle entry behind
                if not lock.locked():
                    self._locks.pop(schedule_id, None)

    def release(self, schedule_id: int) -> None:
        """Release a lock previously acquired by the caller."""
        lock = self._locks.get(schedule_id)
        if lock is None or not lock.locked():
            logger.warning(f"Release of unheld schedule lock: {schedule_id}")
            return
        lock.release()
        if not lock.locked() and not self._waiters.get(schedule_id):
            del self._locks[schedule_id]

    def is_locked(self, schedule_id: int) -> bool:
        """Check whether an execution of ``schedule_id`` holds or awaits the lock."""
        lock = self._locks.get(schedule_id)
        return bool(lock is not None and (lock.locked() or self._waiters.get(schedule_id)))

    @asynccontextmanager
    async def hold(self, schedule_id: int) -> AsyncIterator[None]:
        """Context manager form of ``acquire``/``release``."""
        await self.acquire(schedule_id)
        try:
            yield
        finally:
            self.release(schedule_id)

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["ScheduleLockRegistry"]
