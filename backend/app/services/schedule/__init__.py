"""Scheduled report engine.

Components, leaf first:
- cron: Cron/interval evaluation (next run computation)
- service: ScheduleStore, CRUD and validation of schedule definitions
- execution_log: ExecutionLogStore, execution history
- locks: ScheduleLockRegistry, per-schedule mutual exclusion
- runner: ExecutionRunner, one fetch/render/email run
- scheduler: SchedulerLoop, periodic due scan and worker pool
- manual: ManualTrigger, "run now" outside the timer
- engine: ReportEngine, wiring and lifecycle

Only the dependency-free helpers are re-exported here; import the
components from their modules.
"""

from app.services.schedule.cron import (
    PRESETS,
    describe_schedule,
    next_run,
    validate_cron_expression,
    validate_interval_minutes,
)
from app.services.schedule.locks import ScheduleLockRegistry

__all__ = [
    "PRESETS",
    "ScheduleLockRegistry",
    "describe_schedule",
    "next_run",
    "validate_cron_expression",
    "validate_interval_minutes",
]
