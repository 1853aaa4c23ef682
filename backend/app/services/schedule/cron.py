"""Cron and interval evaluation for scheduled reports.

This module turns a schedule definition into its next trigger instant:

- 5-field cron expressions (``minute hour day-of-month month day-of-week``),
  evaluated with croniter
- Named presets (``hourly``, ``daily_9am``, ...) resolved to a cron string
- Interval schedules (``after + interval_minutes``)

All evaluation happens in UTC. Results are never equal to the reference
instant.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from typing import Final

from croniter import CroniterBadDateError, croniter

from app.core.config import settings
from app.core.exceptions import InvalidScheduleError, SchedulingError
from app.models.enums import ScheduleType

CRON_FIELD_COUNT: Final = 5

PRESETS: Final[dict[str, str]] = {
    "hourly": "0 * * * *",
    "daily_9am": "0 9 * * *",
    "daily_midnight": "0 0 * * *",
    "weekly_monday": "0 9 * * 1",
    "monthly": "0 9 1 * *",
}

PRESET_DESCRIPTIONS: Final[dict[str, str]] = {
    "hourly": "Every hour",
    "daily_9am": "Every day at 9:00 AM",
    "daily_midnight": "Every day at midnight",
    "weekly_monday": "Every Monday at 9:00 AM",
    "monthly": "1st of every month at 9:00 AM",
}

_WEEKDAY_NAMES: Final[tuple[str, ...]] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError("Reference time must be timezone-aware")
    return moment.astimezone(UTC)


def resolve_expression(expression: str) -> str:
    """Map a preset name to its cron string; normalise whitespace otherwise.

    Examples:
        >>> resolve_expression("daily_9am")
        '0 9 * * *'
        >>> resolve_expression(" 0  9 * * 1 ")
        '0 9 * * 1'
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleError(
            "Cron expression must be a non-empty string",
            expression=expression,
            field="cron_expression",
        )
    stripped = expression.strip()
    preset = PRESETS.get(stripped.lower())
    if preset is not None:
        return preset
    return " ".join(stripped.split())


def parse_cron(expression: str) -> str:
    """Resolve and validate a cron string or preset.

    croniter also accepts seconds and year fields; only the classic
    5-field form is allowed here.

    Returns:
        str: The canonical 5-field cron string.

    Raises:
        InvalidScheduleError: Wrong field count or a value croniter rejects.
    """
    canonical = resolve_expression(expression)
    field_count = len(canonical.split())
    if field_count != CRON_FIELD_COUNT:
        raise InvalidScheduleError(
            f"Cron expression must have {CRON_FIELD_COUNT} fields, "
            f"got {field_count}: '{expression}'",
            expression=expression,
            field="cron_expression",
        )
    if not croniter.is_valid(canonical):
        raise InvalidScheduleError(
            f"Invalid cron expression: '{expression}'",
            expression=expression,
            field="cron_expression",
        )
    return canonical


def validate_cron_expression(expression: str) -> str:
    """Validate a cron expression or preset and return it stripped.

    Raises:
        InvalidScheduleError: If the expression cannot be parsed.
    """
    parse_cron(expression)
    return expression.strip()


def validate_interval_minutes(value: object) -> int:
    """Validate an interval length in minutes.

    Raises:
        InvalidScheduleError: If the value is not a positive integer.
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidScheduleError(
            f"interval_minutes must be a positive integer, got {value!r}",
            expression=value,
            field="interval_minutes",
        )
    return value


def next_cron_run(
    expression: str,
    after: datetime,
    lookahead_days: int | None = None,
) -> datetime:
    """Next instant matching ``expression`` strictly after ``after``.

    When both day-of-month and day-of-week are restricted, a day matches
    if EITHER field matches, as in standard cron.

    Raises:
        InvalidScheduleError: Malformed expression.
        SchedulingError: No match inside the lookahead window.

    Examples:
        >>> next_cron_run("0 9 * * *", datetime(2024, 1, 15, 10, 0, tzinfo=UTC))
        datetime.datetime(2024, 1, 16, 9, 0, tzinfo=datetime.timezone.utc)
    """
    canonical = parse_cron(expression)
    lookahead = lookahead_days or settings.CRON_LOOKAHEAD_DAYS
    start = _as_utc(after)
    limit = start + timedelta(days=lookahead)

    # croniter gives up after this many years without a match
    max_years = math.ceil(lookahead / 365) + 1
    try:
        upcoming = croniter(
            canonical, start, max_years_between_matches=max_years
        ).get_next(datetime)
    except CroniterBadDateError as exc:
        raise SchedulingError(canonical, lookahead) from exc

    if upcoming > limit:
        raise SchedulingError(canonical, lookahead)
    return upcoming.astimezone(UTC)


def next_interval_run(interval_minutes: int, after: datetime) -> datetime:
    """``after + interval_minutes`` with no calendar alignment."""
    validate_interval_minutes(interval_minutes)
    return _as_utc(after) + timedelta(minutes=interval_minutes)


def next_run(
    schedule_type: ScheduleType | str,
    definition: str | int | None,
    after: datetime,
    lookahead_days: int | None = None,
) -> datetime:
    """Compute the next trigger instant for a schedule definition.

    Args:
        schedule_type: CRON or INTERVAL
        definition: Cron string/preset for CRON, minutes for INTERVAL
        after: Aware reference instant
        lookahead_days: Cron search bound (defaults to settings)

    Returns:
        datetime: Aware UTC instant strictly greater than ``after``.

    Raises:
        InvalidScheduleError: Malformed definition.
        SchedulingError: Cron expression never fires within the lookahead.
    """
    kind = ScheduleType(schedule_type)
    if kind is ScheduleType.INTERVAL:
        return next_interval_run(definition, after)  # type: ignore[arg-type]
    if not isinstance(definition, str):
        raise InvalidScheduleError(
            "cron_expression is required for cron schedules",
            expression=definition,
            field="cron_expression",
        )
    return next_cron_run(definition, after, lookahead_days)


def describe_schedule(
    schedule_type: ScheduleType | str,
    definition: str | int | None,
) -> str:
    """Human-readable summary such as "Every Monday at 09:00 UTC"."""
    if ScheduleType(schedule_type) is ScheduleType.INTERVAL:
        if definition == 1:
            return "Every minute"
        return f"Every {definition} minutes"

    if not isinstance(definition, str):
        return "Not scheduled"
    preset = PRESET_DESCRIPTIONS.get(definition.strip().lower())
    if preset is not None:
        return preset

    parts = resolve_expression(definition).split()
    if len(parts) != CRON_FIELD_COUNT:
        return definition
    minute, hour, dom, month, dow = parts
    if not (minute.isdigit() and month == "*"):
        return f"Cron: {definition}"
    if hour == "*" and dom == "*" and dow == "*":
        return f"Every hour at minute {int(minute)}"
    if not hour.isdigit():
        return f"Cron: {definition}"

    at = f"{int(hour):02d}:{int(minute):02d} UTC"
    if dom == "*" and dow == "*":
        return f"Every day at {at}"
    if dom == "*" and dow.isdigit():
        return f"Every {_WEEKDAY_NAMES[int(dow) % 7]} at {at}"
    if dow == "*" and dom.isdigit():
        return f"Day {int(dom)} of every month at {at}"
    return f"Cron: {definition}"


__all__ = [
    "CRON_FIELD_COUNT",
    "PRESETS",
    "PRESET_DESCRIPTIONS",
    "describe_schedule",
    "next_cron_run",
    "next_interval_run",
    "next_run",
    "parse_cron",
    "resolve_expression",
    "validate_cron_expression",
    "validate_interval_minutes",
]
