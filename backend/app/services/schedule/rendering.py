"""Plain-text rendering of ticket reports."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from app.models.base import utc_now
from app.models.enums import ReportType
from app.models.schedule import ScheduledReport
from app.services.integrations.base import Ticket

UNSPECIFIED = "Unspecified"
MAX_LISTED_TICKETS = 200


@dataclass(frozen=True)
class RenderedReport:
    """Subject and body handed to the email delivery service."""

    subject: str
    body: str
    tickets_count: int


def _age_days(ticket: Ticket, now: datetime) -> float | None:
    if ticket.age_seconds is not None:
        return ticket.age_seconds / 86400
    if ticket.created_date_ts is not None:
        created = ticket.created_date_ts
        if created.tzinfo is None:
            return None
        return max((now - created).total_seconds(), 0.0) / 86400
    return None


def _breakdown(title: str, counts: Counter[str]) -> list[str]:
    lines = [title]
    for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
        lines.append(f"  {key}: {count}")
    if not counts:
        lines.append("  (none)")
    return lines


def render_report(
    schedule: ScheduledReport,
    tickets: Sequence[Ticket],
    generated_at: datetime | None = None,
) -> RenderedReport:
    """Render the report for one run.

    The body starts with the schedule's ``email_body`` (if any), followed by
    totals, a breakdown by status and by category, and the average ticket
    age. ``custom`` reports also list individual tickets.
    """
    now = generated_at or utc_now()
    report_type = ReportType(schedule.report_type)

    subject = schedule.email_subject or (
        f"{report_type.title}: {schedule.name} ({now.date().isoformat()})"
    )

    lines: list[str] = []
    if schedule.email_body:
        lines.extend([schedule.email_body.rstrip(), ""])

    heading = f"{report_type.title} - {schedule.name}"
    lines.extend([heading, "=" * len(heading)])
    if schedule.company_name:
        lines.append(f"Company: {schedule.company_name}")
    lines.append(f"Generated: {now.strftime('%Y-%m-%d %H:%M UTC')}")
    if schedule.filters:
        applied = ", ".join(f"{key}={value}" for key, value in sorted(schedule.filters.items()))
        lines.append(f"Filters: {applied}")
    lines.extend(["", f"Total tickets: {len(tickets)}", ""])

    lines.extend(_breakdown("By status:", Counter(t.status or UNSPECIFIED for t in tickets)))
    lines.append("")
    lines.extend(
        _breakdown("By category:", Counter(t.category or UNSPECIFIED for t in tickets))
    )

    ages = [age for age in (_age_days(t, now) for t in tickets) if age is not None]
    lines.append("")
    if ages:
        lines.append(f"Average age: {sum(ages) / len(ages):.1f} days")
    else:
        lines.append("Average age: n/a")

    if report_type is ReportType.CUSTOM and tickets:
        lines.extend(["", "Tickets:"])
        for ticket in tickets[:MAX_LISTED_TICKETS]:
            lines.append(
                f"  #{ticket.reference} [{ticket.status or UNSPECIFIED}] "
                f"{ticket.category or UNSPECIFIED}"
                + (f" - assigned to {ticket.assigned_to}" if ticket.assigned_to else "")
            )
        if len(tickets) > MAX_LISTED_TICKETS:
            lines.append(f"  ... and {len(tickets) - MAX_LISTED_TICKETS} more")

    return RenderedReport(
        subject=subject,
        body="\n".join(lines) + "\n",
        tickets_count=len(tickets),
    )


__all__ = ["RenderedReport", "render_report"]
