"""Calendar Projector.

One-way projection of tasks and their recurrence rules into RFC 5545
(iCalendar). Pure functions, safe to call concurrently.
"""
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

from cadence.models.recurrence_rule import RecurrenceRule, RecurrenceType
from cadence.models.task import TaskStatus
from cadence.services.recurrence_engine import rule_for_task

CRLF = "\r\n"
PRODID = "-//cadence//Task Calendar//EN"

# Index is the stored weekday ordinal, 0=Sunday
ICAL_DAYS = ["SU", "MO", "TU", "WE", "TH", "FR", "SA"]

FREQUENCIES = {
    RecurrenceType.DAILY: "DAILY",
    RecurrenceType.WEEKLY: "WEEKLY",
    RecurrenceType.MONTHLY: "MONTHLY",
    RecurrenceType.MONTHLY_WEEKDAY: "MONTHLY",
    RecurrenceType.MONTHLY_LAST_DAY: "MONTHLY",
    RecurrenceType.YEARLY: "YEARLY",
}

STATUS_TEXT = {
    TaskStatus.NOT_STARTED.value: "Not Started",
    TaskStatus.IN_PROGRESS.value: "In Progress",
    TaskStatus.DONE.value: "Completed",
    TaskStatus.ARCHIVED.value: "Archived",
}


def escape_ical_text(text: Optional[str]) -> str:
    """Escape a TEXT value: backslash, semicolon and comma; newlines become a literal \\n."""
    if not text:
        return ""
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\n")
        .replace("\r", "\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str, limit: int = 75) -> str:
    """Fold a content line to ``limit`` octets, continuation lines starting with a space."""
    encoded = line.encode("utf-8")
    if len(encoded) <= limit:
        return line

    parts = []
    current = ""
    current_size = 0
    for char in line:
        size = len(char.encode("utf-8"))
        # Continuation lines lose one octet to the leading space
        budget = limit if not parts else limit - 1
        if current_size + size > budget:
            parts.append(current)
            current, current_size = "", 0
        current += char
        current_size += size
    parts.append(current)
    return (CRLF + " ").join(parts)


def format_ical_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def format_ical_datetime(value: datetime) -> str:
    return value.strftime("%Y%m%dT%H%M%SZ")


def _byday(weekday: int, week_of_month: Optional[int] = None) -> str:
    # "Fifth, else last" is the last such weekday in every month
    if week_of_month == 5:
        week_of_month = -1
    prefix = str(week_of_month) if week_of_month is not None else ""
    return f"{prefix}{ICAL_DAYS[weekday]}"


def _clamped_month_day(day: int) -> List[str]:
    """Day of month clamped to shorter months, as a BYMONTHDAY set plus BYSETPOS."""
    if day <= 28:
        return [f"BYMONTHDAY={day}"]
    return ["BYMONTHDAY=" + ",".join(str(d) for d in range(28, day + 1)), "BYSETPOS=-1"]


def to_rrule(rule: RecurrenceRule, anchor: Optional[date] = None) -> Optional[str]:
    """Render a rule as RRULE value text, or None for ``none`` rules.

    ``anchor`` is the event's DTSTART. Without it, anchor days past the 28th
    would make clients skip short months instead of clamping to their last day.
    """
    frequency = FREQUENCIES.get(rule.type)
    if frequency is None:
        return None

    parts = [f"FREQ={frequency}"]
    if rule.interval > 1:
        parts.append(f"INTERVAL={rule.interval}")

    if rule.type == RecurrenceType.WEEKLY and rule.weekdays:
        parts.append("BYDAY=" + ",".join(ICAL_DAYS[d] for d in sorted(rule.weekdays)))
    elif rule.type == RecurrenceType.MONTHLY:
        if rule.month_day is not None:
            parts.extend(_clamped_month_day(rule.month_day))
        elif rule.week_of_month is not None and rule.weekday is not None:
            parts.append(f"BYDAY={_byday(rule.weekday, rule.week_of_month)}")
        elif anchor is not None and anchor.day > 28:
            parts.extend(_clamped_month_day(anchor.day))
    elif rule.type == RecurrenceType.MONTHLY_WEEKDAY:
        parts.append(f"BYDAY={_byday(rule.weekday, rule.week_of_month)}")
    elif rule.type == RecurrenceType.MONTHLY_LAST_DAY:
        parts.append("BYMONTHDAY=-1")
    elif rule.type == RecurrenceType.YEARLY and anchor is not None and (anchor.month, anchor.day) == (2, 29):
        parts.append("BYMONTH=2")
        parts.extend(_clamped_month_day(29))

    if rule.end_date is not None:
        parts.append(f"UNTIL={format_ical_date(rule.end_date)}")

    return ";".join(parts)


def _description(task, project_name: Optional[str]) -> str:
    parts = []
    if task.description:
        parts.append(task.description)
    if project_name:
        parts.append(f"Project: {project_name}")
    status_text = STATUS_TEXT.get(task.status)
    if status_text:
        parts.append(f"Status: {status_text}")
    if task.priority:
        parts.append(f"Priority: {task.priority.capitalize()}")
    return "\n".join(parts)


def to_vevent(task, host_id: str, project_name: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Build one all-day VEVENT for a due-dated task.

    Args:
        task: Task with a due date
        host_id: Host part of the UID, stable per deployment
        project_name: Project shown in the description, if any
        now: DTSTAMP fallback when the task has no update timestamp

    Returns:
        CRLF-joined VEVENT block without a trailing line break
    """
    if task.due_date is None:
        raise ValueError(f"Task {task.id} has no due date")

    lines: List[str] = ["BEGIN:VEVENT", f"UID:task-{task.id}@{host_id}"]

    # All-day event; DTEND is exclusive
    lines.append(f"DTSTART;VALUE=DATE:{format_ical_date(task.due_date)}")
    lines.append(f"DTEND;VALUE=DATE:{format_ical_date(task.due_date + timedelta(days=1))}")

    if task.created_at:
        lines.append(f"CREATED:{format_ical_datetime(task.created_at)}")
    stamp = task.updated_at or now or datetime.utcnow()
    lines.append(f"DTSTAMP:{format_ical_datetime(stamp)}")
    if task.updated_at:
        lines.append(f"LAST-MODIFIED:{format_ical_datetime(task.updated_at)}")

    lines.append(f"SUMMARY:{escape_ical_text(task.name)}")

    description = _description(task, project_name)
    if description:
        lines.append(f"DESCRIPTION:{escape_ical_text(description)}")

    if task.tags:
        lines.append("CATEGORIES:" + ",".join(escape_ical_text(tag) for tag in task.tags))

    if task.status == TaskStatus.DONE.value:
        # VEVENT has no COMPLETED status; CANCELLED renders struck through
        lines.append("STATUS:CANCELLED")
        lines.append("TRANSP:TRANSPARENT")
    else:
        lines.append("STATUS:CONFIRMED")
        lines.append("TRANSP:OPAQUE")

    # Spawned instances never repeat; only templates carry the rule. A
    # completion-based series has no fixed future dates to publish.
    if task.recurring_parent_id is None and not task.completion_based:
        rrule = to_rrule(rule_for_task(task), task.due_date)
        if rrule:
            lines.append(f"RRULE:{rrule}")

    lines.append("END:VEVENT")
    return CRLF.join(fold_line(line) for line in lines)


def build_calendar(
    tasks: Iterable,
    calendar_name: str,
    host_id: str,
    projects: Optional[Dict[int, str]] = None,
) -> str:
    """Complete VCALENDAR document with one VEVENT per task, CRLF terminated."""
    projects = projects or {}
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        fold_line(f"X-WR-CALNAME:{escape_ical_text(calendar_name)}"),
        "X-WR-TIMEZONE:UTC",
    ]
    for task in tasks:
        lines.append(to_vevent(task, host_id, project_name=projects.get(task.project_id)))
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF
