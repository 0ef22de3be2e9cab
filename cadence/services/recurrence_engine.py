"""Next-occurrence computation for recurrence rules.

All arithmetic is on calendar dates. Converting "now" into the owning user's
local date happens before these functions are called.

Weekday ordinals follow the stored convention 0=Sunday..6=Saturday. Weekly
interval grouping uses weeks starting on Monday, matching the RFC 5545 default
``WKST=MO`` of the projected RRULE.
"""
import calendar
from datetime import date, timedelta, MAXYEAR
from typing import Callable, Iterator, Optional

from cadence.models.recurrence_rule import RecurrenceRule, RecurrenceType
from cadence.services.recurrence_validator import RecurrenceValidator
from cadence.utils.logger import get_logger

logger = get_logger(__name__)

ONE_DAY = timedelta(days=1)


def sunday_weekday(day: date) -> int:
    """Weekday of ``day`` with 0=Sunday."""
    return (day.weekday() + 1) % 7


def add_months(year: int, month: int, months: int) -> tuple:
    total = (month - 1) + months
    return year + total // 12, total % 12 + 1


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def clamp_to_month(year: int, month: int, day: int) -> date:
    """Day ``day`` of the month, clamped to its last valid day."""
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def nth_weekday_of_month(year: int, month: int, weekday: int, week_of_month: int) -> date:
    """The ``week_of_month``-th ``weekday`` (0=Sunday) of a month; -1 means the last one.

    A fifth occurrence that does not exist falls back to the last one.
    """
    last = last_day_of_month(year, month)
    last_occurrence = last - timedelta(days=(sunday_weekday(last) - weekday) % 7)
    if week_of_month == -1:
        return last_occurrence
    first = date(year, month, 1)
    first_occurrence = first + timedelta(days=(weekday - sunday_weekday(first)) % 7)
    target = first_occurrence + timedelta(weeks=week_of_month - 1)
    return target if target <= last_occurrence else last_occurrence


def _step_days(anchor: date, lower: date, step: int) -> date:
    k = (lower - anchor).days // step + 1
    return anchor + timedelta(days=k * step)


def _next_weekly_by_days(rule: RecurrenceRule, anchor: date, lower: date) -> Optional[date]:
    anchor_monday = anchor - timedelta(days=anchor.weekday())
    candidate = lower + ONE_DAY
    for _ in range(7 * rule.interval + 7):
        week_offset = (candidate - anchor_monday).days // 7
        if week_offset % rule.interval == 0:
            if sunday_weekday(candidate) in rule.weekdays:
                return candidate
            candidate += ONE_DAY
        else:
            skip = rule.interval - week_offset % rule.interval
            candidate = anchor_monday + timedelta(weeks=week_offset + skip)
    return None


def _next_monthly(
    anchor: date, lower: date, interval: int, pick: Callable[[int, int], date]
) -> Optional[date]:
    months_gap = (lower.year - anchor.year) * 12 + (lower.month - anchor.month)
    k = max(0, months_gap // interval - 1)
    while True:
        year, month = add_months(anchor.year, anchor.month, k * interval)
        if year > MAXYEAR:
            return None
        candidate = pick(year, month)
        if candidate > lower:
            return candidate
        k += 1


def _next_yearly(rule: RecurrenceRule, anchor: date, lower: date) -> Optional[date]:
    k = max(0, (lower.year - anchor.year) // rule.interval - 1)
    while True:
        year = anchor.year + k * rule.interval
        if year > MAXYEAR:
            return None
        # Feb 29 anchors land on Feb 28 in common years
        candidate = clamp_to_month(year, anchor.month, anchor.day)
        if candidate > lower:
            return candidate
        k += 1


def _monthly_picker(rule: RecurrenceRule, anchor: date) -> Optional[Callable[[int, int], date]]:
    if rule.type == RecurrenceType.MONTHLY_LAST_DAY:
        return last_day_of_month
    if rule.type == RecurrenceType.MONTHLY_WEEKDAY:
        if rule.weekday is None or rule.week_of_month is None:
            return None
        return lambda y, m: nth_weekday_of_month(y, m, rule.weekday, rule.week_of_month)
    # Plain monthly: fixed day, else week-of-month form, else the anchor's day
    if rule.month_day is not None:
        return lambda y, m: clamp_to_month(y, m, rule.month_day)
    if rule.week_of_month is not None and rule.weekday is not None:
        return lambda y, m: nth_weekday_of_month(y, m, rule.weekday, rule.week_of_month)
    return lambda y, m: clamp_to_month(y, m, anchor.day)


def next_occurrence(rule: RecurrenceRule, anchor: date, after: date) -> Optional[date]:
    """Smallest occurrence of ``rule`` strictly after ``after``.

    Occurrences never precede ``anchor``; the anchor itself is an occurrence
    when the rule matches it. Returns None for ``none`` rules and once the
    rule's end date is passed.
    """
    if rule.is_none:
        return None

    lower = after
    if anchor > date.min and lower < anchor - ONE_DAY:
        lower = anchor - ONE_DAY
    if rule.end_date is not None and lower >= rule.end_date:
        return None

    try:
        if rule.type == RecurrenceType.DAILY:
            result = _step_days(anchor, lower, rule.interval)
        elif rule.type == RecurrenceType.WEEKLY:
            if rule.weekdays:
                result = _next_weekly_by_days(rule, anchor, lower)
            else:
                result = _step_days(anchor, lower, 7 * rule.interval)
        elif rule.type == RecurrenceType.YEARLY:
            result = _next_yearly(rule, anchor, lower)
        else:
            pick = _monthly_picker(rule, anchor)
            result = _next_monthly(anchor, lower, rule.interval, pick) if pick else None
    except OverflowError:
        return None

    if result is None:
        return None
    if rule.end_date is not None and result > rule.end_date:
        return None
    return result


def occurrences(
    rule: RecurrenceRule,
    anchor: date,
    start: date,
    end: Optional[date] = None,
    limit: Optional[int] = None,
) -> Iterator[date]:
    """Yield occurrences in ``[start, end]`` in ascending order.

    At least one of ``end``, ``limit`` or the rule's end date must bound the
    sequence.
    """
    if end is None and limit is None and rule.end_date is None and not rule.is_none:
        raise ValueError("Unbounded occurrence sequence: pass end or limit")

    after = start - ONE_DAY if start > date.min else start
    current = next_occurrence(rule, anchor, after)
    count = 0
    while current is not None and (end is None or current <= end):
        yield current
        count += 1
        if limit is not None and count >= limit:
            return
        current = next_occurrence(rule, anchor, current)


def is_occurrence(rule: RecurrenceRule, anchor: date, day: date) -> bool:
    if rule.is_none or day < anchor:
        return False
    return next_occurrence(rule, anchor, day - ONE_DAY) == day


def next_after_completion(rule: RecurrenceRule, completed_on: date, after: date) -> Optional[date]:
    """Next occurrence of a completion-based series.

    The series restarts on the day the previous occurrence was done, so a
    daily rule with interval 3 completed on the 10th is next due on the 13th.
    The result is still strictly after ``after``.
    """
    return next_occurrence(rule, completed_on, max(completed_on, after))


def rule_for_task(task) -> RecurrenceRule:
    """Normalized rule of a task, failing safe to ``none`` on corrupt data.

    One malformed row must not break a scheduler tick or a feed render.
    """
    try:
        rule = RecurrenceRule.from_task(task)
    except (ValueError, TypeError) as e:
        logger.warning("Unreadable recurrence rule, treating as none", task_id=task.id, error=str(e))
        return RecurrenceRule.none()

    validation = RecurrenceValidator.validate_rule(rule)
    if not validation["valid"]:
        logger.warning(
            "Invalid recurrence rule, treating as none",
            task_id=task.id,
            errors=validation["errors"],
        )
        return RecurrenceRule.none()
    return rule
