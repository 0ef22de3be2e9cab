"""Streak Calculator.

Derives habit statistics by walking the expected occurrence sequence of a task
against its completion history. Pure: the same inputs always give the same
stats, and nothing is persisted here.

Per occurrence:
- completed or skipped: the run continues and grows
- no record and strictly before ``range_end``: a miss, the run resets
- no record on ``range_end`` itself: still pending, ignored
"""
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from cadence.models.recurrence_rule import RecurrenceRule, RecurrenceType
from cadence.models.task import HabitFlexibility, HabitStreakMode
from cadence.services.recurrence_engine import next_after_completion, occurrences, rule_for_task

# Calendar-mode habits, and habits without a rule, are expected every day
CALENDAR_RULE = RecurrenceRule(type=RecurrenceType.DAILY)

FREQUENCY_PERIODS = {
    "daily": RecurrenceRule(type=RecurrenceType.DAILY),
    "weekly": RecurrenceRule(type=RecurrenceType.WEEKLY),
    "monthly": RecurrenceRule(type=RecurrenceType.MONTHLY),
}


@dataclass(frozen=True)
class HabitStats:
    current_streak: int = 0
    best_streak: int = 0
    total_completions: int = 0
    completion_rate: float = 0.0
    # Completions against habit_target_count per period; None without a target
    target_completion_rate: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _done_on(record) -> date:
    completed_at = getattr(record, "completed_at", None)
    if completed_at is not None and not record.skipped:
        return completed_at.date()
    return record.occurrence_date


class StreakCalculator:
    """Stateless; exposed as a class so callers can swap it in tests."""

    @staticmethod
    def expected_rule(task) -> RecurrenceRule:
        rule = rule_for_task(task)
        if not task.habit_mode:
            return rule
        if rule.is_none or task.habit_streak_mode != HabitStreakMode.SCHEDULED.value:
            return CALENDAR_RULE
        return rule

    @staticmethod
    def expected_days(task, completions: Iterable[Any], range_end: date) -> List[date]:
        """Occurrence dates a task was expected on, up to ``range_end``.

        Completion-based series move with their completions: the expected
        days are the recorded ones plus the single outstanding occurrence.
        """
        records = {c.occurrence_date: c for c in completions if c.occurrence_date <= range_end}
        rule = StreakCalculator.expected_rule(task)
        if rule.is_none:
            return []

        anchor = task.anchor_date
        if rule is CALENDAR_RULE:
            if records:
                anchor = min(anchor, min(records))
        elif task.completion_based:
            days = sorted(records)
            if days:
                last = days[-1]
                outstanding = next_after_completion(rule, _done_on(records[last]), last)
            else:
                outstanding = anchor
            if outstanding is not None and outstanding <= range_end:
                days.append(outstanding)
            return days

        return list(occurrences(rule, anchor, anchor, range_end))

    @staticmethod
    def period_target(task, window_start: date, range_end: date) -> Optional[int]:
        """habit_target_count times the number of periods touching the window."""
        period_rule = FREQUENCY_PERIODS.get(task.habit_frequency_period or "")
        if not task.habit_target_count or period_rule is None:
            return None
        if window_start > range_end:
            return 0
        periods = sum(1 for _ in occurrences(period_rule, window_start, window_start, range_end))
        return task.habit_target_count * periods

    @staticmethod
    def recalculate(
        task,
        completions: Iterable[Any],
        range_end: date,
        range_start: Optional[date] = None,
    ) -> HabitStats:
        """
        Compute streaks and completion rate as of ``range_end``.

        Args:
            task: Template or habit task
            completions: Records with ``occurrence_date`` and ``skipped``
            range_end: Last day considered (the user's "today" for live stats)
            range_start: First day of the completion-rate window; defaults to
                the first recorded occurrence

        Returns:
            HabitStats
        """
        completions = [c for c in completions if c.occurrence_date <= range_end]
        records = {c.occurrence_date: bool(c.skipped) for c in completions}

        window_start = range_start
        if window_start is None:
            window_start = min(records) if records else range_end + timedelta(days=1)

        total_completions = sum(
            1 for day, skipped in records.items() if not skipped and day >= window_start
        )

        target = StreakCalculator.period_target(task, window_start, range_end)
        target_rate = None
        if target is not None:
            target_rate = round(total_completions / target, 4) if target else 0.0

        if StreakCalculator.expected_rule(task).is_none:
            return HabitStats(total_completions=total_completions, target_completion_rate=target_rate)

        run = best = 0
        completed_in_window = due_in_window = 0
        for day in StreakCalculator.expected_days(task, completions, range_end):
            in_window = day >= window_start
            if day not in records:
                if day < range_end:
                    run = 0
                    if in_window:
                        due_in_window += 1
                continue

            run += 1
            best = max(best, run)
            if not records[day] and in_window:
                completed_in_window += 1
                due_in_window += 1

        rate = completed_in_window / due_in_window if due_in_window else 0.0
        return HabitStats(
            current_streak=run,
            best_streak=best,
            total_completions=total_completions,
            completion_rate=round(rate, 4),
            target_completion_rate=target_rate,
        )

    @staticmethod
    def is_due(task, completions: Iterable[Any], day: date) -> bool:
        """Whether a habit still wants a check-in on ``day``.

        Flexible habits are due any day without a record; strict habits only
        on their expected days.
        """
        completions = list(completions)
        if any(c.occurrence_date == day for c in completions):
            return False
        if task.habit_flexibility_mode != HabitFlexibility.STRICT.value:
            return True
        return day in StreakCalculator.expected_days(task, completions, day)
