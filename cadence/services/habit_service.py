"""
Habit Service

Ties the completion tracker to the streak calculator: every write is followed
by a recalculation whose result is cached on the task row for cheap listing.
"""

from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from cadence.models.recurring_completion import RecurringCompletion
from cadence.models.task import Task, TaskStatus
from cadence.services.completion_tracker import CompletionTracker
from cadence.services.streak_calculator import HabitStats, StreakCalculator
from cadence.utils.logger import get_logger

logger = get_logger(__name__)


class HabitService:
    """Records habit check-ins and keeps the cached streak columns current."""

    def __init__(self, session: Session, tracker: Optional[CompletionTracker] = None):
        self.session = session
        self.tracker = tracker or CompletionTracker(session)

    def list_habits(self, user_id: str, due_on: Optional[date] = None) -> List[Task]:
        """Active habits; with ``due_on``, only those still wanting a check-in that day."""
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.habit_mode == True)  # noqa: E712
            .where(Task.status != TaskStatus.ARCHIVED.value)
            .order_by(Task.created_at.asc(), Task.id.asc())
        )
        habits = list(self.session.exec(statement).all())
        if due_on is None:
            return habits
        return [h for h in habits if self.is_due(h, due_on)]

    def is_due(self, task: Task, day: date) -> bool:
        records = self.tracker.list_completions(task.id, end=day)
        return StreakCalculator.is_due(task, records, day)

    def refresh_cached_stats(self, task: Task, today: date) -> HabitStats:
        """Recalculate over the whole history up to ``today`` and store it on the task."""
        records = self.tracker.list_completions(task.id, end=today)
        stats = StreakCalculator.recalculate(task, records, today)

        completed = [r.completed_at for r in records if not r.skipped and r.completed_at]
        task.habit_current_streak = stats.current_streak
        task.habit_best_streak = stats.best_streak
        task.habit_total_completions = stats.total_completions
        task.habit_last_completion_at = max(completed) if completed else None
        task.updated_at = datetime.utcnow()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return stats

    def log_completion(
        self, task: Task, occurrence_date: date, today: date, when: Optional[datetime] = None
    ) -> Tuple[RecurringCompletion, HabitStats]:
        record = self.tracker.record_completion(task.id, occurrence_date, when)
        stats = self.refresh_cached_stats(task, today)
        logger.info(
            "Habit completion recorded",
            task_id=task.id,
            occurrence_date=occurrence_date,
            current_streak=stats.current_streak,
        )
        return record, stats

    def log_skip(self, task: Task, occurrence_date: date, today: date) -> Tuple[RecurringCompletion, HabitStats]:
        record = self.tracker.record_skip(task.id, occurrence_date)
        stats = self.refresh_cached_stats(task, today)
        logger.info("Habit occurrence skipped", task_id=task.id, occurrence_date=occurrence_date)
        return record, stats

    def delete_completion(self, task: Task, occurrence_date: date, today: date) -> Optional[HabitStats]:
        """Remove a record; returns the new stats, or None if there was nothing to remove."""
        if not self.tracker.delete_completion(task.id, occurrence_date):
            return None
        return self.refresh_cached_stats(task, today)

    def get_stats(self, task: Task, range_end: date, range_start: Optional[date] = None) -> HabitStats:
        """Stats for an explicit window; nothing is cached."""
        records = self.tracker.list_completions(task.id, end=range_end)
        return StreakCalculator.recalculate(task, records, range_end, range_start)

    def list_completions(
        self, task: Task, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[RecurringCompletion]:
        return self.tracker.list_completions(task.id, start, end)
