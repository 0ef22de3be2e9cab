"""Completion Tracker.

Records completions and explicit skips against a recurring task's schedule.
One row per (task, occurrence date); writes are upserts guarded by the
``uq_completion_task_occurrence`` constraint. Recomputing streaks afterwards is
the caller's job.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from cadence.models.recurring_completion import RecurringCompletion
from cadence.models.task import Task
from cadence.services.exceptions import InvalidOccurrence, TaskNotFound
from cadence.services.recurrence_engine import is_occurrence
from cadence.services.streak_calculator import CALENDAR_RULE, StreakCalculator


class CompletionTracker:
    """Upserts completion/skip records keyed by (task_id, occurrence_date)."""

    def __init__(self, session: Session):
        self.session = session

    def _get_task(self, task_id: int) -> Task:
        task = self.session.get(Task, task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def validate_occurrence(self, task: Task, occurrence_date: date) -> None:
        """Raise InvalidOccurrence unless the task's schedule produces ``occurrence_date``.

        Calendar-mode habits and habits without a rule accept any date. A
        completion-based series accepts its anchor and the due dates of its
        spawned instances, since its dates move with each completion.
        """
        rule = StreakCalculator.expected_rule(task)
        if rule is CALENDAR_RULE:
            return
        if rule.is_none:
            raise InvalidOccurrence(task.id, occurrence_date)
        if task.completion_based:
            if occurrence_date == task.anchor_date or self._has_instance(task.id, occurrence_date):
                return
            raise InvalidOccurrence(task.id, occurrence_date)
        if not is_occurrence(rule, task.anchor_date, occurrence_date):
            raise InvalidOccurrence(task.id, occurrence_date)

    def _has_instance(self, task_id: int, due: date) -> bool:
        statement = select(Task.id).where(Task.recurring_parent_id == task_id, Task.due_date == due)
        return self.session.exec(statement).first() is not None

    def get_record(self, task_id: int, occurrence_date: date) -> Optional[RecurringCompletion]:
        statement = select(RecurringCompletion).where(
            RecurringCompletion.task_id == task_id,
            RecurringCompletion.occurrence_date == occurrence_date,
        )
        return self.session.exec(statement).first()

    def _upsert(self, task_id: int, occurrence_date: date, completed_at: Optional[datetime], skipped: bool) -> RecurringCompletion:
        task = self._get_task(task_id)
        self.validate_occurrence(task, occurrence_date)

        # Second attempt covers a concurrent insert of the same (task, date)
        for attempt in range(2):
            record = self.get_record(task_id, occurrence_date)
            if record is None:
                record = RecurringCompletion(task_id=task_id, occurrence_date=occurrence_date)
            record.completed_at = completed_at
            record.skipped = skipped
            record.updated_at = datetime.utcnow()
            self.session.add(record)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                if attempt:
                    raise
                continue
            self.session.refresh(record)
            return record

    def record_completion(
        self, task_id: int, occurrence_date: date, when: Optional[datetime] = None
    ) -> RecurringCompletion:
        """Mark an occurrence as done, replacing any skip recorded for it."""
        return self._upsert(task_id, occurrence_date, when or datetime.utcnow(), skipped=False)

    def record_skip(self, task_id: int, occurrence_date: date) -> RecurringCompletion:
        """Mark an occurrence as intentionally not done, replacing any completion."""
        return self._upsert(task_id, occurrence_date, None, skipped=True)

    def delete_completion(self, task_id: int, occurrence_date: date) -> bool:
        """Remove the record for an occurrence. Returns False if there was none."""
        record = self.get_record(task_id, occurrence_date)
        if record is None:
            return False
        self.session.delete(record)
        self.session.commit()
        return True

    def list_completions(
        self,
        task_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
        include_skipped: bool = True,
    ) -> List[RecurringCompletion]:
        """Records of a task ordered by occurrence date, optionally bounded."""
        statement = select(RecurringCompletion).where(RecurringCompletion.task_id == task_id)
        if start is not None:
            statement = statement.where(RecurringCompletion.occurrence_date >= start)
        if end is not None:
            statement = statement.where(RecurringCompletion.occurrence_date <= end)
        if not include_skipped:
            statement = statement.where(RecurringCompletion.skipped == False)  # noqa: E712
        statement = statement.order_by(RecurringCompletion.occurrence_date)
        return list(self.session.exec(statement).all())
