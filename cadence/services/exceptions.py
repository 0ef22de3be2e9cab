"""Errors raised by the recurrence engine services."""
from datetime import date
from typing import List


class RecurrenceError(Exception):
    """Base class for recurrence engine errors."""


class InvalidRecurrenceRule(RecurrenceError):
    """Rule combination is self-contradictory or out of range."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors) or "Invalid recurrence rule")


class InvalidOccurrence(RecurrenceError):
    """A completion or skip targets a date the schedule never generates."""

    def __init__(self, task_id: int, occurrence_date: date):
        self.task_id = task_id
        self.occurrence_date = occurrence_date
        super().__init__(
            f"{occurrence_date.isoformat()} is not a scheduled occurrence of task {task_id}"
        )


class TaskNotFound(RecurrenceError):
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class DuplicateInstance(RecurrenceError):
    """An instance already exists for (template, due date).

    Only used internally by the spawner to signal the benign no-op.
    """
