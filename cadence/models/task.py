"""Task model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, String, Integer, ForeignKey, JSON, UniqueConstraint
from datetime import datetime, date
from enum import Enum
from typing import List, Optional


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ARCHIVED = "archived"


class HabitStreakMode(str, Enum):
    """Which days a habit is expected on: every day, or the recurrence rule's days."""

    CALENDAR = "calendar"
    SCHEDULED = "scheduled"


class HabitFlexibility(str, Enum):
    """Flexible habits can be checked in any day; strict ones only on scheduled days."""

    FLEXIBLE = "flexible"
    STRICT = "strict"


class Task(SQLModel, table=True):
    """Task entity: a plain task, a recurring template, a spawned instance or a habit.

    A template carries a recurrence rule and no ``recurring_parent_id``.
    A spawned instance points at its template and never carries a rule itself.
    """

    __table_args__ = (
        # One spawned instance per template per due date
        UniqueConstraint("recurring_parent_id", "due_date", name="uq_task_recurring_parent_due"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("user.id", ondelete="CASCADE"), index=True)
    )
    project_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("project.id", ondelete="SET NULL"), nullable=True, index=True)
    )
    name: str = Field(max_length=200, min_length=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    priority: str = Field(default="medium", max_length=20)  # high, medium, low
    status: str = Field(default=TaskStatus.NOT_STARTED.value, max_length=20)
    due_date: Optional[date] = Field(default=None, index=True)  # calendar date, no time component
    tags: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Recurrence rule, flattened onto the row. Read it through RecurrenceRule.from_task.
    recurrence_type: str = Field(default="none", max_length=32)
    recurrence_interval: int = Field(default=1)
    recurrence_weekdays: Optional[List[int]] = Field(default=None, sa_column=Column(JSON))  # 0=Sunday..6=Saturday
    recurrence_weekday: Optional[int] = Field(default=None)  # legacy single weekday, used by monthly_weekday
    recurrence_week_of_month: Optional[int] = Field(default=None)  # 1-5, or -1 for last
    recurrence_month_day: Optional[int] = Field(default=None)  # 1-31
    recurrence_end_date: Optional[date] = Field(default=None)
    recurrence_last_spawned_date: Optional[date] = Field(default=None)
    # Next due date counts from the day the previous occurrence was done
    completion_based: bool = Field(default=False)
    recurring_parent_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, ForeignKey("task.id", ondelete="SET NULL"), nullable=True, index=True)
    )

    # Habit tracking; the counters are a cache of StreakCalculator output
    habit_mode: bool = Field(default=False)
    habit_streak_mode: str = Field(default=HabitStreakMode.CALENDAR.value, max_length=20)
    habit_flexibility_mode: str = Field(default=HabitFlexibility.FLEXIBLE.value, max_length=20)
    habit_target_count: Optional[int] = Field(default=None)  # completions per period
    habit_frequency_period: Optional[str] = Field(default=None, max_length=20)  # daily, weekly, monthly
    habit_current_streak: int = Field(default=0)
    habit_best_streak: int = Field(default=0)
    habit_total_completions: int = Field(default=0)
    habit_last_completion_at: Optional[datetime] = Field(default=None)

    @property
    def is_template(self) -> bool:
        return self.recurring_parent_id is None and (self.recurrence_type or "none") != "none"

    @property
    def is_instance(self) -> bool:
        return self.recurring_parent_id is not None

    @property
    def anchor_date(self) -> date:
        """Reference date of the recurrence: the first due date, else the creation date."""
        if self.due_date is not None:
            return self.due_date
        created = self.created_at or datetime.utcnow()
        return created.date()
