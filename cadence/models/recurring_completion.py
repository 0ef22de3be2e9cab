"""Recurring completion model for SQLModel."""
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from datetime import datetime, date
from typing import Optional


class RecurringCompletion(SQLModel, table=True):
    """A completion or an explicit skip of one occurrence of a recurring task or habit.

    Absence of a row for a past occurrence means "missed".
    """

    __table_args__ = (
        UniqueConstraint("task_id", "occurrence_date", name="uq_completion_task_occurrence"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(
        sa_column=Column(Integer, ForeignKey("task.id", ondelete="CASCADE"), nullable=False, index=True)
    )
    occurrence_date: date = Field(index=True)
    completed_at: Optional[datetime] = Field(default=None)  # irrelevant when skipped
    skipped: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
