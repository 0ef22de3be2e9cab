"""Habit schemas."""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from typing import Optional, List

from cadence.schemas.task import FLEXIBILITY_PATTERN, PERIOD_PATTERN, STREAK_MODE_PATTERN, TaskResponse


class HabitCreate(BaseModel):
    """A habit is a task with habit tracking on; without a rule it is expected daily."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    project_id: Optional[int] = None
    recurrence_type: Optional[str] = Field(None, pattern=r"^(none|daily|weekly|monthly|monthly_weekday|monthly_last_day|yearly)$")
    recurrence_interval: Optional[int] = None
    recurrence_weekdays: Optional[List[int]] = None
    recurrence_weekday: Optional[int] = None
    recurrence_week_of_month: Optional[int] = None
    recurrence_month_day: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    completion_based: bool = False
    habit_streak_mode: Optional[str] = Field(None, pattern=STREAK_MODE_PATTERN)
    habit_flexibility_mode: Optional[str] = Field(None, pattern=FLEXIBILITY_PATTERN)
    habit_target_count: Optional[int] = Field(None, ge=1)
    habit_frequency_period: Optional[str] = Field(None, pattern=PERIOD_PATTERN)


class CompletionLog(BaseModel):
    """Check-in for one occurrence; defaults to the user's today."""
    occurrence_date: Optional[date] = None
    completed_at: Optional[datetime] = None


class SkipLog(BaseModel):
    occurrence_date: Optional[date] = None


class CompletionResponse(BaseModel):
    id: int
    task_id: int
    occurrence_date: date
    completed_at: Optional[datetime] = None
    skipped: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HabitStatsResponse(BaseModel):
    current_streak: int
    best_streak: int
    total_completions: int
    completion_rate: float
    target_completion_rate: Optional[float] = None


class CompletionResult(BaseModel):
    completion: CompletionResponse
    stats: HabitStatsResponse


class HabitListResponse(BaseModel):
    habits: List[TaskResponse]
    count: int
