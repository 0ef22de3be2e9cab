"""Task schemas for recurring templates, instances and habits."""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, date
from typing import Optional, List

RECURRENCE_PATTERN = r"^(none|daily|weekly|monthly|monthly_weekday|monthly_last_day|yearly)$"
STATUS_PATTERN = r"^(not_started|in_progress|done|archived)$"
STREAK_MODE_PATTERN = r"^(calendar|scheduled)$"
FLEXIBILITY_PATTERN = r"^(flexible|strict)$"
PERIOD_PATTERN = r"^(daily|weekly|monthly)$"


class TaskCreate(BaseModel):
    """Schema for creating a task, optionally recurring or tracked as a habit."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    priority: Optional[str] = Field(default="medium", pattern=r"^(high|medium|low)$")
    due_date: Optional[date] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    project_id: Optional[int] = None
    habit_mode: bool = False
    recurrence_type: Optional[str] = Field(None, pattern=RECURRENCE_PATTERN)
    recurrence_interval: Optional[int] = None
    recurrence_weekdays: Optional[List[int]] = None  # 0=Sunday..6=Saturday
    recurrence_weekday: Optional[int] = None
    recurrence_week_of_month: Optional[int] = None  # 1-5, -1 for last
    recurrence_month_day: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    completion_based: bool = False
    habit_streak_mode: Optional[str] = Field(None, pattern=STREAK_MODE_PATTERN)
    habit_flexibility_mode: Optional[str] = Field(None, pattern=FLEXIBILITY_PATTERN)
    habit_target_count: Optional[int] = Field(None, ge=1)
    habit_frequency_period: Optional[str] = Field(None, pattern=PERIOD_PATTERN)


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only fields present in the body are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    priority: Optional[str] = Field(None, pattern=r"^(high|medium|low)$")
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)
    due_date: Optional[date] = None
    tags: Optional[List[str]] = Field(None, max_length=10)
    project_id: Optional[int] = None
    habit_mode: Optional[bool] = None
    recurrence_type: Optional[str] = Field(None, pattern=RECURRENCE_PATTERN)
    recurrence_interval: Optional[int] = None
    recurrence_weekdays: Optional[List[int]] = None
    recurrence_weekday: Optional[int] = None
    recurrence_week_of_month: Optional[int] = None
    recurrence_month_day: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    completion_based: Optional[bool] = None
    habit_streak_mode: Optional[str] = Field(None, pattern=STREAK_MODE_PATTERN)
    habit_flexibility_mode: Optional[str] = Field(None, pattern=FLEXIBILITY_PATTERN)
    habit_target_count: Optional[int] = Field(None, ge=1)
    habit_frequency_period: Optional[str] = Field(None, pattern=PERIOD_PATTERN)


class TaskResponse(BaseModel):
    """Schema for task API responses."""
    id: int
    user_id: str
    project_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    priority: Optional[str] = "medium"
    status: str
    due_date: Optional[date] = None
    tags: Optional[List[str]] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    recurrence_type: str = "none"
    recurrence_interval: int = 1
    recurrence_weekdays: Optional[List[int]] = None
    recurrence_weekday: Optional[int] = None
    recurrence_week_of_month: Optional[int] = None
    recurrence_month_day: Optional[int] = None
    recurrence_end_date: Optional[date] = None
    recurrence_last_spawned_date: Optional[date] = None
    completion_based: bool = False
    recurring_parent_id: Optional[int] = None
    habit_mode: bool = False
    habit_streak_mode: str = "calendar"
    habit_flexibility_mode: str = "flexible"
    habit_target_count: Optional[int] = None
    habit_frequency_period: Optional[str] = None
    habit_current_streak: int = 0
    habit_best_streak: int = 0
    habit_total_completions: int = 0
    habit_last_completion_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NextIterationsResponse(BaseModel):
    task_id: int
    dates: List[date]


class AdvanceResponse(BaseModel):
    created: int
