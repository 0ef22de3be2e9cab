"""Habit router: check-ins, skips and streak statistics."""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional
from datetime import date

from cadence.models.task import Task
from cadence.schemas.habit import (
    CompletionLog,
    CompletionResponse,
    CompletionResult,
    HabitCreate,
    HabitListResponse,
    HabitStatsResponse,
    SkipLog,
)
from cadence.schemas.task import TaskResponse
from cadence.services.exceptions import InvalidOccurrence, InvalidRecurrenceRule, TaskNotFound
from cadence.services.habit_service import HabitService
from cadence.services.task_service import TaskService, extract_options, extract_recurrence
from cadence.middleware.auth import get_current_user, CurrentUser, ensure_user_access
from cadence.db.config import get_session
from cadence.utils.dates import today_for_user
from sqlmodel import Session

router = APIRouter(tags=["Habits"])


def _get_owned_task(session: Session, user_id: str, task_id: int) -> Task:
    task = TaskService(session).get_by_id(task_id, user_id)
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return task


def _result(record, stats) -> CompletionResult:
    return CompletionResult(
        completion=CompletionResponse.model_validate(record),
        stats=HabitStatsResponse(**stats.to_dict()),
    )


@router.get("/{user_id}/habits", response_model=HabitListResponse)
async def list_habits(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    due_today: bool = Query(False, description="Only habits still wanting a check-in today"),
):
    """Habits with their cached streak counters."""
    ensure_user_access(user_id, current_user)
    due_on = today_for_user(session, user_id) if due_today else None
    habits = HabitService(session).list_habits(user_id, due_on)
    return HabitListResponse(habits=[TaskResponse.model_validate(h) for h in habits], count=len(habits))


@router.post("/{user_id}/habits", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_habit(
    user_id: str,
    habit_data: HabitCreate,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    ensure_user_access(user_id, current_user)
    try:
        return TaskService(session).create_task(
            user_id=user_id,
            name=habit_data.name,
            description=habit_data.description,
            due_date=habit_data.due_date,
            tags=habit_data.tags,
            project_id=habit_data.project_id,
            habit_mode=True,
            recurrence=extract_recurrence(habit_data.model_dump(exclude_none=True)),
            options=extract_options(habit_data.model_dump(exclude_none=True)),
        )
    except InvalidRecurrenceRule as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid recurrence rule", "errors": e.errors},
        )


@router.post("/{user_id}/habits/{task_id}/completions", response_model=CompletionResult)
async def log_completion(
    user_id: str,
    task_id: int,
    body: CompletionLog,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Mark an occurrence done (the user's today when no date is given)."""
    ensure_user_access(user_id, current_user)
    task = _get_owned_task(session, user_id, task_id)
    today = today_for_user(session, user_id)

    try:
        record, stats = HabitService(session).log_completion(
            task, body.occurrence_date or today, today, body.completed_at
        )
    except InvalidOccurrence as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return _result(record, stats)


@router.post("/{user_id}/habits/{task_id}/skips", response_model=CompletionResult)
async def log_skip(
    user_id: str,
    task_id: int,
    body: SkipLog,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Mark an occurrence as intentionally skipped; the streak survives it."""
    ensure_user_access(user_id, current_user)
    task = _get_owned_task(session, user_id, task_id)
    today = today_for_user(session, user_id)

    try:
        record, stats = HabitService(session).log_skip(task, body.occurrence_date or today, today)
    except InvalidOccurrence as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TaskNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return _result(record, stats)


@router.get("/{user_id}/habits/{task_id}/completions", response_model=List[CompletionResponse])
async def list_completions(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    ensure_user_access(user_id, current_user)
    task = _get_owned_task(session, user_id, task_id)
    return HabitService(session).list_completions(task, start_date, end_date)


@router.delete("/{user_id}/habits/{task_id}/completions/{occurrence_date}", response_model=HabitStatsResponse)
async def delete_completion(
    user_id: str,
    task_id: int,
    occurrence_date: date,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Undo a completion or skip; returns the recalculated stats."""
    ensure_user_access(user_id, current_user)
    task = _get_owned_task(session, user_id, task_id)

    stats = HabitService(session).delete_completion(task, occurrence_date, today_for_user(session, user_id))
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No completion recorded for that date"
        )
    return HabitStatsResponse(**stats.to_dict())


@router.get("/{user_id}/habits/{task_id}/stats", response_model=HabitStatsResponse)
async def get_stats(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    start_date: Optional[date] = Query(None, description="Completion-rate window start; defaults to the first record"),
    end_date: Optional[date] = Query(None, description="Defaults to the user's today"),
):
    ensure_user_access(user_id, current_user)
    task = _get_owned_task(session, user_id, task_id)

    range_end = end_date or today_for_user(session, user_id)
    if start_date is not None and start_date > range_end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start_date must not be after end_date"
        )
    stats = HabitService(session).get_stats(task, range_end, start_date)
    return HabitStatsResponse(**stats.to_dict())
