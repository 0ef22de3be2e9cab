"""Task router: CRUD, recurring templates and their instances."""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional, Dict, Any
from datetime import date

from cadence.schemas.task import (
    AdvanceResponse,
    NextIterationsResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from cadence.services.exceptions import DuplicateInstance, InvalidRecurrenceRule
from cadence.services.instance_spawner import InstanceSpawner
from cadence.services.task_service import TaskService, extract_options, extract_recurrence
from cadence.middleware.auth import get_current_user, CurrentUser, ensure_user_access
from cadence.db.config import get_session
from cadence.utils.dates import today_for_user
from sqlmodel import Session

router = APIRouter(tags=["Tasks"])  # No prefix since main.py adds /api prefix


def get_task_service(session: Session = Depends(get_session)) -> TaskService:
    """Dependency for getting TaskService instance."""
    return TaskService(session)


def invalid_rule(error: InvalidRecurrenceRule) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": "Invalid recurrence rule", "errors": error.errors},
    )


@router.get("/{user_id}/tasks", response_model=Dict[str, Any])
async def list_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
    status_filter: Optional[str] = Query(None, alias="status", description="not_started, in_progress, done, archived"),
    priority: Optional[str] = Query(None, description="Filter by priority: high, medium, low"),
    tag: Optional[str] = Query(None, description="Filter by specific tag"),
    due_from: Optional[date] = Query(None, description="Due date >= this date"),
    due_to: Optional[date] = Query(None, description="Due date <= this date"),
    include_instances: bool = Query(True, description="Include spawned recurring instances"),
    sort_by: str = Query("created_at", description="Sort by field: created_at, due_date, priority, name"),
    search: Optional[str] = Query(None, description="Search keyword for name/description"),
):
    """List tasks for the authenticated user with filtering and sorting."""
    ensure_user_access(user_id, current_user)

    tasks = service.list_tasks(
        user_id=user_id,
        status=status_filter,
        priority=priority,
        tag=tag,
        due_from=due_from,
        due_to=due_to,
        include_instances=include_instances,
        sort_by=sort_by,
        search=search,
    )
    return {
        "tasks": [TaskResponse.model_validate(t) for t in tasks],
        "count": len(tasks)
    }


@router.post("/{user_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    user_id: str,
    task_data: TaskCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Create a task; recurrence fields turn it into a recurring template."""
    ensure_user_access(user_id, current_user)

    try:
        return service.create_task(
            user_id=user_id,
            name=task_data.name,
            description=task_data.description,
            priority=task_data.priority or "medium",
            due_date=task_data.due_date,
            tags=task_data.tags,
            project_id=task_data.project_id,
            habit_mode=task_data.habit_mode,
            recurrence=extract_recurrence(task_data.model_dump(exclude_none=True)),
            options=extract_options(task_data.model_dump(exclude_none=True)),
        )
    except InvalidRecurrenceRule as e:
        raise invalid_rule(e)


@router.get("/{user_id}/recurring-tasks", response_model=List[TaskResponse])
async def get_recurring_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get all recurring templates for the user."""
    ensure_user_access(user_id, current_user)
    return service.get_recurring_tasks(user_id)


@router.post("/{user_id}/recurring-tasks/advance", response_model=AdvanceResponse)
async def advance_recurring_tasks(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Spawn due instances of the user's templates now instead of waiting for the scheduler."""
    ensure_user_access(user_id, current_user)
    today = today_for_user(session, user_id)
    created = InstanceSpawner(session).advance_recurrences(today, user_id=user_id)
    return AdvanceResponse(created=created)


@router.get("/{user_id}/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Get a specific task by ID."""
    ensure_user_access(user_id, current_user)

    task = service.get_by_id(task_id, user_id)
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return task


@router.put("/{user_id}/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    user_id: str,
    task_id: int,
    task_data: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Update a task. Rule fields are merged into the stored rule."""
    ensure_user_access(user_id, current_user)

    fields = task_data.model_dump(exclude_unset=True)
    try:
        task = service.update_task(
            task_id=task_id,
            user_id=user_id,
            name=fields.get("name"),
            description=fields.get("description"),
            priority=fields.get("priority"),
            status=fields.get("status"),
            due_date=fields.get("due_date"),
            tags=fields.get("tags"),
            project_id=fields.get("project_id"),
            habit_mode=fields.get("habit_mode"),
            recurrence=extract_recurrence(fields),
            options=extract_options(fields),
        )
    except InvalidRecurrenceRule as e:
        raise invalid_rule(e)
    except DuplicateInstance as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return task


@router.delete("/{user_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task. A deleted template's instances are kept as ordinary tasks."""
    ensure_user_access(user_id, current_user)

    if not service.delete(task_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )


@router.patch("/{user_id}/tasks/{task_id}/complete", response_model=TaskResponse)
async def toggle_complete(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Toggle task completion status."""
    ensure_user_access(user_id, current_user)

    task = service.toggle_complete(task_id, user_id)
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return task


@router.get("/{user_id}/tasks/{task_id}/instances", response_model=List[TaskResponse])
async def get_instances(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TaskService = Depends(get_task_service),
):
    """Spawned instances of a recurring template."""
    ensure_user_access(user_id, current_user)

    if not service.get_by_id(task_id, user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    return service.get_instances(task_id, user_id)


@router.get("/{user_id}/tasks/{task_id}/next-iterations", response_model=NextIterationsResponse)
async def get_next_iterations(
    user_id: str,
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
    count: int = Query(6, ge=1, le=50),
    start_date: Optional[date] = Query(None, description="First day considered; defaults to the user's today"),
):
    """Preview upcoming occurrence dates of a task's rule."""
    ensure_user_access(user_id, current_user)

    service = TaskService(session)
    task = service.get_by_id(task_id, user_id)
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found"
        )
    start = start_date or today_for_user(session, user_id)
    return NextIterationsResponse(task_id=task_id, dates=service.next_iterations(task, start, count))
