"""Task service for recurring templates, spawned instances and habits."""
from sqlmodel import Session, select
from sqlalchemy import String, cast, case, delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from typing import Any, Dict, List, Optional
from datetime import datetime, date

from cadence.models.recurrence_rule import RecurrenceRule
from cadence.models.recurring_completion import RecurringCompletion
from cadence.models.task import Task, TaskStatus
from cadence.services.completion_tracker import CompletionTracker
from cadence.services.exceptions import DuplicateInstance, InvalidOccurrence, InvalidRecurrenceRule
from cadence.services.recurrence_engine import occurrences, rule_for_task
from cadence.services.recurrence_validator import RecurrenceValidator
from cadence.utils.logger import get_logger

logger = get_logger(__name__)

# Request field name -> RecurrenceRule.from_fields argument
RECURRENCE_FIELDS = {
    "recurrence_type": "type",
    "recurrence_interval": "interval",
    "recurrence_weekdays": "weekdays",
    "recurrence_weekday": "weekday",
    "recurrence_week_of_month": "week_of_month",
    "recurrence_month_day": "month_day",
    "recurrence_end_date": "end_date",
}


def extract_recurrence(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Pick the recurrence fields out of a request payload, or None if none were sent."""
    picked = {RECURRENCE_FIELDS[k]: v for k, v in data.items() if k in RECURRENCE_FIELDS}
    return picked or None


# Per-task switches for completion-based series and habit tracking
TASK_OPTIONS = (
    "completion_based",
    "habit_streak_mode",
    "habit_flexibility_mode",
    "habit_target_count",
    "habit_frequency_period",
)
# An explicit null clears the habit target
CLEARABLE_OPTIONS = {"habit_target_count", "habit_frequency_period"}


def extract_options(data: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the completion and habit switches out of a request payload."""
    return {
        k: v for k, v in data.items()
        if k in TASK_OPTIONS and (v is not None or k in CLEARABLE_OPTIONS)
    }


def build_rule(fields: Dict[str, Any], anchor: Optional[date] = None) -> RecurrenceRule:
    """Parse and validate rule fields, raising InvalidRecurrenceRule on any problem."""
    try:
        rule = RecurrenceRule.from_fields(**fields)
    except (ValueError, TypeError) as e:
        raise InvalidRecurrenceRule([str(e)]) from e
    return RecurrenceValidator.ensure_valid(rule, anchor)


class TaskService:
    """Service class for task CRUD with recurrence rules and habit flags."""

    def __init__(self, session: Session):
        self.session = session

    def create_task(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        priority: str = "medium",
        due_date: Optional[date] = None,
        tags: Optional[List[str]] = None,
        project_id: Optional[int] = None,
        habit_mode: bool = False,
        recurrence: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Task:
        """Create a plain task, a recurring template or a habit.

        Raises:
            InvalidRecurrenceRule: If the recurrence fields contradict each other.
        """
        if priority not in ["high", "medium", "low"]:
            priority = "medium"

        now = datetime.utcnow()
        rule = build_rule(recurrence or {}, anchor=due_date or now.date())

        task = Task(
            user_id=user_id,
            project_id=project_id,
            name=name,
            description=description,
            priority=priority,
            status=TaskStatus.NOT_STARTED.value,
            due_date=due_date,
            tags=tags or None,
            habit_mode=habit_mode,
            created_at=now,
            updated_at=now,
        )
        rule.apply_to(task)
        self._apply_options(task, options)

        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        logger.info("Created task", task_id=task.id, recurrence_type=task.recurrence_type, habit_mode=habit_mode)
        return task

    def get_by_id(self, task_id: int, user_id: str) -> Optional[Task]:
        """Get a specific task by ID, ensuring user ownership."""
        statement = (
            select(Task)
            .where(Task.id == task_id)
            .where(Task.user_id == user_id)
        )
        return self.session.exec(statement).first()

    def list_tasks(
        self,
        user_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        tag: Optional[str] = None,
        due_from: Optional[date] = None,
        due_to: Optional[date] = None,
        include_instances: bool = True,
        habit_mode: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
    ) -> List[Task]:
        """Get all tasks for a user with filtering and sorting."""
        statement = select(Task).where(Task.user_id == user_id)

        if status:
            statement = statement.where(Task.status == status)
        if priority:
            statement = statement.where(Task.priority == priority)
        if tag:
            # Tags are a JSON array; match the quoted element in its text form
            statement = statement.where(cast(Task.tags, String).like(f'%"{tag}"%'))
        if due_from:
            statement = statement.where(Task.due_date >= due_from)
        if due_to:
            statement = statement.where(Task.due_date <= due_to)
        if not include_instances:
            statement = statement.where(Task.recurring_parent_id.is_(None))
        if habit_mode is not None:
            statement = statement.where(Task.habit_mode == habit_mode)
        if search:
            search_pattern = f"%{search}%"
            statement = statement.where(
                Task.name.ilike(search_pattern) |
                (Task.description.is_not(None) & Task.description.ilike(search_pattern))
            )

        if sort_by == "due_date":
            statement = statement.order_by(Task.due_date.asc().nullslast(), Task.id)
        elif sort_by == "priority":
            statement = statement.order_by(
                case(
                    (Task.priority == 'high', 1),
                    (Task.priority == 'medium', 2),
                    (Task.priority == 'low', 3),
                    else_=4
                ).asc(),
                Task.created_at.desc()
            )
        elif sort_by == "name":
            statement = statement.order_by(Task.name.asc())
        else:
            statement = statement.order_by(Task.created_at.desc(), Task.id.desc())

        return list(self.session.exec(statement).all())

    def update_task(
        self,
        task_id: int,
        user_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[date] = None,
        tags: Optional[List[str]] = None,
        project_id: Optional[int] = None,
        habit_mode: Optional[bool] = None,
        status: Optional[str] = None,
        recurrence: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[Task]:
        """Update a task, ensuring user ownership.

        ``recurrence`` holds only the rule fields being changed; the rest of the
        stored rule is kept. Already spawned instances are not touched.

        Raises:
            InvalidRecurrenceRule: If the merged rule is invalid.
            DuplicateInstance: If an instance is moved onto a sibling's due date.
        """
        task = self.get_by_id(task_id, user_id)
        if not task:
            return None

        if recurrence:
            if task.is_instance:
                raise InvalidRecurrenceRule(["Spawned instances cannot carry a recurrence rule"])
            merged = rule_for_task(task).to_dict()
            merged.update(recurrence)
            # A new single weekday for a weekly rule replaces the stored set
            if "weekday" in recurrence and "weekdays" not in recurrence:
                merged["weekdays"] = None
            anchor = due_date or task.anchor_date
            build_rule(merged, anchor=anchor).apply_to(task)

        if name is not None:
            task.name = name
        if description is not None:
            task.description = description
        if priority is not None and priority in ["high", "medium", "low"]:
            task.priority = priority
        if due_date is not None:
            task.due_date = due_date
        if tags is not None:
            task.tags = tags or None
        if project_id is not None:
            task.project_id = project_id
        if habit_mode is not None:
            task.habit_mode = habit_mode
        if status is not None:
            self._set_status(task, status)
        self._apply_options(task, options)

        task.updated_at = datetime.utcnow()
        self.session.add(task)
        try:
            self.session.commit()
        except IntegrityError as e:
            # Moving an instance onto a date its template already has
            self.session.rollback()
            raise DuplicateInstance(
                f"Template {task.recurring_parent_id} already has an instance due {due_date}"
            ) from e
        self.session.refresh(task)
        return task

    def _apply_options(self, task: Task, options: Optional[Dict[str, Any]]) -> None:
        for key, value in (options or {}).items():
            setattr(task, key, value)

    def delete(self, task_id: int, user_id: str) -> bool:
        """Delete a task with its completion history.

        Spawned instances of a deleted template stay as ordinary tasks.
        """
        task = self.get_by_id(task_id, user_id)
        if not task:
            return False

        self.session.execute(
            update(Task).where(Task.recurring_parent_id == task_id).values(recurring_parent_id=None)
        )
        self.session.execute(delete(RecurringCompletion).where(RecurringCompletion.task_id == task_id))
        self.session.delete(task)
        self.session.commit()
        logger.info("Deleted task", task_id=task_id)
        return True

    def _set_status(self, task: Task, status: str) -> None:
        was_done = task.status == TaskStatus.DONE.value
        task.status = status
        is_done = status == TaskStatus.DONE.value
        if is_done and not was_done:
            task.completed_at = datetime.utcnow()
        elif was_done and not is_done:
            task.completed_at = None

    def toggle_complete(self, task_id: int, user_id: str) -> Optional[Task]:
        """Toggle a task between done and not started.

        Completing a spawned instance also records the completion of its
        template's occurrence; reopening removes it. A template is never marked
        done, which would end its series: the toggle applies to its first
        occurrence instead.
        """
        task = self.get_by_id(task_id, user_id)
        if not task:
            return None

        if task.is_template:
            return self._toggle_first_occurrence(task)

        done = task.status != TaskStatus.DONE.value
        self._set_status(task, TaskStatus.DONE.value if done else TaskStatus.NOT_STARTED.value)
        task.updated_at = datetime.utcnow()
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)

        if task.is_instance and task.due_date is not None:
            tracker = CompletionTracker(self.session)
            try:
                if done:
                    tracker.record_completion(task.recurring_parent_id, task.due_date, task.completed_at)
                else:
                    tracker.delete_completion(task.recurring_parent_id, task.due_date)
            except InvalidOccurrence:
                # Template rule changed since the instance was spawned
                logger.warning(
                    "Instance no longer matches its template",
                    task_id=task.id,
                    due_date=task.due_date,
                    template_id=task.recurring_parent_id,
                )
            self.session.refresh(task)
        return task

    def _toggle_first_occurrence(self, template: Task) -> Task:
        anchor = template.anchor_date
        if template.completion_based:
            first = anchor
        else:
            first = next(occurrences(rule_for_task(template), anchor, anchor, limit=1), None)
        if first is None:
            logger.warning("Template has no occurrence to complete", task_id=template.id)
            return template

        tracker = CompletionTracker(self.session)
        record = tracker.get_record(template.id, first)
        if record is not None and not record.skipped:
            tracker.delete_completion(template.id, first)
        else:
            tracker.record_completion(template.id, first)
        logger.info("Toggled first occurrence of template", task_id=template.id, occurrence_date=first)
        self.session.refresh(template)
        return template

    def get_recurring_tasks(self, user_id: str) -> List[Task]:
        """Get all recurring templates for a user."""
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.recurrence_type != "none")
            .where(Task.recurring_parent_id.is_(None))
            .order_by(Task.created_at.desc(), Task.id.desc())
        )
        return list(self.session.exec(statement).all())

    def get_instances(self, template_id: int, user_id: str) -> List[Task]:
        """Spawned instances of a template, oldest due date first."""
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.recurring_parent_id == template_id)
            .order_by(Task.due_date.asc())
        )
        return list(self.session.exec(statement).all())

    def next_iterations(self, task: Task, start: date, count: int = 6) -> List[date]:
        """Upcoming occurrence dates of a task's rule from ``start`` on."""
        rule = rule_for_task(task)
        return list(occurrences(rule, task.anchor_date, start, limit=count))

    def get_calendar_tasks(
        self,
        user_id: str,
        include_completed: bool = False,
        project_id: Optional[int] = None,
    ) -> List[Task]:
        """Due-dated top-level tasks for the calendar feed.

        Spawned instances are left out; their template carries the RRULE.
        Completion-based templates carry none, so their instances are listed.
        """
        parent = aliased(Task)
        completion_based_parents = select(parent.id).where(parent.completion_based == True)  # noqa: E712
        statement = (
            select(Task)
            .where(Task.user_id == user_id)
            .where(Task.due_date.is_not(None))
            .where(
                Task.recurring_parent_id.is_(None)
                | Task.recurring_parent_id.in_(completion_based_parents)
            )
            .where(Task.status != TaskStatus.ARCHIVED.value)
        )
        if not include_completed:
            statement = statement.where(Task.status != TaskStatus.DONE.value)
        if project_id is not None:
            statement = statement.where(Task.project_id == project_id)
        return list(self.session.exec(statement.order_by(Task.due_date.asc(), Task.id)).all())
