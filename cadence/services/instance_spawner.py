"""
Instance Spawner

Materializes concrete task instances from recurring templates. Safe to call on
every scheduler tick and from concurrent requests: the
``uq_task_recurring_parent_due`` constraint is the source of truth for "an
instance already exists", and a rejected insert is treated as a no-op.
"""

import os
import time
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from cadence.models.recurring_completion import RecurringCompletion
from cadence.models.task import Task, TaskStatus
from cadence.services.exceptions import DuplicateInstance
from cadence.services.recurrence_engine import next_after_completion, next_occurrence, rule_for_task
from cadence.utils.logger import get_logger
from cadence.utils.metrics import MetricsCollector, metrics_collector

logger = get_logger(__name__)

# How far ahead of "today" an occurrence may be materialized
SPAWN_LOOKAHEAD_DAYS = int(os.environ.get("SPAWN_LOOKAHEAD_DAYS", "0"))

INACTIVE_STATUSES = [TaskStatus.DONE.value, TaskStatus.ARCHIVED.value]


class SpawnResult(NamedTuple):
    created: bool
    instance: Optional[Task]


def as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


class InstanceSpawner:
    """Creates at most one instance per template per occurrence date."""

    def __init__(
        self,
        session: Session,
        lookahead_days: Optional[int] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.session = session
        self.lookahead_days = SPAWN_LOOKAHEAD_DAYS if lookahead_days is None else lookahead_days
        self.metrics = metrics or metrics_collector

    def find_instance(self, template_id: int, due: date) -> Optional[Task]:
        statement = select(Task).where(
            Task.recurring_parent_id == template_id,
            Task.due_date == due,
        )
        return self.session.exec(statement).first()

    def last_spawned_date(self, template: Task) -> date:
        """Lower bound for the next spawn.

        The template's own anchor counts as the first occurrence, and the
        recorded high-water mark keeps deleted instances from being recreated.
        """
        newest_child = self.session.exec(
            select(func.max(Task.due_date)).where(Task.recurring_parent_id == template.id)
        ).one()
        candidates = [template.anchor_date, template.recurrence_last_spawned_date, newest_child]
        return max(d for d in candidates if d is not None)

    def next_due_date(self, template: Task, rule) -> Optional[date]:
        """Date of the next occurrence to materialize, or None.

        A completion-based series waits until its newest occurrence has a
        record, then counts on from the day that occurrence was done.
        """
        lower = self.last_spawned_date(template)
        if not template.completion_based:
            return next_occurrence(rule, template.anchor_date, lower)

        latest = self.session.exec(
            select(RecurringCompletion)
            .where(RecurringCompletion.task_id == template.id)
            .order_by(RecurringCompletion.occurrence_date.desc())
        ).first()
        if latest is None or latest.occurrence_date < lower:
            return None
        if latest.completed_at is not None and not latest.skipped:
            done_on = latest.completed_at.date()
        else:
            done_on = latest.occurrence_date
        return next_after_completion(rule, done_on, lower)

    def _remember_spawned(self, template: Task, due: date) -> None:
        if template.recurrence_last_spawned_date is None or template.recurrence_last_spawned_date < due:
            template.recurrence_last_spawned_date = due
            self.session.add(template)

    def _insert_instance(self, template: Task, due: date) -> Task:
        # Snapshot of the template; later template edits do not touch it
        instance = Task(
            user_id=template.user_id,
            project_id=template.project_id,
            name=template.name,
            description=template.description,
            priority=template.priority,
            tags=list(template.tags) if template.tags else None,
            status=TaskStatus.NOT_STARTED.value,
            due_date=due,
            recurring_parent_id=template.id,
        )
        self.session.add(instance)
        self._remember_spawned(template, due)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise DuplicateInstance(str(e)) from e
        self.session.refresh(instance)
        return instance

    def ensure_instance(self, template: Task, now: Union[date, datetime]) -> SpawnResult:
        """Make sure the next due occurrence of ``template`` exists as a task.

        Args:
            template: Recurring template (rule set, no parent)
            now: The owner's current local date (or datetime)

        Returns:
            SpawnResult(created, instance). With nothing due, ``instance`` is
            None; materialized occurrences only move the lower bound forward.
            It is the existing row only when another writer inserted the same
            occurrence first.
        """
        template_id = template.id
        if template_id is None or template.recurring_parent_id is not None:
            logger.warning("Not a recurring template, nothing to spawn", task_id=template_id)
            return SpawnResult(False, None)

        rule = rule_for_task(template)
        if rule.is_none:
            return SpawnResult(False, None)

        today = as_date(now)
        due = self.next_due_date(template, rule)
        if due is None:
            if template.completion_based:
                logger.debug("Waiting for completion before spawning", template_id=template_id)
            else:
                logger.info("Template exhausted, nothing to spawn", template_id=template_id, end_date=rule.end_date)
            return SpawnResult(False, None)

        if due > today + timedelta(days=self.lookahead_days):
            return SpawnResult(False, None)

        existing = self.find_instance(template_id, due)
        if existing is not None:
            self._remember_spawned(template, due)
            self.session.commit()
            return SpawnResult(False, existing)

        try:
            instance = self._insert_instance(template, due)
        except DuplicateInstance:
            self.metrics.duplicate_instance()
            logger.info("Instance already exists, skipping", template_id=template_id, due_date=due)
            return SpawnResult(False, self.find_instance(template_id, due))

        self.metrics.instance_spawned()
        logger.info(
            "Spawned recurring instance",
            template_id=template_id,
            instance_id=instance.id,
            due_date=due,
        )
        return SpawnResult(True, instance)

    def active_templates(self, user_id: Optional[str] = None) -> list:
        statement = select(Task).where(
            Task.recurring_parent_id.is_(None),
            Task.recurrence_type != "none",
            Task.status.not_in(INACTIVE_STATUSES),
        )
        if user_id is not None:
            statement = statement.where(Task.user_id == user_id)
        return list(self.session.exec(statement.order_by(Task.id)).all())

    def advance_recurrences(self, now: Union[date, datetime], user_id: Optional[str] = None) -> int:
        """Run ``ensure_instance`` for every active template.

        A failing template is logged and skipped so it cannot block the others.

        Returns:
            Number of instances created
        """
        start_time = time.time()
        template_ids = [t.id for t in self.active_templates(user_id)]
        created = 0

        for template_id in template_ids:
            try:
                template = self.session.get(Task, template_id)
                if template is None:
                    continue
                result = self.ensure_instance(template, now)
            except Exception:
                self.session.rollback()
                self.metrics.spawn_error()
                logger.exception("Failed to advance recurring template", template_id=template_id)
                continue

            self.metrics.template_processed()
            if result.created:
                created += 1

        self.metrics.record_timer("advance_recurrences_seconds", time.time() - start_time)
        logger.info("Advanced recurrences", templates=len(template_ids), created=created, user_id=user_id)
        return created
