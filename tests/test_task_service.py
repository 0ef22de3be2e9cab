# tests/test_task_service.py

from datetime import date, datetime

import pytest
from sqlmodel import Session

from cadence.models.task import Task
from cadence.services.completion_tracker import CompletionTracker
from cadence.services.exceptions import DuplicateInstance
from cadence.services.instance_spawner import InstanceSpawner
from cadence.services.task_service import TaskService, extract_options


def weekly_template(service: TaskService, **options) -> Task:
    return service.create_task(
        user_id="user-1",
        name="Weekly review",
        due_date=date(2024, 1, 1),
        recurrence={"type": "weekly", "weekdays": [1]},
        options=options or None,
    )


def test_completing_a_template_keeps_the_series_alive(session: Session, user) -> None:
    service = TaskService(session)
    template = weekly_template(service)

    toggled = service.toggle_complete(template.id, "user-1")

    assert toggled.status == "not_started"
    assert toggled.completed_at is None
    records = CompletionTracker(session).list_completions(template.id)
    assert [r.occurrence_date for r in records] == [date(2024, 1, 1)]

    assert InstanceSpawner(session).advance_recurrences(date(2024, 1, 8)) == 1
    assert [t.id for t in service.get_calendar_tasks("user-1")] == [template.id]


def test_toggling_a_template_twice_removes_the_first_completion(session: Session, user) -> None:
    service = TaskService(session)
    template = weekly_template(service)

    service.toggle_complete(template.id, "user-1")
    service.toggle_complete(template.id, "user-1")

    assert CompletionTracker(session).list_completions(template.id) == []


def test_moving_an_instance_onto_a_sibling_date_is_rejected(session: Session, user) -> None:
    service = TaskService(session)
    template = weekly_template(service)
    spawner = InstanceSpawner(session)
    first = spawner.ensure_instance(template, date(2024, 1, 15)).instance
    second = spawner.ensure_instance(template, date(2024, 1, 15)).instance

    with pytest.raises(DuplicateInstance):
        service.update_task(second.id, "user-1", due_date=first.due_date)

    assert service.get_by_id(second.id, "user-1").due_date == date(2024, 1, 15)


def test_completion_based_template_spawns_after_completion(session: Session, user) -> None:
    service = TaskService(session)
    template = service.create_task(
        user_id="user-1",
        name="Water plants",
        due_date=date(2024, 1, 1),
        recurrence={"type": "daily", "interval": 3},
        options={"completion_based": True},
    )
    spawner = InstanceSpawner(session)

    # First occurrence still open
    assert not spawner.ensure_instance(template, date(2024, 1, 10)).created

    CompletionTracker(session).record_completion(template.id, date(2024, 1, 1), datetime(2024, 1, 5, 9, 0))
    result = spawner.ensure_instance(template, date(2024, 1, 10))
    assert result.instance.due_date == date(2024, 1, 8)

    # The instance is listed in the feed since the template has no RRULE
    calendar_ids = [t.id for t in service.get_calendar_tasks("user-1")]
    assert calendar_ids == [template.id, result.instance.id]

    service.toggle_complete(result.instance.id, "user-1")
    records = CompletionTracker(session).list_completions(template.id)
    assert [r.occurrence_date for r in records] == [date(2024, 1, 1), date(2024, 1, 8)]


def test_extract_options_keeps_explicit_target_clears() -> None:
    picked = extract_options({
        "name": "Read",
        "habit_target_count": None,
        "habit_streak_mode": None,
        "completion_based": True,
    })
    assert picked == {"habit_target_count": None, "completion_based": True}
