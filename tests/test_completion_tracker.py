# tests/test_completion_tracker.py

from datetime import date, datetime

import pytest
from sqlmodel import Session

from cadence.models.task import Task
from cadence.services.completion_tracker import CompletionTracker
from cadence.services.exceptions import InvalidOccurrence, TaskNotFound


def test_completion_then_skip_updates_the_same_row(session: Session, weekly_monday_template: Task) -> None:
    tracker = CompletionTracker(session)
    done_at = datetime(2024, 1, 8, 18, 0)

    completed = tracker.record_completion(weekly_monday_template.id, date(2024, 1, 8), done_at)
    assert not completed.skipped
    assert completed.completed_at == done_at

    skipped = tracker.record_skip(weekly_monday_template.id, date(2024, 1, 8))
    assert skipped.id == completed.id
    assert skipped.skipped
    assert skipped.completed_at is None

    assert len(tracker.list_completions(weekly_monday_template.id)) == 1


def test_recording_twice_is_idempotent(session: Session, weekly_monday_template: Task) -> None:
    tracker = CompletionTracker(session)
    first = tracker.record_completion(weekly_monday_template.id, date(2024, 1, 1))
    second = tracker.record_completion(weekly_monday_template.id, date(2024, 1, 1))
    assert first.id == second.id


@pytest.mark.parametrize("day", [date(2024, 1, 9), date(2023, 12, 25)])
def test_dates_outside_the_schedule_are_rejected(session: Session, weekly_monday_template: Task, day: date) -> None:
    with pytest.raises(InvalidOccurrence):
        CompletionTracker(session).record_completion(weekly_monday_template.id, day)


def test_habit_without_rule_accepts_any_date(session: Session, make_task) -> None:
    habit = make_task(habit_mode=True)
    record = CompletionTracker(session).record_completion(habit.id, date(2024, 3, 17))
    assert record.occurrence_date == date(2024, 3, 17)


def test_plain_task_has_no_occurrences(session: Session, make_task) -> None:
    plain = make_task(due_date=date(2024, 1, 1))
    with pytest.raises(InvalidOccurrence):
        CompletionTracker(session).record_skip(plain.id, date(2024, 1, 1))


def test_unknown_task(session: Session) -> None:
    with pytest.raises(TaskNotFound):
        CompletionTracker(session).record_completion(999, date(2024, 1, 1))


def test_delete_completion(session: Session, weekly_monday_template: Task) -> None:
    tracker = CompletionTracker(session)
    tracker.record_completion(weekly_monday_template.id, date(2024, 1, 8))

    assert tracker.delete_completion(weekly_monday_template.id, date(2024, 1, 8))
    assert not tracker.delete_completion(weekly_monday_template.id, date(2024, 1, 8))
    assert tracker.get_record(weekly_monday_template.id, date(2024, 1, 8)) is None


def test_list_completions_filters(session: Session, weekly_monday_template: Task) -> None:
    tracker = CompletionTracker(session)
    task_id = weekly_monday_template.id
    tracker.record_completion(task_id, date(2024, 1, 1))
    tracker.record_skip(task_id, date(2024, 1, 8))
    tracker.record_completion(task_id, date(2024, 1, 15))

    assert [r.occurrence_date for r in tracker.list_completions(task_id, start=date(2024, 1, 8))] == [
        date(2024, 1, 8),
        date(2024, 1, 15),
    ]
    assert [r.occurrence_date for r in tracker.list_completions(task_id, include_skipped=False)] == [
        date(2024, 1, 1),
        date(2024, 1, 15),
    ]
    assert [r.occurrence_date for r in tracker.list_completions(task_id, end=date(2024, 1, 1))] == [
        date(2024, 1, 1),
    ]


def test_calendar_mode_habit_accepts_off_schedule_days(session: Session, make_task) -> None:
    habit = make_task(habit_mode=True, due_date=date(2024, 1, 1), recurrence_type="weekly", recurrence_weekdays=[1])
    record = CompletionTracker(session).record_completion(habit.id, date(2024, 1, 3))
    assert record.occurrence_date == date(2024, 1, 3)


def test_scheduled_mode_habit_follows_its_rule(session: Session, make_task) -> None:
    habit = make_task(habit_mode=True, habit_streak_mode="scheduled", due_date=date(2024, 1, 1),
                      recurrence_type="weekly", recurrence_weekdays=[1])
    with pytest.raises(InvalidOccurrence):
        CompletionTracker(session).record_completion(habit.id, date(2024, 1, 3))


def test_completion_based_series_accepts_materialized_dates(session: Session, make_task) -> None:
    template = make_task(due_date=date(2024, 1, 1), recurrence_type="daily", recurrence_interval=3,
                         completion_based=True)
    make_task(due_date=date(2024, 1, 6), recurring_parent_id=template.id)
    tracker = CompletionTracker(session)

    assert tracker.record_completion(template.id, date(2024, 1, 1)).occurrence_date == date(2024, 1, 1)
    assert tracker.record_completion(template.id, date(2024, 1, 6)).occurrence_date == date(2024, 1, 6)
    with pytest.raises(InvalidOccurrence):
        tracker.record_completion(template.id, date(2024, 1, 4))
