# tests/test_scheduler.py

from datetime import date, datetime

from sqlmodel import Session, select

from cadence.models.task import Task
from cadence.scheduler import run_tick
from cadence.utils.dates import user_today
from cadence.utils.metrics import metrics_collector


def spawned_dates(session: Session, template: Task) -> list:
    statement = select(Task.due_date).where(Task.recurring_parent_id == template.id)
    return list(session.exec(statement).all())


def test_user_today_uses_the_users_zone() -> None:
    noon_utc = datetime(2024, 1, 7, 12, 0)
    assert user_today("UTC", noon_utc) == date(2024, 1, 7)
    assert user_today("Pacific/Auckland", noon_utc) == date(2024, 1, 8)
    assert user_today("America/Los_Angeles", datetime(2024, 1, 8, 3, 0)) == date(2024, 1, 7)


def test_unknown_zone_falls_back_to_utc() -> None:
    assert user_today("Mars/Olympus_Mons", datetime(2024, 1, 7, 23, 0)) == date(2024, 1, 7)
    assert user_today(None, datetime(2024, 1, 7, 23, 0)) == date(2024, 1, 7)


def test_tick_advances_each_user_on_their_own_date(engine, session: Session, make_task, other_user) -> None:
    utc_template = make_task(due_date=date(2024, 1, 1), recurrence_type="weekly", recurrence_weekdays=[1])
    auckland_template = make_task(
        user_id=other_user.id, due_date=date(2024, 1, 1), recurrence_type="weekly", recurrence_weekdays=[1]
    )

    # Sunday noon in UTC is already Monday in Auckland
    created = run_tick(engine, now=datetime(2024, 1, 7, 12, 0))

    assert created == 1
    assert spawned_dates(session, utc_template) == []
    assert spawned_dates(session, auckland_template) == [date(2024, 1, 8)]
    assert "scheduler_tick_seconds" in metrics_collector.get_metrics()["timers"]


def test_repeated_ticks_are_idempotent(engine, session: Session, weekly_monday_template: Task) -> None:
    now = datetime(2024, 1, 8, 9, 0)
    assert run_tick(engine, now=now) == 1
    assert run_tick(engine, now=now) == 0
    assert spawned_dates(session, weekly_monday_template) == [date(2024, 1, 8)]
