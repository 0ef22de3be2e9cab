# tests/test_recurrence_rule.py

from datetime import date

import pytest

from cadence.models.recurrence_rule import RecurrenceRule, RecurrenceType, parse_weekdays
from cadence.models.task import Task
from cadence.services.exceptions import InvalidRecurrenceRule
from cadence.services.recurrence_validator import RecurrenceValidator


def test_parse_weekdays_accepts_every_stored_shape() -> None:
    assert parse_weekdays([3, 1]) == frozenset({1, 3})
    assert parse_weekdays("[3, 1]") == frozenset({1, 3})
    assert parse_weekdays("3,1") == frozenset({1, 3})
    assert parse_weekdays("4") == frozenset({4})
    assert parse_weekdays(None) == frozenset()
    assert parse_weekdays("") == frozenset()


def test_parse_weekdays_rejects_names() -> None:
    with pytest.raises(ValueError):
        parse_weekdays("mon,tue")


def test_from_fields_defaults() -> None:
    rule = RecurrenceRule.from_fields()
    assert rule.is_none
    assert rule.interval == 1
    assert rule.weekdays == frozenset()


def test_apply_to_writes_canonical_columns() -> None:
    task = Task(user_id="u", name="t")
    RecurrenceRule.from_fields(type="weekly", weekdays="5,1", end_date="2024-03-01").apply_to(task)

    assert task.recurrence_type == "weekly"
    assert task.recurrence_weekdays == [1, 5]
    assert task.recurrence_end_date == date(2024, 3, 1)
    assert RecurrenceRule.from_task(task) == RecurrenceRule(
        type=RecurrenceType.WEEKLY,
        weekdays=frozenset({1, 5}),
        end_date=date(2024, 3, 1),
    )


def test_valid_rules_pass() -> None:
    for rule in [
        RecurrenceRule.from_fields(type="daily", interval=3),
        RecurrenceRule.from_fields(type="weekly", weekdays=[0, 6]),
        RecurrenceRule.from_fields(type="monthly", month_day=31),
        RecurrenceRule.from_fields(type="monthly_weekday", weekday=2, week_of_month=-1),
        RecurrenceRule.from_fields(type="monthly_last_day"),
        RecurrenceRule.from_fields(type="yearly"),
    ]:
        assert RecurrenceValidator.validate_rule(rule)["valid"], rule


@pytest.mark.parametrize(
    "fields, message",
    [
        ({"type": "daily", "interval": 0}, "interval"),
        ({"type": "weekly", "weekdays": [7]}, "Weekdays"),
        ({"type": "monthly", "month_day": 32}, "Month day"),
        ({"type": "monthly_weekday", "weekday": 2, "week_of_month": 6}, "Week of month"),
        ({"type": "monthly_weekday", "week_of_month": 2}, "requires a weekday"),
        ({"type": "monthly", "month_day": 10, "week_of_month": 2, "weekday": 1}, "not both"),
        ({"type": "monthly", "week_of_month": 2}, "requires a weekday"),
    ],
)
def test_invalid_rules_are_rejected(fields: dict, message: str) -> None:
    rule = RecurrenceRule.from_fields(**fields)
    with pytest.raises(InvalidRecurrenceRule) as exc_info:
        RecurrenceValidator.ensure_valid(rule)
    assert any(message in error for error in exc_info.value.errors)


def test_warnings_do_not_invalidate() -> None:
    rule = RecurrenceRule.from_fields(type="daily", weekdays=[1], end_date="2023-12-01")
    result = RecurrenceValidator.validate_rule(rule, anchor=date(2024, 1, 1))
    assert result["valid"]
    assert len(result["warnings"]) == 2
