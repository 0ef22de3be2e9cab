"""Recurrence rule value object.

The rule is stored flattened on the task row (``recurrence_*`` columns) and
historically arrived in more than one shape: ``recurrence_weekdays`` as a JSON
string, a comma separated string or a list, plus a legacy single
``recurrence_weekday``. Everything downstream works on the normalized
``RecurrenceRule`` built here.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional


class RecurrenceType(str, Enum):
    """How often a task repeats."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MONTHLY_WEEKDAY = "monthly_weekday"
    MONTHLY_LAST_DAY = "monthly_last_day"
    YEARLY = "yearly"


def parse_weekdays(raw: Any) -> FrozenSet[int]:
    """Normalize a stored weekday collection into a set of ordinals (0=Sunday).

    Raises:
        ValueError: If an entry is not an integer.
    """
    if raw is None or raw == "":
        return frozenset()
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return frozenset()
        try:
            raw = json.loads(text)
        except json.JSONDecodeError:
            raw = [part for part in text.split(",") if part.strip()]
        if isinstance(raw, (int, str)):
            raw = [raw]
    if not isinstance(raw, Iterable):
        raise ValueError(f"Unsupported weekdays value: {raw!r}")
    return frozenset(int(day) for day in raw)


def parse_date(raw: Any) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date() if "T" in raw else date.fromisoformat(raw)
    raise ValueError(f"Unsupported date value: {raw!r}")


def _optional_int(raw: Any) -> Optional[int]:
    if raw is None or raw == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class RecurrenceRule:
    """Declarative definition of how often a task repeats."""

    type: RecurrenceType = RecurrenceType.NONE
    interval: int = 1
    weekdays: FrozenSet[int] = field(default_factory=frozenset)
    weekday: Optional[int] = None
    week_of_month: Optional[int] = None
    month_day: Optional[int] = None
    end_date: Optional[date] = None

    @classmethod
    def none(cls) -> "RecurrenceRule":
        return cls()

    @property
    def is_none(self) -> bool:
        return self.type == RecurrenceType.NONE

    @classmethod
    def from_fields(
        cls,
        type: Any = None,
        interval: Any = None,
        weekdays: Any = None,
        weekday: Any = None,
        week_of_month: Any = None,
        month_day: Any = None,
        end_date: Any = None,
    ) -> "RecurrenceRule":
        """Build a rule from loosely typed values (request bodies or ORM columns).

        Raises:
            ValueError: If a value cannot be parsed. Range checks live in
                RecurrenceValidator.
        """
        rule_type = RecurrenceType(type or RecurrenceType.NONE.value)
        days = parse_weekdays(weekdays)
        single = _optional_int(weekday)

        # Legacy rows store a weekly rule's day in the single weekday column
        if rule_type == RecurrenceType.WEEKLY and not days and single is not None:
            days = frozenset([single])

        return cls(
            type=rule_type,
            interval=1 if interval is None or interval == "" else int(interval),
            weekdays=days,
            weekday=single,
            week_of_month=_optional_int(week_of_month),
            month_day=_optional_int(month_day),
            end_date=parse_date(end_date),
        )

    @classmethod
    def from_task(cls, task) -> "RecurrenceRule":
        """Read the flattened ``recurrence_*`` columns of a task.

        Raises:
            ValueError: If the stored values cannot be parsed.
        """
        return cls.from_fields(
            type=task.recurrence_type,
            interval=task.recurrence_interval,
            weekdays=task.recurrence_weekdays,
            weekday=task.recurrence_weekday,
            week_of_month=task.recurrence_week_of_month,
            month_day=task.recurrence_month_day,
            end_date=task.recurrence_end_date,
        )

    def apply_to(self, task) -> None:
        """Write the canonical representation back onto a task row."""
        task.recurrence_type = self.type.value
        task.recurrence_interval = self.interval
        task.recurrence_weekdays = sorted(self.weekdays) if self.weekdays else None
        task.recurrence_weekday = self.weekday
        task.recurrence_week_of_month = self.week_of_month
        task.recurrence_month_day = self.month_day
        task.recurrence_end_date = self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "interval": self.interval,
            "weekdays": sorted(self.weekdays),
            "weekday": self.weekday,
            "week_of_month": self.week_of_month,
            "month_day": self.month_day,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }
