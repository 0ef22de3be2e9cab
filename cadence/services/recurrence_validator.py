"""Recurrence Validator."""
from datetime import date
from typing import Dict, Any, Optional

from cadence.models.recurrence_rule import RecurrenceRule, RecurrenceType
from cadence.services.exceptions import InvalidRecurrenceRule

VALID_WEEKS_OF_MONTH = {1, 2, 3, 4, 5, -1}


class RecurrenceValidator:
    """Validate normalized recurrence rules."""

    @staticmethod
    def _result() -> Dict[str, Any]:
        return {
            "valid": True,
            "errors": [],
            "warnings": []
        }

    @staticmethod
    def validate_rule(rule: RecurrenceRule, anchor: Optional[date] = None) -> Dict[str, Any]:
        """
        Validate a normalized recurrence rule.

        Args:
            rule: Rule to check
            anchor: Optional anchor date, used only for warnings

        Returns:
            Dict with validation result
        """
        result = RecurrenceValidator._result()
        errors = result["errors"]

        if rule.is_none:
            return result

        if not isinstance(rule.interval, int) or rule.interval < 1:
            errors.append("Recurrence interval must be a positive integer")

        bad_days = sorted(d for d in rule.weekdays if d < 0 or d > 6)
        if bad_days:
            errors.append(f"Weekdays must be between 0 (Sunday) and 6 (Saturday), got: {bad_days}")

        if rule.weekday is not None and not 0 <= rule.weekday <= 6:
            errors.append(f"Weekday must be between 0 (Sunday) and 6 (Saturday), got: {rule.weekday}")

        if rule.week_of_month is not None and rule.week_of_month not in VALID_WEEKS_OF_MONTH:
            errors.append(f"Week of month must be 1-5 or -1 (last), got: {rule.week_of_month}")

        if rule.month_day is not None and not 1 <= rule.month_day <= 31:
            errors.append(f"Month day must be between 1 and 31, got: {rule.month_day}")

        if rule.type == RecurrenceType.MONTHLY_WEEKDAY:
            if rule.weekday is None:
                errors.append("monthly_weekday recurrence requires a weekday")
            if rule.week_of_month is None:
                errors.append("monthly_weekday recurrence requires a week of month")

        if rule.type == RecurrenceType.MONTHLY:
            if rule.month_day is not None and rule.week_of_month is not None:
                errors.append("Monthly recurrence takes either a month day or a week of month, not both")
            elif rule.week_of_month is not None and rule.weekday is None:
                errors.append("Monthly recurrence by week of month requires a weekday")

        if rule.weekdays and rule.type != RecurrenceType.WEEKLY:
            result["warnings"].append("Weekdays are only used by weekly recurrence")

        if rule.end_date is not None and anchor is not None and rule.end_date < anchor:
            result["warnings"].append("Recurrence ends before it starts; no occurrences will be generated")

        if errors:
            result["valid"] = False
        return result

    @staticmethod
    def ensure_valid(rule: RecurrenceRule, anchor: Optional[date] = None) -> RecurrenceRule:
        """Return the rule unchanged, or raise InvalidRecurrenceRule."""
        validation = RecurrenceValidator.validate_rule(rule, anchor)
        if not validation["valid"]:
            raise InvalidRecurrenceRule(validation["errors"])
        return rule

