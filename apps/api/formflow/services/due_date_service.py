"""Due date calculation for form instances."""

from datetime import datetime, timedelta
from typing import Any, Mapping

from formflow.db.enums import DueDateRuleType
from formflow.schemas.forms import DueDateRule
from formflow.utils.business_days import add_business_days


def calculate_due_date(rule: DueDateRule | Mapping[str, Any], base_date: datetime) -> datetime:
    """
    Compute a due date from a rule.

    ``days_from_creation`` and ``days_from_assignment`` use the same arithmetic
    as ``calendar_days``; the caller picks the base date. Unknown rule types
    fall back to calendar days.
    """
    if not isinstance(rule, DueDateRule):
        rule = DueDateRule.model_validate(rule)

    if rule.type == DueDateRuleType.BUSINESS_DAYS:
        return add_business_days(
            base_date, rule.value, exclude_holidays=rule.exclude_holidays
        )
    return base_date + timedelta(days=rule.value)


def resolve_due_date(
    explicit: datetime | None,
    rule: DueDateRule | Mapping[str, Any] | None,
    base_date: datetime,
) -> datetime | None:
    """Explicit date wins, then the template rule, otherwise no due date."""
    if explicit is not None:
        return explicit
    if rule:
        return calculate_due_date(rule, base_date)
    return None
