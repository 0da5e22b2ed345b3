"""Tests for due date rules and business-day arithmetic."""

from datetime import date, datetime, timezone

from formflow.schemas.forms import DueDateRule
from formflow.services.due_date_service import calculate_due_date, resolve_due_date
from formflow.utils.business_days import add_business_days, is_business_day

# Friday
FRIDAY = datetime(2025, 6, 6, 14, 30, tzinfo=timezone.utc)


class TestBusinessDays:
    def test_weekdays_are_business_days(self):
        assert is_business_day(datetime(2025, 6, 2)) is True  # Monday
        assert is_business_day(date(2025, 6, 6)) is True  # Friday

    def test_weekend_is_not_business_day(self):
        assert is_business_day(datetime(2025, 6, 7)) is False
        assert is_business_day(datetime(2025, 6, 8)) is False

    def test_holiday_only_skipped_when_requested(self):
        july_4 = datetime(2025, 7, 4)
        assert is_business_day(july_4) is True
        assert is_business_day(july_4, exclude_holidays=True) is False

    def test_add_business_days_skips_weekend(self):
        # Friday + 3 business days -> Wednesday, time of day kept
        result = add_business_days(FRIDAY, 3)
        assert result == datetime(2025, 6, 11, 14, 30, tzinfo=timezone.utc)

    def test_add_business_days_from_saturday(self):
        saturday = datetime(2025, 6, 7, tzinfo=timezone.utc)
        assert add_business_days(saturday, 1) == datetime(2025, 6, 9, tzinfo=timezone.utc)


class TestCalculateDueDate:
    def test_calendar_days(self):
        result = calculate_due_date({"type": "calendar_days", "value": 3}, FRIDAY)
        assert result == datetime(2025, 6, 9, 14, 30, tzinfo=timezone.utc)

    def test_business_days(self):
        result = calculate_due_date(DueDateRule(type="business_days", value=3), FRIDAY)
        assert result.date() == date(2025, 6, 11)

    def test_business_days_excluding_holidays(self):
        thursday = datetime(2025, 7, 3, 9, 0, tzinfo=timezone.utc)
        rule = {"type": "business_days", "value": 1, "exclude_holidays": True}
        assert calculate_due_date(rule, thursday).date() == date(2025, 7, 7)

        rule["exclude_holidays"] = False
        assert calculate_due_date(rule, thursday).date() == date(2025, 7, 4)

    def test_days_from_creation_and_assignment_are_calendar_days(self):
        for rule_type in ("days_from_creation", "days_from_assignment"):
            result = calculate_due_date({"type": rule_type, "value": 2}, FRIDAY)
            assert result.date() == date(2025, 6, 8)

    def test_unknown_type_falls_back_to_calendar_days(self):
        result = calculate_due_date({"type": "fortnights", "value": 2}, FRIDAY)
        assert result.date() == date(2025, 6, 8)


class TestResolveDueDate:
    def test_explicit_date_wins(self):
        explicit = datetime(2030, 1, 1, tzinfo=timezone.utc)
        rule = {"type": "calendar_days", "value": 5}
        assert resolve_due_date(explicit, rule, FRIDAY) == explicit

    def test_rule_used_without_explicit(self):
        rule = {"type": "calendar_days", "value": 5}
        assert resolve_due_date(None, rule, FRIDAY).date() == date(2025, 6, 11)

    def test_no_rule_no_due_date(self):
        assert resolve_due_date(None, None, FRIDAY) is None
